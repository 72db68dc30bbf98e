"""
Engine and session wiring for the procurement database.

One process-wide engine is created by ``init_engine_from_url``.  PostgreSQL
runs at READ COMMITTED; MRF and RFQ rows are additionally locked with
``SELECT ... FOR UPDATE`` by the services and versioned by the ORM, so two
approvers cannot both move the same request.  SQLite is accepted for
embedding and tests: an in-memory URL shares one connection across all
sessions, a file URL gets a busy timeout so concurrent writers wait instead
of failing immediately.
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from procurement_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _sqlite_options(url: URL, busy_timeout: int) -> dict[str, Any]:
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    else:
        options["connect_args"]["timeout"] = busy_timeout
    return options


def _server_options(
    pool_size: int, max_overflow: int, pool_timeout: int, pool_recycle: int,
) -> dict[str, Any]:
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_timeout": pool_timeout,
        "pool_recycle": pool_recycle,
        "isolation_level": "READ COMMITTED",
    }


def _foreign_keys_on(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Create the process-wide engine and session factory, replacing any previous ones.

    Pool settings apply to server databases only.  For file-backed SQLite
    ``pool_timeout`` doubles as the busy timeout.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite":
        options = _sqlite_options(url, pool_timeout)
    else:
        options = _server_options(pool_size, max_overflow, pool_timeout, pool_recycle)

    _engine = create_engine(url, echo=echo, **options)
    if dialect == "sqlite":
        event.listen(_engine, "connect", _foreign_keys_on)

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": dialect, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that need several independent sessions, e.g. race tests."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back and re-raise on error, always close.

    Usage:
        with session_scope() as session:
            ApprovalGate(session, config).approve(mrf_id, actor)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from procurement_kernel.db.base import Base
    from procurement_kernel.models import import_all_models

    import_all_models()
    return Base.metadata


def create_tables() -> None:
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    """Drop every procurement table.  Tests only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
