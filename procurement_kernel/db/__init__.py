"""Database layer - engine, base classes and column types."""

from procurement_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from procurement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from procurement_kernel.db.types import DocumentRef, Money, Rating, UTCDateTime

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Rating",
    "DocumentRef",
    "UTCDateTime",
]
