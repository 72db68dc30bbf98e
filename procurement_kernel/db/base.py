"""
Declarative bases for the procurement tables.

Every table gets a uuid4 primary key stored as a 36-char string, so the same
schema runs unchanged on PostgreSQL and SQLite.  Plain annotations resolve
through ``type_annotation_map``: ``Decimal`` columns become Numeric(38, 9)
(costs and prices are never floats) and ``datetime`` columns come back as
aware UTC values.

``TrackedBase`` adds who/when bookkeeping to the mutable aggregates (MRF,
RFQ, quotation).  Its timestamps are database-maintained row metadata; the
workflow's own timestamps (submitted_at, approval history ``at``) come from
the injected Clock.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from procurement_kernel.db.types import UTCDateTime


class UUIDString(TypeDecorator):
    """Python ``UUID`` on the ORM side, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[PyUUID]
    updated_by_id: Mapped[PyUUID | None]


UUID = PyUUID
