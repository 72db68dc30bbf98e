"""
Module: procurement_kernel.db.types
Responsibility: Annotated column type aliases shared by every procurement
    model, plus the timezone-normalizing datetime type.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money: estimated costs, quotation prices and line-item
      unit prices use ``Money`` (Numeric(38, 9)) and Python ``Decimal``.
    - Timestamps read back from the database are always timezone-aware UTC,
      even on backends (SQLite) that do not store offsets.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import DateTime, Numeric, String, Text
from sqlalchemy.types import TypeDecorator


# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Vendor rating on the 0.0 - 5.0 scale
Rating = Annotated[Decimal, Numeric(4, 2)]

# Short identifier strings (stage names, roles, status values)
ShortCode = Annotated[str, String(50)]

# Display names, titles, vendor ids
Name = Annotated[str, String(255)]

# Opaque document references (URLs) produced by the document store
DocumentRef = Annotated[str, String(2048)]

LongText = Annotated[str, Text]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


class UTCDateTime(TypeDecorator):
    """
    DateTime column that always hands back aware UTC datetimes.

    PostgreSQL stores the offset; SQLite drops it.  Naive values coming out
    of the database are therefore interpreted as UTC, and aware values going
    in are normalized to UTC first.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to the given number of decimal places."""
    quantizer = Decimal(10) ** -decimal_places
    return value.quantize(quantizer, rounding=rounding)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
