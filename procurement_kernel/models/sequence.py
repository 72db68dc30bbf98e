"""
Module: procurement_kernel.models.sequence
Responsibility: Named counter rows backing control-number allocation.

Each row is one named sequence (``mrf_control:2024`` and so on).  The
SequenceService locks the row with ``SELECT ... FOR UPDATE`` before
incrementing, so values are strictly monotonic under concurrency and the
SQL aggregate-max-plus-one pattern is never needed.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base


class SequenceCounter(Base):
    """One named sequence and its current value."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
