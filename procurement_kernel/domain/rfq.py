"""
RFQ, quotation and vendor value objects (``procurement_kernel.domain.rfq``).

Responsibility
--------------
Pure value objects for the sourcing half of the workflow: the request for
quotation sent to vendors, the quotations they return, and the read-only
vendor records supplied by the vendor directory.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``RFQ_TRANSITIONS`` defines the only valid RFQ status changes; Closed and
  Awarded are terminal.
* ``QUOTATION_TRANSITIONS`` does the same for quotations.  A quotation is
  *open* while submitted (pending) or approved; only open quotations count
  against the one-open-quotation-per-vendor rule.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class RFQStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"
    AWARDED = "Awarded"


RFQ_TRANSITIONS: dict[RFQStatus, frozenset[RFQStatus]] = {
    RFQStatus.OPEN: frozenset({RFQStatus.CLOSED, RFQStatus.AWARDED}),
    RFQStatus.CLOSED: frozenset(),
    RFQStatus.AWARDED: frozenset(),
}


class QuotationStatus(str, Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    CLOSED = "closed"
    REJECTED = "rejected"


QUOTATION_TRANSITIONS: dict[QuotationStatus, frozenset[QuotationStatus]] = {
    QuotationStatus.SUBMITTED: frozenset({
        QuotationStatus.APPROVED,
        QuotationStatus.REJECTED,
        QuotationStatus.CLOSED,
    }),
    QuotationStatus.CLOSED: frozenset({QuotationStatus.SUBMITTED}),
    QuotationStatus.APPROVED: frozenset(),
    QuotationStatus.REJECTED: frozenset(),
}

OPEN_QUOTATION_STATUSES: frozenset[QuotationStatus] = frozenset({
    QuotationStatus.SUBMITTED,
    QuotationStatus.APPROVED,
})


class VendorSelectionMethod(str, Enum):
    """How the invitee set of an RFQ is resolved."""

    MANUAL = "manual"
    ALL_CATEGORY = "all_category"
    PREFERRED = "preferred"


@dataclass(frozen=True)
class Vendor:
    """Read-only vendor record from the vendor directory."""

    id: str
    name: str
    category: str
    rating: Decimal
    completed_orders: int
    active: bool = True
    kyc_verified: bool = True
    email: str | None = None

    @property
    def is_eligible(self) -> bool:
        """Active and KYC-verified; the minimum for any invitation."""
        return self.active and self.kyc_verified


@dataclass(frozen=True)
class VendorFilter:
    """Query passed to ``VendorDirectory.list_vendors``."""

    category: str | None = None
    active_only: bool = True
    vendor_ids: tuple[str, ...] | None = None


@dataclass(frozen=True)
class RFQ:
    id: UUID
    mrf_id: UUID
    mrf_title: str
    estimated_cost: Decimal
    description: str
    quantity: Decimal
    deadline: datetime
    status: RFQStatus
    selection_method: VendorSelectionMethod
    vendor_ids: tuple[str, ...]
    created_by_id: UUID
    created_at: datetime
    closed_reason: str | None = None
    awarded_quotation_id: UUID | None = None
    version: int = 1

    @property
    def is_open(self) -> bool:
        return self.status == RFQStatus.OPEN


@dataclass(frozen=True)
class QuotationLine:
    name: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class QuotationDraft:
    """Canonical, not yet validated vendor bid."""

    vendor_id: str
    delivery_date: date
    price: Decimal | None = None
    line_items: tuple[QuotationLine, ...] = ()
    payment_terms: str | None = None
    validity_days: int | None = None
    warranty_period: str | None = None
    notes: str | None = None
    document_ref: str | None = None


@dataclass(frozen=True)
class Quotation:
    id: UUID
    rfq_id: UUID
    vendor_id: str
    vendor_name: str
    price: Decimal
    delivery_date: date
    status: QuotationStatus
    submitted_at: datetime
    line_items: tuple[QuotationLine, ...] = ()
    payment_terms: str | None = None
    validity_days: int | None = None
    warranty_period: str | None = None
    notes: str | None = None
    document_ref: str | None = None
    is_late: bool = False

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_QUOTATION_STATUSES
