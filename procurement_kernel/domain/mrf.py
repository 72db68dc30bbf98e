"""
MRF domain types (``procurement_kernel.domain.mrf``).

Responsibility
--------------
Pure value objects for the Material/Service Requisition Form aggregate:
the stage enum, the append-only approval history entry and the MRF
snapshot that the workflow state machine consumes and produces.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``history`` is ordered by ``sequence`` (1, 2, 3, ...) and never shrinks.
* ``current_stage`` equals ``history[-1].resulting_stage`` for every MRF
  produced by submission or by the workflow transition function.
* ``signed_po_url`` is never set without ``unsigned_po_url``.
* A vendor proposal and an award are never recorded at the same time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class MRFStage(str, Enum):
    """Position of an MRF in the approval state machine."""

    SUBMITTED = "submitted"
    PROCUREMENT = "procurement"
    EXECUTIVE = "executive"
    CHAIRMAN = "chairman"
    SUPPLY_CHAIN = "supply_chain"
    FINANCE = "finance"
    CHAIRMAN_PAYMENT = "chairman_payment"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


# ``approved`` has no inbound transition in the state machine; it exists so
# that records migrated from the legacy status field keep a terminal stage.
TERMINAL_STAGES: frozenset[MRFStage] = frozenset({
    MRFStage.APPROVED,
    MRFStage.REJECTED,
    MRFStage.COMPLETED,
})

SUCCESS_STAGES: frozenset[MRFStage] = frozenset({
    MRFStage.APPROVED,
    MRFStage.COMPLETED,
})


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class HistoryAction(str, Enum):
    """What happened in one approval-history entry."""

    SUBMITTED = "submitted"
    RESUBMITTED = "resubmitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    VENDOR_SELECTED = "vendor_selected"
    PO_UPLOADED = "po_uploaded"
    PO_SIGNED = "po_signed"
    PO_REJECTED = "po_rejected"
    PO_WITHDRAWN = "po_withdrawn"
    VENDOR_PROPOSED = "vendor_proposed"
    VENDOR_APPROVED = "vendor_approved"
    VENDOR_REJECTED = "vendor_rejected"
    PAYMENT_PROCESSED = "payment_processed"
    PAYMENT_APPROVED = "payment_approved"
    GRN_REQUESTED = "grn_requested"
    GRN_COMPLETED = "grn_completed"


class PaymentStatus(str, Enum):
    """Settlement progress once the signed PO reaches finance."""

    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"


@dataclass(frozen=True)
class ApprovalHistoryEntry:
    """One immutable entry in an MRF's approval history.

    ``stage`` is where the action was taken; ``resulting_stage`` is where
    the MRF stood afterwards.  ``estimated_cost_snapshot`` records the
    cost the action was evaluated against, which pins the chairman
    escalation decision made at the executive step.
    """

    sequence: int
    stage: MRFStage
    action: HistoryAction
    resulting_stage: MRFStage
    approver_id: UUID
    approver_name: str
    approver_role: str
    timestamp: datetime
    remarks: str | None = None
    estimated_cost_snapshot: Decimal | None = None


@dataclass(frozen=True)
class MRFDraft:
    """Canonical, validated input for submitting an MRF."""

    title: str
    category: str
    description: str
    quantity: Decimal
    estimated_cost: Decimal
    urgency: Urgency
    justification: str
    department: str
    currency: str = "NGN"
    # Reference to the proforma invoice attached at submission.
    pfi_url: str | None = None


@dataclass(frozen=True)
class MRF:
    """Snapshot of the MRF aggregate.

    Produced by ``MRFModel.to_dto()`` and by the workflow transition
    function; never mutated in place.
    """

    id: UUID
    control_number: str
    title: str
    category: str
    description: str
    quantity: Decimal
    estimated_cost: Decimal
    urgency: Urgency
    justification: str
    department: str
    requester_id: UUID
    requester_name: str
    current_stage: MRFStage
    history: tuple[ApprovalHistoryEntry, ...]
    currency: str = "NGN"
    rejection_reason: str | None = None
    is_resubmission: bool = False
    original_mrf_id: UUID | None = None
    pfi_url: str | None = None
    # Vendor choice awaiting supply-chain review
    proposed_rfq_id: UUID | None = None
    proposed_quotation_id: UUID | None = None
    proposed_vendor_id: str | None = None
    vendor_rejection_reason: str | None = None
    # Award facts
    awarded_rfq_id: UUID | None = None
    awarded_quotation_id: UUID | None = None
    awarded_vendor_id: str | None = None
    # Purchase order
    po_number: str | None = None
    unsigned_po_url: str | None = None
    signed_po_url: str | None = None
    po_version: int = 1
    po_rejection_reason: str | None = None
    po_rejection_comments: str | None = None
    # Settlement
    payment_status: PaymentStatus = PaymentStatus.PENDING
    grn_requested: bool = False
    grn_url: str | None = None
    submitted_at: datetime | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.current_stage in TERMINAL_STAGES

    @property
    def has_award(self) -> bool:
        return self.awarded_quotation_id is not None

    @property
    def has_pending_proposal(self) -> bool:
        return self.proposed_quotation_id is not None

    @property
    def grn_outstanding(self) -> bool:
        """A GRN was requested and the goods-received note is not on file yet."""
        return self.grn_requested and self.grn_url is None

    @property
    def last_entry(self) -> ApprovalHistoryEntry | None:
        return self.history[-1] if self.history else None

    def history_is_consistent(self) -> bool:
        """True when sequences are contiguous and the last entry implies the stage."""
        for expected, entry in enumerate(self.history, start=1):
            if entry.sequence != expected:
                return False
        last = self.last_entry
        return last is not None and last.resulting_stage == self.current_stage

    def executive_decision(self) -> ApprovalHistoryEntry | None:
        """The most recent executive approval, if one was recorded."""
        for entry in reversed(self.history):
            if (
                entry.stage == MRFStage.EXECUTIVE
                and entry.action == HistoryAction.APPROVED
            ):
                return entry
        return None
