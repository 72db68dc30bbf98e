"""
Workflow domain events (``procurement_kernel.domain.events``).

Every committed state change produces one or more ``WorkflowEvent``
values.  Services hand them to the notification dispatcher after the
transaction commits; the dispatcher delivers them to the external sink
at most once per ``event_key``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from procurement_kernel.utils.idempotency import generate_event_key


class EventType(str, Enum):
    MRF_SUBMITTED = "mrf.submitted"
    MRF_RESUBMITTED = "mrf.resubmitted"
    MRF_APPROVED = "mrf.approved"
    MRF_REJECTED = "mrf.rejected"
    MRF_CANCELLED = "mrf.cancelled"
    MRF_COMPLETED = "mrf.completed"
    VENDOR_SELECTED = "mrf.vendor_selected"
    PO_UPLOADED = "mrf.po_uploaded"
    PO_SIGNED = "mrf.po_signed"
    PO_REJECTED = "mrf.po_rejected"
    PO_WITHDRAWN = "mrf.po_withdrawn"
    VENDOR_PROPOSED = "mrf.vendor_proposed"
    VENDOR_SELECTION_REJECTED = "mrf.vendor_selection_rejected"
    PAYMENT_PROCESSED = "mrf.payment_processed"
    GRN_REQUESTED = "mrf.grn_requested"
    GRN_COMPLETED = "mrf.grn_completed"
    RFQ_CREATED = "rfq.created"
    RFQ_VENDOR_INVITED = "rfq.vendor_invited"
    RFQ_CLOSED = "rfq.closed"
    RFQ_AWARDED = "rfq.awarded"
    QUOTATION_SUBMITTED = "quotation.submitted"
    QUOTATION_CLOSED = "quotation.closed"
    QUOTATION_REOPENED = "quotation.reopened"


@dataclass(frozen=True)
class WorkflowEvent:
    """A fact about the procurement workflow, addressed to the notification sink.

    ``discriminator`` distinguishes repeated events of the same type on the
    same aggregate (history sequence, invited vendor id, PO version).
    """

    event_type: EventType
    aggregate_id: UUID
    occurred_at: datetime
    discriminator: str
    actor_id: UUID | None = None
    mrf_id: UUID | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def event_key(self) -> str:
        return generate_event_key(
            self.aggregate_id, self.event_type.value, self.discriminator
        )
