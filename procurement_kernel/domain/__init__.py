"""
Pure domain layer.

This module contains immutable value objects for the procurement
workflow with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (other than the injectable Clock itself)
- I/O

The workflow state machine lives in ``procurement_kernel.domain.workflow``
and is imported from there directly.
"""

from procurement_kernel.domain.actor import Actor, Role
from procurement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from procurement_kernel.domain.events import EventType, WorkflowEvent
from procurement_kernel.domain.mrf import (
    MRF,
    TERMINAL_STAGES,
    ApprovalHistoryEntry,
    HistoryAction,
    MRFDraft,
    MRFStage,
    PaymentStatus,
    Urgency,
)
from procurement_kernel.domain.ports import (
    DocumentStore,
    IdentityProvider,
    NotificationSink,
    VendorDirectory,
)
from procurement_kernel.domain.rfq import (
    RFQ,
    Quotation,
    QuotationDraft,
    QuotationLine,
    QuotationStatus,
    RFQStatus,
    Vendor,
    VendorFilter,
    VendorSelectionMethod,
)

__all__ = [
    # Actor
    "Actor",
    "Role",
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Events
    "EventType",
    "WorkflowEvent",
    # MRF
    "MRF",
    "MRFDraft",
    "MRFStage",
    "TERMINAL_STAGES",
    "ApprovalHistoryEntry",
    "HistoryAction",
    "PaymentStatus",
    "Urgency",
    # Sourcing
    "RFQ",
    "RFQStatus",
    "Quotation",
    "QuotationDraft",
    "QuotationLine",
    "QuotationStatus",
    "Vendor",
    "VendorFilter",
    "VendorSelectionMethod",
    # Ports
    "VendorDirectory",
    "DocumentStore",
    "NotificationSink",
    "IdentityProvider",
]
