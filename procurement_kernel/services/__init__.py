"""Workflow services: each public command owns its transaction."""

from procurement_kernel.services.approval_gate import ApprovalGate, validate_draft
from procurement_kernel.services.award_service import AwardService
from procurement_kernel.services.base import WorkflowService, flush_or_conflict
from procurement_kernel.services.notification import (
    InMemoryNotificationSink,
    NotificationDispatcher,
)
from procurement_kernel.services.quotation_service import (
    QuotationComparison,
    QuotationService,
)
from procurement_kernel.services.rfq_dispatch import RFQDispatchService
from procurement_kernel.services.sequence_service import SequenceService
from procurement_kernel.services.settlement_service import SettlementService
from procurement_kernel.services.vendor_directory import InMemoryVendorDirectory

__all__ = [
    "ApprovalGate",
    "AwardService",
    "InMemoryNotificationSink",
    "InMemoryVendorDirectory",
    "NotificationDispatcher",
    "QuotationComparison",
    "QuotationService",
    "RFQDispatchService",
    "SequenceService",
    "SettlementService",
    "WorkflowService",
    "flush_or_conflict",
    "validate_draft",
]
