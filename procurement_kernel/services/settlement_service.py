"""
Payment and goods receipt (``procurement_kernel.services.settlement_service``).

Responsibility
--------------
Everything after the signed PO reaches finance: finance processes the
payment and forwards it to the chairman, the chairman approves it and the
MRF completes.  Independently, finance may request a goods-received note
(GRN) once the goods are delivered, which procurement completes by filing
the GRN document.

Architecture position
---------------------
**Kernel services layer**.  Every command is a single-aggregate MRF
transition run through ``WorkflowService._apply_command``; the rules
(which stage, which role, which preconditions) live in the workflow table.

Invariants enforced
-------------------
* Payment is processed at most once per MRF.
* An MRF never completes while a requested GRN is outstanding.
* With ``chairman_payment_approval`` configured, finance cannot complete
  the MRF directly; the payment goes through the chairman.

Failure modes
-------------
* ``InvalidTransitionError`` -- step out of order (payment already
  processed, GRN not requested, GRN outstanding at completion).
* ``UnauthorizedError`` -- wrong role for the step.
* ``ValidationError`` -- GRN document missing or too long.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from procurement_config import WorkflowConfig
from procurement_kernel.domain.actor import Actor
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.mrf import MRF
from procurement_kernel.domain.ports import DocumentStore
from procurement_kernel.domain.workflow import WorkflowAction
from procurement_kernel.logging_config import get_logger
from procurement_kernel.services.base import WorkflowService, resolve_document
from procurement_kernel.services.notification import NotificationDispatcher

logger = get_logger("services.settlement")


class SettlementService(WorkflowService):
    """Finance and chairman payment steps, and the GRN request/completion pair."""

    def __init__(
        self,
        session: Session,
        config: WorkflowConfig | None = None,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
        document_store: DocumentStore | None = None,
    ):
        super().__init__(session, config=config, clock=clock, dispatcher=dispatcher)
        self._documents = document_store

    def process_payment(self, mrf_id: UUID, actor: Actor, remarks: str | None = None) -> MRF:
        """Finance: mark the payment as processing and forward it to the chairman."""
        return self._apply_command(
            logger,
            "procurement_payment_process",
            mrf_id,
            actor,
            WorkflowAction.PROCESS_PAYMENT,
            remarks=remarks,
        )

    def approve_payment(self, mrf_id: UUID, actor: Actor, remarks: str | None = None) -> MRF:
        """Chairman: approve the processed payment, completing the MRF."""
        return self._apply_command(
            logger,
            "procurement_payment_approve",
            mrf_id,
            actor,
            WorkflowAction.APPROVE_PAYMENT,
            remarks=remarks,
        )

    def request_grn(self, mrf_id: UUID, actor: Actor, remarks: str | None = None) -> MRF:
        """Ask procurement for the goods-received note.  Blocks completion until filed."""
        return self._apply_command(
            logger,
            "procurement_grn_request",
            mrf_id,
            actor,
            WorkflowAction.REQUEST_GRN,
            remarks=remarks,
        )

    def complete_grn(
        self,
        mrf_id: UUID,
        actor: Actor,
        document_ref: str | None = None,
        *,
        content: bytes | str | None = None,
        filename: str | None = None,
        remarks: str | None = None,
    ) -> MRF:
        return self._apply_command(
            logger,
            "procurement_grn_complete",
            mrf_id,
            actor,
            WorkflowAction.COMPLETE_GRN,
            remarks=remarks,
            document_ref=resolve_document(self._documents, document_ref, content, filename),
        )
