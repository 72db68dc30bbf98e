"""
Award and PO lifecycle (``procurement_kernel.services.award_service``).

Responsibility
--------------
Vendor award and the purchase-order loop that follows it.  Procurement
either selects the winning quotation directly or sends it to supply chain,
which approves (awarding it) or rejects the choice.  Then the unsigned PO
is uploaded and signed (advancing the MRF to finance), rejected back to
procurement, or withdrawn before signature.

Architecture position
---------------------
**Kernel services layer**.  ``select_vendor`` and ``approve_vendor_selection``
change two aggregates (RFQ + quotations, and the MRF); both are written in
a single transaction so an RFQ is never Awarded while its MRF is not.

Invariants enforced
-------------------
* At most one award per RFQ: the RFQ row is locked and must be Open, and a
  partial unique index allows a single approved quotation per RFQ.
* The MRF must already sit at ``supply_chain`` when a vendor is selected;
  earlier stages are a domain-order violation (``InvalidStateError``).
* ``signed_po_url`` is only ever set while ``unsigned_po_url`` is set.
* Each PO rejection increments ``po_version`` exactly once.

Failure modes
-------------
* ``InvalidStateError`` -- RFQ not Open, quotation not pending, MRF stage
  not ready for award.
* ``InvalidTransitionError`` -- PO or review action out of order, or a
  direct award while vendor selection review is configured.
* ``POVersionLimitError`` -- configured PO version cap reached.
* ``UnauthorizedError`` -- wrong role for the PO step.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from procurement_config import WorkflowConfig
from procurement_kernel.domain.actor import Actor
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.events import EventType, WorkflowEvent
from procurement_kernel.domain.mrf import MRF, MRFStage
from procurement_kernel.domain.ports import DocumentStore
from procurement_kernel.domain.rfq import QuotationStatus, RFQStatus
from procurement_kernel.domain.workflow import (
    AwardRecord,
    TransitionCommand,
    WorkflowAction,
    authorize,
    resolve_transition,
)
from procurement_kernel.exceptions import (
    ConcurrentModificationError,
    InvalidStateError,
    MRFNotFoundError,
    ProcurementKernelError,
    QuotationNotFoundError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.models.mrf import MRFModel
from procurement_kernel.models.rfq import QuotationModel, RFQModel
from procurement_kernel.services.base import WorkflowService, log_rejection, resolve_document
from procurement_kernel.services.notification import NotificationDispatcher

logger = get_logger("services.award")


class AwardService(WorkflowService):
    """Vendor award, supply-chain review of a vendor choice, and the PO signature loop."""

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

    # =========================================================================
    # Award
    # =========================================================================

    def select_vendor(
        self,
        rfq_id: UUID,
        quotation_id: UUID,
        actor: Actor,
        remarks: str | None = None,
    ) -> MRF:
        """
        Award the RFQ to one quotation.

        The chosen quotation becomes approved, every other pending quotation
        on the RFQ is rejected, the RFQ becomes Awarded and the award is
        recorded on the MRF.
        """
        with LogContext.bind(actor_id=str(actor.actor_id), rfq_id=str(rfq_id)):
            try:
                logger.info("procurement_vendor_select_started", extra={
                    "quotation_id": str(quotation_id),
                })
                rfq, mrf, chosen, siblings = self._award_candidates(rfq_id, quotation_id)
                now = self._clock.now_utc()
                result = self._transition(
                    mrf,
                    TransitionCommand(
                        action=WorkflowAction.SELECT_VENDOR,
                        actor=actor,
                        at=now,
                        remarks=remarks,
                        award=AwardRecord(
                            rfq_id=rfq_id,
                            quotation_id=quotation_id,
                            vendor_id=chosen.vendor_id,
                        ),
                    ),
                )
                self._record_award(rfq, chosen, siblings, actor)
                self._commit("RFQ", rfq_id)

                awarded = self._awarded_event(rfq, mrf, chosen, siblings, actor, now)
                logger.info("procurement_vendor_select_committed", extra={
                    "mrf_id": str(mrf.id),
                    "quotation_id": str(quotation_id),
                    "vendor_id": chosen.vendor_id,
                    "rejected_quotations": len(siblings),
                })
            except ProcurementKernelError as exc:
                self._session.rollback()
                log_rejection(
                    logger, "procurement_vendor_select", exc, quotation_id=quotation_id,
                )
                raise
            except Exception:
                self._session.rollback()
                raise
        self._notify([result.event, awarded])
        return mrf.to_dto()

    def _award_candidates(
        self, rfq_id: UUID, quotation_id: UUID,
    ) -> tuple[RFQModel, MRFModel, QuotationModel, list[QuotationModel]]:
        """Lock the RFQ, its MRF and its pending bids; split off the chosen bid.

        Lock order is RFQ, then MRF, then quotations, for every award path.
        """
        rfq = self._load_rfq(rfq_id)
        if rfq.status != RFQStatus.OPEN.value:
            raise InvalidStateError(
                "RFQ", str(rfq_id), rfq.status,
                "only an Open RFQ can be awarded",
            )
        mrf = self._load_mrf(rfq.mrf_id)
        if mrf.current_stage != MRFStage.SUPPLY_CHAIN.value:
            raise InvalidStateError(
                "MRF", str(mrf.id), mrf.current_stage,
                "vendor selection requires executive (and chairman) approval first",
            )
        chosen = None
        siblings = []
        for quotation in self._open_quotations(rfq_id):
            if quotation.id == quotation_id:
                chosen = quotation
            else:
                siblings.append(quotation)
        if chosen is None:
            existing = self._session.get(QuotationModel, quotation_id)
            if existing is None or existing.rfq_id != rfq_id:
                raise QuotationNotFoundError(str(quotation_id))
            raise InvalidStateError(
                "Quotation", str(quotation_id), existing.status,
                "quotation is not a pending quotation of this RFQ",
            )
        if chosen.status != QuotationStatus.SUBMITTED.value:
            raise InvalidStateError(
                "Quotation", str(quotation_id), chosen.status,
                "only a pending quotation can be awarded",
            )
        return rfq, mrf, chosen, siblings

    def _record_award(
        self,
        rfq: RFQModel,
        chosen: QuotationModel,
        siblings: list[QuotationModel],
        actor: Actor,
    ) -> None:
        for sibling in siblings:
            sibling.status = QuotationStatus.REJECTED.value
            sibling.updated_by_id = actor.actor_id
        chosen.status = QuotationStatus.APPROVED.value
        chosen.updated_by_id = actor.actor_id
        rfq.status = RFQStatus.AWARDED.value
        rfq.awarded_quotation_id = chosen.id
        rfq.updated_by_id = actor.actor_id

    def _awarded_event(self, rfq, mrf, chosen, siblings, actor, now) -> WorkflowEvent:
        return WorkflowEvent(
            event_type=EventType.RFQ_AWARDED,
            aggregate_id=rfq.id,
            occurred_at=now,
            discriminator="awarded",
            actor_id=actor.actor_id,
            mrf_id=mrf.id,
            payload={
                "quotation_id": chosen.id,
                "vendor_id": chosen.vendor_id,
                "price": chosen.price,
                "rejected_quotations": len(siblings),
            },
        )

    # =========================================================================
    # Supply-chain review of the vendor choice
    # =========================================================================

    def send_vendor_for_approval(
        self,
        rfq_id: UUID,
        quotation_id: UUID,
        actor: Actor,
        remarks: str | None = None,
    ) -> MRF:
        """Propose a quotation for supply-chain approval instead of awarding it.

        Nothing on the RFQ changes yet; the bids stay pending until the
        proposal is approved.
        """
        with LogContext.bind(actor_id=str(actor.actor_id), rfq_id=str(rfq_id)):
            try:
                logger.info("procurement_vendor_propose_started", extra={
                    "quotation_id": str(quotation_id),
                })
                _, mrf, chosen, _ = self._award_candidates(rfq_id, quotation_id)
                result = self._transition(
                    mrf,
                    TransitionCommand(
                        action=WorkflowAction.SEND_VENDOR_FOR_APPROVAL,
                        actor=actor,
                        at=self._clock.now_utc(),
                        remarks=remarks,
                        award=AwardRecord(
                            rfq_id=rfq_id,
                            quotation_id=quotation_id,
                            vendor_id=chosen.vendor_id,
                        ),
                    ),
                )
                self._commit("MRF", mrf.id)

                logger.info("procurement_vendor_propose_committed", extra={
                    "mrf_id": str(mrf.id),
                    "vendor_id": chosen.vendor_id,
                })
            except ProcurementKernelError as exc:
                self._session.rollback()
                log_rejection(
                    logger, "procurement_vendor_propose", exc, quotation_id=quotation_id,
                )
                raise
            except Exception:
                self._session.rollback()
                raise
        self._notify([result.event])
        return mrf.to_dto()

    def approve_vendor_selection(
        self, mrf_id: UUID, actor: Actor, remarks: str | None = None,
    ) -> MRF:
        """Approve the proposed vendor; the award happens now, as in ``select_vendor``."""
        with LogContext.bind(actor_id=str(actor.actor_id), mrf_id=str(mrf_id)):
            try:
                logger.info("procurement_vendor_approve_started", extra={
                    "actor_role": actor.role.value,
                })
                proposal = self._session.get(MRFModel, mrf_id, populate_existing=True)
                if proposal is None:
                    raise MRFNotFoundError(str(mrf_id))
                command = TransitionCommand(
                    action=WorkflowAction.APPROVE_VENDOR_SELECTION,
                    actor=actor,
                    at=self._clock.now_utc(),
                    remarks=remarks,
                )
                # Role and proposal checks before any award row is locked.
                authorize(proposal.to_dto(), command.action, actor, self._config)
                resolve_transition(proposal.to_dto(), command.action, self._config)
                rfq_id = proposal.proposed_rfq_id
                quotation_id = proposal.proposed_quotation_id
                rfq, mrf, chosen, siblings = self._award_candidates(rfq_id, quotation_id)
                if mrf.proposed_quotation_id != quotation_id:
                    raise ConcurrentModificationError("MRF", str(mrf_id))
                result = self._transition(mrf, command)
                self._record_award(rfq, chosen, siblings, actor)
                self._commit("RFQ", rfq_id)

                awarded = self._awarded_event(rfq, mrf, chosen, siblings, actor, command.at)
                logger.info("procurement_vendor_approve_committed", extra={
                    "quotation_id": str(quotation_id),
                    "vendor_id": chosen.vendor_id,
                    "rejected_quotations": len(siblings),
                })
            except ProcurementKernelError as exc:
                self._session.rollback()
                log_rejection(logger, "procurement_vendor_approve", exc, actor_role=actor.role.value)
                raise
            except Exception:
                self._session.rollback()
                raise
        self._notify([result.event, awarded])
        return mrf.to_dto()

    def reject_vendor_selection(
        self,
        mrf_id: UUID,
        actor: Actor,
        reason: str,
        comments: str | None = None,
    ) -> MRF:
        """Send the vendor choice back to procurement; the RFQ stays Open."""
        return self._apply_command(
            logger,
            "procurement_vendor_reject",
            mrf_id,
            actor,
            WorkflowAction.REJECT_VENDOR_SELECTION,
            remarks=reason,
            comments=comments,
        )

    # =========================================================================
    # Purchase order
    # =========================================================================

    def upload_unsigned_po(
        self,
        mrf_id: UUID,
        actor: Actor,
        po_number: str,
        document_ref: str | None = None,
        *,
        content: bytes | str | None = None,
        filename: str | None = None,
    ) -> MRF:
        """Attach the generated PO awaiting signature.

        Either pass the ``document_ref`` already returned by the document
        store, or ``content`` and ``filename`` to store it now.
        """
        return self._apply_command(
            logger,
            "procurement_po_upload_unsigned",
            mrf_id,
            actor,
            WorkflowAction.UPLOAD_UNSIGNED_PO,
            po_number=po_number,
            document_ref=resolve_document(self._documents, document_ref, content, filename),
        )

    def upload_signed_po(
        self,
        mrf_id: UUID,
        actor: Actor,
        document_ref: str | None = None,
        *,
        content: bytes | str | None = None,
        filename: str | None = None,
    ) -> MRF:
        """Record the signed PO and hand the MRF to finance."""
        return self._apply_command(
            logger,
            "procurement_po_upload_signed",
            mrf_id,
            actor,
            WorkflowAction.UPLOAD_SIGNED_PO,
            document_ref=resolve_document(self._documents, document_ref, content, filename),
        )

    def reject_po(
        self,
        mrf_id: UUID,
        actor: Actor,
        reason: str,
        comments: str | None = None,
    ) -> MRF:
        """Send the unsigned PO back to procurement for a new version."""
        return self._apply_command(
            logger,
            "procurement_po_reject",
            mrf_id,
            actor,
            WorkflowAction.REJECT_PO,
            remarks=reason,
            comments=comments,
        )

    def delete_unsigned_po(self, mrf_id: UUID, actor: Actor) -> MRF:
        """Withdraw the unsigned PO before signature; the MRF keeps awaiting a PO."""
        return self._apply_command(
            logger,
            "procurement_po_withdraw",
            mrf_id,
            actor,
            WorkflowAction.WITHDRAW_PO,
        )
