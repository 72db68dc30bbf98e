"""
Approval Gate (``procurement_kernel.services.approval_gate``).

Responsibility
--------------
The command surface for the approval half of the MRF lifecycle: submit,
resubmit, approve, reject, cancel, and cost correction.  Wraps the pure
workflow state machine with role authorization, persistence and
notification.

Architecture position
---------------------
**Kernel services layer**.  Loads the MRF row under ``FOR UPDATE``, runs
``authorize`` and ``apply_transition`` from ``domain.workflow``, writes the
new snapshot back and commits.  Events go to the notification dispatcher
only after the commit.

Invariants enforced
-------------------
* Stage change and history append are written in the same flush of the
  same row set, so no reader observes one without the other.
* Concurrent commands on one MRF are serialized: the row lock on
  PostgreSQL, the ``version`` column everywhere.  The loser fails with
  ``ConcurrentModificationError`` or ``InvalidTransitionError``.
* Actor identity is always an explicit ``Actor`` argument.

Failure modes
-------------
* ``UnauthorizedError`` -- actor's role is not allowed at the MRF's stage.
* ``InvalidTransitionError`` -- action not legal at the current stage.
* ``ValidationError`` -- empty reason, malformed draft.
* ``MRFNotFoundError`` -- unknown MRF id.
* Any failure rolls the session back; nothing is partially persisted.

Usage::

    gate = ApprovalGate(session, config=config, clock=clock, dispatcher=dispatcher)
    mrf = gate.submit_mrf(requester, draft)
    mrf = gate.approve(mrf.id, procurement_manager, remarks="budget ok")
"""

from __future__ import annotations

from dataclasses import replace
from functools import partial
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from procurement_config import WorkflowConfig
from procurement_kernel.domain.actor import Actor, Role
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.events import EventType, WorkflowEvent
from procurement_kernel.domain.mrf import MRF, MRFDraft, MRFStage, Urgency
from procurement_kernel.domain.rfq import QuotationStatus, RFQStatus
from procurement_kernel.domain.workflow import (
    AvailableActions,
    TransitionCommand,
    WorkflowAction,
    available_actions,
    start_mrf,
)
from procurement_kernel.exceptions import (
    InvalidStateError,
    MRFNotFoundError,
    ProcurementKernelError,
    UnauthorizedError,
    ValidationError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.models.mrf import MRFModel
from procurement_kernel.models.rfq import RFQModel
from procurement_kernel.services.base import WorkflowService, log_rejection
from procurement_kernel.services.notification import NotificationDispatcher
from procurement_kernel.services.sequence_service import SequenceService

logger = get_logger("services.approval_gate")

MAX_TITLE_LENGTH = 255


def validate_draft(draft: MRFDraft, max_document_ref_length: int = 2048) -> MRFDraft:
    """Check and normalize a submission.  Returns a cleaned copy."""
    title = (draft.title or "").strip()
    if not title:
        raise ValidationError("title", "title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError("title", f"longer than {MAX_TITLE_LENGTH} characters")
    category = (draft.category or "").strip()
    if not category:
        raise ValidationError("category", "category is required")
    try:
        quantity = Decimal(draft.quantity)
        cost = Decimal(draft.estimated_cost)
    except (ArithmeticError, TypeError, ValueError):
        raise ValidationError("estimated_cost", "quantity and cost must be numeric") from None
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError("quantity", "quantity must be positive")
    if not cost.is_finite() or cost < 0:
        raise ValidationError("estimated_cost", "estimated cost must not be negative")
    try:
        urgency = Urgency(draft.urgency)
    except ValueError:
        raise ValidationError(
            "urgency", f"urgency must be one of low, medium, high; got {draft.urgency!r}",
        ) from None
    currency = (draft.currency or "").strip().upper()
    if len(currency) != 3:
        raise ValidationError("currency", "currency must be a three-letter code")
    pfi_url = (draft.pfi_url or "").strip() or None
    if pfi_url is not None and len(pfi_url) > max_document_ref_length:
        raise ValidationError("pfi_url", f"longer than {max_document_ref_length} characters")
    return replace(
        draft,
        title=title,
        category=category,
        description=(draft.description or "").strip(),
        justification=(draft.justification or "").strip(),
        department=(draft.department or "").strip(),
        quantity=quantity,
        estimated_cost=cost,
        urgency=urgency,
        currency=currency,
        pfi_url=pfi_url,
    )


def draft_from_mrf(mrf: MRF) -> MRFDraft:
    """The submission that would recreate ``mrf``'s content."""
    return MRFDraft(
        title=mrf.title,
        category=mrf.category,
        description=mrf.description,
        quantity=mrf.quantity,
        estimated_cost=mrf.estimated_cost,
        urgency=mrf.urgency,
        justification=mrf.justification,
        department=mrf.department,
        currency=mrf.currency,
        pfi_url=mrf.pfi_url,
    )


class ApprovalGate(WorkflowService):
    """
    Role-gated MRF approval commands.

    Contract
    --------
    * Every command returns the committed ``MRF`` snapshot.
    * ``expected_stage`` / ``expected_version`` let a caller pin the view
      it acted on; a mismatch fails instead of acting on newer state.

    Non-goals
    ---------
    * Does NOT dispatch RFQs or award vendors (``RFQDispatchService``,
      ``AwardService``).
    * Does NOT resolve identities; the host passes a resolved ``Actor``.
    """

    def __init__(
        self,
        session: Session,
        config: WorkflowConfig | None = None,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        super().__init__(session, config=config, clock=clock, dispatcher=dispatcher)
        self._sequences = SequenceService(session)

    # =========================================================================
    # Submission
    # =========================================================================

    def submit_mrf(self, actor: Actor, draft: MRFDraft) -> MRF:
        """Create a new MRF at stage ``submitted`` with a fresh control number."""
        try:
            logger.info("procurement_mrf_submit_started", extra={
                "actor_id": str(actor.actor_id),
                "title": draft.title,
            })
            clean = validate_draft(draft, self._config.max_document_ref_length)
            model, event = self._create(actor, clean, original=None)
            self._commit("MRF", model.id)

            logger.info("procurement_mrf_submit_committed", extra={
                "mrf_id": str(model.id),
                "control_number": model.control_number,
                "estimated_cost": str(clean.estimated_cost),
            })
        except ProcurementKernelError as exc:
            self._session.rollback()
            log_rejection(logger, "procurement_mrf_submit", exc, actor_id=actor.actor_id)
            raise
        except Exception:
            self._session.rollback()
            raise
        self._notify([event])
        return model.to_dto()

    def resubmit_mrf(
        self,
        actor: Actor,
        original_id: UUID,
        draft: MRFDraft | None = None,
    ) -> MRF:
        """Submit a rejected MRF again as a new MRF linked to the original.

        Only the original requester may resubmit, and only from stage
        ``rejected``.  ``draft`` carries the corrected content; without it
        the original content is reused.
        """
        try:
            logger.info("procurement_mrf_resubmit_started", extra={
                "actor_id": str(actor.actor_id),
                "original_mrf_id": str(original_id),
            })
            original = self._load_mrf(original_id).to_dto()
            if original.current_stage != MRFStage.REJECTED:
                raise InvalidStateError(
                    "MRF", str(original_id), original.current_stage.value,
                    "only rejected MRFs can be resubmitted",
                )
            if actor.actor_id != original.requester_id:
                raise UnauthorizedError(
                    stage=original.current_stage.value,
                    actor_role=actor.role.value,
                    required_roles=("requester",),
                    operation="resubmit",
                )
            clean = validate_draft(
                draft or draft_from_mrf(original), self._config.max_document_ref_length,
            )
            model, event = self._create(actor, clean, original=original)
            self._commit("MRF", model.id)

            logger.info("procurement_mrf_resubmit_committed", extra={
                "mrf_id": str(model.id),
                "control_number": model.control_number,
                "original_control_number": original.control_number,
            })
        except ProcurementKernelError as exc:
            self._session.rollback()
            log_rejection(
                logger, "procurement_mrf_resubmit", exc,
                actor_id=actor.actor_id, original_mrf_id=original_id,
            )
            raise
        except Exception:
            self._session.rollback()
            raise
        self._notify([event])
        return model.to_dto()

    def _create(
        self, actor: Actor, draft: MRFDraft, original: MRF | None,
    ) -> tuple[MRFModel, WorkflowEvent]:
        now = self._clock.now_utc()
        control_number = self._sequences.next_control_number(now.year)
        mrf, event = start_mrf(
            draft,
            actor,
            mrf_id=uuid4(),
            control_number=control_number,
            at=now,
            original=original,
        )
        model = MRFModel.from_dto(mrf)
        self._session.add(model)
        return model, event

    # =========================================================================
    # Stage transitions
    # =========================================================================

    def approve(
        self,
        mrf_id: UUID,
        actor: Actor,
        remarks: str | None = None,
        *,
        expected_stage: MRFStage | str | None = None,
        expected_version: int | None = None,
    ) -> MRF:
        """Approve the MRF at its current stage and advance it.

        At the executive stage the chairman escalation is decided here,
        once, against the estimated cost at this moment.
        """
        return self._run_transition(
            "procurement_mrf_approve",
            mrf_id,
            actor,
            WorkflowAction.APPROVE,
            remarks=remarks,
            expected_stage=expected_stage,
            expected_version=expected_version,
        )

    def reject(
        self,
        mrf_id: UUID,
        actor: Actor,
        reason: str,
        *,
        expected_stage: MRFStage | str | None = None,
        expected_version: int | None = None,
    ) -> MRF:
        """Reject the MRF at its current stage.  ``reason`` must not be empty.

        Rejection is terminal, so the MRF's open RFQ and its open
        quotations are closed in the same transaction, as on cancel.
        """
        return self._run_transition(
            "procurement_mrf_reject",
            mrf_id,
            actor,
            WorkflowAction.REJECT,
            remarks=reason,
            expected_stage=expected_stage,
            expected_version=expected_version,
            cascade=partial(self._close_sourcing, cause="rejected"),
        )

    def cancel_mrf(self, mrf_id: UUID, actor: Actor, reason: str) -> MRF:
        """Withdraw an MRF that has no vendor award yet.

        The requester or a procurement role may cancel.  The MRF's open RFQ
        is closed along with its open quotations, in the same transaction.
        """
        return self._run_transition(
            "procurement_mrf_cancel",
            mrf_id,
            actor,
            WorkflowAction.CANCEL,
            remarks=reason,
            cascade=partial(self._close_sourcing, cause="cancelled"),
        )

    def _run_transition(
        self,
        operation: str,
        mrf_id: UUID,
        actor: Actor,
        action: WorkflowAction,
        *,
        remarks: str | None = None,
        expected_stage: MRFStage | str | None = None,
        expected_version: int | None = None,
        cascade=None,
    ) -> MRF:
        with LogContext.bind(actor_id=str(actor.actor_id), mrf_id=str(mrf_id)):
            try:
                logger.info(f"{operation}_started", extra={
                    "actor_role": actor.role.value,
                    "expected_stage": MRFStage(expected_stage).value if expected_stage else None,
                })
                model = self._load_mrf(mrf_id)
                self._check_expectations(model, action, expected_stage, expected_version)
                result = self._transition(
                    model,
                    TransitionCommand(
                        action=action,
                        actor=actor,
                        at=self._clock.now_utc(),
                        remarks=remarks,
                    ),
                )
                events = [result.event]
                if cascade is not None:
                    events.extend(cascade(mrf_id, actor, remarks))
                self._commit("MRF", mrf_id)

                logger.info(f"{operation}_committed", extra={
                    "from_stage": result.entry.stage.value,
                    "next_stage": result.entry.resulting_stage.value,
                    "history_length": len(result.mrf.history),
                })
            except ProcurementKernelError as exc:
                self._session.rollback()
                log_rejection(logger, operation, exc, actor_role=actor.role.value)
                raise
            except Exception:
                self._session.rollback()
                raise
        self._notify(events)
        return model.to_dto()

    def _close_sourcing(
        self, mrf_id: UUID, actor: Actor, reason: str | None, *, cause: str,
    ) -> list[WorkflowEvent]:
        """Close the MRF's open RFQ and its open quotations."""
        rfq = self._active_rfq_for(mrf_id)
        if rfq is None or rfq.status != RFQStatus.OPEN.value:
            return []
        now = self._clock.now_utc()
        for quotation in self._open_quotations(rfq.id):
            quotation.status = QuotationStatus.CLOSED.value
            quotation.updated_by_id = actor.actor_id
        rfq.status = RFQStatus.CLOSED.value
        rfq.closed_reason = f"MRF {cause}: {reason}"
        rfq.updated_by_id = actor.actor_id
        logger.info("procurement_rfq_closed_with_mrf", extra={
            "rfq_id": str(rfq.id),
            "cause": cause,
        })
        return [WorkflowEvent(
            event_type=EventType.RFQ_CLOSED,
            aggregate_id=rfq.id,
            occurred_at=now,
            discriminator="closed",
            actor_id=actor.actor_id,
            mrf_id=mrf_id,
            payload={"reason": rfq.closed_reason},
        )]

    # =========================================================================
    # Corrections
    # =========================================================================

    def update_estimated_cost(
        self, mrf_id: UUID, actor: Actor, estimated_cost: Decimal,
    ) -> MRF:
        """Correct the estimated cost of an active MRF.

        Allowed for the requester and procurement roles.  A chairman
        escalation decision already recorded at the executive step is not
        revisited.
        """
        try:
            logger.info("procurement_mrf_cost_update_started", extra={
                "mrf_id": str(mrf_id),
                "actor_id": str(actor.actor_id),
            })
            cost = Decimal(estimated_cost)
            if not cost.is_finite() or cost < 0:
                raise ValidationError("estimated_cost", "estimated cost must not be negative")
            model = self._load_mrf(mrf_id)
            current = model.to_dto()
            if current.is_terminal:
                raise InvalidStateError(
                    "MRF", str(mrf_id), current.current_stage.value,
                    "terminal MRFs cannot be edited",
                )
            if actor.actor_id != current.requester_id and not actor.has_role(
                self._config.procurement_roles
            ):
                raise UnauthorizedError(
                    stage=current.current_stage.value,
                    actor_role=actor.role.value,
                    required_roles=self._config.procurement_roles,
                    operation="update_estimated_cost",
                )
            previous = model.estimated_cost
            model.estimated_cost = cost
            model.updated_by_id = actor.actor_id
            self._commit("MRF", mrf_id)

            logger.info("procurement_mrf_cost_update_committed", extra={
                "mrf_id": str(mrf_id),
                "previous_cost": str(previous),
                "estimated_cost": str(cost),
            })
        except ProcurementKernelError as exc:
            self._session.rollback()
            log_rejection(logger, "procurement_mrf_cost_update", exc, mrf_id=mrf_id)
            raise
        except Exception:
            self._session.rollback()
            raise
        return model.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def available_actions(self, mrf_id: UUID, role: Role | str) -> AvailableActions:
        """What ``role`` may do with the MRF right now."""
        model = self._session.get(MRFModel, mrf_id)
        if model is None:
            raise MRFNotFoundError(str(mrf_id))
        has_active_rfq = self._session.execute(
            select(RFQModel.id)
            .where(RFQModel.mrf_id == mrf_id)
            .where(RFQModel.status.in_((RFQStatus.OPEN.value, RFQStatus.AWARDED.value)))
        ).first() is not None
        return available_actions(
            model.to_dto(), role, self._config, has_active_rfq=has_active_rfq,
        )
