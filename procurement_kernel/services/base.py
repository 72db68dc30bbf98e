"""
Shared plumbing for the workflow services.

Responsibility:
    Row loading with pessimistic locks, flush with conflict mapping, and
    post-commit notification, so that the Approval Gate, RFQ Dispatch,
    Quotation and Award services all persist state the same way.

Architecture position:
    Kernel > Services -- imperative shell.  Every public method of a
    concrete service owns its transaction boundary: it commits on success
    and rolls back and re-raises on any exception.  Events are handed to
    the notification dispatcher only after the commit succeeded.

Failure modes:
    - StaleDataError (version_id_col mismatch) and IntegrityError from a
      concurrent writer surface as ConcurrentModificationError.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from procurement_config import WorkflowConfig, get_active_config
from procurement_kernel.db.base import Base
from procurement_kernel.domain.actor import Actor
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.events import WorkflowEvent
from procurement_kernel.domain.mrf import MRF, MRFStage
from procurement_kernel.domain.ports import DocumentStore
from procurement_kernel.domain.workflow import (
    TransitionCommand,
    TransitionResult,
    WorkflowAction,
    apply_transition,
    authorize,
)
from procurement_kernel.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    MRFNotFoundError,
    ProcurementKernelError,
    QuotationNotFoundError,
    RFQNotFoundError,
    ValidationError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.models.mrf import MRFModel
from procurement_kernel.models.rfq import QuotationModel, RFQModel
from procurement_kernel.services.notification import NotificationDispatcher

logger = get_logger("services.base")

ModelType = TypeVar("ModelType", bound=Base)


def flush_or_conflict(session: Session, entity_type: str, entity_id: UUID | str) -> None:
    """Flush pending changes, translating lost races into ConcurrentModificationError."""
    try:
        session.flush()
    except StaleDataError as exc:
        logger.warning("concurrent_modification_detected", extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
        })
        raise ConcurrentModificationError(entity_type, str(entity_id)) from exc
    except IntegrityError as exc:
        logger.warning("concurrent_insert_conflict", extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "detail": str(exc.orig),
        })
        raise ConcurrentModificationError(entity_type, str(entity_id)) from exc


class WorkflowService:
    """
    Base for services that own a transaction boundary.

    Contract:
        Constructed with a session; config, clock and notification
        dispatcher are injectable and default to the active YAML config,
        the system clock and a sink-less dispatcher.
    """

    def __init__(
        self,
        session: Session,
        config: WorkflowConfig | None = None,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher or NotificationDispatcher()

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _get_for_update(self, model: type[ModelType], entity_id: UUID) -> ModelType | None:
        return self._session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _load_mrf(self, mrf_id: UUID) -> MRFModel:
        mrf = self._get_for_update(MRFModel, mrf_id)
        if mrf is None:
            raise MRFNotFoundError(str(mrf_id))
        return mrf

    def _load_rfq(self, rfq_id: UUID) -> RFQModel:
        rfq = self._get_for_update(RFQModel, rfq_id)
        if rfq is None:
            raise RFQNotFoundError(str(rfq_id))
        return rfq

    def _load_quotation(self, quotation_id: UUID) -> QuotationModel:
        quotation = self._get_for_update(QuotationModel, quotation_id)
        if quotation is None:
            raise QuotationNotFoundError(str(quotation_id))
        return quotation

    def _active_rfq_for(self, mrf_id: UUID) -> RFQModel | None:
        """The Open or Awarded RFQ of an MRF, locked, if one exists."""
        return self._session.execute(
            select(RFQModel)
            .where(RFQModel.mrf_id == mrf_id)
            .where(RFQModel.status.in_(("Open", "Awarded")))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _open_quotations(self, rfq_id: UUID) -> list[QuotationModel]:
        return list(self._session.execute(
            select(QuotationModel)
            .where(QuotationModel.rfq_id == rfq_id)
            .where(QuotationModel.status.in_(("submitted", "approved")))
            .order_by(QuotationModel.submitted_at, QuotationModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _commit(self, entity_type: str, entity_id: UUID | str) -> None:
        flush_or_conflict(self._session, entity_type, entity_id)
        self._session.commit()

    def _notify(self, events: Sequence[WorkflowEvent]) -> None:
        if events:
            self._dispatcher.dispatch(events)

    # ------------------------------------------------------------------
    # MRF transitions
    # ------------------------------------------------------------------

    def _check_expectations(
        self,
        model: MRFModel,
        action: WorkflowAction,
        expected_stage: MRFStage | str | None,
        expected_version: int | None,
    ) -> None:
        """Reject a command issued against a stale view of the MRF."""
        if expected_stage is not None and MRFStage(expected_stage) != MRFStage(model.current_stage):
            raise InvalidTransitionError(
                model.current_stage,
                action.value,
                f"MRF is no longer at stage {MRFStage(expected_stage).value}",
            )
        if expected_version is not None and expected_version != model.version:
            raise ConcurrentModificationError("MRF", str(model.id))

    def _transition(self, model: MRFModel, command: TransitionCommand) -> TransitionResult:
        """Authorize and apply one command to a locked MRF row.

        Nothing is written to ``model`` unless the whole command is valid.
        """
        current = model.to_dto()
        authorize(current, command.action, command.actor, self._config)
        result = apply_transition(current, command, self._config)
        model.apply_dto(result.mrf)
        model.updated_by_id = command.actor.actor_id
        return result

    def _apply_command(
        self,
        log,
        operation: str,
        mrf_id: UUID,
        actor: Actor,
        action: WorkflowAction,
        *,
        remarks: str | None = None,
        po_number: str | None = None,
        document_ref: str | None = None,
        comments: str | None = None,
    ) -> MRF:
        """Run one single-aggregate MRF command in its own transaction."""
        with LogContext.bind(actor_id=str(actor.actor_id), mrf_id=str(mrf_id)):
            try:
                log.info(f"{operation}_started", extra={"actor_role": actor.role.value})
                model = self._load_mrf(mrf_id)
                result = self._transition(
                    model,
                    TransitionCommand(
                        action=action,
                        actor=actor,
                        at=self._clock.now_utc(),
                        remarks=remarks,
                        po_number=po_number,
                        document_ref=document_ref,
                        comments=comments,
                    ),
                )
                self._commit("MRF", mrf_id)

                log.info(f"{operation}_committed", extra={
                    "next_stage": result.entry.resulting_stage.value,
                    "po_version": result.mrf.po_version,
                    "payment_status": result.mrf.payment_status.value,
                })
            except ProcurementKernelError as exc:
                self._session.rollback()
                log_rejection(log, operation, exc, actor_role=actor.role.value)
                raise
            except Exception:
                self._session.rollback()
                raise
        self._notify([result.event])
        return model.to_dto()


def log_rejection(log, operation: str, exc: ProcurementKernelError, **context) -> None:
    """Record a typed failure at WARNING with its machine-readable code."""
    log.warning(f"{operation}_rejected", extra={
        "error_code": exc.code,
        "error_message": str(exc),
        **{k: (str(v) if v is not None else None) for k, v in context.items()},
    })


def resolve_document(
    store: DocumentStore | None,
    document_ref: str | None,
    content: bytes | str | None,
    filename: str | None,
) -> str | None:
    """The reference to record: ``document_ref`` as given, or ``content`` stored now."""
    if document_ref is not None or content is None:
        return document_ref
    if store is None:
        raise ValidationError("document_ref", "no document store is configured")
    if not filename:
        raise ValidationError("filename", "a filename is required to store a document")
    return store.store_document(content, filename)

