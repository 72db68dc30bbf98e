"""
RFQ Dispatch (``procurement_kernel.services.rfq_dispatch``).

Responsibility
--------------
Turns an approved-enough MRF into a Request for Quotation: resolves the
invitee set through ``VendorSelectionEngine``, persists the RFQ with one
invitation row per vendor, and emits one invitation event per vendor.
Also invites additional vendors to an open RFQ and closes RFQs.

Architecture position
---------------------
**Kernel services layer**.  Reads vendors through the ``VendorDirectory``
port; the selection strategies themselves are pure engine code.

Invariants enforced
-------------------
* An RFQ always has at least one invitee (``NoEligibleVendorsError``).
* At most one Open or Awarded RFQ per MRF: checked before insert and
  backed by a partial unique index.
* A vendor is invited to an RFQ at most once; invitation events carry the
  vendor id as discriminator, so redelivery does not notify twice.
* The RFQ deadline is advisory.  Nothing here closes an RFQ on its own.

Failure modes
-------------
* ``UnauthorizedError`` -- actor is not in a procurement role.
* ``InvalidStateError`` -- MRF stage not eligible, MRF already awarded,
  RFQ not Open.
* ``DuplicateRFQError`` -- MRF already has an active RFQ.
* ``ValidationError`` -- deadline not after now, bad manual vendor list.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, time, timezone
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from procurement_config import WorkflowConfig
from procurement_engines.vendor_selection import (
    PreferredCriteria,
    VendorSelectionEngine,
)
from procurement_kernel.db.types import ensure_utc
from procurement_kernel.domain.actor import Actor
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.events import EventType, WorkflowEvent
from procurement_kernel.domain.mrf import MRFStage
from procurement_kernel.domain.ports import VendorDirectory
from procurement_kernel.domain.rfq import (
    RFQ,
    QuotationStatus,
    RFQStatus,
    Vendor,
    VendorFilter,
    VendorSelectionMethod,
)
from procurement_kernel.exceptions import (
    DuplicateRFQError,
    InvalidStateError,
    ProcurementKernelError,
    UnauthorizedError,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.rfq import RFQModel
from procurement_kernel.services.base import WorkflowService, log_rejection
from procurement_kernel.services.notification import NotificationDispatcher

logger = get_logger("services.rfq_dispatch")


def normalize_deadline(deadline: datetime | date) -> datetime:
    """Deadlines given as a date mean midnight UTC at the start of that date."""
    if isinstance(deadline, datetime):
        return ensure_utc(deadline)
    return datetime.combine(deadline, time.min, tzinfo=timezone.utc)


class RFQDispatchService(WorkflowService):
    """Creates, extends and closes RFQs."""

    def __init__(
        self,
        session: Session,
        vendor_directory: VendorDirectory,
        config: WorkflowConfig | None = None,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        super().__init__(session, config=config, clock=clock, dispatcher=dispatcher)
        self._vendors = vendor_directory
        self._selection = VendorSelectionEngine()

    def _require_procurement(self, actor: Actor, stage: str, operation: str) -> None:
        roles = self._config.procurement_roles
        if not actor.has_role(roles):
            raise UnauthorizedError(
                stage=stage,
                actor_role=actor.role.value,
                required_roles=roles,
                operation=operation,
            )

    @property
    def _criteria(self) -> PreferredCriteria:
        return PreferredCriteria(
            min_rating=self._config.preferred_min_rating,
            min_orders=self._config.preferred_min_orders,
            max_vendors=self._config.preferred_max_vendors,
        )

    def _candidates(
        self, method: VendorSelectionMethod, category: str,
    ) -> Sequence[Vendor]:
        if method == VendorSelectionMethod.MANUAL:
            # Inactive vendors are included so they fail as ineligible
            # rather than unknown.
            return self._vendors.list_vendors(VendorFilter(active_only=False))
        if method == VendorSelectionMethod.ALL_CATEGORY:
            return self._vendors.list_vendors(VendorFilter(category=category))
        return self._vendors.list_vendors(VendorFilter())

    # =========================================================================
    # Create
    # =========================================================================

    def create_rfq(
        self,
        mrf_id: UUID,
        actor: Actor,
        *,
        method: VendorSelectionMethod | str,
        deadline: datetime | date,
        vendor_ids: Sequence[str] = (),
        description: str | None = None,
    ) -> RFQ:
        """
        Dispatch an RFQ for an MRF.

        Args:
            mrf_id: MRF to source.
            actor: Caller; must hold a procurement role.
            method: Vendor resolution strategy.
            deadline: Submission deadline, strictly after now.
            vendor_ids: Invitees for the manual strategy.
            description: RFQ text; defaults to the MRF description.

        Returns:
            The committed RFQ (status Open).
        """
        try:
            logger.info("procurement_rfq_create_started", extra={
                "mrf_id": str(mrf_id),
                "actor_id": str(actor.actor_id),
                "method": str(getattr(method, "value", method)),
            })
            try:
                method = VendorSelectionMethod(method)
            except ValueError:
                raise ValidationError(
                    "method", f"unknown vendor selection method {method!r}",
                ) from None

            mrf = self._load_mrf(mrf_id)
            self._require_procurement(actor, mrf.current_stage, "create_rfq")
            if mrf.current_stage not in self._config.rfq_eligible_stages:
                raise InvalidStateError(
                    "MRF", str(mrf_id), mrf.current_stage,
                    "MRF stage does not allow RFQ dispatch",
                )
            if mrf.awarded_quotation_id is not None:
                raise InvalidStateError(
                    "MRF", str(mrf_id), mrf.current_stage,
                    "a vendor has already been awarded",
                )
            existing = self._active_rfq_for(mrf_id)
            if existing is not None:
                raise DuplicateRFQError(str(mrf_id), str(existing.id))

            now = self._clock.now_utc()
            due = normalize_deadline(deadline)
            if due <= now:
                raise ValidationError("deadline", "deadline must be after the RFQ creation time")

            selection = self._selection.resolve(
                method=method,
                vendors=self._candidates(method, mrf.category),
                category=mrf.category,
                requested_ids=vendor_ids,
                criteria=self._criteria,
            )

            rfq = RFQModel(
                id=uuid4(),
                mrf_id=mrf_id,
                mrf_title=mrf.title,
                estimated_cost=mrf.estimated_cost,
                description=(description or mrf.description or "").strip(),
                quantity=mrf.quantity,
                deadline=due,
                status=RFQStatus.OPEN.value,
                selection_method=method.value,
                created_by_id=actor.actor_id,
                created_at=now,
                updated_at=now,
            )
            for vendor in selection.vendors:
                rfq.invite(vendor.id, actor.actor_id, now)
            self._session.add(rfq)
            self._commit("RFQ", rfq.id)

            events = [self._created_event(rfq, actor, now)]
            events.extend(self._invitation_event(rfq, v, actor, now) for v in selection.vendors)

            logger.info("procurement_rfq_create_committed", extra={
                "mrf_id": str(mrf_id),
                "rfq_id": str(rfq.id),
                "vendor_count": len(selection.vendors),
                "deadline": due.isoformat(),
            })
        except ProcurementKernelError as exc:
            self._session.rollback()
            log_rejection(logger, "procurement_rfq_create", exc, mrf_id=mrf_id)
            raise
        except Exception:
            self._session.rollback()
            raise
        self._notify(events)
        return rfq.to_dto()

    def invite_vendors(
        self, rfq_id: UUID, actor: Actor, vendor_ids: Sequence[str],
    ) -> RFQ:
        """Invite more vendors to an Open RFQ.  Already-invited vendors are skipped."""
        try:
            logger.info("procurement_rfq_invite_started", extra={
                "rfq_id": str(rfq_id),
                "requested": len(vendor_ids),
            })
            rfq = self._load_rfq(rfq_id)
            self._require_procurement(actor, MRFStage.PROCUREMENT.value, "invite_vendors")
            if rfq.status != RFQStatus.OPEN.value:
                raise InvalidStateError(
                    "RFQ", str(rfq_id), rfq.status, "vendors can only be invited to an Open RFQ",
                )
            selection = self._selection.resolve(
                method=VendorSelectionMethod.MANUAL,
                vendors=self._candidates(VendorSelectionMethod.MANUAL, ""),
                requested_ids=vendor_ids,
            )
            already = set(rfq.vendor_ids)
            now = self._clock.now_utc()
            added = [v for v in selection.vendors if v.id not in already]
            for vendor in added:
                rfq.invite(vendor.id, actor.actor_id, now)
            if added:
                rfq.updated_by_id = actor.actor_id
            self._commit("RFQ", rfq_id)

            logger.info("procurement_rfq_invite_committed", extra={
                "rfq_id": str(rfq_id),
                "invited": len(added),
                "skipped": len(selection.vendors) - len(added),
            })
        except ProcurementKernelError as exc:
            self._session.rollback()
            log_rejection(logger, "procurement_rfq_invite", exc, rfq_id=rfq_id)
            raise
        except Exception:
            self._session.rollback()
            raise
        self._notify([self._invitation_event(rfq, v, actor, now) for v in added])
        return rfq.to_dto()

    # =========================================================================
    # Close
    # =========================================================================

    def close_rfq(self, rfq_id: UUID, actor: Actor, reason: str) -> RFQ:
        """Close an Open RFQ and its open quotations.  The MRF may then be re-sourced."""
        try:
            logger.info("procurement_rfq_close_started", extra={
                "rfq_id": str(rfq_id),
                "actor_id": str(actor.actor_id),
            })
            if reason is None or not reason.strip():
                raise ValidationError("reason", "a closing reason is required")
            rfq = self._load_rfq(rfq_id)
            self._require_procurement(actor, MRFStage.PROCUREMENT.value, "close_rfq")
            if rfq.status != RFQStatus.OPEN.value:
                raise InvalidStateError(
                    "RFQ", str(rfq_id), rfq.status, "only an Open RFQ can be closed",
                )
            closed = 0
            for quotation in self._open_quotations(rfq_id):
                quotation.status = QuotationStatus.CLOSED.value
                quotation.updated_by_id = actor.actor_id
                closed += 1
            rfq.status = RFQStatus.CLOSED.value
            rfq.closed_reason = reason.strip()
            rfq.updated_by_id = actor.actor_id
            self._commit("RFQ", rfq_id)

            now = self._clock.now_utc()
            event = WorkflowEvent(
                event_type=EventType.RFQ_CLOSED,
                aggregate_id=rfq_id,
                occurred_at=now,
                discriminator="closed",
                actor_id=actor.actor_id,
                mrf_id=rfq.mrf_id,
                payload={"reason": rfq.closed_reason, "quotations_closed": closed},
            )
            logger.info("procurement_rfq_close_committed", extra={
                "rfq_id": str(rfq_id),
                "quotations_closed": closed,
            })
        except ProcurementKernelError as exc:
            self._session.rollback()
            log_rejection(logger, "procurement_rfq_close", exc, rfq_id=rfq_id)
            raise
        except Exception:
            self._session.rollback()
            raise
        self._notify([event])
        return rfq.to_dto()

    # =========================================================================
    # Events
    # =========================================================================

    @staticmethod
    def _created_event(rfq: RFQModel, actor: Actor, at: datetime) -> WorkflowEvent:
        return WorkflowEvent(
            event_type=EventType.RFQ_CREATED,
            aggregate_id=rfq.id,
            occurred_at=at,
            discriminator="created",
            actor_id=actor.actor_id,
            mrf_id=rfq.mrf_id,
            payload={
                "mrf_title": rfq.mrf_title,
                "deadline": rfq.deadline,
                "selection_method": rfq.selection_method,
                "vendor_count": len(rfq.invitations),
            },
        )

    @staticmethod
    def _invitation_event(
        rfq: RFQModel, vendor: Vendor, actor: Actor, at: datetime,
    ) -> WorkflowEvent:
        return WorkflowEvent(
            event_type=EventType.RFQ_VENDOR_INVITED,
            aggregate_id=rfq.id,
            occurred_at=at,
            discriminator=vendor.id,
            actor_id=actor.actor_id,
            mrf_id=rfq.mrf_id,
            payload={
                "vendor_id": vendor.id,
                "vendor_name": vendor.name,
                "vendor_email": vendor.email,
                "deadline": rfq.deadline,
            },
        )
