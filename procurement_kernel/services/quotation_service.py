"""
Quotation intake and comparison (``procurement_kernel.services.quotation_service``).

Responsibility
--------------
Accepts vendor bids against an Open RFQ, lets procurement close and reopen
individual bids for vendor resubmission, and compares the bids of one RFQ
through ``QuotationScoringEngine``.

Architecture position
---------------------
**Kernel services layer**.  The RFQ row is locked for every intake so a
bid racing an award is serialized behind it and sees the RFQ as no longer
Open.

Invariants enforced
-------------------
* Only an Open RFQ accepts bids; after award or close the cutoff is hard.
* Only invited vendors may bid.
* At most one open (submitted or approved) quotation per vendor per RFQ.
* Bids past the RFQ deadline are accepted and flagged ``is_late``; bids
  with a past delivery date are accepted and surface as suspect in the
  comparison.
* Comparison is read-only and never awards anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from procurement_config import WorkflowConfig
from procurement_engines.scoring import (
    BidStatistics,
    QuotationScoringEngine,
    ScoringCandidate,
    ScoringResult,
    summarize_bids,
)
from procurement_kernel.domain.actor import Actor, Role
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.events import EventType, WorkflowEvent
from procurement_kernel.domain.mrf import TERMINAL_STAGES, MRFStage
from procurement_kernel.domain.ports import VendorDirectory
from procurement_kernel.domain.rfq import (
    QUOTATION_TRANSITIONS,
    Quotation,
    QuotationDraft,
    QuotationStatus,
    RFQStatus,
)
from procurement_kernel.exceptions import (
    DuplicateQuotationError,
    InvalidStateError,
    ProcurementKernelError,
    QuotationNotFoundError,
    RFQNotFoundError,
    UnauthorizedError,
    ValidationError,
    VendorNotFoundError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.mrf import MRFModel
from procurement_kernel.models.rfq import QuotationModel, RFQModel
from procurement_kernel.services.base import WorkflowService, log_rejection
from procurement_kernel.services.notification import NotificationDispatcher

logger = get_logger("services.quotation")


@dataclass(frozen=True)
class QuotationComparison:
    """Ranked view of one RFQ's bids plus summary statistics."""

    rfq_id: UUID
    scoring: ScoringResult
    statistics: BidStatistics
    quotations: tuple[Quotation, ...]

    @property
    def recommended(self) -> Quotation:
        wanted = self.scoring.recommended_quotation_id
        return next(q for q in self.quotations if q.id == wanted)


def quotation_price(draft: QuotationDraft) -> Decimal:
    """Explicit total when given, otherwise the sum of the line items."""
    for line in draft.line_items:
        if line.quantity < 0 or line.unit_price < 0:
            raise ValidationError(
                "line_items", f"line {line.name!r} has a negative quantity or unit price",
            )
        if not (line.name or "").strip():
            raise ValidationError("line_items", "every line item needs a name")
    if draft.price is not None:
        price = Decimal(draft.price)
    elif draft.line_items:
        price = sum((line.total for line in draft.line_items), Decimal("0"))
    else:
        raise ValidationError("price", "a price or at least one line item is required")
    if not price.is_finite() or price < 0:
        raise ValidationError("price", "price must not be negative")
    return price


class QuotationService(WorkflowService):
    """Vendor bid intake, close/reopen, and comparison."""

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
        self._scoring = QuotationScoringEngine()

    def _require_role(self, actor: Actor, roles: tuple[str, ...], stage: str, operation: str) -> None:
        if not actor.has_role(roles):
            raise UnauthorizedError(
                stage=stage,
                actor_role=actor.role.value,
                required_roles=roles,
                operation=operation,
            )

    def _open_quotation_of(self, rfq_id: UUID, vendor_id: str) -> QuotationModel | None:
        return self._session.execute(
            select(QuotationModel)
            .where(QuotationModel.rfq_id == rfq_id)
            .where(QuotationModel.vendor_id == vendor_id)
            .where(QuotationModel.status.in_((
                QuotationStatus.SUBMITTED.value, QuotationStatus.APPROVED.value,
            )))
        ).scalars().first()

    # =========================================================================
    # Intake
    # =========================================================================

    def submit_quotation(
        self, rfq_id: UUID, actor: Actor, draft: QuotationDraft,
    ) -> Quotation:
        """
        Record a vendor's bid.

        Args:
            rfq_id: RFQ being answered.
            actor: The vendor user, or procurement staff keying the bid in.
            draft: Bid content.

        Raises:
            InvalidStateError: RFQ not Open, MRF already closed, or vendor
                not invited.
            UnauthorizedError: A vendor user bidding for another vendor.
            DuplicateQuotationError: Vendor already has an open bid.
            ValidationError: Negative price, no price and no lines.
        """
        try:
            logger.info("procurement_quotation_submit_started", extra={
                "rfq_id": str(rfq_id),
                "vendor_id": draft.vendor_id,
            })
            rfq = self._load_rfq(rfq_id)
            self._require_role(
                actor,
                self._config.procurement_roles + (Role.VENDOR.value,),
                rfq.status,
                "submit_quotation",
            )
            if rfq.status != RFQStatus.OPEN.value:
                raise InvalidStateError(
                    "RFQ", str(rfq_id), rfq.status, "the RFQ is no longer accepting quotations",
                )
            mrf = self._session.get(MRFModel, rfq.mrf_id, populate_existing=True)
            if mrf is not None and MRFStage(mrf.current_stage) in TERMINAL_STAGES:
                raise InvalidStateError(
                    "MRF", str(rfq.mrf_id), mrf.current_stage,
                    "the requisition is closed to further quotations",
                )
            vendor_id = (draft.vendor_id or "").strip()
            if actor.role == Role.VENDOR and actor.vendor_id != vendor_id:
                raise UnauthorizedError(
                    stage=rfq.status,
                    actor_role=actor.role.value,
                    required_roles=(Role.VENDOR.value,),
                    operation="submit_quotation",
                )
            if vendor_id not in rfq.vendor_ids:
                raise InvalidStateError(
                    "RFQ", str(rfq_id), rfq.status, f"vendor {vendor_id} was not invited",
                )
            vendor = self._vendors.get_vendor(vendor_id)
            if vendor is None:
                raise VendorNotFoundError(vendor_id)
            existing = self._open_quotation_of(rfq_id, vendor_id)
            if existing is not None:
                raise DuplicateQuotationError(str(rfq_id), vendor_id, str(existing.id))

            price = quotation_price(draft)
            if draft.delivery_date is None:
                raise ValidationError("delivery_date", "a delivery date is required")
            if draft.validity_days is not None and draft.validity_days < 0:
                raise ValidationError("validity_days", "validity must not be negative")

            now = self._clock.now_utc()
            quotation = Quotation(
                id=uuid4(),
                rfq_id=rfq_id,
                vendor_id=vendor_id,
                vendor_name=vendor.name,
                price=price,
                delivery_date=draft.delivery_date,
                status=QuotationStatus.SUBMITTED,
                submitted_at=now,
                line_items=draft.line_items,
                payment_terms=draft.payment_terms,
                validity_days=draft.validity_days,
                warranty_period=draft.warranty_period,
                notes=draft.notes,
                document_ref=draft.document_ref,
                is_late=now > rfq.deadline,
            )
            model = QuotationModel.from_dto(quotation, created_by_id=actor.actor_id)
            model.created_at = now
            model.updated_at = now
            self._session.add(model)
            self._commit("Quotation", quotation.id)

            if draft.delivery_date < now.date():
                logger.warning("procurement_quotation_delivery_in_past", extra={
                    "quotation_id": str(quotation.id),
                    "delivery_date": draft.delivery_date.isoformat(),
                })
            logger.info("procurement_quotation_submit_committed", extra={
                "rfq_id": str(rfq_id),
                "quotation_id": str(quotation.id),
                "price": str(price),
                "is_late": quotation.is_late,
            })
            event = WorkflowEvent(
                event_type=EventType.QUOTATION_SUBMITTED,
                aggregate_id=quotation.id,
                occurred_at=now,
                discriminator="submitted",
                actor_id=actor.actor_id,
                mrf_id=rfq.mrf_id,
                payload={
                    "rfq_id": rfq_id,
                    "vendor_id": vendor_id,
                    "price": price,
                    "is_late": quotation.is_late,
                },
            )
        except ProcurementKernelError as exc:
            self._session.rollback()
            log_rejection(
                logger, "procurement_quotation_submit", exc,
                rfq_id=rfq_id, vendor_id=draft.vendor_id,
            )
            raise
        except Exception:
            self._session.rollback()
            raise
        self._notify([event])
        return model.to_dto()

    # =========================================================================
    # Close / reopen
    # =========================================================================

    def close_quotation(
        self, quotation_id: UUID, actor: Actor, reason: str | None = None,
    ) -> Quotation:
        """Close a pending bid so the vendor can submit a replacement."""
        return self._change_status(
            "procurement_quotation_close",
            quotation_id,
            actor,
            QuotationStatus.CLOSED,
            EventType.QUOTATION_CLOSED,
            reason,
        )

    def reopen_quotation(self, quotation_id: UUID, actor: Actor) -> Quotation:
        """Return a closed bid to pending.

        Fails when the RFQ is not Open or when the vendor already has
        another open bid on the RFQ.
        """
        return self._change_status(
            "procurement_quotation_reopen",
            quotation_id,
            actor,
            QuotationStatus.SUBMITTED,
            EventType.QUOTATION_REOPENED,
            None,
        )

    def _change_status(
        self,
        operation: str,
        quotation_id: UUID,
        actor: Actor,
        target: QuotationStatus,
        event_type: EventType,
        reason: str | None,
    ) -> Quotation:
        try:
            logger.info(f"{operation}_started", extra={
                "quotation_id": str(quotation_id),
                "actor_id": str(actor.actor_id),
            })
            # RFQ first, then quotation: the same lock order as award.
            found = self._session.get(QuotationModel, quotation_id)
            if found is None:
                raise QuotationNotFoundError(str(quotation_id))
            rfq = self._load_rfq(found.rfq_id)
            quotation = self._load_quotation(quotation_id)
            self._require_role(actor, self._config.procurement_roles, rfq.status, operation)
            if rfq.status != RFQStatus.OPEN.value:
                raise InvalidStateError(
                    "RFQ", str(rfq.id), rfq.status,
                    "quotations can only change while the RFQ is Open",
                )
            current = QuotationStatus(quotation.status)
            if target not in QUOTATION_TRANSITIONS[current]:
                raise InvalidStateError(
                    "Quotation", str(quotation_id), current.value,
                    f"cannot move from {current.value} to {target.value}",
                )
            if target == QuotationStatus.SUBMITTED:
                other = self._open_quotation_of(rfq.id, quotation.vendor_id)
                if other is not None:
                    raise DuplicateQuotationError(
                        str(rfq.id), quotation.vendor_id, str(other.id),
                    )
            quotation.status = target.value
            quotation.updated_by_id = actor.actor_id
            if reason:
                quotation.notes = reason.strip()
            self._commit("Quotation", quotation_id)

            now = self._clock.now_utc()
            event = WorkflowEvent(
                event_type=event_type,
                aggregate_id=quotation_id,
                occurred_at=now,
                discriminator=now.isoformat(),
                actor_id=actor.actor_id,
                mrf_id=rfq.mrf_id,
                payload={"rfq_id": rfq.id, "vendor_id": quotation.vendor_id},
            )
            logger.info(f"{operation}_committed", extra={
                "quotation_id": str(quotation_id),
                "status": target.value,
            })
        except ProcurementKernelError as exc:
            self._session.rollback()
            log_rejection(logger, operation, exc, quotation_id=quotation_id)
            raise
        except Exception:
            self._session.rollback()
            raise
        self._notify([event])
        return quotation.to_dto()

    # =========================================================================
    # Comparison
    # =========================================================================

    def compare_quotations(self, rfq_id: UUID) -> QuotationComparison:
        """Score and rank the RFQ's bids.  Closed bids are left out.

        Vendors missing from the directory score with a rating of 0.
        """
        rfq = self._session.get(RFQModel, rfq_id)
        if rfq is None:
            raise RFQNotFoundError(str(rfq_id))
        rows = self._session.execute(
            select(QuotationModel)
            .where(QuotationModel.rfq_id == rfq_id)
            .where(QuotationModel.status != QuotationStatus.CLOSED.value)
            .order_by(QuotationModel.submitted_at, QuotationModel.id)
        ).scalars().all()
        quotations = tuple(row.to_dto() for row in rows)

        candidates = []
        for q in quotations:
            vendor = self._vendors.get_vendor(q.vendor_id)
            candidates.append(ScoringCandidate(
                quotation_id=q.id,
                rfq_id=rfq_id,
                vendor_id=q.vendor_id,
                price=q.price,
                delivery_date=q.delivery_date,
                vendor_rating=vendor.rating if vendor else Decimal("0"),
                submitted_at=q.submitted_at,
            ))
        scoring = self._scoring.score(
            candidates=candidates,
            evaluated_at=self._clock.now_utc(),
            rounding=self._config.score_rounding,
        )
        statistics = summarize_bids([q.price for q in quotations])
        logger.info("procurement_quotations_compared", extra={
            "rfq_id": str(rfq_id),
            "quotation_count": len(quotations),
            "recommended_quotation_id": str(scoring.recommended_quotation_id),
        })
        return QuotationComparison(
            rfq_id=rfq_id,
            scoring=scoring,
            statistics=statistics,
            quotations=quotations,
        )
