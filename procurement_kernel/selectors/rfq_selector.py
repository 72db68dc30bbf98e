"""
Module: procurement_kernel.selectors.rfq_selector
Responsibility: Read access to RFQs and their quotations.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from procurement_kernel.domain.rfq import RFQ, Quotation, QuotationStatus, RFQStatus
from procurement_kernel.exceptions import QuotationNotFoundError, RFQNotFoundError
from procurement_kernel.models.rfq import QuotationModel, RFQInvitationModel, RFQModel
from procurement_kernel.selectors.base import BaseSelector


class RFQSelector(BaseSelector[RFQModel]):
    """Queries over RFQs and quotations."""

    def get(self, rfq_id: UUID) -> RFQ:
        model = self.session.get(RFQModel, rfq_id)
        if model is None:
            raise RFQNotFoundError(str(rfq_id))
        return model.to_dto()

    def for_mrf(self, mrf_id: UUID) -> list[RFQ]:
        """Every RFQ ever issued for the MRF, oldest first."""
        rows = self.session.execute(
            select(RFQModel)
            .where(RFQModel.mrf_id == mrf_id)
            .order_by(RFQModel.created_at, RFQModel.id)
        ).scalars()
        return [row.to_dto() for row in rows]

    def active_for_mrf(self, mrf_id: UUID) -> RFQ | None:
        model = self.session.execute(
            select(RFQModel)
            .where(RFQModel.mrf_id == mrf_id)
            .where(RFQModel.status.in_((RFQStatus.OPEN.value, RFQStatus.AWARDED.value)))
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def open_for_vendor(self, vendor_id: str) -> list[RFQ]:
        """Open RFQs the vendor has been invited to (vendor portal inbox)."""
        rows = self.session.execute(
            select(RFQModel)
            .join(RFQInvitationModel, RFQInvitationModel.rfq_id == RFQModel.id)
            .where(RFQInvitationModel.vendor_id == vendor_id)
            .where(RFQModel.status == RFQStatus.OPEN.value)
            .order_by(RFQModel.deadline, RFQModel.id)
        ).scalars()
        return [row.to_dto() for row in rows]

    def quotation(self, quotation_id: UUID) -> Quotation:
        model = self.session.get(QuotationModel, quotation_id)
        if model is None:
            raise QuotationNotFoundError(str(quotation_id))
        return model.to_dto()

    def quotations(
        self, rfq_id: UUID, status: QuotationStatus | None = None,
    ) -> list[Quotation]:
        stmt = select(QuotationModel).where(QuotationModel.rfq_id == rfq_id)
        if status is not None:
            stmt = stmt.where(QuotationModel.status == QuotationStatus(status).value)
        rows = self.session.execute(
            stmt.order_by(QuotationModel.submitted_at, QuotationModel.id)
        ).scalars()
        return [row.to_dto() for row in rows]
