"""
Module: procurement_kernel.selectors.mrf_selector
Responsibility: Read access to MRFs and their approval history.

Everything returned is a frozen ``MRF`` or ``ApprovalHistoryEntry``; the
history is the stored ordered list, never rebuilt from timestamps.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from procurement_kernel.domain.mrf import MRF, ApprovalHistoryEntry, MRFStage
from procurement_kernel.exceptions import MRFNotFoundError
from procurement_kernel.models.mrf import MRFHistoryModel, MRFModel
from procurement_kernel.selectors.base import BaseSelector


class MRFSelector(BaseSelector[MRFModel]):
    """Queries over MRFs."""

    def get(self, mrf_id: UUID) -> MRF:
        model = self.session.get(MRFModel, mrf_id)
        if model is None:
            raise MRFNotFoundError(str(mrf_id))
        return model.to_dto()

    def find(self, mrf_id: UUID) -> MRF | None:
        model = self.session.get(MRFModel, mrf_id)
        return model.to_dto() if model else None

    def by_control_number(self, control_number: str) -> MRF | None:
        model = self.session.execute(
            select(MRFModel).where(MRFModel.control_number == control_number)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def list_by_stage(self, stages: Sequence[MRFStage | str]) -> list[MRF]:
        """MRFs currently at any of ``stages``, oldest submission first.

        This is the approver inbox query: ``list_by_stage([MRFStage.EXECUTIVE])``.
        """
        values = [MRFStage(s).value for s in stages]
        rows = self.session.execute(
            select(MRFModel)
            .where(MRFModel.current_stage.in_(values))
            .order_by(MRFModel.submitted_at, MRFModel.control_number)
        ).scalars()
        return [row.to_dto() for row in rows]

    def list_for_requester(self, requester_id: UUID) -> list[MRF]:
        rows = self.session.execute(
            select(MRFModel)
            .where(MRFModel.requester_id == requester_id)
            .order_by(MRFModel.submitted_at, MRFModel.control_number)
        ).scalars()
        return [row.to_dto() for row in rows]

    def history(self, mrf_id: UUID) -> tuple[ApprovalHistoryEntry, ...]:
        rows = self.session.execute(
            select(MRFHistoryModel)
            .where(MRFHistoryModel.mrf_id == mrf_id)
            .order_by(MRFHistoryModel.sequence)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    def resubmissions_of(self, mrf_id: UUID) -> list[MRF]:
        rows = self.session.execute(
            select(MRFModel)
            .where(MRFModel.original_mrf_id == mrf_id)
            .order_by(MRFModel.submitted_at)
        ).scalars()
        return [row.to_dto() for row in rows]
