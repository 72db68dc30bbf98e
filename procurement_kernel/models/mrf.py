"""
Module: procurement_kernel.models.mrf
Responsibility: ORM persistence for the MRF aggregate and its approval history.

Architecture position: Kernel > Models.  May import from db/ and domain/
value types only.

Invariants enforced:
    - Optimistic locking: ``version`` is the mapper's version_id_col, so an
      UPDATE issued against a row another transaction already changed
      affects zero rows and raises StaleDataError.
    - Every transition bumps ``history_count`` so the MRF row itself is
      always updated (and its version checked) when history grows.
    - History is append-only: UNIQUE(mrf_id, sequence) rejects a forked
      history, and ORM listeners reject UPDATE/DELETE of history rows.
    - current_stage is restricted to the known stage names.

Failure modes:
    - StaleDataError on concurrent modification (mapped to
      ConcurrentModificationError by the services).
    - IntegrityError on a duplicate history sequence.
    - ImmutabilityViolationError on history UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, TrackedBase, UUIDString
from procurement_kernel.domain.mrf import (
    MRF,
    ApprovalHistoryEntry,
    HistoryAction,
    MRFStage,
    PaymentStatus,
    Urgency,
)
from procurement_kernel.exceptions import ImmutabilityViolationError

_STAGE_VALUES = ", ".join(f"'{s.value}'" for s in MRFStage)


class MRFModel(TrackedBase):
    """Persistent MRF aggregate root."""

    __tablename__ = "procurement_mrfs"

    __table_args__ = (
        CheckConstraint(
            f"current_stage IN ({_STAGE_VALUES})",
            name="ck_procurement_mrfs_stage",
        ),
        CheckConstraint("estimated_cost >= 0", name="ck_procurement_mrfs_cost"),
        CheckConstraint("po_version >= 1", name="ck_procurement_mrfs_po_version"),
        CheckConstraint(
            "signed_po_url IS NULL OR unsigned_po_url IS NOT NULL",
            name="ck_procurement_mrfs_signed_after_unsigned",
        ),
        Index("ix_procurement_mrfs_stage", "current_stage"),
        Index("ix_procurement_mrfs_requester", "requester_id"),
    )

    control_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    urgency: Mapped[str] = mapped_column(String(20), nullable=False)
    justification: Mapped[str] = mapped_column(Text, nullable=False, default="")
    department: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    requester_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requester_name: Mapped[str] = mapped_column(String(255), nullable=False)

    current_stage: Mapped[str] = mapped_column(String(50), nullable=False)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_resubmission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_mrf_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("procurement_mrfs.id"), nullable=True,
    )
    pfi_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    proposed_rfq_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    proposed_quotation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    proposed_vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vendor_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    awarded_rfq_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    awarded_quotation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    awarded_vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    po_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unsigned_po_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    signed_po_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    po_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    po_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    po_rejection_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value,
    )
    grn_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    grn_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    history_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    history: Mapped[list["MRFHistoryModel"]] = relationship(
        "MRFHistoryModel",
        back_populates="mrf",
        order_by="MRFHistoryModel.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<MRF {self.control_number} stage={self.current_stage} "
            f"v{self.version}>"
        )

    def to_dto(self) -> MRF:
        """Convert ORM model to frozen domain DTO."""
        return MRF(
            id=self.id,
            control_number=self.control_number,
            title=self.title,
            category=self.category,
            description=self.description,
            quantity=self.quantity,
            estimated_cost=self.estimated_cost,
            currency=self.currency,
            urgency=Urgency(self.urgency),
            justification=self.justification,
            department=self.department,
            requester_id=self.requester_id,
            requester_name=self.requester_name,
            current_stage=MRFStage(self.current_stage),
            history=tuple(h.to_dto() for h in self.history),
            rejection_reason=self.rejection_reason,
            is_resubmission=self.is_resubmission,
            original_mrf_id=self.original_mrf_id,
            pfi_url=self.pfi_url,
            proposed_rfq_id=self.proposed_rfq_id,
            proposed_quotation_id=self.proposed_quotation_id,
            proposed_vendor_id=self.proposed_vendor_id,
            vendor_rejection_reason=self.vendor_rejection_reason,
            awarded_rfq_id=self.awarded_rfq_id,
            awarded_quotation_id=self.awarded_quotation_id,
            awarded_vendor_id=self.awarded_vendor_id,
            po_number=self.po_number,
            unsigned_po_url=self.unsigned_po_url,
            signed_po_url=self.signed_po_url,
            po_version=self.po_version,
            po_rejection_reason=self.po_rejection_reason,
            po_rejection_comments=self.po_rejection_comments,
            payment_status=PaymentStatus(self.payment_status),
            grn_requested=self.grn_requested,
            grn_url=self.grn_url,
            submitted_at=self.submitted_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: MRF) -> MRFModel:
        """Create a new ORM row (with its history) from a freshly submitted MRF."""
        model = cls(
            id=dto.id,
            control_number=dto.control_number,
            created_by_id=dto.requester_id,
            history_count=len(dto.history),
            history=[MRFHistoryModel.from_dto(dto.id, e) for e in dto.history],
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: MRF) -> list["MRFHistoryModel"]:
        """Copy the mutable state of ``dto`` onto this row.

        History entries in ``dto`` beyond the ones already persisted are
        appended; existing entries are never touched.  Returns the newly
        appended history rows.
        """
        self.title = dto.title
        self.category = dto.category
        self.description = dto.description
        self.quantity = dto.quantity
        self.estimated_cost = dto.estimated_cost
        self.currency = dto.currency
        self.urgency = dto.urgency.value
        self.justification = dto.justification
        self.department = dto.department
        self.requester_id = dto.requester_id
        self.requester_name = dto.requester_name
        self.current_stage = dto.current_stage.value
        self.rejection_reason = dto.rejection_reason
        self.is_resubmission = dto.is_resubmission
        self.original_mrf_id = dto.original_mrf_id
        self.pfi_url = dto.pfi_url
        self.proposed_rfq_id = dto.proposed_rfq_id
        self.proposed_quotation_id = dto.proposed_quotation_id
        self.proposed_vendor_id = dto.proposed_vendor_id
        self.vendor_rejection_reason = dto.vendor_rejection_reason
        self.awarded_rfq_id = dto.awarded_rfq_id
        self.awarded_quotation_id = dto.awarded_quotation_id
        self.awarded_vendor_id = dto.awarded_vendor_id
        self.po_number = dto.po_number
        self.unsigned_po_url = dto.unsigned_po_url
        self.signed_po_url = dto.signed_po_url
        self.po_version = dto.po_version
        self.po_rejection_reason = dto.po_rejection_reason
        self.po_rejection_comments = dto.po_rejection_comments
        self.payment_status = dto.payment_status.value
        self.grn_requested = dto.grn_requested
        self.grn_url = dto.grn_url
        self.submitted_at = dto.submitted_at

        appended: list[MRFHistoryModel] = []
        persisted = len(self.history)
        for entry in dto.history[persisted:]:
            row = MRFHistoryModel.from_dto(self.id, entry)
            self.history.append(row)
            appended.append(row)
        self.history_count = len(self.history)
        return appended


class MRFHistoryModel(Base):
    """One approval-history entry.  Append-only."""

    __tablename__ = "procurement_mrf_history"

    __table_args__ = (
        UniqueConstraint("mrf_id", "sequence", name="uq_procurement_mrf_history_seq"),
        Index("ix_procurement_mrf_history_mrf", "mrf_id"),
    )

    mrf_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("procurement_mrfs.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    stage: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resulting_stage: Mapped[str] = mapped_column(String(50), nullable=False)
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    approver_role: Mapped[str] = mapped_column(String(50), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_cost_snapshot: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True,
    )
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    mrf: Mapped["MRFModel"] = relationship("MRFModel", back_populates="history")

    def __repr__(self) -> str:
        return (
            f"<MRFHistory mrf={self.mrf_id} #{self.sequence} "
            f"{self.stage}->{self.resulting_stage} {self.action}>"
        )

    def to_dto(self) -> ApprovalHistoryEntry:
        return ApprovalHistoryEntry(
            sequence=self.sequence,
            stage=MRFStage(self.stage),
            action=HistoryAction(self.action),
            resulting_stage=MRFStage(self.resulting_stage),
            approver_id=self.approver_id,
            approver_name=self.approver_name,
            approver_role=self.approver_role,
            timestamp=self.recorded_at,
            remarks=self.remarks,
            estimated_cost_snapshot=self.estimated_cost_snapshot,
        )

    @classmethod
    def from_dto(cls, mrf_id: UUID, dto: ApprovalHistoryEntry) -> MRFHistoryModel:
        return cls(
            mrf_id=mrf_id,
            sequence=dto.sequence,
            stage=dto.stage.value,
            action=dto.action.value,
            resulting_stage=dto.resulting_stage.value,
            approver_id=dto.approver_id,
            approver_name=dto.approver_name,
            approver_role=dto.approver_role,
            remarks=dto.remarks,
            estimated_cost_snapshot=dto.estimated_cost_snapshot,
            recorded_at=dto.timestamp,
        )


# =============================================================================
# ORM-Level Immutability for History (Append-Only)
# =============================================================================


@event.listens_for(MRFHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to approval history rows."""
    raise ImmutabilityViolationError(
        entity_type="MRFHistory",
        entity_id=f"{target.mrf_id}#{target.sequence}",
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(MRFHistoryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of approval history rows."""
    raise ImmutabilityViolationError(
        entity_type="MRFHistory",
        entity_id=f"{target.mrf_id}#{target.sequence}",
        reason="Approval history is append-only -- cannot delete",
    )
