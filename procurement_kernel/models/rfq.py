"""
Module: procurement_kernel.models.rfq
Responsibility: ORM persistence for RFQs, their vendor invitations, and the
quotations vendors submit against them.

Architecture position: Kernel > Models.  May import from db/ and domain/
value types only.

Invariants enforced:
    - At most one RFQ per MRF in status Open or Awarded (partial unique
      index, so a Closed RFQ frees the MRF for a new one).
    - At most one open (submitted or approved) quotation per (RFQ, vendor).
    - At most one approved quotation per RFQ.
    - A vendor is invited to a given RFQ at most once.
    - RFQ rows are optimistically locked through ``version``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, TrackedBase, UUIDString
from procurement_kernel.domain.rfq import (
    RFQ,
    Quotation,
    QuotationLine,
    QuotationStatus,
    RFQStatus,
    VendorSelectionMethod,
)

_ACTIVE_RFQ = text("status IN ('Open', 'Awarded')")
_OPEN_QUOTATION = text("status IN ('submitted', 'approved')")
_APPROVED_QUOTATION = text("status = 'approved'")


class RFQModel(TrackedBase):
    """Request for quotation issued for one MRF."""

    __tablename__ = "procurement_rfqs"

    __table_args__ = (
        CheckConstraint(
            "status IN ('Open', 'Closed', 'Awarded')",
            name="ck_procurement_rfqs_status",
        ),
        CheckConstraint(
            "selection_method IN ('manual', 'all_category', 'preferred')",
            name="ck_procurement_rfqs_method",
        ),
        Index(
            "uq_procurement_rfqs_active_per_mrf",
            "mrf_id",
            unique=True,
            postgresql_where=_ACTIVE_RFQ,
            sqlite_where=_ACTIVE_RFQ,
        ),
        Index("ix_procurement_rfqs_status", "status"),
    )

    mrf_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("procurement_mrfs.id"), nullable=False,
    )
    mrf_title: Mapped[str] = mapped_column(String(255), nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    deadline: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    selection_method: Mapped[str] = mapped_column(String(20), nullable=False)
    closed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    awarded_quotation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    invitations: Mapped[list["RFQInvitationModel"]] = relationship(
        "RFQInvitationModel",
        back_populates="rfq",
        order_by="RFQInvitationModel.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<RFQ {self.id} mrf={self.mrf_id} {self.status}>"

    @property
    def vendor_ids(self) -> tuple[str, ...]:
        return tuple(i.vendor_id for i in self.invitations)

    def to_dto(self) -> RFQ:
        return RFQ(
            id=self.id,
            mrf_id=self.mrf_id,
            mrf_title=self.mrf_title,
            estimated_cost=self.estimated_cost,
            description=self.description,
            quantity=self.quantity,
            deadline=self.deadline,
            status=RFQStatus(self.status),
            selection_method=VendorSelectionMethod(self.selection_method),
            vendor_ids=self.vendor_ids,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
            closed_reason=self.closed_reason,
            awarded_quotation_id=self.awarded_quotation_id,
            version=self.version,
        )

    def invite(self, vendor_id: str, invited_by_id: UUID, at: datetime) -> "RFQInvitationModel":
        invitation = RFQInvitationModel(
            rfq_id=self.id,
            vendor_id=vendor_id,
            position=len(self.invitations),
            invited_by_id=invited_by_id,
            invited_at=at,
        )
        self.invitations.append(invitation)
        return invitation


class RFQInvitationModel(Base):
    """One vendor invited to an RFQ."""

    __tablename__ = "procurement_rfq_invitations"

    __table_args__ = (
        UniqueConstraint("rfq_id", "vendor_id", name="uq_procurement_rfq_invitation"),
    )

    rfq_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("procurement_rfqs.id"), nullable=False,
    )
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    invited_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    invited_at: Mapped[datetime] = mapped_column(nullable=False)

    rfq: Mapped["RFQModel"] = relationship("RFQModel", back_populates="invitations")


class QuotationModel(TrackedBase):
    """A vendor's bid against an RFQ."""

    __tablename__ = "procurement_quotations"

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_procurement_quotations_price"),
        CheckConstraint(
            "status IN ('submitted', 'approved', 'closed', 'rejected')",
            name="ck_procurement_quotations_status",
        ),
        Index(
            "uq_procurement_quotations_open_per_vendor",
            "rfq_id",
            "vendor_id",
            unique=True,
            postgresql_where=_OPEN_QUOTATION,
            sqlite_where=_OPEN_QUOTATION,
        ),
        Index(
            "uq_procurement_quotations_approved_per_rfq",
            "rfq_id",
            unique=True,
            postgresql_where=_APPROVED_QUOTATION,
            sqlite_where=_APPROVED_QUOTATION,
        ),
    )

    rfq_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("procurement_rfqs.id"), nullable=False,
    )
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    payment_terms: Mapped[str | None] = mapped_column(String(255), nullable=True)
    validity_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    warranty_period: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_ref: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    lines: Mapped[list["QuotationLineModel"]] = relationship(
        "QuotationLineModel",
        back_populates="quotation",
        order_by="QuotationLineModel.line_number",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Quotation {self.id} rfq={self.rfq_id} vendor={self.vendor_id} {self.status}>"

    def to_dto(self) -> Quotation:
        return Quotation(
            id=self.id,
            rfq_id=self.rfq_id,
            vendor_id=self.vendor_id,
            vendor_name=self.vendor_name,
            price=self.price,
            delivery_date=self.delivery_date,
            status=QuotationStatus(self.status),
            submitted_at=self.submitted_at,
            line_items=tuple(line.to_dto() for line in self.lines),
            payment_terms=self.payment_terms,
            validity_days=self.validity_days,
            warranty_period=self.warranty_period,
            notes=self.notes,
            document_ref=self.document_ref,
            is_late=self.is_late,
        )

    @classmethod
    def from_dto(cls, dto: Quotation, created_by_id: UUID) -> QuotationModel:
        return cls(
            id=dto.id,
            rfq_id=dto.rfq_id,
            vendor_id=dto.vendor_id,
            vendor_name=dto.vendor_name,
            price=dto.price,
            delivery_date=dto.delivery_date,
            status=dto.status.value,
            submitted_at=dto.submitted_at,
            payment_terms=dto.payment_terms,
            validity_days=dto.validity_days,
            warranty_period=dto.warranty_period,
            notes=dto.notes,
            document_ref=dto.document_ref,
            is_late=dto.is_late,
            created_by_id=created_by_id,
            lines=[
                QuotationLineModel(
                    line_number=n,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for n, line in enumerate(dto.line_items, start=1)
            ],
        )


class QuotationLineModel(Base):
    __tablename__ = "procurement_quotation_lines"

    __table_args__ = (
        UniqueConstraint("quotation_id", "line_number", name="uq_procurement_quotation_line"),
    )

    quotation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("procurement_quotations.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    quotation: Mapped["QuotationModel"] = relationship("QuotationModel", back_populates="lines")

    def to_dto(self) -> QuotationLine:
        return QuotationLine(
            name=self.name,
            quantity=self.quantity,
            unit_price=self.unit_price,
        )
