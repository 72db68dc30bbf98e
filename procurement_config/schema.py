"""
Workflow configuration schema.

The procurement workflow is parameterized by a small set of values that
differ between organizations: the value above which an MRF escalates to the
chairman, which roles may act at which stage, where in the lifecycle RFQs
may be dispatched and vendors selected, and the preferred-vendor criteria.
YAML files are parsed into ``WorkflowConfig`` by the loader; services and
the workflow state machine consume the frozen instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from procurement_kernel.domain.actor import Role
from procurement_kernel.domain.mrf import MRFStage

ROUNDING_MODES = ("half_up", "half_even")


def _default_stage_roles() -> Mapping[str, tuple[str, ...]]:
    procurement = (Role.PROCUREMENT_MANAGER.value, Role.PROCUREMENT.value)
    supply_chain = (Role.SUPPLY_CHAIN_DIRECTOR.value, Role.SUPPLY_CHAIN.value)
    return MappingProxyType({
        MRFStage.SUBMITTED.value: procurement,
        MRFStage.PROCUREMENT.value: procurement,
        MRFStage.EXECUTIVE.value: (Role.EXECUTIVE.value,),
        MRFStage.CHAIRMAN.value: (Role.CHAIRMAN.value,),
        MRFStage.SUPPLY_CHAIN.value: supply_chain,
        MRFStage.FINANCE.value: (Role.FINANCE.value,),
        MRFStage.CHAIRMAN_PAYMENT.value: (Role.CHAIRMAN.value,),
    })


@dataclass(frozen=True)
class WorkflowConfig:
    """Frozen workflow parameters.

    ``stage_roles`` maps a stage name to the roles allowed to approve or
    reject at that stage.  Procurement-side operations (RFQ dispatch,
    vendor selection, unsigned PO upload) use the roles of the
    ``procurement`` stage; PO signature and PO rejection use the roles of
    the ``supply_chain`` stage, as do approval and rejection of a vendor
    choice sent for review.  Payment processing and GRN requests use the
    roles of the ``finance`` stage.

    ``vendor_selection_review`` makes every vendor choice go through the
    supply-chain review instead of a direct award.
    ``chairman_payment_approval`` makes finance route payment to the
    chairman instead of settling directly.
    """

    high_value_threshold: Decimal = Decimal("1000000")
    stage_roles: Mapping[str, tuple[str, ...]] = field(
        default_factory=_default_stage_roles
    )
    rfq_eligible_stages: tuple[str, ...] = (
        MRFStage.PROCUREMENT.value,
        MRFStage.EXECUTIVE.value,
        MRFStage.CHAIRMAN.value,
        MRFStage.SUPPLY_CHAIN.value,
    )
    preferred_min_rating: Decimal = Decimal("4.0")
    preferred_min_orders: int = 10
    preferred_max_vendors: int = 5
    max_po_versions: int | None = None
    score_rounding: str = "half_up"
    max_document_ref_length: int = 2048
    vendor_selection_review: bool = False
    chairman_payment_approval: bool = False

    def __post_init__(self) -> None:
        known_stages = {s.value for s in MRFStage}
        known_roles = {r.value for r in Role}

        for stage, roles in self.stage_roles.items():
            if stage not in known_stages:
                raise ValueError(f"Unknown stage in stage_roles: {stage!r}")
            for role in roles:
                if role not in known_roles:
                    raise ValueError(f"Unknown role {role!r} for stage {stage!r}")
        for stage in self.rfq_eligible_stages:
            if stage not in known_stages:
                raise ValueError(f"Unknown stage: {stage!r}")
        if self.high_value_threshold < 0:
            raise ValueError("high_value_threshold must be non-negative")
        if not Decimal("0") <= self.preferred_min_rating <= Decimal("5"):
            raise ValueError("preferred_min_rating must be between 0 and 5")
        if self.preferred_max_vendors < 1:
            raise ValueError("preferred_max_vendors must be at least 1")
        if self.max_po_versions is not None and self.max_po_versions < 1:
            raise ValueError("max_po_versions must be at least 1 when set")
        if self.score_rounding not in ROUNDING_MODES:
            raise ValueError(
                f"score_rounding must be one of {ROUNDING_MODES}, "
                f"got {self.score_rounding!r}"
            )

    def roles_for(self, stage: str) -> tuple[str, ...]:
        """Roles allowed to approve/reject at ``stage`` (empty for terminal stages)."""
        return tuple(self.stage_roles.get(stage, ()))

    @property
    def procurement_roles(self) -> tuple[str, ...]:
        return self.roles_for(MRFStage.PROCUREMENT.value)

    @property
    def supply_chain_roles(self) -> tuple[str, ...]:
        return self.roles_for(MRFStage.SUPPLY_CHAIN.value)

    @property
    def finance_roles(self) -> tuple[str, ...]:
        return self.roles_for(MRFStage.FINANCE.value)

    def to_dict(self) -> dict:
        """Plain-data form used for checksums and logging."""
        return {
            "high_value_threshold": str(self.high_value_threshold),
            "stage_roles": {k: list(v) for k, v in sorted(self.stage_roles.items())},
            "rfq_eligible_stages": list(self.rfq_eligible_stages),
            "preferred_min_rating": str(self.preferred_min_rating),
            "preferred_min_orders": self.preferred_min_orders,
            "preferred_max_vendors": self.preferred_max_vendors,
            "max_po_versions": self.max_po_versions,
            "score_rounding": self.score_rounding,
            "max_document_ref_length": self.max_document_ref_length,
            "vendor_selection_review": self.vendor_selection_review,
            "chairman_payment_approval": self.chairman_payment_approval,
        }
