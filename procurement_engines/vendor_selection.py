"""
procurement_engines.vendor_selection -- RFQ invitee resolution.

Responsibility:
    Resolve the set of vendors an RFQ is sent to, using one of three
    mutually exclusive strategies:

    - manual        the caller names the vendors; each must exist and be
                    active and KYC-verified
    - all_category  every active vendor whose category matches the MRF
    - preferred     active vendors with rating >= 4.0 and >= 10 completed
                    orders, ranked by 0.4*rating + 0.3*(orders/100) + 0.3,
                    top five

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller fetches the
    vendor list from the vendor directory and passes it in.

Invariants enforced:
    - A resolution never returns an empty invitee set: that raises
      NoEligibleVendorsError instead.
    - Invitees are unique and their order is deterministic.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.rfq import Vendor, VendorSelectionMethod
from procurement_kernel.exceptions import (
    NoEligibleVendorsError,
    ValidationError,
    VendorNotFoundError,
)
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.vendor_selection")

RATING_WEIGHT = Decimal("0.4")
ORDERS_WEIGHT = Decimal("0.3")
BASE_SCORE = Decimal("0.3")


@dataclass(frozen=True)
class PreferredCriteria:
    min_rating: Decimal = Decimal("4.0")
    min_orders: int = 10
    max_vendors: int = 5

    def describe(self) -> str:
        return (
            f"rating >= {self.min_rating}, completed orders >= {self.min_orders}, "
            f"top {self.max_vendors}"
        )


@dataclass(frozen=True)
class VendorSelection:
    method: VendorSelectionMethod
    vendors: tuple[Vendor, ...]

    @property
    def vendor_ids(self) -> tuple[str, ...]:
        return tuple(v.id for v in self.vendors)


def preferred_score(vendor: Vendor) -> Decimal:
    """Composite ranking score for the preferred strategy."""
    orders = Decimal(vendor.completed_orders) / Decimal(100)
    return vendor.rating * RATING_WEIGHT + orders * ORDERS_WEIGHT + BASE_SCORE


def _normalize_category(category: str) -> str:
    return category.strip().casefold()


class VendorSelectionEngine:
    """Stateless invitee resolver."""

    @traced_engine(
        "vendor_selection", "1.0",
        fingerprint_fields=("method", "category", "requested_ids"),
    )
    def resolve(
        self,
        *,
        method: VendorSelectionMethod,
        vendors: Sequence[Vendor],
        category: str | None = None,
        requested_ids: Sequence[str] = (),
        criteria: PreferredCriteria | None = None,
    ) -> VendorSelection:
        """
        Resolve invitees with the given strategy.

        Args:
            method: Strategy to apply.
            vendors: Candidate vendors from the directory.
            category: MRF category (all_category strategy).
            requested_ids: Explicit vendor ids (manual strategy).
            criteria: Thresholds for the preferred strategy.

        Raises:
            ValidationError: Manual strategy with no ids or an ineligible
                vendor; category strategy without a category.
            VendorNotFoundError: Manual strategy names an unknown vendor.
            NoEligibleVendorsError: Resolution produced no vendors.
        """
        method = VendorSelectionMethod(method)
        if method == VendorSelectionMethod.MANUAL:
            selected = self._manual(vendors, requested_ids)
            detail = ""
        elif method == VendorSelectionMethod.ALL_CATEGORY:
            if not category or not category.strip():
                raise ValidationError("category", "category is required for category selection")
            selected = self._by_category(vendors, category)
            detail = f"category={category}"
        else:
            criteria = criteria or PreferredCriteria()
            selected = self._preferred(vendors, criteria)
            detail = criteria.describe()

        if not selected:
            logger.warning("vendor_selection_empty", extra={
                "method": method.value,
                "criteria": detail,
            })
            raise NoEligibleVendorsError(method.value, detail)

        logger.info("vendor_selection_resolved", extra={
            "method": method.value,
            "vendor_count": len(selected),
        })
        return VendorSelection(method=method, vendors=tuple(selected))

    def _manual(
        self, vendors: Sequence[Vendor], requested_ids: Sequence[str],
    ) -> list[Vendor]:
        ids = list(dict.fromkeys(i.strip() for i in requested_ids if i and i.strip()))
        if not ids:
            raise ValidationError("vendor_ids", "at least one vendor is required")
        index = {v.id: v for v in vendors}
        selected: list[Vendor] = []
        for vendor_id in ids:
            vendor = index.get(vendor_id)
            if vendor is None:
                raise VendorNotFoundError(vendor_id)
            if not vendor.is_eligible:
                raise ValidationError(
                    "vendor_ids",
                    f"vendor {vendor_id} is inactive or not KYC-verified",
                )
            selected.append(vendor)
        return selected

    def _by_category(self, vendors: Sequence[Vendor], category: str) -> list[Vendor]:
        wanted = _normalize_category(category)
        matches = [
            v for v in vendors
            if v.active and _normalize_category(v.category) == wanted
        ]
        return sorted(matches, key=lambda v: v.id)

    def _preferred(
        self, vendors: Sequence[Vendor], criteria: PreferredCriteria,
    ) -> list[Vendor]:
        qualified = [
            v for v in vendors
            if v.active
            and v.rating >= criteria.min_rating
            and v.completed_orders >= criteria.min_orders
        ]
        ranked = sorted(qualified, key=lambda v: (-preferred_score(v), v.id))
        return ranked[: criteria.max_vendors]
