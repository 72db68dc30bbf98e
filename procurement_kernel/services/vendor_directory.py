"""
In-memory vendor directory.

The kernel only reads vendors through the ``VendorDirectory`` protocol.
This implementation backs tests and hosts that load their vendor master
into memory at start-up.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from procurement_kernel.domain.rfq import Vendor, VendorFilter


class InMemoryVendorDirectory:
    """Dictionary-backed ``VendorDirectory``."""

    def __init__(self, vendors: Iterable[Vendor] = ()):
        self._vendors: dict[str, Vendor] = {}
        for vendor in vendors:
            self.add(vendor)

    def add(self, vendor: Vendor) -> None:
        self._vendors[vendor.id] = vendor

    def get_vendor(self, vendor_id: str) -> Vendor | None:
        return self._vendors.get(vendor_id)

    def list_vendors(self, vendor_filter: VendorFilter) -> Sequence[Vendor]:
        vendors = list(self._vendors.values())
        if vendor_filter.active_only:
            vendors = [v for v in vendors if v.active]
        if vendor_filter.category is not None:
            wanted = vendor_filter.category.strip().casefold()
            vendors = [v for v in vendors if v.category.strip().casefold() == wanted]
        if vendor_filter.vendor_ids is not None:
            ids = set(vendor_filter.vendor_ids)
            vendors = [v for v in vendors if v.id in ids]
        return vendors

    def __len__(self) -> int:
        return len(self._vendors)
