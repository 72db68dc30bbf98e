"""Boundary adapters between host payloads and canonical domain inputs."""

from procurement_kernel.adapters.payload_mapper import (
    mrf_from_payload,
    mrf_to_payload,
    normalize_quotation_status,
    normalize_stage,
    quotation_from_payload,
    vendor_from_payload,
)

__all__ = [
    "mrf_from_payload",
    "mrf_to_payload",
    "normalize_quotation_status",
    "normalize_stage",
    "quotation_from_payload",
    "vendor_from_payload",
]
