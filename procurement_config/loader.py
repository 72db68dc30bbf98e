"""
Configuration loader (``procurement_config.loader``).

Responsibility
--------------
Reads a workflow YAML file and parses it into the frozen
``WorkflowConfig``.  Runtime callers go through
``procurement_config.get_active_config()``; this module is the parsing
half of it and is used directly by tests.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown stage/role names, out-of-range values  -> ``ValueError``.
* Non-numeric threshold or rating  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from procurement_config.schema import WorkflowConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a Decimal from YAML (via str, so 4.0 stays Decimal('4.0'))."""
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field}: cannot parse decimal from {value!r}") from None


def parse_workflow_config(data: dict[str, Any]) -> WorkflowConfig:
    """
    Build a ``WorkflowConfig`` from a parsed YAML mapping.

    Keys that are absent keep the dataclass defaults.
    """
    kwargs: dict[str, Any] = {}

    if "high_value_threshold" in data:
        kwargs["high_value_threshold"] = parse_decimal(
            data["high_value_threshold"], "high_value_threshold",
        )

    if "stage_roles" in data:
        kwargs["stage_roles"] = {
            str(stage): tuple(str(r) for r in (roles or ()))
            for stage, roles in data["stage_roles"].items()
        }

    if "rfq_eligible_stages" in data:
        kwargs["rfq_eligible_stages"] = tuple(
            str(s) for s in data["rfq_eligible_stages"]
        )

    preferred = data.get("preferred_vendors") or {}
    if "min_rating" in preferred:
        kwargs["preferred_min_rating"] = parse_decimal(
            preferred["min_rating"], "preferred_vendors.min_rating",
        )
    if "min_orders" in preferred:
        kwargs["preferred_min_orders"] = int(preferred["min_orders"])
    if "max_vendors" in preferred:
        kwargs["preferred_max_vendors"] = int(preferred["max_vendors"])

    purchase_orders = data.get("purchase_orders") or {}
    if "max_versions" in purchase_orders:
        max_versions = purchase_orders["max_versions"]
        kwargs["max_po_versions"] = None if max_versions is None else int(max_versions)
    if "max_document_ref_length" in purchase_orders:
        kwargs["max_document_ref_length"] = int(purchase_orders["max_document_ref_length"])

    approvals = data.get("approvals") or {}
    for key in ("vendor_selection_review", "chairman_payment_approval"):
        if key in approvals:
            value = approvals[key]
            if not isinstance(value, bool):
                raise ValueError(f"approvals.{key}: expected true or false, got {value!r}")
            kwargs[key] = value

    scoring = data.get("scoring") or {}
    if "rounding" in scoring:
        kwargs["score_rounding"] = str(scoring["rounding"])

    return WorkflowConfig(**kwargs)


def load_workflow_config(path: Path | str) -> WorkflowConfig:
    """Load and parse one workflow YAML file."""
    return parse_workflow_config(load_yaml_file(Path(path)))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
