"""
procurement_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain workflow configuration at runtime
    through ``get_active_config()``.  Services receive the returned
    ``WorkflowConfig`` by constructor injection and never read files or
    environment variables themselves.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``ValueError`` -- unknown stage/role names or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``procurement_config_loaded`` log record carrying the checksum of the
    parsed configuration, which ties each workflow decision (escalation
    threshold, role map) to the configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from procurement_config.loader import (
    compute_checksum,
    load_workflow_config,
    parse_workflow_config,
)
from procurement_config.schema import WorkflowConfig

_logger = logging.getLogger("procurement_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "workflow.yaml"


def get_active_config(path: Path | str | None = None) -> WorkflowConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to the bundled
            ``defaults/workflow.yaml``.

    Returns:
        The frozen ``WorkflowConfig``.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_workflow_config(source)
    checksum = compute_checksum(config.to_dict())

    _logger.info(
        "procurement_config_loaded",
        extra={
            "config_path": str(source),
            "checksum": checksum,
            "high_value_threshold": str(config.high_value_threshold),
            "max_po_versions": config.max_po_versions,
            "score_rounding": config.score_rounding,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "WorkflowConfig",
    "compute_checksum",
    "get_active_config",
    "load_workflow_config",
    "parse_workflow_config",
]
