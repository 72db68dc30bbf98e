"""
procurement_engines.tracer -- PROCUREMENT_ENGINE_TRACE records for engine calls.

Scoring and vendor resolution are pure functions of their keyword inputs.
Wrapping them with ``@traced_engine`` adds one INFO record per call naming
the engine, its version, how long the call took, and a short fingerprint
of the inputs.  Two calls over the same quotations produce the same
fingerprint, which is what lets an auditor confirm that a ranking shown at
award time was computed from the bids on file.

The fingerprint is the first 16 hex chars of a SHA-256 over a canonical
JSON rendering of the selected kwargs (sorted keys, Decimals and UUIDs as
strings, dataclasses expanded field by field).  Kwargs that were not
passed are rendered as ``null``.

Usage:
    from procurement_engines.tracer import traced_engine

    @traced_engine("quotation_scoring", "1.0", fingerprint_fields=("candidates",))
    def score(self, *, candidates, evaluated_at):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import json
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from procurement_kernel.logging_config import get_logger

TRACE_MESSAGE = "PROCUREMENT_ENGINE_TRACE"

_logger = get_logger("engines.tracer")


def _to_canonical(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            "__type__": type(value).__name__,
            **{f.name: _to_canonical(getattr(value, f.name)) for f in dataclasses.fields(value)},
        }
    if isinstance(value, Enum):
        return _to_canonical(value.value)
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _to_canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_canonical(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: Iterable[str],
    kwargs: Mapping[str, Any],
) -> str:
    """Deterministic 16-char digest of ``kwargs`` restricted to ``fingerprint_fields``."""
    selected = {name: _to_canonical(kwargs.get(name)) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorate an engine entry point so each call emits a trace record.

    Only keyword arguments can be fingerprinted; engine entry points take
    their inputs keyword-only for that reason.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""
            )
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            _logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round(elapsed_ms, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
