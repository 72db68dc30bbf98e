"""
Module: procurement_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    the procurement services: quotation scoring and vendor selection.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procurement_kernel domain types, exceptions and logging.
    MUST NOT import procurement_kernel services, models or the database.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``; the evaluation time is
      passed in by the calling service.
    - Decimal-only arithmetic for prices, ratings and scores.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine`` (see
    ``procurement_engines.tracer``), emitting PROCUREMENT_ENGINE_TRACE log
    records with engine name, version, input fingerprint and duration.
"""

from procurement_engines.scoring import (
    BidStatistics,
    QuotationScore,
    QuotationScoringEngine,
    ScoringCandidate,
    ScoringResult,
    delivery_days,
    summarize_bids,
)
from procurement_engines.vendor_selection import (
    PreferredCriteria,
    VendorSelection,
    VendorSelectionEngine,
    preferred_score,
)

__all__ = [
    # Scoring
    "BidStatistics",
    "QuotationScore",
    "QuotationScoringEngine",
    "ScoringCandidate",
    "ScoringResult",
    "delivery_days",
    "summarize_bids",
    # Vendor selection
    "PreferredCriteria",
    "VendorSelection",
    "VendorSelectionEngine",
    "preferred_score",
]
