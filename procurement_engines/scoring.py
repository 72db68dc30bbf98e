"""
procurement_engines.scoring -- Quotation comparison and ranking.

Responsibility:
    Rank the quotations received for one RFQ on a 100-point scale made of
    three components and recommend the top-ranked one.  The recommendation
    is advisory; awarding is a separate, authorized action.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  No clock access: the
    evaluation time is passed in.

Algorithm:
    lowest/highest price over all quotations, ``fastest`` = minimum
    delivery days, then per quotation:

    - price score     40 * (highest - price) / (highest - lowest);
                      40 when every price is equal
    - delivery score  30 when at least as fast as the fastest, otherwise
                      30 - 3 per day slower, floored at 0
    - vendor score    30 * rating / 5

    Each component is rounded to an integer on its own (half-up by
    default) and the overall score is the sum of the rounded components.
    Ranking is overall score descending, then lower price, then earlier
    submission, then quotation id.

Invariants enforced:
    - Identical inputs produce identical outputs, including order.
    - Quotations whose delivery date has already passed are scored (their
      delivery days are negative) and listed in ``suspect_quotation_ids``;
      they are never dropped.

Failure modes:
    - ValidationError when no quotations are given, when they reference
      more than one RFQ, when a price is negative, or when a vendor rating
      is outside 0-5.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal
from uuid import UUID

from procurement_engines.tracer import traced_engine
from procurement_kernel.db.types import round_money
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.scoring")

PRICE_WEIGHT = Decimal("40")
DELIVERY_WEIGHT = 30
DELIVERY_PENALTY_PER_DAY = 3
VENDOR_WEIGHT = Decimal("30")
MAX_RATING = Decimal("5")

ROUNDING_MODES: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
}

SUSPECT_PAST_DELIVERY = "delivery_date_in_past"

_ONE_DAY = timedelta(days=1)
_ONE_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class ScoringCandidate:
    """One quotation as seen by the scoring engine."""

    quotation_id: UUID
    rfq_id: UUID
    vendor_id: str
    price: Decimal
    delivery_date: date
    vendor_rating: Decimal
    submitted_at: datetime


@dataclass(frozen=True)
class QuotationScore:
    quotation_id: UUID
    vendor_id: str
    price: Decimal
    delivery_days: int
    price_score: int
    delivery_score: int
    vendor_score: int
    overall_score: int
    rank: int
    submitted_at: datetime
    suspect_reasons: tuple[str, ...] = ()

    @property
    def is_suspect(self) -> bool:
        return bool(self.suspect_reasons)


@dataclass(frozen=True)
class ScoringResult:
    rfq_id: UUID
    evaluated_at: datetime
    lowest_price: Decimal
    highest_price: Decimal
    fastest_delivery: int
    highest_rating: Decimal
    scores: tuple[QuotationScore, ...]
    recommended_quotation_id: UUID
    suspect_quotation_ids: tuple[UUID, ...] = ()

    @property
    def recommended(self) -> QuotationScore:
        return self.scores[0]

    def score_for(self, quotation_id: UUID) -> QuotationScore | None:
        for score in self.scores:
            if score.quotation_id == quotation_id:
                return score
        return None


@dataclass(frozen=True)
class BidStatistics:
    count: int
    lowest: Decimal
    highest: Decimal
    average: Decimal


def delivery_days(delivery_date: date, evaluated_at: datetime) -> int:
    """Whole days from ``evaluated_at`` until midnight UTC of ``delivery_date``, rounded up.

    Negative when the delivery date has passed.
    """
    due = datetime.combine(delivery_date, time.min, tzinfo=timezone.utc)
    remaining = (due - evaluated_at) // _ONE_MICROSECOND
    day = _ONE_DAY // _ONE_MICROSECOND
    return -((-remaining) // day)


def _round(value: Decimal, rounding: str) -> int:
    return int(value.quantize(Decimal("1"), rounding=rounding))


def _validate(candidates: Sequence[ScoringCandidate]) -> None:
    if not candidates:
        raise ValidationError("quotations", "at least one quotation is required")
    rfq_ids = {c.rfq_id for c in candidates}
    if len(rfq_ids) > 1:
        raise ValidationError(
            "quotations", "all quotations must belong to the same RFQ",
        )
    for c in candidates:
        if c.price < 0:
            raise ValidationError(
                "price", f"quotation {c.quotation_id} has a negative price",
            )
        if not Decimal("0") <= c.vendor_rating <= MAX_RATING:
            raise ValidationError(
                "vendor_rating",
                f"vendor {c.vendor_id} rating {c.vendor_rating} is outside 0-5",
            )


class QuotationScoringEngine:
    """Stateless quotation ranking engine."""

    @traced_engine(
        "quotation_scoring", "1.0",
        fingerprint_fields=("candidates", "evaluated_at", "rounding"),
    )
    def score(
        self,
        *,
        candidates: Sequence[ScoringCandidate],
        evaluated_at: datetime,
        rounding: str = "half_up",
    ) -> ScoringResult:
        """
        Score and rank the quotations of one RFQ.

        Args:
            candidates: Quotations to compare (all for the same RFQ).
            evaluated_at: Reference time for delivery-day calculation.
            rounding: ``half_up`` or ``half_even`` per-component rounding.

        Returns:
            ScoringResult with ``scores`` in rank order.
        """
        _validate(candidates)
        if rounding not in ROUNDING_MODES:
            raise ValidationError("rounding", f"unknown rounding mode {rounding!r}")
        mode = ROUNDING_MODES[rounding]

        lowest = min(c.price for c in candidates)
        highest = max(c.price for c in candidates)
        days = {c.quotation_id: delivery_days(c.delivery_date, evaluated_at) for c in candidates}
        fastest = min(days.values())
        spread = highest - lowest

        unranked: list[QuotationScore] = []
        for c in candidates:
            if spread > 0:
                raw_price = (highest - c.price) / spread * PRICE_WEIGHT
            else:
                raw_price = PRICE_WEIGHT
            d = days[c.quotation_id]
            if d <= fastest:
                delivery_score = DELIVERY_WEIGHT
            else:
                delivery_score = max(
                    0, DELIVERY_WEIGHT - (d - fastest) * DELIVERY_PENALTY_PER_DAY,
                )
            raw_vendor = c.vendor_rating / MAX_RATING * VENDOR_WEIGHT

            price_score = _round(raw_price, mode)
            vendor_score = _round(raw_vendor, mode)
            suspect = (SUSPECT_PAST_DELIVERY,) if d < 0 else ()

            unranked.append(QuotationScore(
                quotation_id=c.quotation_id,
                vendor_id=c.vendor_id,
                price=c.price,
                delivery_days=d,
                price_score=price_score,
                delivery_score=delivery_score,
                vendor_score=vendor_score,
                overall_score=price_score + delivery_score + vendor_score,
                rank=0,
                submitted_at=c.submitted_at,
                suspect_reasons=suspect,
            ))

        ordered = sorted(
            unranked,
            key=lambda s: (-s.overall_score, s.price, s.submitted_at, str(s.quotation_id)),
        )
        ranked = tuple(
            replace(s, rank=position)
            for position, s in enumerate(ordered, start=1)
        )
        suspects = tuple(s.quotation_id for s in ranked if s.is_suspect)

        if suspects:
            logger.warning("quotation_scoring_suspect_quotations", extra={
                "rfq_id": str(candidates[0].rfq_id),
                "suspect_count": len(suspects),
            })

        return ScoringResult(
            rfq_id=candidates[0].rfq_id,
            evaluated_at=evaluated_at,
            lowest_price=lowest,
            highest_price=highest,
            fastest_delivery=fastest,
            highest_rating=max(c.vendor_rating for c in candidates),
            scores=ranked,
            recommended_quotation_id=ranked[0].quotation_id,
            suspect_quotation_ids=suspects,
        )


def summarize_bids(prices: Sequence[Decimal]) -> BidStatistics:
    """Count, lowest, highest and average (to 2 places, half-up) of bid prices."""
    if not prices:
        raise ValidationError("quotations", "at least one quotation is required")
    average = round_money(sum(prices, Decimal("0")) / len(prices))
    return BidStatistics(
        count=len(prices),
        lowest=min(prices),
        highest=max(prices),
        average=average,
    )
