"""
Billing discount tiers.

A practice earns a discount on its subscription according to the share of
scan sessions its clinicians tagged in the rolling period. The tier table is
static and ordered; it must partition [0, 100] without gaps or overlaps.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

MIN_RATE = 0.0
MAX_RATE = 100.0


@dataclass(frozen=True)
class DiscountTier:
    """
    One row of the tier table.

    ``min_rate`` is inclusive. ``max_rate`` is inclusive for the last tier
    and exclusive otherwise, so a rate of exactly 50 lands in the 50-70 tier
    and 49.99 stays in the first one.
    """

    min_rate: float
    max_rate: float
    discount_percent: int

    def contains(self, rate: float, is_last: bool = False) -> bool:
        if is_last:
            return self.min_rate <= rate <= self.max_rate
        return self.min_rate <= rate < self.max_rate

    def to_dict(self) -> Dict[str, float]:
        return {
            "minRate": self.min_rate,
            "maxRate": self.max_rate,
            "discountPercent": self.discount_percent,
        }


DISCOUNT_TIERS: Sequence[DiscountTier] = (
    DiscountTier(min_rate=0, max_rate=50, discount_percent=0),
    DiscountTier(min_rate=50, max_rate=70, discount_percent=10),
    DiscountTier(min_rate=70, max_rate=85, discount_percent=20),
    DiscountTier(min_rate=85, max_rate=100, discount_percent=30),
)


def validate_tiers(tiers: Sequence[DiscountTier]) -> None:
    """Raise ValueError unless ``tiers`` partition [0, 100] in ascending order."""
    if not tiers:
        raise ValueError("Discount tier table is empty")

    if tiers[0].min_rate != MIN_RATE:
        raise ValueError(f"First tier must start at {MIN_RATE}")
    if tiers[-1].max_rate != MAX_RATE:
        raise ValueError(f"Last tier must end at {MAX_RATE}")

    previous = None
    for tier in tiers:
        if tier.min_rate >= tier.max_rate:
            raise ValueError(
                f"Tier [{tier.min_rate}, {tier.max_rate}] has an empty range"
            )
        if previous is not None:
            if tier.min_rate != previous.max_rate:
                raise ValueError(
                    f"Tiers [{previous.min_rate}, {previous.max_rate}] and "
                    f"[{tier.min_rate}, {tier.max_rate}] overlap or leave a gap"
                )
            if tier.discount_percent < previous.discount_percent:
                raise ValueError("Discounts must not decrease as the rate rises")
        previous = tier


def discount_for_rate(
    tagging_rate: float, tiers: Sequence[DiscountTier] = DISCOUNT_TIERS
) -> int:
    """
    Return the discount percentage of the tier containing ``tagging_rate``.

    Raises:
        ValueError: if the rate is not a number in [0, 100].
    """
    rate = float(tagging_rate)
    if rate != rate or rate < MIN_RATE or rate > MAX_RATE:
        raise ValueError(
            f"Tagging rate must be between {MIN_RATE:g} and {MAX_RATE:g}, got {tagging_rate}"
        )

    last_index = len(tiers) - 1
    for index, tier in enumerate(tiers):
        if tier.contains(rate, is_last=index == last_index):
            return tier.discount_percent

    # validate_tiers() guarantees full coverage
    raise ValueError(f"No discount tier covers tagging rate {tagging_rate}")


def tiers_as_dicts(tiers: Sequence[DiscountTier] = DISCOUNT_TIERS) -> List[Dict[str, float]]:
    return [tier.to_dict() for tier in tiers]


validate_tiers(DISCOUNT_TIERS)
