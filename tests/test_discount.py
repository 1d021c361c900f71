"""
Discount Tier Tests

Boundaries of the tagging-rate to discount table.
"""

import pytest

from orthomonitor.core.discount import (
    DISCOUNT_TIERS,
    DiscountTier,
    discount_for_rate,
    tiers_as_dicts,
    validate_tiers,
)


@pytest.mark.unit
class TestDiscountForRate:

    @pytest.mark.parametrize(
        "rate,expected",
        [
            (0, 0),
            (49.99, 0),
            (50, 10),
            (69.99, 10),
            (70, 20),
            (84.5, 20),
            (85, 30),
            (100, 30),
        ],
    )
    def test_tier_boundaries(self, rate, expected):
        """Lower bounds are inclusive, upper bounds exclusive except the last tier."""
        assert discount_for_rate(rate) == expected

    @pytest.mark.parametrize("rate", [-0.01, 100.01, float("nan")])
    def test_out_of_range_rate_rejected(self, rate):
        with pytest.raises(ValueError):
            discount_for_rate(rate)

    def test_discount_never_decreases_with_rate(self):
        discounts = [discount_for_rate(rate / 2) for rate in range(0, 201)]
        assert discounts == sorted(discounts)


@pytest.mark.unit
class TestTierTable:

    def test_default_table_is_valid(self):
        validate_tiers(DISCOUNT_TIERS)

    def test_gap_is_rejected(self):
        tiers = (
            DiscountTier(0, 40, 0),
            DiscountTier(50, 100, 10),
        )
        with pytest.raises(ValueError, match="overlap or leave a gap"):
            validate_tiers(tiers)

    def test_table_must_cover_full_range(self):
        with pytest.raises(ValueError):
            validate_tiers((DiscountTier(0, 90, 0),))
        with pytest.raises(ValueError):
            validate_tiers((DiscountTier(5, 100, 0),))

    def test_empty_table_is_rejected(self):
        with pytest.raises(ValueError):
            validate_tiers(())

    def test_tiers_as_dicts_uses_wire_keys(self):
        tiers = tiers_as_dicts()
        assert len(tiers) == 4
        assert tiers[1] == {"minRate": 50, "maxRate": 70, "discountPercent": 10}
