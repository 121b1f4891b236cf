"""
test_interest.py - Unit tests for the triple-slope rate model and BankConfig

Tests:
- Utilization in basis points
- Each segment of the annual rate curve and its boundaries
- The jump at 95% utilization (characterization of the deployed curve)
- Per-second conversion
- BankConfig validation and oracle methods
"""

import pytest

from tokenbank import (
    TripleSlopeModel, BankConfig, ConfigOracle, InterestRateModel,
    utilization_bps, annual_rate,
    APY_10, APY_25, APY_100, SECONDS_PER_YEAR,
)


class TestUtilization:

    def test_empty_pool_is_zero(self):
        assert utilization_bps(0, 0) == 0

    def test_half_utilized(self):
        assert utilization_bps(500, 500) == 5000

    def test_fully_utilized(self):
        assert utilization_bps(1000, 0) == 10000

    def test_floors(self):
        assert utilization_bps(1, 2) == 3333


class TestAnnualRate:
    """Segments of the curve."""

    def test_flat_below_half(self):
        assert annual_rate(0) == APY_10
        assert annual_rate(4999) == APY_10

    def test_boundary_5000_belongs_to_ramp_without_jump(self):
        """At exactly 50% the ramp starts from 10%: no discontinuity."""
        assert annual_rate(5000) == APY_10
        assert annual_rate(5001) > APY_10

    def test_middle_ramp(self):
        # 10% + 2250/4500 * 15% = 17.5%
        assert annual_rate(7250) == APY_10 + (APY_25 - APY_10) // 2

    def test_ramp_approaches_25_percent(self):
        assert annual_rate(9499) < APY_25
        assert annual_rate(9499) == APY_10 + 4499 * (APY_25 - APY_10) // 4500

    def test_flat_at_full_utilization(self):
        assert annual_rate(10000) == APY_100
        assert annual_rate(12000) == APY_100


class TestTopSegmentCharacterization:
    """
    The 95%-100% segment is offset from 7500 rather than 9500. The curve
    therefore jumps from ~25% to 85% at 95% utilization. These tests pin the
    deployed behaviour; they do not assert that it is desirable.
    """

    def test_jump_at_95_percent(self):
        assert annual_rate(9500) == 850_000_000_000_000_000

    def test_just_below_full(self):
        assert annual_rate(9999) == 999_700_000_000_000_000

    def test_top_segment_is_monotonic(self):
        rates = [annual_rate(u) for u in range(9500, 10001)]
        assert rates == sorted(rates)


class TestTripleSlopeModel:

    def test_per_second_rate(self):
        model = TripleSlopeModel()
        assert model.get_rate(0, 1000) == APY_10 // SECONDS_PER_YEAR

    def test_full_utilization_rate(self):
        assert TripleSlopeModel().get_rate(1000, 0) == APY_100 // SECONDS_PER_YEAR

    def test_implements_protocol(self):
        assert isinstance(TripleSlopeModel(), InterestRateModel)


class TestBankConfig:

    def test_defaults(self):
        config = BankConfig()
        assert config.get_reserve_bps() == 1000
        assert config.get_liquidate_bps() == 500
        assert isinstance(config, ConfigOracle)

    def test_delegates_to_model(self):
        config = BankConfig()
        assert config.get_interest_rate(500, 500) == TripleSlopeModel().get_rate(500, 500)

    @pytest.mark.parametrize("field,value", [
        ("reserve_bps", -1),
        ("reserve_bps", 10_001),
        ("liquidate_bps", True),
        ("liquidate_bps", 0.5),
    ])
    def test_rejects_invalid_bps(self, field, value):
        with pytest.raises(ValueError):
            BankConfig(**{field: value})

    def test_frozen(self):
        config = BankConfig()
        with pytest.raises(Exception):
            config.reserve_bps = 0
