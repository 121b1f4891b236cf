"""
interest.py - Interest rate model and bank configuration

TripleSlopeModel maps pool utilization to a per-second borrow rate. BankConfig
is the ConfigOracle the pool ledger and the liquidation engine read from.

Key Formulas:
    utilization = debt * 10000 // (debt + idle)          (bps, 0 if both zero)
    rate_per_second = annual_rate // SECONDS_PER_YEAR    (annual_rate scaled 1e18)
"""

from __future__ import annotations
from dataclasses import dataclass, field

from .core import BPS_DENOMINATOR, RATE_SCALE, SECONDS_PER_YEAR, InterestRateModel
from . import safemath


# Annual rates, scaled by RATE_SCALE
APY_10 = RATE_SCALE * 10 // 100
APY_25 = RATE_SCALE * 25 // 100
APY_100 = RATE_SCALE

KINK_LOW = 5_000
KINK_HIGH = 9_500
# Offset of the top segment. It is 7500 rather than KINK_HIGH, which makes the
# curve jump at 95% utilization; kept as deployed.
TOP_SEGMENT_OFFSET = 7_500


def utilization_bps(debt: int, idle: int) -> int:
    """Share of debt in debt + idle, in basis points. 0 for an empty pool."""
    total = safemath.add(debt, idle)
    if total == 0:
        return 0
    return safemath.mul_div(debt, BPS_DENOMINATOR, total)


def annual_rate(utilization: int) -> int:
    """
    Annualized borrow rate (scaled by RATE_SCALE) for a utilization in bps.

    - below 50%: flat 10%
    - 50% to 95%: 10% rising to 25%
    - 95% to 100%: 25% + (u - 7500) * 75% / 2500
    - 100% and above: flat 100%
    """
    if utilization < KINK_LOW:
        return APY_10
    if utilization < KINK_HIGH:
        ramp = safemath.mul_div(utilization - KINK_LOW, APY_25 - APY_10, KINK_HIGH - KINK_LOW)
        return APY_10 + ramp
    if utilization < BPS_DENOMINATOR:
        ramp = safemath.mul_div(
            utilization - TOP_SEGMENT_OFFSET,
            APY_100 - APY_25,
            BPS_DENOMINATOR - TOP_SEGMENT_OFFSET,
        )
        return APY_25 + ramp
    return APY_100


class TripleSlopeModel:
    """Three-segment utilization curve, rates returned per second."""

    def get_rate(self, debt: int, idle: int) -> int:
        return annual_rate(utilization_bps(debt, idle)) // SECONDS_PER_YEAR

    def __repr__(self) -> str:
        return "TripleSlopeModel()"


@dataclass(frozen=True, slots=True)
class BankConfig:
    """
    Risk configuration of the bank.

    Attributes:
        interest_model: Rate model used for every pool.
        reserve_bps: Share of accrued interest retained as reserve.
        liquidate_bps: Share of liquidation proceeds paid to the liquidator.
    """
    interest_model: InterestRateModel = field(default_factory=TripleSlopeModel)
    reserve_bps: int = 1_000
    liquidate_bps: int = 500

    def __post_init__(self):
        for name in ('reserve_bps', 'liquidate_bps'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an int, got {value!r}")
            if value < 0 or value > BPS_DENOMINATOR:
                raise ValueError(f"{name} must be in [0, {BPS_DENOMINATOR}], got {value}")

    def get_interest_rate(self, debt: int, idle: int) -> int:
        return self.interest_model.get_rate(debt, idle)

    def get_reserve_bps(self) -> int:
        return self.reserve_bps

    def get_liquidate_bps(self) -> int:
        return self.liquidate_bps
