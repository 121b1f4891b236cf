"""
liquidation.py - Forced closing of under-collateralized positions

Settlement of a liquidation:

    debt     = value of the position's debt shares (removed from the books)
    proceeds = increase of the bank's held balance across module.liquidate()
    prize    = proceeds * liquidate_bps // 10000        -> liquidator
    rest     = proceeds - prize
    rest > debt:  rest - debt                           -> position owner
    rest < debt:  pool.total_value -= debt - rest       (pool absorbs the loss)

Removing the debt already credited `debt` to the pool's total_value, so when
rest covers the debt no further pool adjustment is needed.
"""

from __future__ import annotations
from datetime import datetime
from typing import Callable

from .core import (
    CallContext, LiquidationResult, PositionLiquidated, BankEvent,
    BPS_DENOMINATOR,
    UndercollateralizedError,
    external_call, query_health,
)
from .pool import PoolLedger
from .registry import ProductionRegistry, PositionLedger
from . import safemath


class LiquidationEngine:
    """Liquidates positions whose health fell below the liquidate factor."""

    def __init__(
        self,
        pools: PoolLedger,
        productions: ProductionRegistry,
        positions: PositionLedger,
        emit: Callable[[BankEvent], None],
    ):
        self.pools = pools
        self.productions = productions
        self.positions = positions
        self.emit = emit

    def is_liquidatable(self, health: int, debt: int, liquidate_factor: int) -> bool:
        """health * liquidate_factor < debt * 10000"""
        return safemath.mul(health, liquidate_factor) < safemath.mul(debt, BPS_DENOMINATOR)

    def liquidate(self, ctx: CallContext, position_id: int, now: datetime) -> LiquidationResult:
        """
        Liquidate a position and distribute the proceeds.

        Raises:
            UndercollateralizedError: Position has no debt or is still healthy
            ConfigurationError: Unknown position or no module bound
            MathError: Arithmetic failure (including an unabsorbable loss)
            ExternalCallFailure: Module or transfer failure
        """
        position = self.positions.get(position_id)
        if position.debt_share == 0:
            raise UndercollateralizedError(f"Position {position_id} has no debt to liquidate")
        production = self.productions.get(position.production_id)
        module = self.productions.module_for(production)
        asset = production.borrow_asset_id
        owner = position.owner

        self.pools.accrue_interest(asset, now)
        debt = self.positions.remove_debt(position_id)

        health = query_health(module, position_id, asset)
        if not self.is_liquidatable(health, debt, production.liquidate_factor):
            raise UndercollateralizedError(
                f"Position {position_id} is healthy: health {health} x "
                f"{production.liquidate_factor} >= debt {debt} x {BPS_DENOMINATOR}"
            )

        before = self.pools.held_balance(asset)
        external_call(f"{module.address}.liquidate({position_id})",
                      module.liquidate, position_id, owner, asset)
        proceeds = safemath.sub(self.pools.held_balance(asset), before)

        prize = safemath.mul_div(proceeds, self.pools.config.get_liquidate_bps(), BPS_DENOMINATOR)
        rest = proceeds - prize
        gateway = self.pools.gateway
        if prize:
            external_call(f"prize {prize} {asset} to {ctx.sender}",
                          gateway.push, asset, ctx.sender, prize)

        owner_payout = 0
        if rest > debt:
            owner_payout = rest - debt
            external_call(f"payout {owner_payout} {asset} to {owner}",
                          gateway.push, asset, owner, owner_payout)
        elif rest < debt:
            self.pools.absorb_shortfall(asset, debt - rest)

        self.emit(PositionLiquidated(position_id, ctx.sender, prize, owner_payout))
        return LiquidationResult(prize, owner_payout)
