"""
leverage.py - Opening and adjusting leveraged positions

The LeverageEngine runs one `work` call end to end:

    1. resolve the position (new or owned by the caller)
    2. check the production allows the call
    3. accrue interest on the borrow pool
    4. take the position's existing debt off the books (close-then-reopen)
    5. snapshot the bank's held balance, check liquidity
    6. hand the funds to the strategy module and call work()   <- untrusted
    7. measure what came back from the held balance
    8. refund any surplus, or re-issue the remaining debt after the
       dust and collateralization checks
    9. record PositionWorked

All bookkeeping that limits borrowing (steps 3-4) happens before the module
runs. Everything after it is derived from measured balances; nothing the
module returns is trusted.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Tuple

from .core import (
    CallContext, Position, Production, WorkResult, PositionWorked, BankEvent,
    NATIVE_ASSET, BPS_DENOMINATOR,
    ConfigurationError, InsufficientLiquidityError, UndercollateralizedError,
    external_call, query_health,
)
from .pool import PoolLedger
from .registry import ProductionRegistry, PositionLedger
from . import safemath


class LeverageEngine:
    """Orchestrates position open/adjust against the bound strategy module."""

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

    def _resolve(self, ctx: CallContext, position_id: int, production_id: int) -> Tuple[Position, Production]:
        if position_id == 0:
            production = self.productions.get(production_id)
            position = self.positions.open(ctx.sender, production_id)
        else:
            # The production argument is ignored for existing positions
            position = self.positions.require_owner(position_id, ctx.sender)
            production = self.productions.get(position.production_id)
        return position, production

    def work(
        self,
        ctx: CallContext,
        position_id: int,
        production_id: int,
        borrow: int,
        payload: Any,
        now: datetime,
    ) -> WorkResult:
        """
        Open (position_id == 0) or adjust a position.

        ctx.value must already be held by the bank when this runs.

        Returns:
            WorkResult(position_id, final debt, refund paid to the owner)

        Raises:
            ConfigurationError: Production closed, borrowing disabled, no
                module bound, or remaining debt below min_debt
            AccessError: Caller does not own the position
            InsufficientLiquidityError: Pool cannot fund the borrow
            UndercollateralizedError: Health below the open factor
            MathError: Arithmetic failure
            ExternalCallFailure: Module or transfer failure
        """
        safemath.require_uint(borrow, "borrow")
        position, production = self._resolve(ctx, position_id, production_id)
        if not production.is_open:
            raise ConfigurationError(f"Production {production.production_id} is not open")
        if borrow > 0 and not production.can_borrow:
            raise ConfigurationError(f"Production {production.production_id} does not allow borrowing")
        module = self.productions.module_for(production)
        asset = production.borrow_asset_id
        owner = position.owner
        pid = position.position_id

        self.pools.accrue_interest(asset, now)
        debt = safemath.add(self.positions.remove_debt(pid), borrow)

        held = self.pools.held_balance(asset)
        if asset == NATIVE_ASSET:
            sent = safemath.add(ctx.value, borrow)
            if sent > held:
                raise InsufficientLiquidityError(f"Bank holds {held} {asset}, needs {sent}")
            before = held - sent
        else:
            sent = ctx.value
            if borrow > held:
                raise InsufficientLiquidityError(f"Bank holds {held} {asset}, needs {borrow}")
            before = held - borrow
        total_value = self.pools.get(asset).total_value
        if debt > total_value:
            raise InsufficientLiquidityError(
                f"Debt {debt} exceeds pool value {total_value} of {asset}"
            )

        gateway = self.pools.gateway
        if asset == NATIVE_ASSET:
            if sent:
                external_call(f"push {sent} {asset} to {module.address}",
                              gateway.push, asset, module.address, sent)
        else:
            if borrow:
                external_call(f"push {borrow} {asset} to {module.address}",
                              gateway.push, asset, module.address, borrow)
            if sent:
                external_call(f"push {sent} {NATIVE_ASSET} to {module.address}",
                              gateway.push, NATIVE_ASSET, module.address, sent)

        external_call(f"{module.address}.work({pid})",
                      module.work, pid, owner, asset, borrow, debt, payload, value=sent)

        back = safemath.sub(self.pools.held_balance(asset), before)

        if back > debt:
            refund = back - debt
            debt = 0
            external_call(f"refund {refund} {asset} to {owner}",
                          gateway.push, asset, owner, refund)
        else:
            refund = 0
            debt -= back
            if debt > 0:
                self._check_new_debt(production, module, pid, asset, debt)
                self.positions.add_debt(pid, debt)

        self.emit(PositionWorked(pid, debt, refund))
        return WorkResult(pid, debt, refund)

    def _check_new_debt(self, production: Production, module: Any, pid: int, asset: str, debt: int) -> None:
        if debt < production.min_debt:
            raise ConfigurationError(
                f"Debt {debt} is below the minimum {production.min_debt}"
            )
        health = query_health(module, pid, asset)
        if safemath.mul(health, production.open_factor) < safemath.mul(debt, BPS_DENOMINATOR):
            raise UndercollateralizedError(
                f"Position {pid}: health {health} x {production.open_factor} "
                f"< debt {debt} x {BPS_DENOMINATOR}"
            )
