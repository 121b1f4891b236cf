"""
registry.py - Productions and positions

ProductionRegistry stores the borrowable pairings (asset pair, risk thresholds,
bound strategy module). PositionLedger stores each borrower's position and
moves its debt in and out of the borrow pool through the debt-share law.

Both are arena-style maps keyed by auto-incrementing integer ids. Ids start at
1 and are never reused; 0 means "allocate a new one".
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, Dict, Optional
import copy

from .core import (
    Production, Position, StrategyModule,
    ConfigurationError, AccessError,
)
from .pool import PoolLedger
from . import safemath


class ProductionRegistry:
    """
    Configuration of borrowable pairs and their strategy modules.

    open_factor >= liquidate_factor is not validated here; whoever configures a
    production is responsible for it (Bank.verify_invariants reports it).
    """

    def __init__(self):
        self.productions: Dict[int, Production] = {}
        self.modules: Dict[str, StrategyModule] = {}
        self.next_production_id: int = 1

    def get(self, production_id: int) -> Production:
        production = self.productions.get(production_id)
        if production is None:
            raise ConfigurationError(f"Production {production_id} does not exist")
        return production

    def module_for(self, production: Production) -> StrategyModule:
        """
        Strategy module bound to a production.

        Raises:
            ConfigurationError: If no module is bound
        """
        module_id = production.strategy_module_id
        if module_id is None or module_id not in self.modules:
            raise ConfigurationError(
                f"Production {production.production_id} has no strategy module"
            )
        return self.modules[module_id]

    def create_or_update(
        self,
        production_id: int,
        is_open: bool,
        can_borrow: bool,
        coin_asset_id: str,
        currency_asset_id: str,
        borrow_asset_id: str,
        strategy_module: Optional[StrategyModule],
        min_debt: int,
        open_factor: int,
        liquidate_factor: int,
        rebind_allowed: bool = True,
    ) -> Production:
        """
        Create a production (production_id == 0) or update an existing one.

        Args:
            production_id: 0 to allocate a new id, otherwise an existing id
            is_open: Whether positions can be opened/adjusted
            can_borrow: Whether positions may draw new debt
            coin_asset_id, currency_asset_id: The traded pair
            borrow_asset_id: Asset borrowed from the pool
            strategy_module: Module executing work/health/liquidate
            min_debt: Smallest non-zero debt a position may carry
            open_factor: Collateralization required at open time (bps)
            liquidate_factor: Collateralization floor (bps)
            rebind_allowed: False once positions reference the production;
                bound assets and module then cannot change

        Returns:
            The stored Production

        Raises:
            ConfigurationError: Unknown id, or rebinding a production in use
        """
        for name, value in (('min_debt', min_debt), ('open_factor', open_factor),
                            ('liquidate_factor', liquidate_factor)):
            safemath.require_uint(value, name)
        module_id = strategy_module.address if strategy_module is not None else None

        if production_id == 0:
            production_id = self.next_production_id
            self.next_production_id += 1
        else:
            existing = self.get(production_id)
            if not rebind_allowed:
                bound = (existing.coin_asset_id, existing.currency_asset_id,
                         existing.borrow_asset_id, existing.strategy_module_id)
                if bound != (coin_asset_id, currency_asset_id, borrow_asset_id, module_id):
                    raise ConfigurationError(
                        f"Production {production_id} has positions; "
                        f"its assets and strategy module cannot change"
                    )

        if strategy_module is not None:
            self.modules[module_id] = strategy_module
        production = Production(
            production_id=production_id,
            coin_asset_id=coin_asset_id,
            currency_asset_id=currency_asset_id,
            borrow_asset_id=borrow_asset_id,
            strategy_module_id=module_id,
            is_open=is_open,
            can_borrow=can_borrow,
            min_debt=min_debt,
            open_factor=open_factor,
            liquidate_factor=liquidate_factor,
        )
        self.productions[production_id] = production
        return production

    def snapshot(self) -> Any:
        return copy.deepcopy(self.productions), dict(self.modules), self.next_production_id

    def restore(self, snapshot: Any) -> None:
        productions, modules, next_id = snapshot
        self.productions = copy.deepcopy(productions)
        self.modules = dict(modules)
        self.next_production_id = next_id


class PositionLedger:
    """
    Per-position debt-share accounting.

    A position's debt is never stored as a value: it holds debt shares of its
    production's borrow pool, and PoolLedger converts between the two.
    """

    def __init__(self, pools: PoolLedger, productions: ProductionRegistry):
        self.pools = pools
        self.productions = productions
        self.positions: Dict[int, Position] = {}
        self.next_position_id: int = 1

    def open(self, owner: str, production_id: int) -> Position:
        """Allocate a new position for owner against production_id."""
        position = Position(
            position_id=self.next_position_id,
            owner=owner,
            production_id=production_id,
        )
        self.positions[position.position_id] = position
        self.next_position_id += 1
        return position

    def get(self, position_id: int) -> Position:
        position = self.positions.get(position_id)
        if position is None:
            raise ConfigurationError(f"Position {position_id} does not exist")
        return position

    def require_owner(self, position_id: int, caller: str) -> Position:
        """
        Raises:
            AccessError: If caller does not own the position
        """
        position = self.get(position_id)
        if position.owner != caller:
            raise AccessError(f"{caller} does not own position {position_id}")
        return position

    def has_positions(self, production_id: int) -> bool:
        return any(p.production_id == production_id for p in self.positions.values())

    def borrow_asset(self, position: Position) -> str:
        return self.productions.get(position.production_id).borrow_asset_id

    def debt_value(self, position_id: int) -> int:
        """Current value of a position's debt shares (no accrual)."""
        position = self.get(position_id)
        return self.pools.value_of_shares(self.borrow_asset(position), position.debt_share)

    def remove_debt(self, position_id: int) -> int:
        """
        Take the position's whole debt off the books and return its value.

        The position ends with zero shares and the pool's total_value is
        credited with the value, as though it had been repaid.
        """
        position = self.get(position_id)
        shares = position.debt_share
        if shares == 0:
            return 0
        value = self.pools.retire_debt(self.borrow_asset(position), shares)
        position.debt_share = 0
        return value

    def add_debt(self, position_id: int, value: int) -> int:
        """Record `value` of new debt on the position; returns shares issued."""
        position = self.get(position_id)
        shares = self.pools.issue_debt(self.borrow_asset(position), value)
        position.debt_share = safemath.add(position.debt_share, shares)
        return shares

    def snapshot(self) -> Any:
        return {pid: replace(p) for pid, p in self.positions.items()}, self.next_position_id

    def restore(self, snapshot: Any) -> None:
        positions, next_id = snapshot
        self.positions = {pid: replace(p) for pid, p in positions.items()}
        self.next_position_id = next_id
