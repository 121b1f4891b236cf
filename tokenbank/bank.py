"""
bank.py - Stateful lending pool facade

The Bank class is the public surface of the token bank. It composes the
independent components (pool ledger, production registry, position ledger,
leverage and liquidation engines, reentrancy guard, access control) and is
the only entry point that mutates them.

Key responsibilities:
    - Runs every public operation as one atomic transaction: all components
      and every revertible collaborator are snapshotted first and restored if
      anything fails
    - Serializes the guarded operations through a single reentrancy guard
    - Pulls native value attached to payable calls from the caller
    - Tracks logical time (interest accrues against it)
    - Keeps the event log as audit trail
"""

from __future__ import annotations
from contextlib import contextmanager, nullcontext
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from .core import (
    # Types
    CallContext, Pool, Production, Position,
    WorkResult, LiquidationResult, PositionInfo,
    AssetTransferGateway, ShareToken, ShareTokenFactory, ConfigOracle, StrategyModule, Revertible,
    BankEvent, AdminTransferred,
    # Constants
    NATIVE_ASSET,
    # Exceptions
    ConfigurationError,
    # Helpers
    external_call, query_health,
)
from .interest import BankConfig
from .pool import PoolLedger
from .registry import ProductionRegistry, PositionLedger
from .leverage import LeverageEngine
from .liquidation import LiquidationEngine
from .guard import ReentrancyGuard, AccessControl


class Bank:
    """
    Shared-liquidity lending pool funding leveraged positions.

    Thread Safety:
        Not thread-safe. Operations run one at a time; each thread
        should maintain its own Bank.

    Example:
        book = AssetBook("main", verbose=False)
        for wallet in ("admin", "alice"):
            book.register_wallet(wallet)
        bank = Bank("main", book.gateway("bank"), book.share_token_factory(),
                    admin="admin", initial_time=datetime(2025, 1, 1))
        bank.create_token(CallContext("admin"), "USDC", "ibUSDC")

        book.issue("USDC", "alice", 1_000)
        shares = bank.deposit(CallContext("alice"), "USDC", 1_000)
    """

    def __init__(
        self,
        name: str,
        gateway: AssetTransferGateway,
        share_token_factory: ShareTokenFactory,
        admin: str,
        config: Optional[ConfigOracle] = None,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        address: str = "bank",
    ):
        """
        Create a bank.

        Args:
            name: Bank identifier
            gateway: Asset transfer gateway bound to `address`
            share_token_factory: Creates the share token of each new pool
            admin: Initial administrator
            config: Risk configuration (default: BankConfig())
            initial_time: Starting logical time (default: 1970-01-01)
            verbose: Print applied/rejected operations (default: True)
            address: Holder id of the bank on the gateway
        """
        self.name = name
        self.address = address
        self.gateway = gateway
        self.share_token_factory = share_token_factory
        self.verbose = verbose
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.events: List[BankEvent] = []
        self._next_sequence: int = 0

        self.guard = ReentrancyGuard()
        self.access = AccessControl(admin)
        self.pools = PoolLedger(gateway, address, config or BankConfig(), self._emit)
        self.productions = ProductionRegistry()
        self.positions = PositionLedger(self.pools, self.productions)
        self.leverage = LeverageEngine(self.pools, self.productions, self.positions, self._emit)
        self.liquidation = LiquidationEngine(self.pools, self.productions, self.positions, self._emit)

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the bank."""
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    @property
    def admin(self) -> str:
        return self.access.admin

    # ========================================================================
    # TRANSACTION MACHINERY
    # ========================================================================

    def _emit(self, event: BankEvent) -> None:
        self.events.append(replace(event, sequence=self._next_sequence, timestamp=self._current_time))
        self._next_sequence += 1

    def _participants(self) -> List[Any]:
        """Everything whose state a failed operation must roll back."""
        participants: List[Any] = [self.pools, self.productions, self.positions, self.access]
        seen = {id(p) for p in participants}
        candidates = [self.gateway] + list(self.productions.modules.values())
        for candidate in candidates:
            if id(candidate) not in seen and isinstance(candidate, Revertible):
                participants.append(candidate)
                seen.add(id(candidate))
        return participants

    @contextmanager
    def _transaction(self, operation: str, ctx: CallContext, guarded: bool = False,
                     payable: bool = False) -> Iterator[None]:
        """
        Run the body atomically.

        Guarded operations hold the reentrancy guard, so a nested guarded call
        fails before taking any snapshot, and the outer operation fails with it
        even when the nested caller swallowed the error. Attached native value
        is pulled from the caller inside the transaction.
        """
        with self.guard.enter(operation) if guarded else nullcontext():
            participants = self._participants()
            snapshots = [(p, p.snapshot()) for p in participants]
            event_mark = (len(self.events), self._next_sequence)
            try:
                if ctx.value:
                    if not payable:
                        raise ConfigurationError(f"{operation} does not accept native value")
                    external_call(
                        f"pull {ctx.value} {NATIVE_ASSET} from {ctx.sender}",
                        self.gateway.pull, NATIVE_ASSET, ctx.sender, ctx.value,
                    )
                yield
                if guarded:
                    self.guard.check()
            except Exception as exc:
                for participant, snap in reversed(snapshots):
                    participant.restore(snap)
                del self.events[event_mark[0]:]
                self._next_sequence = event_mark[1]
                if self.verbose:
                    print(f"✗ REJECTED: {operation} {ctx!r}: {type(exc).__name__}: {exc}")
                raise
            else:
                if self.verbose:
                    print(f"✓ APPLIED: {operation} {ctx!r}")
                    for event in self.events[event_mark[0]:]:
                        print(f"    {event}")

    # ========================================================================
    # DEPOSITOR OPERATIONS
    # ========================================================================

    def deposit(self, ctx: CallContext, asset_id: str, amount: int) -> int:
        """
        Deposit into a pool and receive shares.

        For NATIVE_ASSET the amount is the value attached to the call and the
        `amount` argument is ignored.

        Returns:
            Shares minted to the caller

        Raises:
            ConfigurationError: Pool closed, deposits disabled, or native value
                attached to a token deposit
            ExternalCallFailure: The transfer failed
        """
        native = asset_id == NATIVE_ASSET
        with self._transaction("deposit", ctx, guarded=True, payable=native):
            if native:
                amount = ctx.value
            return self.pools.deposit(asset_id, amount, ctx.sender, self._current_time)

    def withdraw(self, ctx: CallContext, asset_id: str, share_amount: int) -> int:
        """
        Burn shares and receive their value.

        Returns:
            Amount paid out

        Raises:
            ConfigurationError: Pool closed or withdrawals disabled
            InsufficientLiquidityError: Not enough idle liquidity
        """
        with self._transaction("withdraw", ctx, guarded=True):
            return self.pools.withdraw(asset_id, share_amount, ctx.sender, self._current_time)

    # ========================================================================
    # BORROWER OPERATIONS
    # ========================================================================

    def work(
        self,
        ctx: CallContext,
        position_id: int,
        production_id: int,
        borrow: int,
        payload: Any = None,
    ) -> WorkResult:
        """
        Open (position_id == 0) or adjust a leveraged position.

        Args:
            ctx: Caller; must be an externally owned account
            position_id: 0 for a new position, otherwise one the caller owns
            production_id: Production of a new position (ignored otherwise)
            borrow: Additional amount to borrow from the pool
            payload: Opaque data forwarded to the strategy module

        Returns:
            WorkResult(position_id, debt, refund)
        """
        with self._transaction("work", ctx, guarded=True, payable=True):
            self.access.require_eoa(ctx)
            return self.leverage.work(ctx, position_id, production_id, borrow, payload, self._current_time)

    open_or_adjust_position = work

    def liquidate(self, ctx: CallContext, position_id: int) -> LiquidationResult:
        """
        Liquidate an under-collateralized position for a prize.

        Returns:
            LiquidationResult(prize, owner_payout)
        """
        with self._transaction("liquidate", ctx, guarded=True, payable=True):
            self.access.require_eoa(ctx)
            return self.liquidation.liquidate(ctx, position_id, self._current_time)

    def receive_native(self, ctx: CallContext) -> None:
        """Accept native currency sent to the bank outside of any operation."""
        with self._transaction("receive", ctx, payable=True):
            pass

    # ========================================================================
    # READS
    # ========================================================================

    def position_info(self, position_id: int) -> PositionInfo:
        """
        Production, module-reported health, debt value and owner of a position.

        The debt value reflects the last accrual; see pending_interest().
        """
        position = self.positions.get(position_id)
        production = self.productions.get(position.production_id)
        module = self.productions.module_for(production)
        health = query_health(module, position_id, production.borrow_asset_id)
        return PositionInfo(
            production_id=position.production_id,
            health=health,
            debt=self.positions.debt_value(position_id),
            owner=position.owner,
        )

    def total_token(self, asset_id: str) -> int:
        return self.pools.total_token(asset_id)

    def debt_share_to_value(self, asset_id: str, shares: int) -> int:
        return self.pools.value_of_shares(asset_id, shares)

    def debt_value_to_share(self, asset_id: str, value: int) -> int:
        return self.pools.shares_of_value(asset_id, value)

    def pending_interest(self, asset_id: str) -> int:
        """Interest the pool would accrue if an operation ran now."""
        return self.pools.pending_interest(asset_id, self._current_time)

    def get_pool(self, asset_id: str) -> Pool:
        """Copy of the pool record."""
        return replace(self.pools.get(asset_id))

    def get_production(self, production_id: int) -> Production:
        return replace(self.productions.get(production_id))

    def get_position(self, position_id: int) -> Position:
        return replace(self.positions.get(position_id))

    def share_token(self, asset_id: str) -> ShareToken:
        self.pools.get(asset_id)
        return self.pools.share_tokens[asset_id]

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the bookkeeping laws across all pools and positions.

        Returns:
            Dict with keys:
            - 'valid': bool - True if no violation was found
            - 'violations': List[str] - broken invariants
            - 'warnings': List[str] - risky configuration (not enforced)

        Example:
            result = bank.verify_invariants()
            assert result['valid'], result['violations']
        """
        violations: List[str] = []
        warnings: List[str] = []
        for asset_id, pool in sorted(self.pools.pools.items()):
            if (pool.total_debt_share == 0) != (pool.total_debt == 0):
                violations.append(
                    f"{asset_id}: debt shares {pool.total_debt_share} vs debt {pool.total_debt}"
                )
            position_shares = sum(
                p.debt_share for p in self.positions.positions.values()
                if self.productions.get(p.production_id).borrow_asset_id == asset_id
            )
            if position_shares != pool.total_debt_share:
                violations.append(
                    f"{asset_id}: positions hold {position_shares} shares, pool tracks {pool.total_debt_share}"
                )
            if pool.is_open:
                held = self.pools.held_balance(asset_id)
                if held < pool.total_value:
                    violations.append(f"{asset_id}: holds {held} < tracked value {pool.total_value}")
        for pid, production in sorted(self.productions.productions.items()):
            if production.open_factor < production.liquidate_factor:
                warnings.append(
                    f"production {pid}: open_factor {production.open_factor} "
                    f"< liquidate_factor {production.liquidate_factor}"
                )
        return {'valid': not violations, 'violations': violations, 'warnings': warnings}

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def create_token(self, ctx: CallContext, asset_id: str, symbol: str) -> Pool:
        """Open a pool for asset_id with a new share token named symbol."""
        with self._transaction("create_token", ctx):
            self.access.require_admin(ctx)
            share_token = external_call(f"create share token {symbol}",
                                        self.share_token_factory, asset_id, symbol)
            pool = self.pools.create_pool(asset_id, share_token, self._current_time)
            if self.verbose:
                print(f"📝 Registered pool: {asset_id} [{symbol}]")
            return replace(pool)

    def update_token(self, ctx: CallContext, asset_id: str, can_deposit: bool, can_withdraw: bool) -> Pool:
        with self._transaction("update_token", ctx):
            self.access.require_admin(ctx)
            return replace(self.pools.update_flags(asset_id, can_deposit, can_withdraw))

    def create_or_update_production(
        self,
        ctx: CallContext,
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
    ) -> Production:
        """
        Create (production_id == 0) or update a production.

        Once any position references a production, its assets and strategy
        module can no longer change; flags and thresholds still can.
        """
        with self._transaction("create_or_update_production", ctx):
            self.access.require_admin(ctx)
            rebind_allowed = production_id == 0 or not self.positions.has_positions(production_id)
            production = self.productions.create_or_update(
                production_id, is_open, can_borrow,
                coin_asset_id, currency_asset_id, borrow_asset_id,
                strategy_module, min_debt, open_factor, liquidate_factor,
                rebind_allowed=rebind_allowed,
            )
            return replace(production)

    def update_config(self, ctx: CallContext, config: ConfigOracle) -> None:
        """Swap the risk configuration (rate model, reserve and prize shares)."""
        with self._transaction("update_config", ctx):
            self.access.require_admin(ctx)
            self.pools.config = config

    def withdraw_reserve(self, ctx: CallContext, asset_id: str, to: str, amount: int) -> bool:
        """
        Pay out protocol reserve. Returns True if it came from surplus funds.
        """
        with self._transaction("withdraw_reserve", ctx, guarded=True):
            self.access.require_admin(ctx)
            return self.pools.withdraw_reserve(asset_id, to, amount)

    def transfer_administration(self, ctx: CallContext, new_admin: str) -> None:
        with self._transaction("transfer_administration", ctx):
            previous = self.access.transfer(ctx, new_admin)
            self._emit(AdminTransferred(previous, new_admin))

    def __repr__(self) -> str:
        return (
            f"Bank({self.name!r}, {len(self.pools.pools)} pools, "
            f"{len(self.productions.productions)} productions, "
            f"{len(self.positions.positions)} positions)"
        )
