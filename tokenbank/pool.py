"""
pool.py - Per-asset liquidity and debt bookkeeping

The PoolLedger owns one Pool record per asset and the share token that tracks
depositors' claims on it. It implements:

1. Debt-share accounting: debt is one pool-wide value distributed as shares,
   so accruing interest (which only changes Pool.total_debt) reaches every
   position without per-position writes.
2. Interest accrual from the ConfigOracle's rate model.
3. Deposit / withdraw / reserve withdrawal, including the asset movements.

Key Formulas:
    total_token      = min(held, total_value) + total_debt - total_reserve
    value_of_shares  = shares * total_debt // total_debt_share
    shares_of_value  = value * total_debt_share // total_debt
    interest         = rate * elapsed * total_debt // RATE_SCALE
    deposit shares   = amount * supply // (total_token - amount)
    withdraw amount  = shares * total_token // supply

The ledger never calls itself recursively and never checks access rights;
the Bank facade does that before delegating here.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Tuple
import copy

from .core import (
    # Types
    Pool, AssetTransferGateway, ShareToken, ConfigOracle, BankEvent,
    Deposited, Withdrawn, InterestAccrued, ReserveWithdrawn,
    # Constants
    NATIVE_ASSET, BPS_DENOMINATOR, RATE_SCALE,
    # Exceptions
    ConfigurationError, InsufficientLiquidityError,
    # Helpers
    external_call,
)
from . import safemath


class PoolLedger:
    """
    Bookkeeping for every pool of the bank.

    Args:
        gateway: Asset transfer gateway bound to the bank's holder id
        address: The bank's holder id (whose balances back the pools)
        config: Risk configuration (rate model, reserve share)
        emit: Receives every event the ledger produces
    """

    def __init__(
        self,
        gateway: AssetTransferGateway,
        address: str,
        config: ConfigOracle,
        emit: Callable[[BankEvent], None],
    ):
        self.gateway = gateway
        self.address = address
        self.config = config
        self.pools: Dict[str, Pool] = {}
        self.share_tokens: Dict[str, ShareToken] = {}
        self.emit = emit

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get(self, asset_id: str) -> Pool:
        """
        Return the pool for asset_id.

        Raises:
            ConfigurationError: If no pool was ever created for the asset
        """
        pool = self.pools.get(asset_id)
        if pool is None:
            raise ConfigurationError(f"No pool for asset {asset_id}")
        return pool

    def get_open(self, asset_id: str) -> Pool:
        pool = self.get(asset_id)
        if not pool.is_open:
            raise ConfigurationError(f"Pool {asset_id} is not open")
        return pool

    def held_balance(self, asset_id: str) -> int:
        """Balance of asset_id actually held by the bank."""
        return external_call(
            f"balance_of({asset_id})", self.gateway.balance_of, asset_id, self.address
        )

    def share_supply(self, asset_id: str) -> int:
        token = self.share_tokens[asset_id]
        return external_call(f"{token.symbol}.total_supply", token.total_supply)

    # ========================================================================
    # POOL CONFIGURATION
    # ========================================================================

    def create_pool(self, asset_id: str, share_token: ShareToken, now: datetime) -> Pool:
        """
        Open a pool for asset_id backed by share_token.

        Raises:
            ConfigurationError: If the asset already has an open pool
        """
        existing = self.pools.get(asset_id)
        if existing is not None and existing.is_open:
            raise ConfigurationError(f"Pool {asset_id} already exists")
        pool = Pool(
            asset_id=asset_id,
            share_token_id=share_token.symbol,
            last_accrual_time=now,
        )
        self.pools[asset_id] = pool
        self.share_tokens[asset_id] = share_token
        return pool

    def update_flags(self, asset_id: str, can_deposit: bool, can_withdraw: bool) -> Pool:
        pool = self.get_open(asset_id)
        pool.can_deposit = can_deposit
        pool.can_withdraw = can_withdraw
        return pool

    # ========================================================================
    # DEBT-SHARE ACCOUNTING
    # ========================================================================

    def value_of_shares(self, asset_id: str, shares: int) -> int:
        """Debt value represented by `shares`; identity while no shares exist."""
        pool = self.get(asset_id)
        safemath.require_uint(shares, "shares")
        if pool.total_debt_share == 0:
            return shares
        return safemath.mul_div(shares, pool.total_debt, pool.total_debt_share)

    def shares_of_value(self, asset_id: str, value: int) -> int:
        """Debt shares worth `value`; identity while the pool has no debt."""
        pool = self.get(asset_id)
        safemath.require_uint(value, "value")
        if pool.total_debt == 0:
            return value
        return safemath.mul_div(value, pool.total_debt_share, pool.total_debt)

    def issue_debt(self, asset_id: str, value: int) -> int:
        """
        Lend `value` out of the pool and return the debt shares issued for it.

        Debits total_value, credits total_debt and total_debt_share.
        """
        pool = self.get(asset_id)
        shares = self.shares_of_value(asset_id, value)
        pool.total_value = safemath.sub(pool.total_value, value)
        pool.total_debt_share = safemath.add(pool.total_debt_share, shares)
        pool.total_debt = safemath.add(pool.total_debt, value)
        return shares

    def retire_debt(self, asset_id: str, shares: int) -> int:
        """
        Take `shares` of debt off the pool and return their value.

        The value is credited back to total_value as if it had been repaid;
        settlement afterwards reconciles it against what actually came back.
        """
        pool = self.get(asset_id)
        value = self.value_of_shares(asset_id, shares)
        pool.total_debt_share = safemath.sub(pool.total_debt_share, shares)
        pool.total_debt = safemath.sub(pool.total_debt, value)
        pool.total_value = safemath.add(pool.total_value, value)
        return value

    def absorb_shortfall(self, asset_id: str, loss: int) -> None:
        """Write a liquidation loss off the pool's value."""
        pool = self.get(asset_id)
        pool.total_value = safemath.sub(pool.total_value, loss)

    # ========================================================================
    # VALUATION AND INTEREST
    # ========================================================================

    def total_token(self, asset_id: str) -> int:
        """
        Value owned by depositors: idle liquidity plus outstanding debt, less reserve.

        The held balance is capped at total_value so that tokens sent to the
        bank outside of deposit() cannot inflate the share price.

        Raises:
            ConfigurationError: If the pool is not open
        """
        pool = self.get_open(asset_id)
        held = min(self.held_balance(asset_id), pool.total_value)
        return safemath.sub(safemath.add(held, pool.total_debt), pool.total_reserve)

    def _interest_since(self, pool: Pool, now: datetime) -> Tuple[int, int]:
        """(interest, elapsed_seconds) owed between the last accrual and now."""
        if now <= pool.last_accrual_time:
            return 0, 0
        elapsed = int((now - pool.last_accrual_time).total_seconds())
        if elapsed == 0:
            return 0, 0
        rate = external_call(
            "get_interest_rate",
            self.config.get_interest_rate,
            pool.total_debt,
            self.total_token(pool.asset_id),
        )
        interest = safemath.div(
            safemath.mul(safemath.mul(rate, elapsed), pool.total_debt), RATE_SCALE
        )
        return interest, elapsed

    def pending_interest(self, asset_id: str, now: datetime) -> int:
        """Interest accrue_interest() would add at `now`, without mutating."""
        interest, _ = self._interest_since(self.get_open(asset_id), now)
        return interest

    def accrue_interest(self, asset_id: str, now: datetime) -> int:
        """
        Bring the pool's debt up to date.

        Must run before anything reads or writes the pool's debt or value.
        Idempotent within one instant. Only whole seconds are charged; the
        clock of the pool moves by those seconds, so a fractional remainder
        is carried into the next accrual.

        Returns:
            Interest added to total_debt (0 if no time elapsed)
        """
        pool = self.get_open(asset_id)
        interest, elapsed = self._interest_since(pool, now)
        if elapsed == 0:
            return 0
        to_reserve = safemath.mul_div(interest, self.config.get_reserve_bps(), BPS_DENOMINATOR)
        pool.total_reserve = safemath.add(pool.total_reserve, to_reserve)
        pool.total_debt = safemath.add(pool.total_debt, interest)
        pool.last_accrual_time += timedelta(seconds=elapsed)
        if interest:
            self.emit(InterestAccrued(asset_id, interest, to_reserve))
        return interest

    # ========================================================================
    # DEPOSIT / WITHDRAW
    # ========================================================================

    def deposit(self, asset_id: str, amount: int, depositor: str, now: datetime) -> int:
        """
        Add `amount` to the pool and mint the depositor's shares.

        For NATIVE_ASSET the funds are already attached to the call and held
        by the bank; other assets are pulled from the depositor.

        Returns:
            Shares minted

        Raises:
            ConfigurationError: If the pool is not open or deposits are disabled
        """
        pool = self.get_open(asset_id)
        if not pool.can_deposit:
            raise ConfigurationError(f"Deposits of {asset_id} are disabled")
        safemath.require_uint(amount, "amount")
        self.accrue_interest(asset_id, now)

        if asset_id != NATIVE_ASSET:
            external_call(
                f"pull {amount} {asset_id} from {depositor}",
                self.gateway.pull, asset_id, depositor, amount,
            )
        pool.total_value = safemath.add(pool.total_value, amount)

        # total_token is balance-capped, so measure it after total_value
        # already includes the deposit
        total = safemath.sub(self.total_token(asset_id), amount)
        supply = self.share_supply(asset_id)
        if supply == 0 or total == 0:
            shares = amount
        else:
            shares = safemath.mul_div(amount, supply, total)

        token = self.share_tokens[asset_id]
        external_call(f"{token.symbol}.mint", token.mint, depositor, shares)
        self.emit(Deposited(asset_id, depositor, amount, shares))
        return shares

    def withdraw(self, asset_id: str, share_amount: int, withdrawer: str, now: datetime) -> int:
        """
        Burn `share_amount` shares and pay out their value.

        Returns:
            Amount of asset_id sent to the withdrawer

        Raises:
            ConfigurationError: If the pool is not open or withdrawals are disabled
            InsufficientLiquidityError: If the value exceeds idle liquidity
        """
        pool = self.get_open(asset_id)
        if not pool.can_withdraw:
            raise ConfigurationError(f"Withdrawals of {asset_id} are disabled")
        safemath.require_uint(share_amount, "share_amount")
        self.accrue_interest(asset_id, now)

        amount = safemath.mul_div(share_amount, self.total_token(asset_id), self.share_supply(asset_id))
        if amount > pool.total_value:
            raise InsufficientLiquidityError(
                f"Withdrawal of {amount} {asset_id} exceeds idle liquidity {pool.total_value}"
            )
        pool.total_value -= amount

        token = self.share_tokens[asset_id]
        external_call(f"{token.symbol}.burn", token.burn, withdrawer, share_amount)
        external_call(
            f"push {amount} {asset_id} to {withdrawer}",
            self.gateway.push, asset_id, withdrawer, amount,
        )
        self.emit(Withdrawn(asset_id, withdrawer, share_amount, amount))
        return amount

    def withdraw_reserve(self, asset_id: str, to: str, amount: int) -> bool:
        """
        Send `amount` of reserve to `to`.

        If the bank already holds total_value + amount, the amount is taken
        from surplus that arrived outside deposit() and the bookkeeping is
        left untouched.

        Returns:
            True if the amount came from surplus
        """
        pool = self.get_open(asset_id)
        safemath.require_uint(amount, "amount")
        held = self.held_balance(asset_id)
        from_surplus = held >= safemath.add(pool.total_value, amount)
        if not from_surplus:
            pool.total_reserve = safemath.sub(pool.total_reserve, amount)
            pool.total_value = safemath.sub(pool.total_value, amount)
        external_call(
            f"push {amount} {asset_id} to {to}",
            self.gateway.push, asset_id, to, amount,
        )
        self.emit(ReserveWithdrawn(asset_id, to, amount, from_surplus))
        return from_surplus

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> Any:
        return (
            copy.deepcopy(self.pools),
            dict(self.share_tokens),
            self.config,
        )

    def restore(self, snapshot: Any) -> None:
        pools, share_tokens, config = snapshot
        self.pools = copy.deepcopy(pools)
        self.share_tokens = dict(share_tokens)
        self.config = config
