"""
Core types for the token bank.

This module provides the foundational data structures and protocols:
1. Constants: native asset id, basis-point and rate scales, integer bounds
2. Exceptions: BankError and the categorized failure types
3. Call context: explicit caller identity and attached native value
4. Ledger records: Pool, Production, Position (mutable arena records)
5. Results and events: immutable records returned to callers / logged
6. Protocols: the collaborators the bank consumes but does not implement

Every monetary quantity in the bank is a non-negative Python int. Nothing in
this module mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Protocol, TypeVar, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Identifier of the chain's native currency. Deposits, borrows and refunds of
# the native asset travel as value attached to the call.
NATIVE_ASSET = "NATIVE"

# Reserved wallet for share issuance and redemption on an AssetBook.
SYSTEM_WALLET = "system"

# Denominator for every basis-point quantity (factors, reserve, prize).
BPS_DENOMINATOR = 10_000

# Fixed-point scale of per-second interest rates.
RATE_SCALE = 10 ** 18

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Unsigned 256-bit range for all ledger integers.
UINT256_MAX = 2 ** 256 - 1


# ============================================================================
# EXCEPTIONS
# ============================================================================

class BankError(Exception):
    """Base exception for all bank errors. Raising one aborts the operation."""
    pass


class ConfigurationError(BankError):
    """Asset or production not open, operation disabled, or module unset."""
    pass


class AccessError(BankError):
    """Caller is not the administrator, not the owner, or not an EOA."""
    pass


class InsufficientLiquidityError(BankError):
    """Requested borrow or withdrawal exceeds what the pool can provide."""
    pass


class UndercollateralizedError(BankError):
    """Health check failed at open time, or passed at liquidation time."""
    pass


class MathError(BankError, ArithmeticError):
    """Overflow, underflow, division by zero or a non-integer amount."""
    pass


class ReentrancyError(BankError):
    """A guarded operation was entered while another one is in flight."""
    pass


class ExternalCallFailure(BankError):
    """An asset transfer or strategy module call failed."""
    pass


T = TypeVar("T")


def external_call(description: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Invoke a collaborator and normalize its failures.

    BankErrors raised inside the call (for example a ReentrancyError from a
    callback into the bank) propagate unchanged. Anything else is reported as
    ExternalCallFailure chained to the original exception.
    """
    try:
        return fn(*args, **kwargs)
    except BankError:
        raise
    except Exception as exc:
        raise ExternalCallFailure(f"{description} failed: {exc}") from exc


def query_health(module: Any, position_id: int, asset_id: str) -> int:
    """
    Ask a strategy module for a position's health.

    Raises:
        ExternalCallFailure: The call failed, or the answer is not an
            unsigned 256-bit int
    """
    description = f"{module.address}.health({position_id})"
    health = external_call(description, module.health, position_id, asset_id)
    if isinstance(health, bool) or not isinstance(health, int) or not 0 <= health <= UINT256_MAX:
        raise ExternalCallFailure(f"{description} returned an invalid health: {health!r}")
    return health


# ============================================================================
# CALL CONTEXT
# ============================================================================

@dataclass(frozen=True, slots=True)
class CallContext:
    """
    Identity of the party invoking a bank operation.

    Attributes:
        sender: Immediate caller (wallet id on the asset book).
        value: Native currency attached to the call.
        origin: Account that started the outer transaction. Defaults to sender.
    """
    sender: str
    value: int = 0
    origin: Optional[str] = None

    def __post_init__(self):
        if not self.sender or not self.sender.strip():
            raise ValueError("CallContext sender cannot be empty")
        if not isinstance(self.value, int) or self.value < 0:
            raise ValueError(f"CallContext value must be a non-negative int, got {self.value!r}")
        if self.origin is None:
            object.__setattr__(self, 'origin', self.sender)

    @property
    def is_eoa(self) -> bool:
        """True when the sender is the account that originated the call."""
        return self.sender == self.origin

    def __repr__(self) -> str:
        if self.is_eoa:
            return f"Call({self.sender}, value={self.value})"
        return f"Call({self.sender} via {self.origin}, value={self.value})"


# ============================================================================
# LEDGER RECORDS
# ============================================================================

@dataclass(slots=True)
class Pool:
    """
    Liquidity and debt bookkeeping for one asset.

    Attributes:
        asset_id: Asset lent by this pool.
        share_token_id: Symbol of the share token minted to depositors.
        is_open: Pool exists and is usable.
        can_deposit: Deposits enabled.
        can_withdraw: Withdrawals enabled.
        total_value: Idle liquidity tracked by the pool (excludes reserve).
        total_debt: Outstanding principal including accrued interest.
        total_debt_share: Debt shares issued across all positions.
        total_reserve: Interest retained for the protocol.
        last_accrual_time: When interest was last accrued.
    """
    asset_id: str
    share_token_id: str
    last_accrual_time: datetime
    is_open: bool = True
    can_deposit: bool = True
    can_withdraw: bool = True
    total_value: int = 0
    total_debt: int = 0
    total_debt_share: int = 0
    total_reserve: int = 0


@dataclass(slots=True)
class Production:
    """A borrowable pairing bound to one strategy module and its risk thresholds."""
    production_id: int
    coin_asset_id: str
    currency_asset_id: str
    borrow_asset_id: str
    strategy_module_id: Optional[str]
    is_open: bool = False
    can_borrow: bool = False
    min_debt: int = 0
    open_factor: int = 0         # bps, collateralization required at open time
    liquidate_factor: int = 0    # bps, collateralization floor


@dataclass(slots=True)
class Position:
    """A borrower's leveraged stake against one production."""
    position_id: int
    owner: str
    production_id: int
    debt_share: int = 0

    @property
    def is_closed(self) -> bool:
        return self.debt_share == 0


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class WorkResult:
    """Outcome of opening or adjusting a position."""
    position_id: int
    debt: int
    refund: int


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """Outcome of liquidating a position."""
    prize: int
    owner_payout: int


@dataclass(frozen=True, slots=True)
class PositionInfo:
    """Read-only view of a position: production, health, debt value, owner."""
    production_id: int
    health: int
    debt: int
    owner: str


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class BankEvent:
    """
    Base record for everything the bank emits.

    sequence and timestamp are assigned by the bank when the event is logged.
    """
    sequence: int = field(default=-1, kw_only=True)
    timestamp: Optional[datetime] = field(default=None, kw_only=True)


@dataclass(frozen=True, slots=True)
class Deposited(BankEvent):
    asset_id: str
    depositor: str
    amount: int
    shares: int


@dataclass(frozen=True, slots=True)
class Withdrawn(BankEvent):
    asset_id: str
    withdrawer: str
    shares: int
    amount: int


@dataclass(frozen=True, slots=True)
class InterestAccrued(BankEvent):
    asset_id: str
    interest: int
    to_reserve: int


@dataclass(frozen=True, slots=True)
class PositionWorked(BankEvent):
    position_id: int
    debt: int
    refund: int


@dataclass(frozen=True, slots=True)
class PositionLiquidated(BankEvent):
    position_id: int
    liquidator: str
    prize: int
    owner_payout: int


@dataclass(frozen=True, slots=True)
class ReserveWithdrawn(BankEvent):
    asset_id: str
    to: str
    amount: int
    from_surplus: bool


@dataclass(frozen=True, slots=True)
class AdminTransferred(BankEvent):
    previous_admin: str
    new_admin: str


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class AssetTransferGateway(Protocol):
    """
    Moves assets between the bank and other parties.

    The gateway is bound to the bank's own holder id: pull moves funds from a
    party into the bank, push moves funds out of the bank. Any call may raise.
    """

    def pull(self, asset_id: str, frm: str, amount: int) -> None:
        ...

    def push(self, asset_id: str, to: str, amount: int) -> None:
        ...

    def balance_of(self, asset_id: str, holder: str) -> int:
        ...


@runtime_checkable
class ShareToken(Protocol):
    """Fungible claim on a pool. The bank is the only minter and burner."""
    symbol: str

    def mint(self, to: str, amount: int) -> None:
        ...

    def burn(self, frm: str, amount: int) -> None:
        ...

    def total_supply(self) -> int:
        ...


# Creates the share token for a new pool: (asset_id, symbol) -> ShareToken
ShareTokenFactory = Callable[[str, str], ShareToken]


@runtime_checkable
class StrategyModule(Protocol):
    """
    Untrusted external module that runs the leveraged strategy of a production.

    address is the module's holder id: borrowed funds are pushed to it before
    work() and anything it sends back to the bank is measured afterwards.
    """
    address: str

    def work(
        self,
        position_id: int,
        owner: str,
        borrow_asset_id: str,
        borrow: int,
        debt: int,
        payload: Any,
        value: int = 0,
    ) -> None:
        ...

    def health(self, position_id: int, borrow_asset_id: str) -> int:
        ...

    def liquidate(self, position_id: int, owner: str, borrow_asset_id: str) -> None:
        ...


@runtime_checkable
class InterestRateModel(Protocol):
    """Pure mapping of (debt, idle) to a per-second rate scaled by RATE_SCALE."""

    def get_rate(self, debt: int, idle: int) -> int:
        ...


@runtime_checkable
class ConfigOracle(Protocol):
    """Risk configuration consumed by the pool and the liquidation engine."""

    def get_interest_rate(self, debt: int, idle: int) -> int:
        ...

    def get_reserve_bps(self) -> int:
        ...

    def get_liquidate_bps(self) -> int:
        ...


@runtime_checkable
class Revertible(Protocol):
    """
    A collaborator whose state can be captured and restored.

    The bank snapshots every Revertible participant before an operation and
    restores them all if the operation fails, so a failed transaction leaves
    no trace outside the bank either.
    """

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...
