"""
tokenbank - Shared-liquidity lending pool

Depositors supply assets to per-asset pools and receive interest-bearing
shares. Borrowers open leveraged positions through pluggable strategy modules
that draw on that liquidity; under-collateralized positions can be liquidated
by anyone for a prize.

Usage:
    from tokenbank import AssetBook, Bank, CallContext

    book = AssetBook("main", verbose=False)
    for wallet in ("admin", "alice"):
        book.register_wallet(wallet)
    bank = Bank("main", book.gateway("bank"), book.share_token_factory(),
                admin="admin")
    bank.create_token(CallContext("admin"), "USDC", "ibUSDC")

    # Fund alice via SYSTEM_WALLET, then deposit
    book.issue("USDC", "alice", 1_000)
    shares = bank.deposit(CallContext("alice"), "USDC", 1_000)

    # Redeem
    amount = bank.withdraw(CallContext("alice"), "USDC", shares)
"""

# Core types
from .core import (
    CallContext,
    Pool,
    Production,
    Position,
    WorkResult,
    LiquidationResult,
    PositionInfo,
    BankEvent,
    Deposited,
    Withdrawn,
    InterestAccrued,
    PositionWorked,
    PositionLiquidated,
    ReserveWithdrawn,
    AdminTransferred,
    AssetTransferGateway,
    ShareToken,
    ShareTokenFactory,
    StrategyModule,
    InterestRateModel,
    ConfigOracle,
    Revertible,
    BankError,
    ConfigurationError,
    AccessError,
    InsufficientLiquidityError,
    UndercollateralizedError,
    MathError,
    ReentrancyError,
    ExternalCallFailure,
    external_call, query_health,
    NATIVE_ASSET,
    SYSTEM_WALLET,
    BPS_DENOMINATOR,
    RATE_SCALE,
    SECONDS_PER_YEAR,
    UINT256_MAX,
)

# Checked arithmetic
from . import safemath

# Interest and configuration
from .interest import (
    TripleSlopeModel,
    BankConfig,
    utilization_bps,
    annual_rate,
    APY_10,
    APY_25,
    APY_100,
)

# Components
from .pool import PoolLedger
from .registry import ProductionRegistry, PositionLedger
from .guard import ReentrancyGuard, AccessControl
from .leverage import LeverageEngine
from .liquidation import LiquidationEngine

# Facade
from .bank import Bank

# Reference collaborators
from .asset_book import (
    AssetBook,
    BookGateway,
    BookShareToken,
    Transfer,
    BookError,
    InsufficientFunds,
    WalletNotRegistered,
)

__all__ = [
    # Core
    'CallContext', 'Pool', 'Production', 'Position',
    'WorkResult', 'LiquidationResult', 'PositionInfo',
    'BankEvent', 'Deposited', 'Withdrawn', 'InterestAccrued', 'PositionWorked',
    'PositionLiquidated', 'ReserveWithdrawn', 'AdminTransferred',
    'AssetTransferGateway', 'ShareToken', 'ShareTokenFactory', 'StrategyModule',
    'InterestRateModel', 'ConfigOracle', 'Revertible',
    'BankError', 'ConfigurationError', 'AccessError', 'InsufficientLiquidityError',
    'UndercollateralizedError', 'MathError', 'ReentrancyError', 'ExternalCallFailure',
    'external_call', 'query_health',
    'NATIVE_ASSET', 'SYSTEM_WALLET', 'BPS_DENOMINATOR', 'RATE_SCALE',
    'SECONDS_PER_YEAR', 'UINT256_MAX',
    'safemath',
    # Interest
    'TripleSlopeModel', 'BankConfig', 'utilization_bps', 'annual_rate',
    'APY_10', 'APY_25', 'APY_100',
    # Components
    'PoolLedger', 'ProductionRegistry', 'PositionLedger',
    'ReentrancyGuard', 'AccessControl', 'LeverageEngine', 'LiquidationEngine',
    # Facade
    'Bank',
    # Asset book
    'AssetBook', 'BookGateway', 'BookShareToken', 'Transfer',
    'BookError', 'InsufficientFunds', 'WalletNotRegistered',
]

__version__ = '1.0.0'
