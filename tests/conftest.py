"""
conftest.py - Shared pytest fixtures for token bank tests

Provides common fixtures used across unit, conformance and functional tests:
- Asset book with funded wallets
- Bank with USDC and NATIVE pools
- Productions bound to a FakeStrategy
"""

import pytest

from tokenbank import CallContext, NATIVE_ASSET

from tests.fake_strategy import (
    FakeStrategy, make_book, make_bank, add_production, CAROL,
)


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def book():
    """Asset book with every test wallet holding 100,000 USDC and NATIVE."""
    return make_book()


@pytest.fixture
def bank(book):
    """Bank with empty USDC and NATIVE pools."""
    return make_bank(book)


@pytest.fixture
def funded_bank(bank):
    """Bank whose USDC pool holds carol's 1000 deposit."""
    bank.deposit(CAROL, "USDC", 1000)
    return bank


# =============================================================================
# PRODUCTION FIXTURES
# =============================================================================

@pytest.fixture
def strategy(book):
    """FakeStrategy reporting health 700 for every position."""
    strategy = FakeStrategy(book, "strategy")
    strategy.default_health = 700
    return strategy


@pytest.fixture
def production(funded_bank, strategy):
    """USDC production: open factor 8000, liquidate factor 7500, no min debt."""
    return add_production(funded_bank, strategy)


@pytest.fixture
def native_production(bank, strategy):
    """NATIVE production on a pool funded with 1000 by carol."""
    bank.deposit(CallContext("carol", value=1000), NATIVE_ASSET, 0)
    return add_production(bank, strategy, borrow_asset=NATIVE_ASSET)
