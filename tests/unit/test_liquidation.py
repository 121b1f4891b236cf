"""
test_liquidation.py - Unit tests for liquidating positions

Tests:
- Liquidation threshold (strict inequality)
- Prize, owner payout and pool shortfall settlement
- Positions without debt cannot be liquidated
- Interest is accrued before settlement
- EOA gating and rollback on failure
"""

import pytest
from datetime import timedelta

from tokenbank import (
    BankConfig, CallContext, LiquidationResult, PositionLiquidated,
    UndercollateralizedError, AccessError, ExternalCallFailure,
)

from tests.fake_strategy import capture_state, ADMIN, BOB, LIQUIDATOR, T0


@pytest.fixture
def open_position(funded_bank, production, strategy, book):
    """Bob holds position 1 with 500 debt; the strategy holds the 500."""
    funded_bank.work(BOB, 0, production, 500)
    return 1


class TestThreshold:

    def test_healthy_position_rejected(self, funded_bank, open_position, book):
        before = capture_state(funded_bank, book)
        with pytest.raises(UndercollateralizedError, match="healthy"):
            funded_bank.liquidate(LIQUIDATOR, open_position)
        assert capture_state(funded_bank, book) == before

    def test_boundary_is_not_liquidatable(self, funded_bank):
        engine = funded_bank.liquidation
        # 2000 * 7500 == 1500 * 10000
        assert not engine.is_liquidatable(2000, 1500, 7500)
        assert engine.is_liquidatable(1999, 1500, 7500)

    def test_no_debt_rejected(self, funded_bank, production):
        funded_bank.work(BOB, 0, production, 0)
        with pytest.raises(UndercollateralizedError, match="no debt"):
            funded_bank.liquidate(LIQUIDATOR, 1)


class TestSettlement:

    def test_surplus_goes_to_owner(self, funded_bank, open_position, strategy, book):
        strategy.default_health = 600      # 600 * 7500 < 500 * 10000
        book.issue("USDC", "strategy", 100)
        strategy.liquidation_proceeds = 600
        liquidator_before = book.balance_of("USDC", "liquidator")
        bob_before = book.balance_of("USDC", "bob")

        result = funded_bank.liquidate(LIQUIDATOR, open_position)

        assert result == LiquidationResult(prize=30, owner_payout=70)
        assert book.balance_of("USDC", "liquidator") == liquidator_before + 30
        assert book.balance_of("USDC", "bob") == bob_before + 70
        pool = funded_bank.get_pool("USDC")
        assert (pool.total_value, pool.total_debt, pool.total_debt_share) == (1000, 0, 0)
        assert book.balance_of("USDC", "bank") == 1000
        assert funded_bank.get_position(open_position).is_closed

    def test_shortfall_absorbed_by_pool(self, funded_bank, open_position, strategy, book):
        strategy.default_health = 400
        strategy.liquidation_proceeds = 400
        result = funded_bank.liquidate(LIQUIDATOR, open_position)
        assert result == LiquidationResult(prize=20, owner_payout=0)
        pool = funded_bank.get_pool("USDC")
        assert pool.total_value == 880
        assert book.balance_of("USDC", "bank") == 880
        assert funded_bank.total_token("USDC") == 880

    def test_prize_rounds_down(self, funded_bank, open_position, strategy, book):
        strategy.default_health = 100
        book.issue("USDC", "strategy", 500)
        strategy.liquidation_proceeds = 527   # prize 26.35 -> 26, rest 501
        result = funded_bank.liquidate(LIQUIDATOR, open_position)
        assert result == LiquidationResult(prize=26, owner_payout=1)

    def test_event_and_module_called(self, funded_bank, open_position, strategy):
        strategy.default_health = 0
        strategy.liquidation_proceeds = 500
        funded_bank.liquidate(LIQUIDATOR, open_position)
        assert strategy.liquidated == [open_position]
        event = funded_bank.events[-1]
        assert isinstance(event, PositionLiquidated)
        assert (event.position_id, event.liquidator, event.prize, event.owner_payout) == (1, "liquidator", 25, 0)

    def test_prize_share_follows_config(self, funded_bank, open_position, strategy):
        funded_bank.update_config(ADMIN, BankConfig(liquidate_bps=1000))
        strategy.default_health = 0
        strategy.liquidation_proceeds = 500
        assert funded_bank.liquidate(LIQUIDATOR, open_position).prize == 50

    def test_not_liquidatable_afterwards(self, funded_bank, open_position, strategy):
        strategy.default_health = 0
        strategy.liquidation_proceeds = 500
        funded_bank.liquidate(LIQUIDATOR, open_position)
        with pytest.raises(UndercollateralizedError):
            funded_bank.liquidate(LIQUIDATOR, open_position)


class TestInterestBeforeLiquidation:

    def test_debt_accrued_first(self, funded_bank, open_position, strategy, book):
        funded_bank.advance_time(T0 + timedelta(days=365))
        # 700 * 7500 = 5,250,000 < 549 * 10000 once interest is accrued
        book.issue("USDC", "strategy", 100)
        strategy.liquidation_proceeds = 600
        result = funded_bank.liquidate(LIQUIDATOR, open_position)
        # prize 30, rest 570, debt 549
        assert result == LiquidationResult(30, 21)


class TestLiquidationGuards:

    def test_contract_caller_rejected(self, funded_bank, open_position, strategy):
        strategy.default_health = 0
        with pytest.raises(AccessError):
            funded_bank.liquidate(CallContext("bot", origin="liquidator"), open_position)

    def test_module_failure_rolls_back(self, funded_bank, open_position, strategy, book):
        strategy.default_health = 0
        strategy.liquidation_proceeds = 10 ** 9   # more than the strategy holds
        before = capture_state(funded_bank, book)
        with pytest.raises(ExternalCallFailure):
            funded_bank.liquidate(LIQUIDATOR, open_position)
        assert capture_state(funded_bank, book) == before
        assert strategy.liquidated == []

    @pytest.mark.parametrize("health", [-5, "0", 0.0])
    def test_invalid_health_is_external_failure(self, funded_bank, open_position, strategy, book, health):
        strategy.default_health = health
        before = capture_state(funded_bank, book)
        with pytest.raises(ExternalCallFailure, match="invalid health"):
            funded_bank.liquidate(LIQUIDATOR, open_position)
        assert capture_state(funded_bank, book) == before
