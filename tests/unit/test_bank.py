"""
test_bank.py - Unit tests for the Bank facade

Tests:
- Bank creation and time management
- Administration (transfer, config swap)
- Native currency receipt and payable checks
- Read API (position_info, getters return copies)
- Event log numbering and rollback
- verify_invariants
- Verbose output
"""

import pytest
from datetime import datetime, timedelta

from tokenbank import (
    Bank, AssetBook, BankConfig, CallContext, PositionInfo, AdminTransferred,
    AccessError, ConfigurationError, UndercollateralizedError, ExternalCallFailure,
    ShareToken,
    NATIVE_ASSET,
)

from tests.fake_strategy import (
    make_book, add_production,
    ADMIN, ALICE, BOB, T0,
)


class TestBankCreation:

    def test_defaults(self):
        book = AssetBook(verbose=False)
        bank = Bank("main", book.gateway("bank"), book.share_token_factory(),
                    admin="admin", verbose=False)
        assert bank.name == "main"
        assert bank.admin == "admin"
        assert bank.current_time == datetime(1970, 1, 1)
        assert isinstance(bank.pools.config, BankConfig)
        assert bank.events == []

    def test_repr(self, funded_bank, production):
        assert repr(funded_bank) == "Bank('test', 2 pools, 1 productions, 0 positions)"


class TestTime:

    def test_advance(self, bank):
        bank.advance_time(T0 + timedelta(hours=1))
        assert bank.current_time == T0 + timedelta(hours=1)

    def test_same_time_allowed(self, bank):
        bank.advance_time(T0)
        assert bank.current_time == T0

    def test_backwards_rejected(self, bank):
        with pytest.raises(ValueError, match="backwards"):
            bank.advance_time(T0 - timedelta(seconds=1))


class TestAdministration:

    def test_transfer_administration(self, bank):
        bank.transfer_administration(ADMIN, "alice")
        assert bank.admin == "alice"
        event = bank.events[-1]
        assert isinstance(event, AdminTransferred)
        assert (event.previous_admin, event.new_admin) == ("admin", "alice")
        bank.create_token(ALICE, "DAI", "ibDAI")
        with pytest.raises(AccessError):
            bank.create_token(ADMIN, "WETH", "ibWETH")

    def test_transfer_by_non_admin(self, bank):
        with pytest.raises(AccessError):
            bank.transfer_administration(ALICE, "alice")
        assert bank.admin == "admin"
        assert bank.events == []

    def test_update_config_admin_only(self, bank):
        with pytest.raises(AccessError):
            bank.update_config(ALICE, BankConfig(reserve_bps=0))
        bank.update_config(ADMIN, BankConfig(reserve_bps=0))
        assert bank.pools.config.get_reserve_bps() == 0

    def test_update_token_admin_only(self, bank):
        with pytest.raises(AccessError):
            bank.update_token(ALICE, "USDC", False, False)
        assert bank.get_pool("USDC").can_deposit


class TestNativeValue:

    def test_receive_native(self, bank, book):
        bank.receive_native(CallContext("alice", value=40))
        assert book.balance_of(NATIVE_ASSET, "bank") == 40
        assert bank.get_pool(NATIVE_ASSET).total_value == 0

    def test_received_native_does_not_inflate_shares(self, bank):
        bank.deposit(CallContext("carol", value=1000), NATIVE_ASSET, 0)
        bank.receive_native(CallContext("alice", value=500))
        assert bank.total_token(NATIVE_ASSET) == 1000

    @pytest.mark.parametrize("call", [
        lambda bank: bank.withdraw(CallContext("carol", value=1), "USDC", 1),
        lambda bank: bank.update_token(CallContext("admin", value=1), "USDC", True, True),
        lambda bank: bank.transfer_administration(CallContext("admin", value=1), "bob"),
    ])
    def test_non_payable_rejects_value(self, funded_bank, call):
        with pytest.raises(ConfigurationError, match="does not accept native value"):
            call(funded_bank)

    def test_value_pulled_back_on_failure(self, funded_bank, production, book):
        before = book.balance_of(NATIVE_ASSET, "bob")
        with pytest.raises(ConfigurationError):
            funded_bank.work(CallContext("bob", value=100), 0, production + 1, 0)
        assert book.balance_of(NATIVE_ASSET, "bob") == before


class TestReads:

    def test_position_info(self, funded_bank, production, strategy):
        funded_bank.work(BOB, 0, production, 500)
        strategy.health_of[1] = 650
        info = funded_bank.position_info(1)
        assert info == PositionInfo(production_id=production, health=650, debt=500, owner="bob")

    def test_position_info_rejects_invalid_health(self, funded_bank, production, strategy):
        funded_bank.work(BOB, 0, production, 500)
        strategy.health_of[1] = -1
        with pytest.raises(ExternalCallFailure, match="invalid health"):
            funded_bank.position_info(1)

    def test_share_token(self, funded_bank):
        token = funded_bank.share_token("USDC")
        assert isinstance(token, ShareToken)
        assert token.balance_of("carol") == 1000

    def test_getters_return_copies(self, funded_bank, production):
        funded_bank.work(BOB, 0, production, 500)
        funded_bank.get_pool("USDC").total_value = 0
        funded_bank.get_position(1).debt_share = 0
        funded_bank.get_production(production).is_open = False
        assert funded_bank.get_pool("USDC").total_value == 500
        assert funded_bank.get_position(1).debt_share == 500
        assert funded_bank.get_production(production).is_open

    def test_open_or_adjust_position_alias(self, funded_bank, production):
        assert funded_bank.open_or_adjust_position(BOB, 0, production, 100).debt == 100


class TestEventLog:

    def test_sequence_and_timestamp(self, bank):
        bank.deposit(ALICE, "USDC", 10)
        bank.advance_time(T0 + timedelta(days=1))
        bank.deposit(BOB, "USDC", 10)
        assert [e.sequence for e in bank.events] == [0, 1]
        assert bank.events[0].timestamp == T0
        assert bank.events[1].timestamp == T0 + timedelta(days=1)

    def test_failed_operation_logs_nothing(self, funded_bank, production, strategy):
        count = len(funded_bank.events)
        strategy.default_health = 1
        with pytest.raises(UndercollateralizedError):
            funded_bank.work(BOB, 0, production, 500)
        assert len(funded_bank.events) == count
        funded_bank.deposit(ALICE, "USDC", 1)
        assert funded_bank.events[-1].sequence == count


class TestVerifyInvariants:

    def test_valid_after_activity(self, funded_bank, production):
        funded_bank.work(BOB, 0, production, 500)
        funded_bank.advance_time(T0 + timedelta(days=100))
        funded_bank.deposit(ALICE, "USDC", 100)
        result = funded_bank.verify_invariants()
        assert result['valid'], result['violations']
        assert result['warnings'] == []

    def test_detects_tampering(self, funded_bank, production):
        funded_bank.work(BOB, 0, production, 500)
        funded_bank.positions.get(1).debt_share = 1
        result = funded_bank.verify_invariants()
        assert not result['valid']
        assert any("positions hold" in v for v in result['violations'])

    def test_detects_missing_funds(self, funded_bank, book):
        book.transfer("USDC", "bank", "alice", 1)
        result = funded_bank.verify_invariants()
        assert not result['valid']

    def test_warns_on_risky_factors(self, funded_bank, strategy):
        add_production(funded_bank, strategy, open_factor=7000, liquidate_factor=8000)
        result = funded_bank.verify_invariants()
        assert result['valid']
        assert len(result['warnings']) == 1


class TestVerbose:

    def test_applied_and_rejected_lines(self, capsys):
        book = make_book()
        bank = Bank("loud", book.gateway("bank"), book.share_token_factory(),
                    admin="admin", initial_time=T0, verbose=True)
        bank.create_token(ADMIN, "USDC", "ibUSDC")
        bank.deposit(ALICE, "USDC", 10)
        with pytest.raises(AccessError):
            bank.create_token(ALICE, "DAI", "ibDAI")
        out = capsys.readouterr().out
        assert "Registered pool: USDC" in out
        assert "✓ APPLIED: deposit" in out
        assert "Deposited(" in out
        assert "✗ REJECTED: create_token" in out
        assert "AccessError" in out
