#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Token Bank Step by Step

This is a pedagogical demonstration that teaches how the lending pool works.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - The asset book, the bank, deposits and shares
  4-6:  Leverage     - Productions, opening a position, rejected openings
  7-8:  Time         - Interest accrual, repayment with refund
  9-10: Safety       - Reentrancy rejection, liquidation
  11:   Audit        - Reserve withdrawal and invariant check

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from tokenbank import (
    AssetBook, Bank, CallContext,
    BankError, ReentrancyError, UndercollateralizedError,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Initial funding
    depositor_funding: int = 10_000
    borrower_funding: int = 1_000

    # Pool and production
    carol_deposit: int = 1_000
    alice_deposit: int = 1_000
    borrow: int = 500
    open_factor: int = 8_000
    liquidate_factor: int = 7_500
    farm_health: int = 700


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv

ADMIN = CallContext("admin")


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_pool(bank: Bank, asset_id: str = "USDC"):
    pool = bank.get_pool(asset_id)
    print(f"total_value={pool.total_value}  total_debt={pool.total_debt}  "
          f"debt_shares={pool.total_debt_share}  reserve={pool.total_reserve}  "
          f"total_token={bank.total_token(asset_id)}")


class DemoFarm:
    """
    A toy strategy module: keeps what it is lent, reports a settable health,
    and sends back whatever the payload asks for.
    """

    def __init__(self, book: AssetBook, address: str = "farm"):
        self.book = book
        self.address = address
        self.health_value = CONFIG.farm_health
        self.on_work = None
        book.register_wallet(address)

    def work(self, position_id, owner, borrow_asset_id, borrow, debt, payload, value=0):
        if self.on_work is not None:
            self.on_work()
        if payload:
            self.book.transfer(borrow_asset_id, self.address, "bank", payload, "repay")

    def health(self, position_id, borrow_asset_id):
        return self.health_value

    def liquidate(self, position_id, owner, borrow_asset_id):
        held = self.book.balance_of(borrow_asset_id, self.address)
        self.book.transfer(borrow_asset_id, self.address, "bank", held, "unwind")


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_create_bank():
    """Create the asset book and the bank."""
    step_header(1, "The Asset Book and the Bank",
        "The bank keeps books; the asset book holds the actual balances.")

    print("""
    The bank never holds balances itself. It asks an AssetTransferGateway
    to pull, push and report balances, and a ShareTokenFactory to create
    the share token of each pool. AssetBook provides both.
    """)
    wait_for_enter()

    book = AssetBook("tutorial", verbose=False)
    for wallet in ("admin", "alice", "bob", "carol", "liquidator"):
        book.register_wallet(wallet)
    for wallet in ("alice", "carol"):
        book.issue("USDC", wallet, CONFIG.depositor_funding)
    book.issue("USDC", "bob", CONFIG.borrower_funding)

    print(">>> bank = Bank('tutorial', book.gateway('bank'), book.share_token_factory(), admin='admin')")
    bank = Bank("tutorial", book.gateway("bank"), book.share_token_factory(),
                admin="admin", initial_time=CONFIG.start_time, verbose=True)
    bank.create_token(ADMIN, "USDC", "ibUSDC")
    print(f"\n{bank!r}")
    return bank, book


def step_02_deposits(bank: Bank, book: AssetBook):
    """Depositors receive shares."""
    step_header(2, "Deposits Mint Shares",
        "The first deposit mints one share per unit; later ones at the share price.")
    wait_for_enter()

    bank.deposit(CallContext("carol"), "USDC", CONFIG.carol_deposit)
    bank.deposit(CallContext("alice"), "USDC", CONFIG.alice_deposit)

    section_header("Pool")
    show_pool(bank)
    token = bank.share_token("USDC")
    print(f"ibUSDC: carol={token.balance_of('carol')} alice={token.balance_of('alice')}")


def step_03_donations(bank: Bank, book: AssetBook):
    """Unsolicited transfers do not move the share price."""
    step_header(3, "Donations Are Ignored",
        "Tokens sent outside deposit() cannot inflate the share price.")
    wait_for_enter()

    book.issue("USDC", "bank", 50, "donation")
    show_pool(bank)
    print("total_token still counts only tracked value.")


# ============================================================================
# PHASE 2: LEVERAGE
# ============================================================================

def step_04_production(bank: Bank, book: AssetBook):
    """Bind a strategy module to a production."""
    step_header(4, "Productions",
        "A production pairs assets with a strategy module and risk thresholds.")
    wait_for_enter()

    farm = DemoFarm(book)
    production = bank.create_or_update_production(
        ADMIN, 0, True, True, "FARM", "USDC", "USDC", farm,
        0, CONFIG.open_factor, CONFIG.liquidate_factor,
    )
    print(production)
    return farm, production.production_id


def step_05_open_position(bank: Bank, production_id: int):
    """Borrow against the production."""
    step_header(5, "Opening a Position",
        f"health * open_factor >= debt * 10000: "
        f"{CONFIG.farm_health} * {CONFIG.open_factor} >= {CONFIG.borrow} * 10000")
    wait_for_enter()

    result = bank.work(CallContext("bob"), 0, production_id, CONFIG.borrow)
    print(result)
    show_pool(bank)
    return result.position_id


def step_06_rejected_open(bank: Bank, farm: DemoFarm, production_id: int):
    """An undercollateralized opening leaves no trace."""
    step_header(6, "Rejected Openings Roll Back",
        "Every operation is atomic: a failed check undoes the module's transfers too.")
    wait_for_enter()

    farm.health_value = 100
    events_before = len(bank.events)
    try:
        bank.work(CallContext("bob"), 0, production_id, 400)
    except UndercollateralizedError as exc:
        print(f"Rejected: {exc}")
    farm.health_value = CONFIG.farm_health
    print(f"Events logged by the failed call: {len(bank.events) - events_before}")
    show_pool(bank)


# ============================================================================
# PHASE 3: TIME
# ============================================================================

def step_07_interest(bank: Bank):
    """A year passes."""
    step_header(7, "Interest Accrues",
        "Debt grows through the pool-wide debt value; shares stay the same.")
    wait_for_enter()

    bank.advance_time(CONFIG.start_time + timedelta(days=365))
    print(f"Pending interest: {bank.pending_interest('USDC')}")
    bank.pools.accrue_interest("USDC", bank.current_time)
    show_pool(bank)


def step_08_repay(bank: Bank, book: AssetBook, position_id: int, production_id: int):
    """Repay the whole position."""
    step_header(8, "Repayment and Refund",
        "Whatever comes back beyond the debt is refunded to the owner.")
    wait_for_enter()

    book.issue("USDC", "farm", 100, "farm profit")
    result = bank.work(CallContext("bob"), position_id, production_id, 0, CONFIG.borrow + 100)
    print(result)
    show_pool(bank)


# ============================================================================
# PHASE 4: SAFETY
# ============================================================================

def step_09_reentrancy(bank: Bank, farm: DemoFarm, production_id: int):
    """A module calling back into the bank aborts the whole operation."""
    step_header(9, "Reentrancy",
        "Guarded operations never nest; the outer call fails as a whole.")
    wait_for_enter()

    farm.on_work = lambda: bank.deposit(CallContext("alice"), "USDC", 10)
    try:
        bank.work(CallContext("bob"), 0, production_id, 100)
    except ReentrancyError as exc:
        print(f"Rejected: {exc}")
    farm.on_work = None


def step_10_liquidation(bank: Bank, farm: DemoFarm, production_id: int):
    """Liquidate a position whose health collapsed."""
    step_header(10, "Liquidation",
        "health * liquidate_factor < debt * 10000 makes a position liquidatable.")
    wait_for_enter()

    position_id = bank.work(CallContext("bob"), 0, production_id, CONFIG.borrow).position_id
    farm.health_value = 300
    print(bank.position_info(position_id))
    result = bank.liquidate(CallContext("liquidator"), position_id)
    print(result)
    show_pool(bank)
    farm.health_value = CONFIG.farm_health


# ============================================================================
# PHASE 5: AUDIT
# ============================================================================

def step_11_audit(bank: Bank, book: AssetBook):
    """Reserve withdrawal and the invariant check."""
    step_header(11, "Reserve and Invariants",
        "The reserve belongs to the protocol; the books must always balance.")
    wait_for_enter()

    reserve = bank.get_pool("USDC").total_reserve
    if reserve:
        bank.withdraw_reserve(ADMIN, "USDC", "admin", reserve)
    print(bank.verify_invariants())
    print(book.verify_double_entry())

    section_header("Event log")
    for event in bank.events:
        print(f"  {event}")


def main():
    print("=" * 70)
    print("       TOKEN BANK TUTORIAL")
    print("=" * 70)

    bank, book = step_01_create_bank()
    step_02_deposits(bank, book)
    step_03_donations(bank, book)

    farm, production_id = step_04_production(bank, book)
    position_id = step_05_open_position(bank, production_id)
    step_06_rejected_open(bank, farm, production_id)

    step_07_interest(bank)
    step_08_repay(bank, book, position_id, production_id)

    step_09_reentrancy(bank, farm, production_id)
    try:
        step_10_liquidation(bank, farm, production_id)
    except BankError as exc:
        print(f"Liquidation failed: {exc}")

    step_11_audit(bank, book)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:
      - Deposits mint shares priced by total_token
      - Positions borrow against a strategy module's reported health
      - Interest reaches every position through debt shares
      - Failed and reentrant operations leave no trace
      - Liquidation pays a prize, refunds the owner or books the loss

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
