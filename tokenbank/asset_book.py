"""
asset_book.py - In-memory multi-asset balance book

The AssetBook is the reference implementation of the collaborators the bank
treats as external: it holds every party's balance of every asset (including
the native currency and the pools' share tokens) and moves value between them.

Key responsibilities:
    - Validated transfers between registered wallets (integers, no overdraft)
    - Issuance and redemption through SYSTEM_WALLET (share token mint/burn)
    - Transfer log as audit trail
    - snapshot()/restore() so a failed bank transaction leaves no trace
    - BookGateway: an AssetTransferGateway bound to one holder (the bank)
    - BookShareToken: a ShareToken whose balances live on the book
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
import copy
from typing import Any, Dict, List, Optional, Set

from .core import SYSTEM_WALLET, ShareTokenFactory


class BookError(Exception):
    """Base exception for asset book failures."""
    pass


class InsufficientFunds(BookError):
    """Raised when a transfer would overdraw a wallet."""
    pass


class WalletNotRegistered(BookError):
    """Raised when a transfer names a wallet the book does not know."""
    pass


@dataclass(frozen=True, slots=True)
class Transfer:
    """One executed movement of value on the book."""
    sequence: int
    asset_id: str
    source: str
    dest: str
    amount: int
    memo: str = ""

    def __repr__(self) -> str:
        return f"Transfer({self.amount} {self.asset_id}: {self.source}→{self.dest})"


class AssetBook:
    """
    Balance book for every asset and party in a simulation.

    SYSTEM_WALLET is exempt from balance validation: issuing moves value out of
    it (its balance goes negative), redeeming moves value back in. For every
    asset the sum over all wallets, system included, is always zero for issued
    assets and equal to the funded amount otherwise.

    Example:
        book = AssetBook("main")
        book.register_wallet("alice")
        book.register_wallet("bank")
        book.issue("USDC", "alice", 1_000)
        gateway = book.gateway("bank")
        gateway.pull("USDC", "alice", 400)
        book.balance_of("USDC", "bank")   # 400
    """

    def __init__(self, name: str = "book", verbose: bool = True):
        self.name = name
        self.verbose = verbose
        self.balances: Dict[str, Dict[str, int]] = {}
        self.registered_wallets: Set[str] = set()
        self.transfer_log: List[Transfer] = []
        self._next_sequence: int = 0

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # READS
    # ========================================================================

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    def balance_of(self, asset_id: str, holder: str) -> int:
        """
        Balance of asset_id held by holder.

        Raises:
            WalletNotRegistered: If holder is not registered
        """
        if holder not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {holder} not registered")
        return self.balances[holder].get(asset_id, 0)

    def total_supply(self, asset_id: str) -> int:
        """Amount of asset_id held outside the system wallet."""
        return sum(
            self.balances[w].get(asset_id, 0)
            for w in sorted(self.registered_wallets)
            if w != SYSTEM_WALLET
        )

    def holders(self, asset_id: str) -> Dict[str, int]:
        """All non-system wallets with a non-zero balance of asset_id."""
        return {
            w: bals[asset_id]
            for w, bals in self.balances.items()
            if w != SYSTEM_WALLET and bals.get(asset_id, 0) != 0
        }

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Check that no wallet other than SYSTEM_WALLET is negative and that,
        per asset, the system wallet exactly offsets everything issued.

        Returns:
            Dict with 'valid' (bool) and 'discrepancies' (list of dicts)
        """
        discrepancies = []
        assets = {a for bals in self.balances.values() for a in bals}
        for asset_id in sorted(assets):
            for wallet in sorted(self.registered_wallets):
                if wallet == SYSTEM_WALLET:
                    continue
                bal = self.balances[wallet].get(asset_id, 0)
                if bal < 0:
                    discrepancies.append({'asset': asset_id, 'wallet': wallet, 'balance': bal})
            issued = -self.balances[SYSTEM_WALLET].get(asset_id, 0)
            held = self.total_supply(asset_id)
            if issued != held:
                discrepancies.append({'asset': asset_id, 'issued': issued, 'held': held})
        return {'valid': not discrepancies, 'discrepancies': discrepancies}

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet.

        Raises:
            ValueError: If the wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("wallet_id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def transfer(self, asset_id: str, source: str, dest: str, amount: int, memo: str = "") -> Optional[Transfer]:
        """
        Move amount of asset_id from source to dest.

        A zero amount is a no-op and returns None.

        Raises:
            ValueError: If amount is not a non-negative int or source == dest
            WalletNotRegistered: If either wallet is unknown
            InsufficientFunds: If source (other than SYSTEM_WALLET) would overdraw
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError(f"Transfer amount must be an int, got {type(amount).__name__}")
        if amount < 0:
            raise ValueError(f"Transfer amount cannot be negative, got {amount}")
        if source == dest:
            raise ValueError("Source and dest must be different")
        if source not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {source} not registered")
        if dest not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {dest} not registered")
        if amount == 0:
            return None

        available = self.balances[source][asset_id]
        if source != SYSTEM_WALLET and available < amount:
            if self.verbose:
                print(f"✗ REJECTED: {source} {asset_id}: {available} < {amount}")
            raise InsufficientFunds(f"{source} holds {available} {asset_id}, needs {amount}")

        self.balances[source][asset_id] = available - amount
        self.balances[dest][asset_id] += amount

        record = Transfer(self._next_sequence, asset_id, source, dest, amount, memo)
        self._next_sequence += 1
        self.transfer_log.append(record)
        if self.verbose:
            print(f"✓ {record!r}" + (f" [{memo}]" if memo else ""))
        return record

    def issue(self, asset_id: str, to: str, amount: int, memo: str = "issue") -> Optional[Transfer]:
        """Create amount of asset_id in wallet `to` (funding, share minting)."""
        return self.transfer(asset_id, SYSTEM_WALLET, to, amount, memo)

    def redeem(self, asset_id: str, frm: str, amount: int, memo: str = "redeem") -> Optional[Transfer]:
        """Destroy amount of asset_id held by `frm`."""
        return self.transfer(asset_id, frm, SYSTEM_WALLET, amount, memo)

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> Any:
        return (
            {w: dict(bals) for w, bals in self.balances.items()},
            set(self.registered_wallets),
            list(self.transfer_log),
            self._next_sequence,
        )

    def restore(self, snapshot: Any) -> None:
        balances, wallets, log, sequence = snapshot
        self.balances = {w: defaultdict(int, bals) for w, bals in balances.items()}
        self.registered_wallets = set(wallets)
        self.transfer_log = list(log)
        self._next_sequence = sequence

    def clone(self) -> AssetBook:
        """Independent deep copy of this book."""
        cloned = AssetBook.__new__(AssetBook)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned.restore(copy.deepcopy(self.snapshot()))
        return cloned

    # ========================================================================
    # COLLABORATOR ADAPTERS
    # ========================================================================

    def gateway(self, holder: str) -> BookGateway:
        """AssetTransferGateway moving funds in and out of holder's wallet."""
        if holder not in self.registered_wallets:
            self.register_wallet(holder)
        return BookGateway(self, holder)

    def share_token_factory(self) -> ShareTokenFactory:
        """Factory the bank uses to create one share token per pool."""
        def create(asset_id: str, symbol: str) -> BookShareToken:
            return BookShareToken(self, symbol)
        return create

    def __repr__(self) -> str:
        return f"AssetBook({self.name!r}, {len(self.registered_wallets)} wallets, {len(self.transfer_log)} transfers)"


class BookGateway:
    """AssetTransferGateway backed by an AssetBook and bound to one holder."""

    def __init__(self, book: AssetBook, holder: str):
        self.book = book
        self.holder = holder

    def pull(self, asset_id: str, frm: str, amount: int) -> None:
        self.book.transfer(asset_id, frm, self.holder, amount, "pull")

    def push(self, asset_id: str, to: str, amount: int) -> None:
        self.book.transfer(asset_id, self.holder, to, amount, "push")

    def balance_of(self, asset_id: str, holder: str) -> int:
        return self.book.balance_of(asset_id, holder)

    def snapshot(self) -> Any:
        return self.book.snapshot()

    def restore(self, snapshot: Any) -> None:
        self.book.restore(snapshot)


class BookShareToken:
    """
    Pool share token stored on an AssetBook.

    Minting issues from SYSTEM_WALLET, burning redeems into it, so
    total_supply() is the amount held by everyone else. Holders move shares
    with AssetBook.transfer like any other asset.
    """

    def __init__(self, book: AssetBook, symbol: str):
        self.book = book
        self.symbol = symbol

    def mint(self, to: str, amount: int) -> None:
        self.book.issue(self.symbol, to, amount, "mint")

    def burn(self, frm: str, amount: int) -> None:
        self.book.redeem(self.symbol, frm, amount, "burn")

    def total_supply(self) -> int:
        return self.book.total_supply(self.symbol)

    def balance_of(self, holder: str) -> int:
        return self.book.balance_of(self.symbol, holder)

    def __repr__(self) -> str:
        return f"BookShareToken({self.symbol!r})"
