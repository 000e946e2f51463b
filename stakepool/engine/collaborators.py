from __future__ import annotations
import time
from typing import Iterable, Protocol


class InsufficientFunds(Exception):
    pass


class AssetTransfer(Protocol):
    """
    Transfers that also define commit() and discard() are treated as staged:
    the ledger calls one of them when the operation finishes.
    """

    def pull(self, account: str, amount: int) -> None:
        """Move `amount` from `account` into ledger custody; raise if it cannot."""

    def push(self, account: str, amount: int) -> None:
        """Move `amount` out of custody to `account`."""


class AccessControl(Protocol):
    def is_authorized_issuer(self, caller: str) -> bool: ...


class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    def now(self) -> int:
        return time.time_ns()


class IssuerAllowlist:
    def __init__(self, issuers: Iterable[str]):
        self.issuers = frozenset(i.strip() for i in issuers if i and i.strip())

    def is_authorized_issuer(self, caller: str) -> bool:
        return caller in self.issuers


class InMemoryAssetBook:
    """
    Balances per (account, asset) for embedding the ledger without a database.
    `book.asset("STAKE")` gives the AssetTransfer for one asset kind.

    Moves are staged: each one is checked against the balance the earlier
    staged moves would leave, and nothing changes until commit(). The ledger
    commits at the end of a successful operation and discards otherwise.
    """

    def __init__(self, custody_account: str = "pool"):
        self.custody_account = custody_account
        self.balances: dict[tuple[str, str], int] = {}
        self.staged: list[tuple[str, str, str, int]] = []

    def credit(self, account: str, asset: str, amount: int) -> None:
        self.balances[(account, asset)] = self.balance(account, asset) + amount

    def balance(self, account: str, asset: str) -> int:
        return self.balances.get((account, asset), 0)

    def available(self, account: str, asset: str) -> int:
        have = self.balance(account, asset)
        for src, dst, kind, amount in self.staged:
            if kind != asset:
                continue
            if src == account:
                have -= amount
            if dst == account:
                have += amount
        return have

    def move(self, src: str, dst: str, asset: str, amount: int) -> None:
        have = self.available(src, asset)
        if have < amount:
            raise InsufficientFunds(f"{src} needs {amount} {asset}, has {have}")
        self.staged.append((src, dst, asset, amount))

    def commit(self) -> None:
        staged, self.staged = self.staged, []
        for src, dst, asset, amount in staged:
            self.apply(src, dst, asset, amount)

    def discard(self) -> None:
        self.staged = []

    def apply(self, src: str, dst: str, asset: str, amount: int) -> None:
        self.balances[(src, asset)] = self.balance(src, asset) - amount
        self.credit(dst, asset, amount)

    def asset(self, asset: str) -> "BookTransfer":
        return BookTransfer(self, asset)


class BookTransfer:
    def __init__(self, book: InMemoryAssetBook, asset: str):
        self.book = book
        self.asset = asset

    def pull(self, account: str, amount: int) -> None:
        self.book.move(account, self.book.custody_account, self.asset, amount)

    def push(self, account: str, amount: int) -> None:
        self.book.move(self.book.custody_account, account, self.asset, amount)

    def commit(self) -> None:
        self.book.commit()

    def discard(self) -> None:
        self.book.discard()
