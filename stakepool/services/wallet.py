from __future__ import annotations
from typing import Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from stakepool.models.wallet import WalletEntry
from stakepool.engine.collaborators import InMemoryAssetBook, InsufficientFunds

__all__ = [
    "InsufficientFunds", "WalletBook", "WalletTransfer",
    "wallet_balance", "wallet_balances", "wallet_entries", "credit_tokens", "load_book", "flush_book",
]


async def wallet_balance(session: AsyncSession, account_id: str, asset: str) -> int:
    total = await session.scalar(
        select(func.coalesce(func.sum(WalletEntry.amount), 0))
        .where(WalletEntry.account_id == account_id, WalletEntry.asset == asset)
    )
    return int(total or 0)

async def wallet_balances(session: AsyncSession, account_id: str) -> dict[str, int]:
    rows = (await session.execute(
        select(WalletEntry.asset, func.sum(WalletEntry.amount))
        .where(WalletEntry.account_id == account_id)
        .group_by(WalletEntry.asset)
    )).all()
    return {asset: int(total or 0) for (asset, total) in rows}

async def wallet_entries(session: AsyncSession, account_id: str, limit: int = 100) -> list[WalletEntry]:
    return (await session.execute(
        select(WalletEntry)
        .where(WalletEntry.account_id == account_id)
        .order_by(WalletEntry.created_at.desc())
        .limit(limit)
    )).scalars().all()


async def credit_tokens(
    session: AsyncSession,
    *,
    account_id: str,
    asset: str,
    tokens: int,
    external_id: str | None,
    note: str,
) -> WalletEntry:
    """
    Credit tokens to an account (issuer grants).
    Idempotent by external_id when one is given.
    """
    if tokens <= 0:
        raise ValueError("tokens must be > 0")

    if external_id:
        exists = await session.scalar(select(WalletEntry).where(WalletEntry.external_id == external_id))
        if exists:
            return exists

    e = WalletEntry(
        account_id=account_id,
        asset=asset,
        type="CREDIT",
        amount=int(tokens),
        external_id=external_id,
        note=note,
    )
    session.add(e)
    return e


class WalletBook(InMemoryAssetBook):
    """
    Balances preloaded for the accounts one pool operation may touch.
    Committed moves become pairs of WalletEntry rows in `pending`; nothing
    reaches the session until flush_book, so a failed operation just drops the book.
    """

    def __init__(self, custody_account: str):
        super().__init__(custody_account)
        self.pending: list[WalletEntry] = []

    def apply(self, src: str, dst: str, asset: str, amount: int) -> None:
        super().apply(src, dst, asset, amount)
        kind = "PUSH" if src == self.custody_account else "PULL"
        self.pending.append(WalletEntry(account_id=src, asset=asset, type=kind, amount=-int(amount), note=f"to:{dst}"))
        self.pending.append(WalletEntry(account_id=dst, asset=asset, type=kind, amount=int(amount), note=f"from:{src}"))


class WalletTransfer:
    """AssetTransfer for one asset kind over whichever WalletBook is bound for the current operation."""

    def __init__(self, asset: str):
        self.asset = asset
        self.book: WalletBook | None = None

    def _bound(self) -> WalletBook:
        if self.book is None:
            raise RuntimeError(f"no wallet book bound for {self.asset} transfers")
        return self.book

    def pull(self, account: str, amount: int) -> None:
        book = self._bound()
        book.move(account, book.custody_account, self.asset, amount)

    def push(self, account: str, amount: int) -> None:
        book = self._bound()
        book.move(book.custody_account, account, self.asset, amount)

    def commit(self) -> None:
        self._bound().commit()

    def discard(self) -> None:
        if self.book is not None:
            self.book.discard()


async def load_book(session: AsyncSession, *, accounts: Iterable[str], assets: Iterable[str], custody_account: str) -> WalletBook:
    book = WalletBook(custody_account)
    for account in set(accounts) | {custody_account}:
        for asset in set(assets):
            book.balances[(account, asset)] = await wallet_balance(session, account, asset)
    return book

def flush_book(session: AsyncSession, book: WalletBook) -> None:
    session.add_all(book.pending)
    book.pending = []
