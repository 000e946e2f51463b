from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, TypeVar

import structlog
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stakepool.config import Settings, settings as default_settings
from stakepool.db import SessionLocal
from stakepool.engine.collaborators import Clock, IssuerAllowlist, SystemClock
from stakepool.engine.earnings import EarningsQuote
from stakepool.engine.ledger import DividendLedger
from stakepool.models.pool import PoolEvent
from stakepool.services.store import load_ledger, persist_changes, stored_tick
from stakepool.services.wallet import WalletTransfer, flush_book, load_book

log = structlog.get_logger()

T = TypeVar("T")

POOL_LOCK_KEY = "pool:ledger"


async def _advisory_lock_pool(session: AsyncSession) -> None:
    # Serialize pool writes across workers (Postgres only); released at commit/rollback
    if session.bind.dialect.name == "postgresql":
        await session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:k))"), {"k": POOL_LOCK_KEY})


class PoolService:
    """
    Owns this process's DividendLedger. Mutating calls are serialized by a
    process lock plus, on Postgres, an advisory lock shared by all workers.
    Under those locks the ledger is reloaded if another worker has committed
    since it was loaded. Each call then runs the ledger operation against a
    wallet book preloaded in the request's session and writes ledger rows and
    wallet entries in the same transaction. If that commit fails the ledger is
    reloaded from the database so both agree again.

    Reads go through `reading()`, which takes the same process lock, so they
    never observe an operation that has not been committed yet.
    """

    def __init__(self, *, session_factory: async_sessionmaker, settings: Settings, clock: Clock):
        self.session_factory = session_factory
        self.settings = settings
        self.clock = clock
        self.stake_transfer = WalletTransfer(settings.stake_asset)
        self.reward_transfer = WalletTransfer(settings.reward_asset)
        self.ledger: DividendLedger | None = None
        self._lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        session_factory: async_sessionmaker = SessionLocal,
        *,
        settings: Settings = default_settings,
        clock: Clock | None = None,
    ) -> "PoolService":
        service = cls(session_factory=session_factory, settings=settings, clock=clock or SystemClock())
        await service.reload()
        return service

    async def reload(self) -> None:
        async with self.session_factory() as session:
            self.ledger = await load_ledger(
                session,
                stake_asset=self.stake_transfer,
                reward_asset=self.reward_transfer,
                access=IssuerAllowlist(self.settings.reward_issuers),
                clock=self.clock,
                max_range=self.settings.earnings_max_range,
            )
            await session.commit()
        log.info("pool_loaded", snapshots=len(self.ledger.history), total_shares=self.ledger.total_share())

    async def _refresh_if_stale(self, session: AsyncSession) -> None:
        tick = await stored_tick(session)
        if tick != self.ledger.last_tick:
            log.info("pool_stale_reload", stored_tick=tick, loaded_tick=self.ledger.last_tick)
            await self.reload()

    @asynccontextmanager
    async def reading(self, session: AsyncSession) -> AsyncIterator[DividendLedger]:
        async with self._lock:
            await self._refresh_if_stale(session)
            yield self.ledger

    async def _run(self, session: AsyncSession, caller: str, op: Callable[[DividendLedger], T]) -> T:
        async with self._lock:
            await _advisory_lock_pool(session)
            await self._refresh_if_stale(session)
            book = await load_book(
                session,
                accounts=[caller],
                assets=[self.settings.stake_asset, self.settings.reward_asset],
                custody_account=self.settings.custody_account,
            )
            self.stake_transfer.book = book
            self.reward_transfer.book = book
            try:
                result = op(self.ledger)
            except Exception:
                await session.rollback()
                raise
            finally:
                self.stake_transfer.book = None
                self.reward_transfer.book = None

            changes = self.ledger.drain_changes()
            try:
                await persist_changes(session, self.ledger, changes)
                flush_book(session, book)
                await session.commit()
            except Exception:
                await session.rollback()
                log.error("pool_commit_failed", participant=caller, exc_info=True)
                await self.reload()
                raise
            return result

    # ---------- operations ----------

    async def stake(self, session: AsyncSession, caller: str, amount: int) -> int:
        return await self._run(session, caller, lambda ledger: ledger.stake(caller, amount))

    async def withdraw(self, session: AsyncSession, caller: str, amount: int) -> int:
        return await self._run(session, caller, lambda ledger: ledger.withdraw(caller, amount))

    async def exit(self, session: AsyncSession, caller: str) -> tuple[int, int]:
        """Withdraw everything. Returns (shares withdrawn, reward paid)."""
        def op(ledger: DividendLedger) -> tuple[int, int]:
            shares = ledger.get_share_of(caller)
            return shares, ledger.exit(caller)
        return await self._run(session, caller, op)

    async def settle(
        self, session: AsyncSession, caller: str, end_index: int | None = None, start_index: int | None = None
    ) -> EarningsQuote:
        return await self._run(session, caller, lambda ledger: ledger.settle_quote(caller, end_index, start_index))

    async def deposit_reward(self, session: AsyncSession, caller: str, amount: int) -> int:
        return await self._run(session, caller, lambda ledger: ledger.deposit_reward(caller, amount))


async def recent_events(session: AsyncSession, *, participant_id: str | None = None, limit: int = 50) -> list[PoolEvent]:
    q = select(PoolEvent).order_by(PoolEvent.at.desc()).limit(limit)
    if participant_id:
        q = q.where(PoolEvent.participant_id == participant_id)
    return (await session.execute(q)).scalars().all()


_service: PoolService | None = None
_open_lock = asyncio.Lock()

async def get_pool_service() -> PoolService:
    global _service
    async with _open_lock:
        if _service is None:
            _service = await PoolService.open()
    return _service

def current_pool_service() -> PoolService | None:
    """The loaded service, if any request has opened it yet."""
    return _service

def reset_pool_service() -> None:
    """Forget the loaded ledger; the next request reloads it from the database."""
    global _service, _open_lock
    _service = None
    _open_lock = asyncio.Lock()
