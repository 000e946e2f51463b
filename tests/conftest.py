from __future__ import annotations
import os
import tempfile

# Point the app at a throwaway SQLite file before anything imports stakepool.config
_db_dir = tempfile.mkdtemp(prefix="stakepool-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir}/test.db"
os.environ["REWARD_ISSUERS"] = "treasury"
os.environ["EARNINGS_MAX_RANGE"] = "365"

import pytest
import pytest_asyncio

from stakepool.db import Base, engine
import stakepool.models.pool  # register tables
import stakepool.models.wallet
from stakepool.engine.collaborators import InMemoryAssetBook, IssuerAllowlist
from stakepool.engine.ledger import DividendLedger
from stakepool.services.pool import reset_pool_service


class ManualClock:
    def __init__(self, t: int = 1_000):
        self.t = t

    def now(self) -> int:
        return self.t

    def advance(self, dt: int = 10) -> int:
        self.t += dt
        return self.t


@pytest.fixture
def clock():
    return ManualClock()

@pytest.fixture
def book():
    b = InMemoryAssetBook(custody_account="pool")
    for who in ("alice", "bob", "carol"):
        b.credit(who, "STAKE", 10_000)
    b.credit("treasury", "REWARD", 1_000_000)
    return b

@pytest.fixture
def ledger(book, clock):
    return DividendLedger(
        stake_asset=book.asset("STAKE"),
        reward_asset=book.asset("REWARD"),
        access=IssuerAllowlist(["treasury"]),
        clock=clock,
    )

@pytest_asyncio.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    reset_pool_service()
    yield engine
    reset_pool_service()
    await engine.dispose()
