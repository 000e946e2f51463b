from __future__ import annotations
import asyncio
import httpx
from httpx import AsyncClient
import pytest

from stakepool.db import SessionLocal
from stakepool.engine.errors import InvalidSnapshot
from stakepool.main import app
from stakepool.models.pool import SeatRow, SnapshotRow
from stakepool.security import make_access_token
from stakepool.services.pool import PoolService, get_pool_service, reset_pool_service


def _hdrs(sub: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_access_token(sub)}"}

def _client() -> AsyncClient:
    return AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

async def _grant(ac: AsyncClient, account: str, asset: str, tokens: int, external_id: str | None = None) -> dict:
    body = {"account_id": account, "asset": asset, "tokens": tokens}
    if external_id:
        body["external_id"] = external_id
    r = await ac.post("/wallet/grant", headers=_hdrs("treasury"), json=body)
    assert r.status_code == 201, r.text
    return r.json()

async def _balances(ac: AsyncClient, sub: str) -> dict[str, int]:
    r = await ac.get("/wallet", headers=_hdrs(sub))
    assert r.status_code == 200, r.text
    return r.json()["balances"]


@pytest.mark.asyncio
async def test_stake_reward_claim_flow(db):
    async with _client() as ac:
        await _grant(ac, "alice", "STAKE", 100)
        await _grant(ac, "bob", "STAKE", 100)
        await _grant(ac, "treasury", "REWARD", 30)

        r = await ac.post("/pool/stake", headers=_hdrs("alice"), json={"amount": 100})
        assert r.status_code == 200, r.text
        assert r.json() == {"participant_id": "alice", "shares": 100, "total_shares": 100, "reward_paid": 0}

        r = await ac.post("/pool/rewards", headers=_hdrs("treasury"), json={"amount": 10})
        assert r.status_code == 201, r.text
        assert r.json()["snapshot_index"] == 1

        r = await ac.post("/pool/claim", headers=_hdrs("alice"))
        assert r.status_code == 200, r.text
        assert r.json()["reward_paid"] == 10

        r = await ac.post("/pool/stake", headers=_hdrs("bob"), json={"amount": 100})
        assert r.json()["total_shares"] == 200

        r = await ac.post("/pool/rewards", headers=_hdrs("treasury"), json={"amount": 20})
        assert r.json()["snapshot_index"] == 2

        r = await ac.post("/pool/claim", headers=_hdrs("alice"), json={})
        assert r.json()["reward_paid"] == 10
        r = await ac.post("/pool/claim", headers=_hdrs("bob"))
        assert r.json()["reward_paid"] == 10

        assert (await _balances(ac, "alice")) == {"STAKE": 0, "REWARD": 20}
        assert (await _balances(ac, "bob")) == {"STAKE": 0, "REWARD": 10}
        assert (await _balances(ac, "pool")) == {"STAKE": 200, "REWARD": 0}

        r = await ac.get("/pool", headers=_hdrs("alice"))
        summary = r.json()
        assert summary["total_shares"] == 200
        assert summary["snapshots"] == 3
        assert summary["latest"]["reward_received"] == 20
        assert summary["max_range"] == 365
        assert summary["halted"] is None


@pytest.mark.asyncio
async def test_errors_map_to_status_codes(db):
    async with _client() as ac:
        await _grant(ac, "alice", "STAKE", 50)
        await _grant(ac, "treasury", "REWARD", 50)

        r = await ac.post("/pool/rewards", headers=_hdrs("treasury"), json={"amount": 5})
        assert r.status_code == 409 and "EmptyPool" in r.json()["detail"]

        r = await ac.post("/pool/stake", headers=_hdrs("alice"), json={"amount": 80})
        assert r.status_code == 402

        r = await ac.post("/pool/stake", headers=_hdrs("alice"), json={"amount": 0})
        assert r.status_code == 422

        r = await ac.post("/pool/withdraw", headers=_hdrs("alice"), json={"amount": 1})
        assert r.status_code == 404

        assert (await ac.post("/pool/stake", headers=_hdrs("alice"), json={"amount": 50})).status_code == 200

        r = await ac.post("/pool/withdraw", headers=_hdrs("alice"), json={"amount": 51})
        assert r.status_code == 409

        r = await ac.post("/pool/rewards", headers=_hdrs("alice"), json={"amount": 5})
        assert r.status_code == 403

        r = await ac.post("/pool/claim", headers=_hdrs("alice"), json={"end_index": 9, "start_index": 0})
        assert r.status_code == 400
        r = await ac.post("/pool/claim", headers=_hdrs("alice"), json={"end_index": 1})
        assert r.status_code == 400

        r = await ac.get("/pool")
        assert r.status_code in (401, 403)

        # failed calls left nothing behind
        assert (await _balances(ac, "alice")) == {"STAKE": 0}
        r = await ac.get("/pool/seats/alice", headers=_hdrs("alice"))
        assert r.json()["shares"] == 50


@pytest.mark.asyncio
async def test_state_survives_reload(db):
    async with _client() as ac:
        await _grant(ac, "alice", "STAKE", 300)
        await _grant(ac, "treasury", "REWARD", 100)
        await ac.post("/pool/stake", headers=_hdrs("alice"), json={"amount": 300})
        await ac.post("/pool/rewards", headers=_hdrs("treasury"), json={"amount": 60})
        await ac.post("/pool/withdraw", headers=_hdrs("alice"), json={"amount": 100})
        await ac.post("/pool/rewards", headers=_hdrs("treasury"), json={"amount": 40})

        before = (await ac.get("/pool/seats/alice", headers=_hdrs("alice"))).json()
        snaps_before = (await ac.get("/pool/snapshots", headers=_hdrs("alice"))).json()
        assert before["shares"] == 200
        assert before["earnings"] == 40

        # simulate a process restart: the ledger is rebuilt from the database
        reset_pool_service()

        after = (await ac.get("/pool/seats/alice", headers=_hdrs("alice"))).json()
        snaps_after = (await ac.get("/pool/snapshots", headers=_hdrs("alice"))).json()
        assert after == before
        assert snaps_after == snaps_before
        assert [s["reward_received"] for s in snaps_after] == [0, 60, 40]

        r = await ac.post("/pool/exit", headers=_hdrs("alice"))
        assert r.status_code == 200, r.text
        assert r.json() == {"participant_id": "alice", "shares": 0, "total_shares": 0, "reward_paid": 40}
        assert (await _balances(ac, "alice")) == {"STAKE": 300, "REWARD": 100}


@pytest.mark.asyncio
async def test_seat_query_with_explicit_range(db):
    async with _client() as ac:
        await _grant(ac, "alice", "STAKE", 10)
        await _grant(ac, "treasury", "REWARD", 100)
        await ac.post("/pool/stake", headers=_hdrs("alice"), json={"amount": 10})
        for amount in (1, 2, 4):
            await ac.post("/pool/rewards", headers=_hdrs("treasury"), json={"amount": amount})

        r = await ac.get("/pool/seats/alice?end_index=3&start_index=2", headers=_hdrs("bob"))
        body = r.json()
        assert body["earnings"] == 2
        assert body["stranded_before"] and body["forfeited_after"]

        r = await ac.get("/pool/seats/alice", headers=_hdrs("bob"))
        assert r.json()["earnings"] == 7

        r = await ac.get("/pool/seats/nobody", headers=_hdrs("bob"))
        assert r.json()["shares"] == 0 and r.json()["settlement_time"] == 0

        r = await ac.post("/pool/claim", headers=_hdrs("alice"), json={"end_index": 3, "start_index": 2})
        claim = r.json()
        assert claim["reward_paid"] == 2
        assert claim["forfeited_after"] is True
        r = await ac.get("/pool/seats/alice", headers=_hdrs("bob"))
        assert r.json()["earnings"] == 0


@pytest.mark.asyncio
async def test_events_are_recorded(db):
    async with _client() as ac:
        await _grant(ac, "alice", "STAKE", 10)
        await _grant(ac, "treasury", "REWARD", 10)
        await ac.post("/pool/stake", headers=_hdrs("alice"), json={"amount": 10})
        await ac.post("/pool/rewards", headers=_hdrs("treasury"), json={"amount": 10})
        await ac.post("/pool/claim", headers=_hdrs("alice"))

        r = await ac.get("/pool/events", headers=_hdrs("alice"))
        assert r.status_code == 200
        assert [e["type"] for e in r.json()] == ["REWARD_PAID", "REWARD_ADDED", "STAKED"]

        r = await ac.get("/pool/events?participant_id=treasury", headers=_hdrs("alice"))
        events = r.json()
        assert len(events) == 1 and events[0]["snapshot_index"] == 1


@pytest.mark.asyncio
async def test_grant_is_issuer_only_and_idempotent(db):
    async with _client() as ac:
        r = await ac.post("/wallet/grant", headers=_hdrs("alice"), json={"account_id": "alice", "asset": "STAKE", "tokens": 5})
        assert r.status_code == 403

        first = await _grant(ac, "alice", "STAKE", 5, external_id="grant-1")
        second = await _grant(ac, "alice", "STAKE", 5, external_id="grant-1")
        assert first["entry_id"] == second["entry_id"]
        assert second["balance"] == 5


@pytest.mark.asyncio
async def test_reward_over_zero_shares_halts_pool_on_claim(db):
    async with SessionLocal() as s:
        s.add_all([
            SnapshotRow(idx=0, timestamp=0, reward_received=0, total_shares=0),
            SnapshotRow(idx=1, timestamp=10, reward_received=5, total_shares=0),
            SnapshotRow(idx=2, timestamp=20, reward_received=7, total_shares=100),
            SeatRow(participant_id="alice", shares=100, settlement_time=5),
        ])
        await s.commit()

    pool = await get_pool_service()
    async with SessionLocal() as s:
        with pytest.raises(InvalidSnapshot):
            await pool.settle(s, "alice")
    assert pool.ledger.halted

    async with _client() as ac:
        r = await ac.post("/pool/claim", headers=_hdrs("alice"))
        assert r.status_code == 503
        r = await ac.post("/pool/rewards", headers=_hdrs("treasury"), json={"amount": 1})
        assert r.status_code == 503
        summary = (await ac.get("/pool", headers=_hdrs("alice"))).json()
        assert summary["halted"].startswith("InvalidSnapshot")
        assert summary["total_shares"] == 100


@pytest.mark.asyncio
async def test_reads_wait_for_an_operation_in_progress(db):
    async with _client() as ac:
        await _grant(ac, "alice", "STAKE", 10)
        pool = await get_pool_service()

        async with pool._lock:
            read = asyncio.create_task(ac.get("/pool/seats/alice", headers=_hdrs("alice")))
            await asyncio.sleep(0.05)
            assert not read.done()

        r = await read
        assert r.status_code == 200
        assert r.json()["shares"] == 0


@pytest.mark.asyncio
async def test_second_worker_picks_up_committed_changes(db):
    async with _client() as ac:
        await _grant(ac, "alice", "STAKE", 100)
        await _grant(ac, "bob", "STAKE", 100)
        await _grant(ac, "treasury", "REWARD", 10)

    worker_a = await PoolService.open()
    worker_b = await PoolService.open()

    async with SessionLocal() as s:
        await worker_a.stake(s, "alice", 100)
    async with SessionLocal() as s:
        await worker_b.stake(s, "bob", 100)
    assert worker_b.ledger.total_share() == 200
    assert worker_b.ledger.get_share_of("alice") == 100

    async with SessionLocal() as s:
        assert await worker_a.deposit_reward(s, "treasury", 10) == 1
    async with SessionLocal() as s:
        async with worker_b.reading(s) as ledger:
            assert len(ledger.history) == 2
            assert ledger.get_earnings("alice") == 5
            assert ledger.get_earnings("bob") == 5
