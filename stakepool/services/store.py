from __future__ import annotations
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stakepool.engine.collaborators import AccessControl, AssetTransfer, Clock
from stakepool.engine.errors import InvariantViolation
from stakepool.engine.history import Snapshot, SnapshotHistory
from stakepool.engine.ledger import DividendLedger, LedgerChanges
from stakepool.engine.registry import ParticipantRegistry, Seat
from stakepool.models.pool import PoolEvent, SeatRow, SnapshotRow


async def load_ledger(
    session: AsyncSession,
    *,
    stake_asset: AssetTransfer,
    reward_asset: AssetTransfer,
    access: AccessControl,
    clock: Clock,
    max_range: int,
) -> DividendLedger:
    """
    Rebuild the ledger from the database. An empty database gets a fresh
    genesis snapshot, which is written (but not committed) here.
    """
    rows = (await session.execute(select(SnapshotRow).order_by(SnapshotRow.idx.asc()))).scalars().all()
    seats = (await session.execute(select(SeatRow))).scalars().all()

    common = dict(stake_asset=stake_asset, reward_asset=reward_asset, access=access, clock=clock, max_range=max_range)
    if not rows:
        ledger = DividendLedger(**common)
        await persist_changes(session, ledger, ledger.drain_changes())
        return ledger

    for expected, r in enumerate(rows):
        if r.idx != expected:
            raise InvariantViolation(f"snapshot rows skip from {expected - 1} to {r.idx}")

    history = SnapshotHistory.restore(
        Snapshot(timestamp=int(r.timestamp), reward_received=int(r.reward_received), total_shares=int(r.total_shares))
        for r in rows
    )
    registry = ParticipantRegistry.restore({
        s.participant_id: Seat(settlement_time=int(s.settlement_time), shares=int(s.shares)) for s in seats
    })
    return DividendLedger(history=history, registry=registry, **common)


async def persist_changes(session: AsyncSession, ledger: DividendLedger, changes: LedgerChanges) -> None:
    for idx in changes.snapshot_indices:
        s = ledger.history[idx]
        await session.merge(SnapshotRow(idx=idx, timestamp=s.timestamp, reward_received=s.reward_received, total_shares=s.total_shares))
    for pid in sorted(changes.seat_ids):
        seat = ledger.registry.get_seat(pid)
        await session.merge(SeatRow(participant_id=pid, shares=seat.shares, settlement_time=seat.settlement_time))
    session.add_all([
        PoolEvent(type=e.type, participant_id=e.participant_id, amount=e.amount, at=e.at, snapshot_idx=e.snapshot_index)
        for e in changes.events
    ])
    await session.flush()


async def stored_tick(session: AsyncSession) -> int:
    """The last_tick a ledger loaded from these rows would have."""
    snap = await session.scalar(select(func.max(SnapshotRow.timestamp)))
    seat = await session.scalar(select(func.max(SeatRow.settlement_time)))
    return max(int(snap or 0), int(seat or 0))
