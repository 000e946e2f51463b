from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from stakepool.db import get_session
from stakepool.auth_deps import get_current_caller
from stakepool.engine.errors import (
    EmptyPool, InsufficientShares, InvalidSnapshot, InvariantViolation, LedgerError,
    LedgerHalted, NoSeat, ReentrancyViolation, Unauthorized,
)
from stakepool.schemas.pool import (
    AmountRequest, ClaimRequest, ClaimResponse, PoolEventPublic, PoolSummary,
    RewardResponse, SeatPublic, SnapshotPublic, StakeResponse,
)
from stakepool.services.pool import PoolService, get_pool_service, recent_events
from stakepool.services.wallet import InsufficientFunds

router = APIRouter(prefix="/pool", tags=["pool"])

# first match wins, so subclasses before LedgerError
_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (InsufficientFunds, 402),
    (Unauthorized, 403),
    (NoSeat, 404),
    (InsufficientShares, 409),
    (EmptyPool, 409),
    (ReentrancyViolation, 409),
    (LedgerHalted, 503),
    (InvariantViolation, 500),
    (InvalidSnapshot, 500),
    (LedgerError, 400),
]

def _http_error(e: Exception) -> HTTPException:
    for kind, code in _STATUS_BY_ERROR:
        if isinstance(e, kind):
            return HTTPException(status_code=code, detail=f"{type(e).__name__}: {e}")
    return HTTPException(status_code=500, detail="Unexpected ledger failure")

async def _stake_response(pool: PoolService, session: AsyncSession, caller: str, reward_paid: int) -> StakeResponse:
    async with pool.reading(session) as ledger:
        return StakeResponse(
            participant_id=caller,
            shares=ledger.get_share_of(caller),
            total_shares=ledger.total_share(),
            reward_paid=reward_paid,
        )


@router.post("/stake", response_model=StakeResponse)
async def stake(
    payload: AmountRequest,
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
    pool: PoolService = Depends(get_pool_service),
):
    try:
        paid = await pool.stake(session, caller, payload.amount)
    except (LedgerError, InsufficientFunds) as e:
        raise _http_error(e)
    return await _stake_response(pool, session, caller, paid)

@router.post("/withdraw", response_model=StakeResponse)
async def withdraw(
    payload: AmountRequest,
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
    pool: PoolService = Depends(get_pool_service),
):
    try:
        paid = await pool.withdraw(session, caller, payload.amount)
    except (LedgerError, InsufficientFunds) as e:
        raise _http_error(e)
    return await _stake_response(pool, session, caller, paid)

@router.post("/exit", response_model=StakeResponse)
async def exit_pool(
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
    pool: PoolService = Depends(get_pool_service),
):
    try:
        _shares, paid = await pool.exit(session, caller)
    except (LedgerError, InsufficientFunds) as e:
        raise _http_error(e)
    return await _stake_response(pool, session, caller, paid)

@router.post("/claim", response_model=ClaimResponse)
async def claim(
    payload: ClaimRequest | None = None,
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
    pool: PoolService = Depends(get_pool_service),
):
    """Settle pending rewards. An explicit range forfeits whatever lies outside it."""
    payload = payload or ClaimRequest()
    try:
        quote = await pool.settle(session, caller, payload.end_index, payload.start_index)
    except (LedgerError, InsufficientFunds) as e:
        raise _http_error(e)
    async with pool.reading(session) as ledger:
        settlement_time = ledger.get_appointment_time_of(caller)
    return ClaimResponse(
        participant_id=caller,
        reward_paid=quote.amount,
        end_index=quote.end_index,
        start_index=quote.start_index,
        stranded_before=quote.stranded_before,
        forfeited_after=quote.forfeited_after,
        settlement_time=settlement_time,
    )

@router.post("/rewards", response_model=RewardResponse, status_code=201)
async def deposit_reward(
    payload: AmountRequest,
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
    pool: PoolService = Depends(get_pool_service),
):
    try:
        index = await pool.deposit_reward(session, caller, payload.amount)
    except (LedgerError, InsufficientFunds) as e:
        raise _http_error(e)
    async with pool.reading(session) as ledger:
        return RewardResponse(snapshot_index=index, amount=payload.amount, total_shares=ledger.total_share())


@router.get("", response_model=PoolSummary)
async def pool_summary(
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
    pool: PoolService = Depends(get_pool_service),
):
    async with pool.reading(session) as ledger:
        latest = ledger.history.latest()
        return PoolSummary(
            total_shares=ledger.total_share(),
            snapshots=len(ledger.history),
            latest=SnapshotPublic(index=ledger.history.latest_index(), timestamp=latest.timestamp,
                                  reward_received=latest.reward_received, total_shares=latest.total_shares),
            max_range=ledger.max_range,
            halted=ledger.halted,
        )

@router.get("/seats/{participant_id}", response_model=SeatPublic)
async def get_seat(
    participant_id: str = Path(..., min_length=1, max_length=128),
    end_index: int | None = Query(default=None, ge=0),
    start_index: int | None = Query(default=None, ge=0),
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
    pool: PoolService = Depends(get_pool_service),
):
    async with pool.reading(session) as ledger:
        try:
            quote = ledger.quote(participant_id, end_index, start_index)
        except LedgerError as e:
            raise _http_error(e)
        return SeatPublic(
            participant_id=participant_id,
            shares=ledger.get_share_of(participant_id),
            settlement_time=ledger.get_appointment_time_of(participant_id),
            earnings=quote.amount,
            end_index=quote.end_index,
            start_index=quote.start_index,
            stranded_before=quote.stranded_before,
            forfeited_after=quote.forfeited_after,
        )

@router.get("/snapshots", response_model=list[SnapshotPublic])
async def list_snapshots(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
    pool: PoolService = Depends(get_pool_service),
):
    async with pool.reading(session) as ledger:
        page = ledger.history.snapshots(offset, limit)
    return [
        SnapshotPublic(index=offset + i, timestamp=s.timestamp, reward_received=s.reward_received, total_shares=s.total_shares)
        for i, s in enumerate(page)
    ]

@router.get("/events", response_model=list[PoolEventPublic])
async def list_events(
    participant_id: str | None = Query(default=None, max_length=128),
    limit: int = Query(default=50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(get_current_caller),
):
    rows = await recent_events(session, participant_id=participant_id, limit=limit)
    return [
        PoolEventPublic(id=r.id, type=r.type, participant_id=r.participant_id, amount=int(r.amount),
                        at=int(r.at), snapshot_index=r.snapshot_idx, created_at=r.created_at)
        for r in rows
    ]
