from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime

class AmountRequest(BaseModel):
    amount: int = Field(gt=0, description="Number of tokens")

class ClaimRequest(BaseModel):
    end_index: int | None = Field(default=None, ge=0)
    start_index: int | None = Field(default=None, ge=0)

class StakeResponse(BaseModel):
    participant_id: str
    shares: int
    total_shares: int
    reward_paid: int

class ClaimResponse(BaseModel):
    participant_id: str
    reward_paid: int
    end_index: int
    start_index: int
    stranded_before: bool
    forfeited_after: bool
    settlement_time: int

class RewardResponse(BaseModel):
    snapshot_index: int
    amount: int
    total_shares: int

class SnapshotPublic(BaseModel):
    index: int
    timestamp: int
    reward_received: int
    total_shares: int

class PoolSummary(BaseModel):
    total_shares: int
    snapshots: int
    latest: SnapshotPublic
    max_range: int
    halted: str | None = None

class SeatPublic(BaseModel):
    participant_id: str
    shares: int
    settlement_time: int
    earnings: int
    end_index: int
    start_index: int
    stranded_before: bool
    forfeited_after: bool

class PoolEventPublic(BaseModel):
    id: UUID
    type: str
    participant_id: str
    amount: int
    at: int
    snapshot_index: int | None = None
    created_at: datetime
