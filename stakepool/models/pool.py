from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, BigInteger, DateTime, Uuid, CheckConstraint, func
from stakepool.db import Base

class SnapshotRow(Base):
    """
    One row per history entry; `idx` is the position in the append-only history.
    Only the row with the highest idx ever has total_shares rewritten.
    Timestamps are ledger ticks (integer ns), not wall-clock DateTimes.
    """
    __tablename__ = "pool_snapshots"

    idx: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reward_received: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_shares: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint("reward_received >= 0", name="ck_pool_snapshots_reward_nonneg"),
        CheckConstraint("total_shares >= 0", name="ck_pool_snapshots_total_nonneg"),
    )


class SeatRow(Base):
    __tablename__ = "pool_seats"

    participant_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    shares: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    settlement_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("shares >= 0", name="ck_pool_seats_shares_nonneg"),
    )


class PoolEvent(Base):
    """
    Event-sourced record of committed transfers.
    Types: STAKED | WITHDRAWN | REWARD_PAID | REWARD_ADDED (amounts always positive).
    snapshot_idx is set for REWARD_ADDED only.
    """
    __tablename__ = "pool_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    participant_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    at: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    snapshot_idx: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
