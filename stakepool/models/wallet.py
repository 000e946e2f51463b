from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, BigInteger, DateTime, Uuid, UniqueConstraint, func
from stakepool.db import Base

class WalletEntry(Base):
    """
    Per-account, per-asset token movements. Balance = Σ(amount).
    Sign convention:
      - CREDIT => +amount (issuer grant)
      - PULL   => -amount on the payer, +amount on custody (into the pool)
      - PUSH   => -amount on custody, +amount on the payee (out of the pool)
    Idempotency: external_id is unique when set (grants only).
    """
    __tablename__ = "wallet_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    asset: Mapped[str] = mapped_column(String(16), nullable=False)

    type: Mapped[str] = mapped_column(String(16), nullable=False)   # CREDIT | PULL | PUSH
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    external_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("external_id", name="uq_wallet_external_id"),
    )
