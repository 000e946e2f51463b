from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime

class WalletEntryPublic(BaseModel):
    id: UUID
    asset: str
    type: str
    amount: int
    external_id: str | None = None
    note: str | None = None
    created_at: datetime

class WalletSnapshot(BaseModel):
    account_id: str
    balances: dict[str, int]
    entries: list[WalletEntryPublic]

class GrantRequest(BaseModel):
    account_id: str = Field(min_length=1, max_length=128)
    asset: str = Field(min_length=1, max_length=16)
    tokens: int = Field(gt=0, description="Number of tokens to credit")
    external_id: str | None = Field(default=None, max_length=64, description="Idempotency key")

class GrantResponse(BaseModel):
    entry_id: UUID
    account_id: str
    asset: str
    balance: int
