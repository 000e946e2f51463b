from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stakepool.db import get_session
from stakepool.auth_deps import get_current_caller, require_issuer
from stakepool.schemas.wallet import WalletSnapshot, WalletEntryPublic, GrantRequest, GrantResponse
from stakepool.services.wallet import wallet_balance, wallet_balances, wallet_entries, credit_tokens
import structlog

log = structlog.get_logger()

router = APIRouter(prefix="/wallet", tags=["wallet"])

@router.get("", response_model=WalletSnapshot)
async def get_wallet(session: AsyncSession = Depends(get_session), caller: str = Depends(get_current_caller)):
    bals = await wallet_balances(session, caller)
    rows = await wallet_entries(session, caller)
    return {
        "account_id": caller,
        "balances": bals,
        "entries": [
            WalletEntryPublic(
                id=r.id, asset=r.asset, type=r.type, amount=int(r.amount),
                external_id=r.external_id, note=r.note, created_at=r.created_at
            ) for r in rows
        ]
    }

@router.post("/grant", response_model=GrantResponse, status_code=201)
async def grant(payload: GrantRequest, session: AsyncSession = Depends(get_session), issuer: str = Depends(require_issuer)):
    """Credit tokens to an account. Issuers only; repeat calls with the same external_id are no-ops."""
    entry = await credit_tokens(
        session,
        account_id=payload.account_id,
        asset=payload.asset,
        tokens=payload.tokens,
        external_id=payload.external_id,
        note=f"grant_by:{issuer}",
    )
    await session.commit()
    log.info("wallet_grant", issuer=issuer, account=payload.account_id, asset=payload.asset, tokens=payload.tokens)
    return GrantResponse(
        entry_id=entry.id,
        account_id=entry.account_id,
        asset=entry.asset,
        balance=await wallet_balance(session, payload.account_id, payload.asset),
    )
