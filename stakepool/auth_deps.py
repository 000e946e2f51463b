from __future__ import annotations
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from stakepool.config import settings
from stakepool.engine.collaborators import IssuerAllowlist
from stakepool.security import decode_token

security = HTTPBearer()

async def get_current_caller(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """The caller's participant id is the `sub` claim of their access token."""
    token = credentials.credentials
    try:
        data = decode_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    if data.get("type") != "access":
        raise HTTPException(status_code=401, detail="Wrong token type")
    sub = data.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return str(sub)

async def require_issuer(caller: str = Depends(get_current_caller)) -> str:
    if not IssuerAllowlist(settings.reward_issuers).is_authorized_issuer(caller):
        raise HTTPException(status_code=403, detail="Reward issuer role required")
    return caller
