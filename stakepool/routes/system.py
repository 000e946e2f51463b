from __future__ import annotations
from fastapi import APIRouter, Request
from datetime import datetime, timezone
from stakepool.config import settings
from stakepool.services.pool import current_pool_service

router = APIRouter()

def _ledger_status() -> str:
    pool = current_pool_service()
    if pool is None or pool.ledger is None:
        return "not_loaded"
    return "halted" if pool.ledger.halted else "ok"

@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "env": settings.environment,
        "ledger": _ledger_status(),
        "time": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("x-request-id") or request.state.request_id,
    }

@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
        "max_range": settings.earnings_max_range,
    }
