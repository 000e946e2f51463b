from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from stakepool.config import settings
from stakepool.logging_setup import configure_logging
from stakepool.routes.system import router as system_router
from stakepool.routes.pool import router as pool_router
from stakepool.routes.wallet import router as wallet_router
from stakepool.services.pool import get_pool_service
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha,
             max_range=settings.earnings_max_range, issuers=len(settings.reward_issuers))
    await get_pool_service()
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description="Proportional reward-distribution pool: stake, deposit rewards, claim pro-rata shares",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system_router)
app.include_router(pool_router)
app.include_router(wallet_router)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
