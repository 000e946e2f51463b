from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "stakepool-api")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/stakepool_dev")

    # Earnings: default claims only look back this many snapshots
    earnings_max_range: int = int(os.getenv("EARNINGS_MAX_RANGE", "365"))

    # Accounts allowed to deposit rewards and grant wallet credit
    reward_issuers: list[str] = [i for i in os.getenv("REWARD_ISSUERS", "").split(",") if i.strip()]

    # Asset kinds moved by the pool (may be the same asset)
    stake_asset: str = os.getenv("STAKE_ASSET", "STAKE")
    reward_asset: str = os.getenv("REWARD_ASSET", "REWARD")
    custody_account: str = os.getenv("CUSTODY_ACCOUNT", "pool")

settings = Settings()
