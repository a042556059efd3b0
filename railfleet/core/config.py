from enum import Enum
from functools import lru_cache
import os
from typing import List, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShopCompletionIdlePolicy(str, Enum):
    """What completing a shop visit does to a car's open idle period."""
    CLOSE = "close"
    LEAVE_OPEN = "leave_open"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    debug: bool = False
    project_name: str = "RailFleet Lifecycle API"
    environment: str = "development"

    # Raw CORS origins string - read from env
    cors_origins_raw: Optional[str] = Field(
        default=None,
        alias="CORS_ORIGINS"
    )

    @computed_field
    @property
    def backend_cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from environment variable (comma-separated string)."""
        raw = self.cors_origins_raw
        if not raw:
            raw = os.environ.get("CORS_ORIGINS") or ""

        if not raw or not raw.strip():
            return []

        origins = []
        for origin in raw.split(","):
            origin = origin.strip()
            if origin:
                origins.append(origin)
        return origins

    database_url: str  # Required - no default, must be set in .env

    # Idle tracking: rate type snapshotted into idle_periods.daily_rate
    idle_rate_type: str = "combined"

    # Shop visit completion vs. open idle periods. "close" ends the idle window
    # when the visit completes; "leave_open" leaves it to an explicit close call.
    shop_completion_idle_policy: ShopCompletionIdlePolicy = ShopCompletionIdlePolicy.CLOSE

    # Returning a car off rent puts it in front of a planner
    release_creates_triage: bool = True

    # Cost estimate collaborator (read-only). Unset = assignments get no estimate.
    cost_estimator_url: Optional[str] = None
    cost_estimator_timeout_seconds: float = 5.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
