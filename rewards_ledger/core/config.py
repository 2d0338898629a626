from functools import lru_cache
from typing import Any, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="rewards", alias="MONGODB_DB_NAME")
    # Multi-document transactions need a replica set; without them every
    # mutation still claims its dedup key before touching balances.
    mongodb_transactions: bool = Field(default=True, alias="MONGODB_TRANSACTIONS")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Partner secrets
    offers_secret: str = Field(default="", alias="OFFERS_SECRET")
    revu_secret: str = Field(default="", alias="REVU_SECRET")
    kiwi_secret: str = Field(default="", alias="KIWI_SECRET")
    cpx_secret: str = Field(default="", alias="CPX_SECRET")

    # Ledger
    ledger_max_attempts: int = Field(default=5, alias="LEDGER_MAX_ATTEMPTS")
    ledger_retry_backoff_ms: int = Field(default=25, alias="LEDGER_RETRY_BACKOFF_MS")

    # Velocity guard: "flag" credits and logs, "block" refuses the credit
    velocity_policy: Literal["flag", "block"] = Field(default="flag", alias="VELOCITY_POLICY")

    # Referrals (USD)
    referral_reward: float = 0.25
    referral_cap: float = 2.5
    admin_referral_code: str = Field(default="NJJK72", alias="ADMIN_REFERRAL_CODE")
    admin_referral_bonus: float = 1.0

    # Daily check-in
    check_in_min_hours: float = 18.0
    check_in_reset_hours: float = 42.0
    check_in_bonus_step: float = 0.5
    bonus_percent_cap: float = 10.0

    # Started offers retention
    started_offer_stale_hours: int = 24
    completed_offer_retention_hours: int = 72

    shortcut_bonus_amount: float = 0.05

    # Daily and weekly quest windows start at local midnight (weeks on Monday)
    quest_timezone: str = Field(default="America/New_York", alias="QUEST_TIMEZONE")


@lru_cache
def get_settings() -> Settings:
    return Settings()
