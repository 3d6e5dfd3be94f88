# backend/revshare/core/config.py

from __future__ import annotations

from decimal import Decimal
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from pydantic_settings import BaseSettings, SettingsConfigDict


def _strip_asyncpg_unsupported_params(url: str) -> str:
    """
    asyncpg does NOT accept sslmode or channel_binding as connect kwargs.
    If these appear in the URL query, SQLAlchemy can end up passing them to
    asyncpg.connect(), causing:
      TypeError: connect() got an unexpected keyword argument 'sslmode'
    """
    parts = urlsplit(url)
    if not parts.query or not parts.scheme.startswith("postgresql"):
        return url

    params = parse_qsl(parts.query, keep_blank_values=True)
    filtered = [(k, v) for (k, v) in params if k not in {"sslmode", "channel_binding"}]
    new_query = urlencode(filtered, doseq=True)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, new_query, parts.fragment))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -----------------------------
    # Environment
    # -----------------------------
    # Use: development | staging | production
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # -----------------------------
    # DB
    # -----------------------------
    # Local default runs on SQLite; deployments point this at postgresql+asyncpg.
    DATABASE_URL_ASYNC: str = "sqlite+aiosqlite:///./revshare.db"

    # -----------------------------
    # Settlement sweep
    # -----------------------------
    SETTLEMENT_THRESHOLD_HOURS: int = 48
    SETTLEMENT_SWEEP_MINUTES: int = 15
    SCHEDULER_ENABLED: bool = False
    SCHEDULER_TIMEZONE: str = "Asia/Kolkata"

    # Shared secret for the cron trigger (Bearer token or X-Cron-Secret header)
    CRON_SECRET: str | None = None

    # -----------------------------
    # Split adjustments
    # -----------------------------
    MAX_DEPARTMENT_DISCOUNT_PERCENT: int = 10
    REFERRAL_BONUS_PERCENT: int = 10

    # -----------------------------
    # Partner pricing
    # -----------------------------
    PARTNER_DISCOUNT_RATE: Decimal = Decimal("0.50")
    REFERRAL_PROMOTION_THRESHOLD: int = 2
    MOU_NUMBER_PREFIX: str = "MOU"

    @property
    def DATABASE_URL_ASYNC_CLEAN(self) -> str:
        return _strip_asyncpg_unsupported_params(self.DATABASE_URL_ASYNC)

    @property
    def is_development(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() not in {"staging", "production"}

    def model_post_init(self, __context) -> None:  # pydantic v2 hook
        env = (self.ENVIRONMENT or "").strip().lower()

        # Enforce an authenticated cron trigger in staging/production.
        if env in {"staging", "production"}:
            if not self.CRON_SECRET or len(self.CRON_SECRET.strip()) < 16:
                raise ValueError("CRON_SECRET must be set (at least 16 characters) in staging/production.")

        # Light sanity checks (all envs)
        if self.SETTLEMENT_THRESHOLD_HOURS <= 0:
            raise ValueError("SETTLEMENT_THRESHOLD_HOURS must be positive.")
        if self.SETTLEMENT_SWEEP_MINUTES <= 0:
            raise ValueError("SETTLEMENT_SWEEP_MINUTES must be positive.")
        if not 0 <= self.MAX_DEPARTMENT_DISCOUNT_PERCENT <= 100:
            raise ValueError("MAX_DEPARTMENT_DISCOUNT_PERCENT must be within 0..100.")
        if not 0 <= self.REFERRAL_BONUS_PERCENT <= 100:
            raise ValueError("REFERRAL_BONUS_PERCENT must be within 0..100.")
        if not Decimal("0") <= self.PARTNER_DISCOUNT_RATE <= Decimal("1"):
            raise ValueError("PARTNER_DISCOUNT_RATE must be within 0..1.")


# this must exist for: `from revshare.core.config import settings`
settings = Settings()
