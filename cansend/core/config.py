# cansend/core/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Core ---
    DATABASE_URL: str
    LOG_LEVEL: str = "INFO"

    # --- Telegram front-end (optional) ---
    BOT_TOKEN: str | None = None
    WEBHOOK_URL: str | None = None
    DEFAULT_LANGUAGE: str = "en"

    # Base URL of this service, used for tracked affiliate redirects (/go/<route_id>)
    PUBLIC_BASE_URL: str | None = None

    # --- External AI (Gemini) ---
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_TIMEOUT_SECONDS: float = 30.0
    AI_INSIGHTS_ENABLED: bool = True
    DEFAULT_TRANSFER_AMOUNT: int = 1000

    # --- Affiliate links ---
    REFERRAL_CODE: str = "canisenddotapp"
    # empty = every destination with a template gets a link
    AFFILIATE_PROVIDER_FILTER: str = ""

    # --- Reference lists (providers / currencies) ---
    REFERENCE_CACHE_TTL_SECONDS: int = 300

    @property
    def database_url(self) -> str:
        # Hosted Postgres hands out postgres://; SQLAlchemy expects postgresql://
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url


settings = Settings()
