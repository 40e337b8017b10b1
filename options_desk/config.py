"""
Configuration for the Options Desk service.

All settings are loaded from environment variables.
NO SECRETS ARE STORED IN CODE.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

APP_NAME = "Options Desk"

DEFAULT_DATABASE_URL = "sqlite:///./options_desk.db"
DEFAULT_DATA_URL = "https://data.alpaca.markets"
DEFAULT_TRADING_URL = "https://paper-api.alpaca.markets"

MIN_PAPER_BALANCE = 1_000.0
MAX_PAPER_BALANCE = 10_000_000.0


def _parse_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    s = value.strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _parse_csv(value: str | None) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def _parse_float(value: str | None, *, default: float) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    service_name: str = "options-desk"
    env: str = "local"
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    session_ttl_hours: float = 168.0
    require_invite_code: bool = True
    admin_emails: List[str] = field(default_factory=list)
    default_paper_balance: float = 100_000.0
    apca_api_key_id: str = ""
    apca_api_secret_key: str = ""
    apca_data_url: str = DEFAULT_DATA_URL
    apca_api_base_url: str = DEFAULT_TRADING_URL
    alpaca_feed: str = "iex"

    @property
    def market_data_configured(self) -> bool:
        return bool(self.apca_api_key_id and self.apca_api_secret_key)

    def is_admin_email(self, email: str) -> bool:
        return email.strip().lower() in {e.lower() for e in self.admin_emails}


def load_settings() -> Settings:
    """Read settings from the process environment."""
    return Settings(
        database_url=os.environ.get("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL,
        service_name=os.environ.get("SERVICE_NAME", "").strip() or "options-desk",
        env=os.environ.get("ENV", "").strip() or "local",
        log_level=(os.environ.get("LOG_LEVEL", "").strip() or "INFO").upper(),
        cors_origins=_parse_csv(os.environ.get("CORS_ORIGINS")) or ["*"],
        session_ttl_hours=_parse_float(os.environ.get("SESSION_TTL_HOURS"), default=168.0),
        require_invite_code=_parse_bool(os.environ.get("REQUIRE_INVITE_CODE"), default=True),
        admin_emails=_parse_csv(os.environ.get("ADMIN_EMAILS")),
        default_paper_balance=_parse_float(os.environ.get("DEFAULT_PAPER_BALANCE"), default=100_000.0),
        apca_api_key_id=os.environ.get("APCA_API_KEY_ID", "").strip(),
        apca_api_secret_key=os.environ.get("APCA_API_SECRET_KEY", "").strip(),
        apca_data_url=(os.environ.get("APCA_DATA_URL", "").strip() or DEFAULT_DATA_URL).rstrip("/"),
        apca_api_base_url=(os.environ.get("APCA_API_BASE_URL", "").strip() or DEFAULT_TRADING_URL).rstrip("/"),
        alpaca_feed=(os.environ.get("ALPACA_FEED", "").strip() or "iex").lower(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def reset_settings_cache() -> None:
    get_settings.cache_clear()


def validate_config(settings: Settings | None = None) -> List[str]:
    """
    Validate critical configuration.
    Returns list of error messages (empty if valid).
    """
    s = settings or get_settings()
    errors: List[str] = []

    if s.database_url == DEFAULT_DATABASE_URL and s.env not in {"local", "test"}:
        errors.append("DATABASE_URL not set (falling back to local SQLite file)")

    if not s.admin_emails:
        errors.append("ADMIN_EMAILS not set (no user is promoted to admin on registration)")

    if s.session_ttl_hours <= 0:
        errors.append("SESSION_TTL_HOURS must be positive")

    if not (MIN_PAPER_BALANCE <= s.default_paper_balance <= MAX_PAPER_BALANCE):
        errors.append(
            f"DEFAULT_PAPER_BALANCE must be between {MIN_PAPER_BALANCE:,.0f} and {MAX_PAPER_BALANCE:,.0f}"
        )

    if bool(s.apca_api_key_id) != bool(s.apca_api_secret_key):
        errors.append("APCA_API_KEY_ID and APCA_API_SECRET_KEY must be set together")

    if "*" in s.cors_origins and s.env == "prod":
        errors.append("CORS_ORIGINS is '*' in prod")

    return errors
