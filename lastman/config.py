"""
Application configuration loaded from environment variables with safe defaults.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

# Values shipped in example .env files; treated the same as "not set".
_PLACEHOLDER_KEYS = {"your-key-here", "your-api-key-here", "changeme"}


def _default_db_path() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "lastman.db"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Config:
    """Runtime settings. Game settings (season, round override, ...) live in the DB, not here."""

    db_path: Path = field(default_factory=_default_db_path)
    log_level: str = "INFO"
    default_season: int = 2024
    feed_api_key: str | None = None
    feed_base_url: str = "https://api.football-data.org/v4"
    feed_competition: str = "PL"
    poll_enabled: bool = False
    poll_interval_seconds: int = 30 * 60
    poll_window: int = 3
    poll_startup_delay_seconds: int = 10
    admin_usernames: list[str] = field(default_factory=list)
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3004", "http://localhost:5173"]
    )

    @property
    def feed_configured(self) -> bool:
        return bool(self.feed_api_key) and self.feed_api_key not in _PLACEHOLDER_KEYS

    @classmethod
    def from_env(cls) -> "Config":
        """Create Config from environment variables."""
        db_path = os.getenv("LMS_DB_PATH")
        cors = _env_list("LMS_CORS_ORIGINS")
        return cls(
            db_path=Path(db_path) if db_path else _default_db_path(),
            log_level=os.getenv("LMS_LOG_LEVEL", cls.log_level),
            default_season=_env_int("LMS_DEFAULT_SEASON", cls.default_season),
            feed_api_key=(os.getenv("FOOTBALL_DATA_API_KEY") or "").strip() or None,
            feed_base_url=os.getenv("FOOTBALL_DATA_BASE_URL", cls.feed_base_url),
            feed_competition=os.getenv("FOOTBALL_DATA_COMPETITION", cls.feed_competition),
            poll_enabled=_env_bool("LMS_POLL_ENABLED", cls.poll_enabled),
            poll_interval_seconds=_env_int("LMS_POLL_INTERVAL_SECONDS", cls.poll_interval_seconds),
            poll_window=_env_int("LMS_POLL_WINDOW", cls.poll_window),
            poll_startup_delay_seconds=_env_int(
                "LMS_POLL_STARTUP_DELAY_SECONDS", cls.poll_startup_delay_seconds
            ),
            admin_usernames=_env_list("LMS_ADMIN_USERNAMES"),
            cors_origins=cors or cls().cors_origins,
        )


@lru_cache
def get_config() -> Config:
    """Return a cached Config instance."""
    return Config.from_env()
