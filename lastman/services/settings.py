"""
Typed access to the settings store.

Stored values are strings; each known key has a parser and a default. The round override and
the deadline bypass are two separate settings.
"""
from __future__ import annotations

import sqlite3
from typing import Any, Callable

from lastman.config import get_config
from lastman.errors import NotFoundError, ValidationError
from lastman.persistence.repositories import SettingsRepository

CURRENT_SEASON = "current_season"
CURRENT_ROUND = "current_round"
ROUND_OVERRIDE = "round_override"
DEADLINE_BYPASS = "deadline_bypass"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ValueError("must be >= 1")
    return value


def _parse_optional_int(raw: str) -> int | None:
    if raw.strip().lower() in ("", "null", "none"):
        return None
    return _parse_positive_int(raw)


def _parse_bool(raw: str) -> bool:
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


# key -> (parser, default factory)
_KEYS: dict[str, tuple[Callable[[str], Any], Callable[[], Any]]] = {
    CURRENT_SEASON: (_parse_positive_int, lambda: get_config().default_season),
    CURRENT_ROUND: (_parse_positive_int, lambda: 1),
    ROUND_OVERRIDE: (_parse_optional_int, lambda: None),
    DEADLINE_BYPASS: (_parse_bool, lambda: False),
}

_repo = SettingsRepository()


def get_setting(conn: sqlite3.Connection, key: str) -> Any:
    """Typed value for key, or its default when unset or unreadable."""
    if key not in _KEYS:
        raise NotFoundError(f"Unknown setting: {key}")
    parser, default = _KEYS[key]
    raw = _repo.get(conn, key)
    if raw is None:
        return default()
    try:
        return parser(raw)
    except ValueError:
        return default()


def set_setting(conn: sqlite3.Connection, key: str, value: Any) -> Any:
    """Validate and store value. None (or "") clears optional settings. Returns the typed value."""
    if key not in _KEYS:
        raise NotFoundError(f"Unknown setting: {key}")
    parser, _ = _KEYS[key]
    if isinstance(value, bool):
        raw = "true" if value else "false"
    elif value is None:
        raw = ""
    else:
        raw = str(value).strip()
    try:
        typed = parser(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid value for {key}: {e}")
    if typed is None:
        _repo.delete(conn, key)
    else:
        _repo.set(conn, key, raw)
    return typed


def all_settings(conn: sqlite3.Connection) -> dict[str, Any]:
    return {key: get_setting(conn, key) for key in _KEYS}


def current_season(conn: sqlite3.Connection) -> int:
    return get_setting(conn, CURRENT_SEASON)


def round_override(conn: sqlite3.Connection) -> int | None:
    return get_setting(conn, ROUND_OVERRIDE)


def deadline_bypass(conn: sqlite3.Connection) -> bool:
    return get_setting(conn, DEADLINE_BYPASS)
