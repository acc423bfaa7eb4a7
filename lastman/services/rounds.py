"""
Active-round resolution and round deadlines.

Nothing here is cached: every call reads the settings and fixtures as they are now, so the
pick validator, the visibility gate, the poller and the API always agree on the round.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

from lastman.persistence.repositories import FixtureRepository
from lastman.services import settings

_fixtures = FixtureRepository()


def resolve_active_round(conn: sqlite3.Connection, season: int | None = None) -> int:
    """
    (a) round override if set, else (b) earliest round with an unfinished fixture, else
    (c) last round when every fixture of the season is finished, else (d) stored current_round.
    """
    override = settings.round_override(conn)
    if override is not None:
        return override
    if season is None:
        season = settings.current_season(conn)
    earliest_open = _fixtures.min_unfinished_round(conn, season)
    if earliest_open is not None:
        return earliest_open
    last = _fixtures.max_round(conn, season)
    if last is not None:
        return last
    return settings.get_setting(conn, settings.CURRENT_ROUND)


def detect_round(conn: sqlite3.Connection, season: int) -> int | None:
    """Round implied by fixtures alone (steps b and c), ignoring settings."""
    earliest_open = _fixtures.min_unfinished_round(conn, season)
    if earliest_open is not None:
        return earliest_open
    return _fixtures.max_round(conn, season)


def round_deadline(conn: sqlite3.Connection, season: int, round: int) -> datetime | None:
    """Earliest kickoff among the round's fixtures, or None if none is scheduled."""
    return _fixtures.earliest_kickoff(conn, season, round)


def deadline_passed(
    conn: sqlite3.Connection,
    season: int,
    round: int,
    now: datetime | None = None,
) -> bool:
    if settings.deadline_bypass(conn):
        return False
    deadline = round_deadline(conn, season, round)
    if deadline is None:
        return False
    now = now or datetime.now(timezone.utc)
    return deadline <= now


def picks_revealed(
    conn: sqlite3.Connection,
    season: int,
    round: int,
    now: datetime | None = None,
) -> bool:
    """Visibility gate: open once the deadline has passed, or at any time while bypass is on."""
    if settings.deadline_bypass(conn):
        return True
    deadline = round_deadline(conn, season, round)
    if deadline is None:
        return False
    now = now or datetime.now(timezone.utc)
    return deadline <= now
