"""
SQLite schema for Last Man Standing.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def users_schema() -> str:
    """Local identity: username + password hash, site-wide role (user | admin)."""
    return """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        password_hash TEXT NOT NULL DEFAULT '',
        role TEXT NOT NULL DEFAULT 'user',
        created_at TEXT NOT NULL
    );
    """


def app_settings_schema() -> str:
    """Key/value settings: current_season, current_round, round_override, deadline_bypass."""
    return """
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """


def entities_schema() -> str:
    """Competing teams per season. provider_id is the feed's team id."""
    return """
    CREATE TABLE IF NOT EXISTS entities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        season INTEGER NOT NULL,
        name TEXT NOT NULL,
        short_name TEXT NOT NULL,
        provider_id INTEGER,
        crest_url TEXT,
        UNIQUE (season, short_name)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_entities_season_provider ON entities(season, provider_id)
        WHERE provider_id IS NOT NULL;
    """


def fixtures_schema() -> str:
    """Scheduled matches. status: scheduled | in_play | postponed | finished. Upserted by provider_match_id."""
    return """
    CREATE TABLE IF NOT EXISTS fixtures (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        season INTEGER NOT NULL,
        round INTEGER NOT NULL,
        home_entity_id INTEGER NOT NULL,
        away_entity_id INTEGER NOT NULL,
        kickoff_at TEXT,
        home_score INTEGER,
        away_score INTEGER,
        status TEXT NOT NULL DEFAULT 'scheduled',
        provider_match_id INTEGER UNIQUE,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (home_entity_id) REFERENCES entities(id),
        FOREIGN KEY (away_entity_id) REFERENCES entities(id)
    );
    CREATE INDEX IF NOT EXISTS ix_fixtures_season_round ON fixtures(season, round);
    CREATE INDEX IF NOT EXISTS ix_fixtures_status ON fixtures(status);
    """


def contests_schema() -> str:
    """Contest ("game"). status: open | active | completed. winner_member_id or is_drawn once completed."""
    return """
    CREATE TABLE IF NOT EXISTS contests (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        season INTEGER NOT NULL,
        admin_user_id TEXT NOT NULL,
        created_by TEXT NOT NULL,
        invite_token TEXT NOT NULL UNIQUE,
        start_round INTEGER NOT NULL DEFAULT 1,
        status TEXT NOT NULL DEFAULT 'open',
        winner_member_id TEXT,
        is_drawn INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_contests_season ON contests(season);
    CREATE INDEX IF NOT EXISTS ix_contests_status ON contests(status);
    """


def members_schema() -> str:
    """One seat per user per contest. status: alive | eliminated | winner | drawn."""
    return """
    CREATE TABLE IF NOT EXISTS members (
        id TEXT PRIMARY KEY,
        contest_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        display_name TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'alive',
        eliminated_round INTEGER,
        eliminated_nomination_id TEXT,
        joined_at TEXT NOT NULL,
        FOREIGN KEY (contest_id) REFERENCES contests(id) ON DELETE CASCADE,
        UNIQUE (contest_id, user_id)
    );
    CREATE INDEX IF NOT EXISTS ix_members_contest ON members(contest_id);
    CREATE INDEX IF NOT EXISTS ix_members_status ON members(status);
    """


def nominations_schema() -> str:
    """One pick per member per round. outcome: NULL until processed, then win | draw | loss."""
    return """
    CREATE TABLE IF NOT EXISTS nominations (
        id TEXT PRIMARY KEY,
        contest_id TEXT NOT NULL,
        member_id TEXT NOT NULL,
        round INTEGER NOT NULL,
        entity_id INTEGER NOT NULL,
        outcome TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (contest_id) REFERENCES contests(id) ON DELETE CASCADE,
        FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE CASCADE,
        FOREIGN KEY (entity_id) REFERENCES entities(id),
        UNIQUE (contest_id, member_id, round)
    );
    CREATE INDEX IF NOT EXISTS ix_nominations_contest_round ON nominations(contest_id, round);
    CREATE INDEX IF NOT EXISTS ix_nominations_member ON nominations(member_id);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order follows foreign keys."""
    return "\n".join([
        users_schema(),
        app_settings_schema(),
        entities_schema(),
        fixtures_schema(),
        contests_schema(),
        members_schema(),
        nominations_schema(),
    ])
