"""
Repository interfaces for Last Man Standing data.
No business logic, only read/write operations. Repositories never commit: outside
transaction() each statement autocommits, inside it they join the caller's unit of work.
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone

from lastman.models import (
    Contest,
    Entity,
    Fixture,
    Member,
    MemberStatus,
    Nomination,
    User,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_utc_iso(dt: datetime | None) -> str | None:
    """UTC ISO string. Kickoffs are compared as text by MIN(kickoff_at)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_optional_datetime(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


# ---------- UserRepository ----------


class UserRepository:
    """CRUD for users. username is unique; password stored as hash only."""

    _COLS = "id, username, name, password_hash, role, created_at"

    def create_with_password(
        self,
        conn: sqlite3.Connection,
        username: str,
        password_hash: str,
        name: str | None = None,
        role: str = "user",
        id: str | None = None,
    ) -> User:
        uid = id or str(uuid.uuid4())
        now = _now_iso()
        display_name = name or username
        conn.execute(
            "INSERT INTO users (id, username, name, password_hash, role, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (uid, username, display_name, password_hash, role, now),
        )
        return User(
            id=uid, username=username, name=display_name, role=role,
            created_at=_parse_datetime(now), password_hash=password_hash,
        )

    def get(self, conn: sqlite3.Connection, user_id: str) -> User | None:
        row = conn.execute(f"SELECT {self._COLS} FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._to_user(row) if row else None

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> User | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM users WHERE username = ?", (username,)
        ).fetchone()
        return self._to_user(row) if row else None

    @staticmethod
    def _to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            name=row["name"],
            role=row["role"],
            created_at=_parse_datetime(row["created_at"]),
            password_hash=row["password_hash"],
        )


# ---------- SettingsRepository ----------


class SettingsRepository:
    """Raw string key/value settings. Typing and defaults live in services.settings."""

    def get(self, conn: sqlite3.Connection, key: str) -> str | None:
        row = conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            "INSERT INTO app_settings (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
            (key, value, _now_iso()),
        )

    def delete(self, conn: sqlite3.Connection, key: str) -> None:
        conn.execute("DELETE FROM app_settings WHERE key = ?", (key,))


# ---------- EntityRepository ----------


class EntityRepository:
    """CRUD for entities (teams). Unique per (season, short_name)."""

    _COLS = "id, season, name, short_name, provider_id, crest_url"

    def upsert(
        self,
        conn: sqlite3.Connection,
        season: int,
        name: str,
        short_name: str,
        provider_id: int | None = None,
        crest_url: str | None = None,
    ) -> Entity:
        """Insert or refresh display metadata for (season, short_name)."""
        conn.execute(
            "INSERT INTO entities (season, name, short_name, provider_id, crest_url) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(season, short_name) DO UPDATE SET "
            "name = excluded.name, provider_id = excluded.provider_id, crest_url = excluded.crest_url",
            (season, name, short_name, provider_id, crest_url),
        )
        row = conn.execute(
            f"SELECT {self._COLS} FROM entities WHERE season = ? AND short_name = ?",
            (season, short_name),
        ).fetchone()
        return self._to_entity(row)

    def get(self, conn: sqlite3.Connection, entity_id: int) -> Entity | None:
        row = conn.execute(f"SELECT {self._COLS} FROM entities WHERE id = ?", (entity_id,)).fetchone()
        return self._to_entity(row) if row else None

    def list_by_season(self, conn: sqlite3.Connection, season: int) -> list[Entity]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM entities WHERE season = ? ORDER BY name", (season,)
        ).fetchall()
        return [self._to_entity(r) for r in rows]

    def count_by_season(self, conn: sqlite3.Connection, season: int) -> int:
        row = conn.execute("SELECT COUNT(*) AS n FROM entities WHERE season = ?", (season,)).fetchone()
        return int(row["n"])

    @staticmethod
    def _to_entity(row: sqlite3.Row) -> Entity:
        return Entity(
            id=row["id"],
            season=row["season"],
            name=row["name"],
            short_name=row["short_name"],
            provider_id=row["provider_id"],
            crest_url=row["crest_url"],
        )


# ---------- FixtureRepository ----------


class FixtureRepository:
    """CRUD for fixtures. The only write path from the feed is upsert by provider_match_id."""

    _COLS = (
        "id, season, round, home_entity_id, away_entity_id, kickoff_at, "
        "home_score, away_score, status, provider_match_id"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        season: int,
        round: int,
        home_entity_id: int,
        away_entity_id: int,
        kickoff_at: datetime | None = None,
        status: str = "scheduled",
        home_score: int | None = None,
        away_score: int | None = None,
        provider_match_id: int | None = None,
    ) -> Fixture:
        cur = conn.execute(
            "INSERT INTO fixtures (season, round, home_entity_id, away_entity_id, kickoff_at, "
            "home_score, away_score, status, provider_match_id, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                season, round, home_entity_id, away_entity_id,
                _to_utc_iso(kickoff_at),
                home_score, away_score, status, provider_match_id, _now_iso(),
            ),
        )
        fixture = self.get(conn, cur.lastrowid)
        assert fixture is not None
        return fixture

    def upsert_by_provider_id(
        self,
        conn: sqlite3.Connection,
        provider_match_id: int,
        season: int,
        round: int,
        home_entity_id: int,
        away_entity_id: int,
        kickoff_at: datetime | None,
        status: str,
        home_score: int | None,
        away_score: int | None,
    ) -> None:
        conn.execute(
            "INSERT INTO fixtures (season, round, home_entity_id, away_entity_id, kickoff_at, "
            "home_score, away_score, status, provider_match_id, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(provider_match_id) DO UPDATE SET "
            "season = excluded.season, round = excluded.round, "
            "home_entity_id = excluded.home_entity_id, away_entity_id = excluded.away_entity_id, "
            "kickoff_at = excluded.kickoff_at, home_score = excluded.home_score, "
            "away_score = excluded.away_score, status = excluded.status, updated_at = excluded.updated_at",
            (
                season, round, home_entity_id, away_entity_id,
                _to_utc_iso(kickoff_at),
                home_score, away_score, status, provider_match_id, _now_iso(),
            ),
        )

    def update_unfinished_by_provider_id(
        self,
        conn: sqlite3.Connection,
        provider_match_id: int,
        status: str,
        kickoff_at: datetime | None,
        home_score: int | None,
        away_score: int | None,
    ) -> int:
        """Refresh a not-yet-finished fixture. Returns rows changed (0 if unknown or already finished)."""
        cur = conn.execute(
            "UPDATE fixtures SET status = ?, kickoff_at = COALESCE(?, kickoff_at), "
            "home_score = ?, away_score = ?, updated_at = ? "
            "WHERE provider_match_id = ? AND status != 'finished'",
            (
                status, _to_utc_iso(kickoff_at),
                home_score, away_score, _now_iso(), provider_match_id,
            ),
        )
        return cur.rowcount

    def update_result(
        self,
        conn: sqlite3.Connection,
        fixture_id: int,
        home_score: int,
        away_score: int,
        status: str = "finished",
    ) -> None:
        conn.execute(
            "UPDATE fixtures SET home_score = ?, away_score = ?, status = ?, updated_at = ? WHERE id = ?",
            (home_score, away_score, status, _now_iso(), fixture_id),
        )

    def get(self, conn: sqlite3.Connection, fixture_id: int) -> Fixture | None:
        row = conn.execute(f"SELECT {self._COLS} FROM fixtures WHERE id = ?", (fixture_id,)).fetchone()
        return self._to_fixture(row) if row else None

    def list_by_round(self, conn: sqlite3.Connection, season: int, round: int) -> list[Fixture]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM fixtures WHERE season = ? AND round = ? ORDER BY kickoff_at, id",
            (season, round),
        ).fetchall()
        return [self._to_fixture(r) for r in rows]

    def list_unfinished(self, conn: sqlite3.Connection, season: int) -> list[Fixture]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM fixtures WHERE season = ? AND status != 'finished' ORDER BY round, id",
            (season,),
        ).fetchall()
        return [self._to_fixture(r) for r in rows]

    def count_unfinished_in_round(self, conn: sqlite3.Connection, season: int, round: int) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM fixtures WHERE season = ? AND round = ? AND status != 'finished'",
            (season, round),
        ).fetchone()
        return int(row["n"])

    def min_unfinished_round(self, conn: sqlite3.Connection, season: int) -> int | None:
        row = conn.execute(
            "SELECT MIN(round) AS r FROM fixtures WHERE season = ? AND status != 'finished'",
            (season,),
        ).fetchone()
        return row["r"]

    def max_round(self, conn: sqlite3.Connection, season: int) -> int | None:
        row = conn.execute("SELECT MAX(round) AS r FROM fixtures WHERE season = ?", (season,)).fetchone()
        return row["r"]

    def earliest_kickoff(self, conn: sqlite3.Connection, season: int, round: int) -> datetime | None:
        row = conn.execute(
            "SELECT MIN(kickoff_at) AS k FROM fixtures WHERE season = ? AND round = ? AND kickoff_at IS NOT NULL",
            (season, round),
        ).fetchone()
        return _parse_optional_datetime(row["k"])

    def find_for_entity(
        self, conn: sqlite3.Connection, season: int, round: int, entity_id: int
    ) -> Fixture | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM fixtures "
            "WHERE season = ? AND round = ? AND (home_entity_id = ? OR away_entity_id = ?) "
            "ORDER BY kickoff_at, id LIMIT 1",
            (season, round, entity_id, entity_id),
        ).fetchone()
        return self._to_fixture(row) if row else None

    @staticmethod
    def _to_fixture(row: sqlite3.Row) -> Fixture:
        return Fixture(
            id=row["id"],
            season=row["season"],
            round=row["round"],
            home_entity_id=row["home_entity_id"],
            away_entity_id=row["away_entity_id"],
            kickoff_at=_parse_optional_datetime(row["kickoff_at"]),
            home_score=row["home_score"],
            away_score=row["away_score"],
            status=row["status"],
            provider_match_id=row["provider_match_id"],
        )


# ---------- ContestRepository ----------


class ContestRepository:
    """CRUD for contests. No business logic."""

    _COLS = (
        "id, name, season, admin_user_id, created_by, invite_token, start_round, "
        "status, winner_member_id, is_drawn, created_at"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        season: int,
        admin_user_id: str,
        invite_token: str,
        start_round: int = 1,
        id: str | None = None,
    ) -> Contest:
        cid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO contests (id, name, season, admin_user_id, created_by, invite_token, start_round, status, is_drawn, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, 'open', 0, ?)",
            (cid, name, season, admin_user_id, admin_user_id, invite_token, start_round, now),
        )
        return Contest(
            id=cid, name=name, season=season, admin_user_id=admin_user_id,
            created_by=admin_user_id, invite_token=invite_token, start_round=start_round,
            status="open", created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, contest_id: str) -> Contest | None:
        row = conn.execute(f"SELECT {self._COLS} FROM contests WHERE id = ?", (contest_id,)).fetchone()
        return self._to_contest(row) if row else None

    def get_by_invite_token(self, conn: sqlite3.Connection, invite_token: str) -> Contest | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM contests WHERE invite_token = ?", (invite_token,)
        ).fetchone()
        return self._to_contest(row) if row else None

    def list_by_season(self, conn: sqlite3.Connection, season: int) -> list[Contest]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM contests WHERE season = ? ORDER BY status, created_at DESC",
            (season,),
        ).fetchall()
        return [self._to_contest(r) for r in rows]

    def list_by_status(self, conn: sqlite3.Connection, status: str, season: int | None = None) -> list[Contest]:
        if season is None:
            rows = conn.execute(
                f"SELECT {self._COLS} FROM contests WHERE status = ? ORDER BY created_at", (status,)
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT {self._COLS} FROM contests WHERE status = ? AND season = ? ORDER BY created_at",
                (status, season),
            ).fetchall()
        return [self._to_contest(r) for r in rows]

    def update_status(self, conn: sqlite3.Connection, contest_id: str, status: str) -> None:
        conn.execute("UPDATE contests SET status = ? WHERE id = ?", (status, contest_id))

    def complete_with_winner(self, conn: sqlite3.Connection, contest_id: str, member_id: str) -> None:
        conn.execute(
            "UPDATE contests SET status = 'completed', winner_member_id = ?, is_drawn = 0 WHERE id = ?",
            (member_id, contest_id),
        )

    def complete_as_draw(self, conn: sqlite3.Connection, contest_id: str) -> None:
        conn.execute(
            "UPDATE contests SET status = 'completed', winner_member_id = NULL, is_drawn = 1 WHERE id = ?",
            (contest_id,),
        )

    def delete(self, conn: sqlite3.Connection, contest_id: str) -> int:
        """Delete contest; members and nominations go with it (ON DELETE CASCADE)."""
        cur = conn.execute("DELETE FROM contests WHERE id = ?", (contest_id,))
        return cur.rowcount

    @staticmethod
    def _to_contest(row: sqlite3.Row) -> Contest:
        return Contest(
            id=row["id"],
            name=row["name"],
            season=row["season"],
            admin_user_id=row["admin_user_id"],
            created_by=row["created_by"],
            invite_token=row["invite_token"],
            start_round=row["start_round"],
            status=row["status"],
            created_at=_parse_datetime(row["created_at"]),
            winner_member_id=row["winner_member_id"],
            is_drawn=bool(row["is_drawn"]),
        )


# ---------- MemberRepository ----------


class MemberRepository:
    """CRUD for members. One member per user per contest."""

    _COLS = (
        "id, contest_id, user_id, display_name, status, eliminated_round, "
        "eliminated_nomination_id, joined_at"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        contest_id: str,
        user_id: str,
        display_name: str,
        id: str | None = None,
    ) -> Member:
        mid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO members (id, contest_id, user_id, display_name, status, joined_at) "
            "VALUES (?, ?, ?, ?, 'alive', ?)",
            (mid, contest_id, user_id, display_name, now),
        )
        return Member(
            id=mid, contest_id=contest_id, user_id=user_id, display_name=display_name,
            status=MemberStatus.ALIVE.value, joined_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, member_id: str) -> Member | None:
        row = conn.execute(f"SELECT {self._COLS} FROM members WHERE id = ?", (member_id,)).fetchone()
        return self._to_member(row) if row else None

    def get_by_user(self, conn: sqlite3.Connection, contest_id: str, user_id: str) -> Member | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM members WHERE contest_id = ? AND user_id = ?",
            (contest_id, user_id),
        ).fetchone()
        return self._to_member(row) if row else None

    def list_by_contest(self, conn: sqlite3.Connection, contest_id: str) -> list[Member]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM members WHERE contest_id = ? ORDER BY joined_at, id",
            (contest_id,),
        ).fetchall()
        return [self._to_member(r) for r in rows]

    def list_by_status(self, conn: sqlite3.Connection, contest_id: str, status: str) -> list[Member]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM members WHERE contest_id = ? AND status = ? ORDER BY joined_at, id",
            (contest_id, status),
        ).fetchall()
        return [self._to_member(r) for r in rows]

    def count_by_status(self, conn: sqlite3.Connection, contest_id: str) -> dict[str, int]:
        rows = conn.execute(
            "SELECT status, COUNT(*) AS n FROM members WHERE contest_id = ? GROUP BY status",
            (contest_id,),
        ).fetchall()
        counts = {s.value: 0 for s in MemberStatus}
        for r in rows:
            counts[r["status"]] = int(r["n"])
        return counts

    def statuses_by_user(self, conn: sqlite3.Connection, user_id: str) -> dict[str, str]:
        """contest_id -> member status for every contest the user has joined."""
        rows = conn.execute(
            "SELECT contest_id, status FROM members WHERE user_id = ?", (user_id,)
        ).fetchall()
        return {r["contest_id"]: r["status"] for r in rows}

    def eliminate(
        self,
        conn: sqlite3.Connection,
        member_id: str,
        round: int,
        nomination_id: str | None,
    ) -> bool:
        """alive -> eliminated. Returns False if the member was no longer alive."""
        cur = conn.execute(
            "UPDATE members SET status = 'eliminated', eliminated_round = ?, eliminated_nomination_id = ? "
            "WHERE id = ? AND status = 'alive'",
            (round, nomination_id, member_id),
        )
        return cur.rowcount == 1

    def update_status(self, conn: sqlite3.Connection, member_id: str, status: str) -> None:
        conn.execute("UPDATE members SET status = ? WHERE id = ?", (status, member_id))

    def override_status(
        self,
        conn: sqlite3.Connection,
        member_id: str,
        status: str,
        eliminated_round: int | None,
        eliminated_nomination_id: str | None,
    ) -> None:
        """Administrative override: writes status and elimination fields unconditionally."""
        conn.execute(
            "UPDATE members SET status = ?, eliminated_round = ?, eliminated_nomination_id = ? WHERE id = ?",
            (status, eliminated_round, eliminated_nomination_id, member_id),
        )

    def pick_summary(self, conn: sqlite3.Connection, contest_id: str) -> dict[str, dict[str, int]]:
        """member_id -> {picks_made, entities_used}."""
        rows = conn.execute(
            "SELECT m.id AS member_id, COUNT(n.id) AS picks_made, COUNT(DISTINCT n.entity_id) AS entities_used "
            "FROM members m LEFT JOIN nominations n ON n.member_id = m.id "
            "WHERE m.contest_id = ? GROUP BY m.id",
            (contest_id,),
        ).fetchall()
        return {
            r["member_id"]: {"picks_made": int(r["picks_made"]), "entities_used": int(r["entities_used"])}
            for r in rows
        }

    @staticmethod
    def _to_member(row: sqlite3.Row) -> Member:
        return Member(
            id=row["id"],
            contest_id=row["contest_id"],
            user_id=row["user_id"],
            display_name=row["display_name"],
            status=row["status"],
            joined_at=_parse_datetime(row["joined_at"]),
            eliminated_round=row["eliminated_round"],
            eliminated_nomination_id=row["eliminated_nomination_id"],
        )


# ---------- NominationRepository ----------


class NominationRepository:
    """CRUD for nominations (picks). Unique per (contest_id, member_id, round)."""

    _COLS = "id, contest_id, member_id, round, entity_id, outcome, created_at, updated_at"

    def upsert(
        self,
        conn: sqlite3.Connection,
        contest_id: str,
        member_id: str,
        round: int,
        entity_id: int,
        outcome: str | None = None,
    ) -> Nomination:
        """
        Insert or replace the entity for (contest, member, round). Last writer wins:
        a later call overwrites the entity of an earlier one. A recorded outcome is never
        cleared by a later call without one.
        """
        now = _now_iso()
        conn.execute(
            "INSERT INTO nominations (id, contest_id, member_id, round, entity_id, outcome, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(contest_id, member_id, round) DO UPDATE SET "
            "entity_id = excluded.entity_id, outcome = COALESCE(excluded.outcome, nominations.outcome), "
            "updated_at = excluded.updated_at",
            (str(uuid.uuid4()), contest_id, member_id, round, entity_id, outcome, now, now),
        )
        nomination = self.get_for_round(conn, contest_id, member_id, round)
        assert nomination is not None
        return nomination

    def get(self, conn: sqlite3.Connection, nomination_id: str) -> Nomination | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM nominations WHERE id = ?", (nomination_id,)
        ).fetchone()
        return self._to_nomination(row) if row else None

    def get_for_round(
        self, conn: sqlite3.Connection, contest_id: str, member_id: str, round: int
    ) -> Nomination | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM nominations WHERE contest_id = ? AND member_id = ? AND round = ?",
            (contest_id, member_id, round),
        ).fetchone()
        return self._to_nomination(row) if row else None

    def list_by_contest_round(self, conn: sqlite3.Connection, contest_id: str, round: int) -> list[Nomination]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM nominations WHERE contest_id = ? AND round = ? ORDER BY created_at, id",
            (contest_id, round),
        ).fetchall()
        return [self._to_nomination(r) for r in rows]

    def list_by_contest(self, conn: sqlite3.Connection, contest_id: str) -> list[Nomination]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM nominations WHERE contest_id = ? ORDER BY round DESC, created_at, id",
            (contest_id,),
        ).fetchall()
        return [self._to_nomination(r) for r in rows]

    def list_by_member(self, conn: sqlite3.Connection, member_id: str) -> list[Nomination]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM nominations WHERE member_id = ? ORDER BY round",
            (member_id,),
        ).fetchall()
        return [self._to_nomination(r) for r in rows]

    def count_with_outcome(self, conn: sqlite3.Connection, contest_id: str, round: int) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM nominations WHERE contest_id = ? AND round = ? AND outcome IS NOT NULL",
            (contest_id, round),
        ).fetchone()
        return int(row["n"])

    def set_outcome(self, conn: sqlite3.Connection, nomination_id: str, outcome: str) -> None:
        conn.execute(
            "UPDATE nominations SET outcome = ?, updated_at = ? WHERE id = ?",
            (outcome, _now_iso(), nomination_id),
        )

    @staticmethod
    def _to_nomination(row: sqlite3.Row) -> Nomination:
        return Nomination(
            id=row["id"],
            contest_id=row["contest_id"],
            member_id=row["member_id"],
            round=row["round"],
            entity_id=row["entity_id"],
            outcome=row["outcome"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )
