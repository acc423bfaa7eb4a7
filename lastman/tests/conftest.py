"""
Shared fixtures: one temporary SQLite database per test and a small seeding helper.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from lastman.models import Contest, ContestStatus, Entity, Fixture, Identity, Member
from lastman.persistence.db import get_connection, init_db, set_db_path
from lastman.persistence.repositories import (
    ContestRepository,
    EntityRepository,
    FixtureRepository,
    MemberRepository,
    NominationRepository,
)
from lastman.services import settings

SEASON = 2024
NOW = datetime(2024, 9, 14, 10, 0, tzinfo=timezone.utc)
BEFORE_DEADLINE = NOW
KICKOFF = NOW + timedelta(hours=2)
AFTER_DEADLINE = KICKOFF + timedelta(hours=3)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "lms_test.db"
    set_db_path(path)
    init_db(db_path=path)
    return path


@pytest.fixture
def db_conn(db_path):
    """Temporary DB with the full schema."""
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


class World:
    """Builds entities, fixtures and contests directly through the repositories."""

    def __init__(self, conn):
        self.conn = conn
        self.entities = EntityRepository()
        self.fixtures = FixtureRepository()
        self.contests = ContestRepository()
        self.members = MemberRepository()
        self.nominations = NominationRepository()
        self._tokens = 0
        settings.set_setting(conn, settings.CURRENT_SEASON, SEASON)

    def add_entities(self, n: int, season: int = SEASON) -> list[Entity]:
        return [
            self.entities.upsert(self.conn, season, f"Team {i:02d}", f"T{i:02d}", provider_id=100 + i)
            for i in range(1, n + 1)
        ]

    def add_fixture(
        self,
        round: int,
        home: Entity,
        away: Entity,
        kickoff: datetime | None = KICKOFF,
        status: str = "scheduled",
        home_score: int | None = None,
        away_score: int | None = None,
        season: int = SEASON,
    ) -> Fixture:
        return self.fixtures.create(
            self.conn, season, round, home.id, away.id, kickoff_at=kickoff, status=status,
            home_score=home_score, away_score=away_score,
        )

    def finish(self, fixture: Fixture, home_score: int, away_score: int) -> None:
        self.fixtures.update_result(self.conn, fixture.id, home_score, away_score)

    def contest(
        self,
        admin: Identity,
        others: list[Identity],
        start_round: int = 1,
        status: str = ContestStatus.ACTIVE.value,
        name: str = "Test Contest",
    ) -> tuple[Contest, dict[str, Member]]:
        """Contest with admin + others as members. Returns (contest, user_id -> member)."""
        self._tokens += 1
        contest = self.contests.create(
            self.conn, name, SEASON, admin.user_id, f"TEST{self._tokens:04d}", start_round=start_round
        )
        members = {
            ident.user_id: self.members.create(self.conn, contest.id, ident.user_id, ident.name)
            for ident in [admin] + others
        }
        if status != ContestStatus.OPEN.value:
            self.contests.update_status(self.conn, contest.id, status)
        return self.contests.get(self.conn, contest.id), members

    def nominate(self, contest: Contest, member: Member, round: int, entity: Entity, outcome: str | None = None):
        return self.nominations.upsert(self.conn, contest.id, member.id, round, entity.id, outcome=outcome)

    def set(self, key: str, value) -> None:
        settings.set_setting(self.conn, key, value)

    def member(self, member_id: str) -> Member:
        return self.members.get(self.conn, member_id)

    def reload(self, contest: Contest) -> Contest:
        return self.contests.get(self.conn, contest.id)

    def status_counts(self, contest: Contest) -> dict[str, int]:
        return self.members.count_by_status(self.conn, contest.id)


@pytest.fixture
def world(db_conn):
    return World(db_conn)


@pytest.fixture
def alice():
    return Identity("u-alice", "Alice")


@pytest.fixture
def bob():
    return Identity("u-bob", "Bob")


@pytest.fixture
def carol():
    return Identity("u-carol", "Carol")


@pytest.fixture
def dave():
    return Identity("u-dave", "Dave")


@pytest.fixture
def site_admin():
    return Identity("u-root", "Root", role="admin")
