"""
API integration tests.
Uses TestClient to avoid starting a server.
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from lastman.api import app
from lastman.config import get_config
from lastman.persistence.db import get_connection, init_db, set_db_path
from lastman.persistence.repositories import EntityRepository, FixtureRepository
from lastman.services import settings

SEASON = 2024
# Far enough ahead that the real clock never reaches the deadline.
FUTURE_KICKOFF = datetime(2099, 8, 16, 19, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Use a temporary DB and a clean config for each test."""
    monkeypatch.setenv("LMS_ADMIN_USERNAMES", "root")
    monkeypatch.delenv("FOOTBALL_DATA_API_KEY", raising=False)
    get_config.cache_clear()
    db_path = tmp_path / "test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    yield db_path
    get_config.cache_clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def seeded(isolated_db):
    """Season 2024, four teams, round 1 fixtures not yet played."""
    conn = get_connection(isolated_db)
    try:
        settings.set_setting(conn, settings.CURRENT_SEASON, SEASON)
        entities = EntityRepository()
        teams = [
            entities.upsert(conn, SEASON, name, short, provider_id=pid)
            for pid, (name, short) in enumerate(
                [("Arsenal FC", "ARS"), ("Chelsea FC", "CHE"), ("Liverpool FC", "LIV"), ("Everton FC", "EVE")],
                start=1,
            )
        ]
        fixtures = FixtureRepository()
        games = [
            fixtures.create(conn, SEASON, 1, teams[0].id, teams[1].id, kickoff_at=FUTURE_KICKOFF),
            fixtures.create(conn, SEASON, 1, teams[2].id, teams[3].id, kickoff_at=FUTURE_KICKOFF),
        ]
    finally:
        conn.close()
    return teams, games


def _signup(client, username, password="secret123"):
    resp = client.post("/signup", json={"username": username, "password": password, "name": username.title()})
    assert resp.status_code == 200, resp.text
    return resp.json()


def _auth(user):
    return {"Authorization": f"Bearer {user['token']}"}


# ---------- Identity ----------


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_signup_login_me(client):
    user = _signup(client, "alice")
    assert user["role"] == "user"

    resp = client.post("/login", json={"username": "alice", "password": "secret123"})
    assert resp.status_code == 200
    token = resp.json()["token"]

    resp = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["username"] == "alice"
    assert resp.json()["name"] == "Alice"


def test_signup_and_login_errors(client):
    _signup(client, "alice")
    resp = client.post("/signup", json={"username": "alice", "password": "another1"})
    assert resp.status_code == 409

    resp = client.post("/login", json={"username": "alice", "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.json()["reason"] == "not_authenticated"

    assert client.get("/me").status_code == 401
    assert client.get("/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_configured_usernames_become_admins(client):
    assert _signup(client, "root")["role"] == "admin"
    assert _signup(client, "alice")["role"] == "user"


# ---------- Settings and rounds ----------


def test_settings_require_admin_and_validate(client, seeded):
    alice = _signup(client, "alice")
    root = _signup(client, "root")

    resp = client.put("/settings/round_override", json={"value": 3}, headers=_auth(alice))
    assert resp.status_code == 403

    resp = client.put("/settings/round_override", json={"value": 3}, headers=_auth(root))
    assert resp.status_code == 200
    assert resp.json() == {"key": "round_override", "value": 3}
    current = client.get("/rounds/current").json()
    assert current["round"] == 3
    assert current["override"] == 3

    resp = client.put("/settings/round_override", json={"value": None}, headers=_auth(root))
    assert resp.json()["value"] is None
    assert client.get("/rounds/current").json()["round"] == 1

    resp = client.put("/settings/deadline_bypass", json={"value": "sometimes"}, headers=_auth(root))
    assert resp.status_code == 400
    assert resp.json()["reason"] == "validation_failed"
    resp = client.put("/settings/favourite_colour", json={"value": "red"}, headers=_auth(root))
    assert resp.status_code == 404

    body = client.get("/settings").json()["settings"]
    assert body["current_season"] == SEASON
    assert body["deadline_bypass"] is False


def test_catalog_reads(client, seeded):
    teams, _ = seeded
    entities = client.get("/entities").json()["entities"]
    assert {e["short_name"] for e in entities} == {"ARS", "CHE", "LIV", "EVE"}

    fixtures = client.get("/fixtures/1").json()["fixtures"]
    assert [(f["home_short"], f["away_short"]) for f in fixtures] == [("ARS", "CHE"), ("LIV", "EVE")]

    deadline = client.get("/fixtures/1/deadline").json()
    assert deadline["deadline"] == FUTURE_KICKOFF.isoformat()
    assert deadline["deadline_passed"] is False


def test_fixture_import_without_feed_key(client):
    root = _signup(client, "root")
    resp = client.post("/fixtures/import", json={"season": SEASON}, headers=_auth(root))
    assert resp.status_code == 400
    assert resp.json()["reason"] == "feed_not_configured"


# ---------- Contests ----------


def test_contest_lifecycle_through_the_api(client, seeded, isolated_db):
    teams, games = seeded
    alice = _signup(client, "alice")
    bob = _signup(client, "bob")
    root = _signup(client, "root")

    resp = client.post("/contests", json={"name": "Office Pool"}, headers=_auth(alice))
    assert resp.status_code == 201
    contest = resp.json()["contest"]
    contest_id, token = contest["id"], contest["invite_token"]
    assert contest["status"] == "open"

    resp = client.post("/contests/join", json={"invite_token": token}, headers=_auth(bob))
    assert resp.status_code == 200
    assert resp.json()["contest_id"] == contest_id

    # picks are refused until the contest starts
    resp = client.post(f"/contests/{contest_id}/picks", json={"entity_id": teams[0].id}, headers=_auth(alice))
    assert resp.status_code == 400
    assert resp.json()["reason"] == "contest_not_active"

    assert client.post(f"/contests/{contest_id}/start", headers=_auth(bob)).status_code == 403
    resp = client.post(f"/contests/{contest_id}/start", headers=_auth(alice))
    assert resp.status_code == 200
    assert resp.json()["contest"]["status"] == "active"

    resp = client.post(f"/contests/{contest_id}/picks", json={"entity_id": teams[0].id}, headers=_auth(alice))
    assert resp.status_code == 200
    assert resp.json()["nomination"]["entity_short"] == "ARS"
    resp = client.post(f"/contests/{contest_id}/picks", json={"entity_id": teams[3].id}, headers=_auth(bob))
    assert resp.status_code == 200

    # before the deadline bob sees that alice picked, not what
    picks = client.get(f"/contests/{contest_id}/picks/1", headers=_auth(bob)).json()
    by_name = {p["display_name"]: p for p in picks["picks"]}
    assert by_name["Alice"]["hidden"] is True
    assert by_name["Alice"]["entity_id"] is None
    assert by_name["Bob"]["entity_short"] == "EVE"

    mine = client.get(f"/contests/{contest_id}/my-picks", headers=_auth(alice)).json()
    assert [n["entity_short"] for n in mine["nominations"]] == ["ARS"]

    # results arrive: ARS win, EVE lose
    conn = get_connection(isolated_db)
    try:
        fixtures = FixtureRepository()
        fixtures.update_result(conn, games[0].id, 2, 0)
        fixtures.update_result(conn, games[1].id, 1, 0)
    finally:
        conn.close()

    url = f"/contests/{contest_id}/rounds/1/process"
    assert client.post(url, headers=_auth(alice)).status_code == 403
    resp = client.post(url, headers=_auth(root))
    assert resp.status_code == 200
    report = resp.json()
    assert report["status"] == "processed"
    assert report["contest_status"] == "completed"
    assert report["alive_count"] == 1
    assert client.post(url, headers=_auth(root)).json()["status"] == "already_processed"

    standings = client.get(f"/contests/{contest_id}/standings").json()["standings"]
    assert [(s["display_name"], s["status"]) for s in standings] == [("Alice", "winner"), ("Bob", "eliminated")]

    history = client.get(f"/contests/{contest_id}/history", headers=_auth(alice)).json()["history"]
    round1 = {r["display_name"]: r for r in history["1"]}
    assert round1["Alice"]["opponent"] == "CHE (H)"
    assert round1["Alice"]["outcome"] == "win"


def test_contest_detail_and_listing(client, seeded):
    alice = _signup(client, "alice")
    bob = _signup(client, "bob")
    contest = client.post("/contests", json={"name": "Pool", "start_round": 2}, headers=_auth(alice)).json()["contest"]
    contest_id = contest["id"]

    own = client.get(f"/contests/{contest_id}", headers=_auth(alice)).json()
    assert own["contest"]["invite_token"] == contest["invite_token"]
    assert own["contest"]["start_round"] == 2
    other = client.get(f"/contests/{contest_id}", headers=_auth(bob)).json()
    assert "invite_token" not in other["contest"]
    assert client.get("/contests/does-not-exist").status_code == 404

    listed = client.get("/contests", headers=_auth(bob)).json()["contests"]
    assert [(c["name"], c["is_member"]) for c in listed] == [("Pool", False)]

    resp = client.post("/contests/join", json={"invite_token": "NOPE0000"}, headers=_auth(bob))
    assert resp.status_code == 404
    assert client.post("/contests", json={"name": "Anon"}).status_code == 401

    assert client.delete(f"/contests/{contest_id}", headers=_auth(bob)).status_code == 403
    resp = client.delete(f"/contests/{contest_id}", headers=_auth(alice))
    assert resp.json() == {"deleted": True, "contest_id": contest_id}
    assert client.get(f"/contests/{contest_id}").status_code == 404


def test_member_administration(client, seeded):
    teams, games = seeded
    alice = _signup(client, "alice")
    root = _signup(client, "root")
    contest_id = client.post("/contests", json={"name": "Pool"}, headers=_auth(alice)).json()["contest"]["id"]

    resp = client.post(
        f"/contests/{contest_id}/members",
        json={"user_id": "legacy-user", "display_name": "Legacy"},
        headers=_auth(root),
    )
    assert resp.status_code == 201
    member_id = resp.json()["member"]["id"]

    resp = client.post(
        f"/contests/{contest_id}/members/{member_id}/picks",
        json={"round": 1, "entity_id": teams[2].id, "outcome": "loss"},
        headers=_auth(root),
    )
    assert resp.status_code == 400
    assert resp.json()["reason"] == "round_not_processed"

    resp = client.post(
        f"/contests/{contest_id}/members/{member_id}/picks",
        json={"round": 1, "entity_id": teams[2].id},
        headers=_auth(root),
    )
    assert resp.status_code == 200
    assert resp.json()["nomination"]["outcome"] is None

    resp = client.patch(
        f"/contests/{contest_id}/members/{member_id}",
        json={"status": "eliminated", "eliminated_round": 1},
        headers=_auth(root),
    )
    assert resp.status_code == 200
    assert resp.json()["member"]["status"] == "eliminated"
    assert resp.json()["member"]["eliminated_nomination_id"] is not None

    resp = client.patch(
        f"/contests/{contest_id}/members/{member_id}", json={"status": "alive"}, headers=_auth(alice)
    )
    assert resp.status_code == 403
