"""
Tests for the contest registry: lifecycle, membership, views and administrative overrides.
"""
from __future__ import annotations

import string
from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import AFTER_DEADLINE, BEFORE_DEADLINE, NOW, SEASON
from lastman.errors import ConflictError, NotFoundError, PermissionDenied, PolicyRejection, ValidationError
from lastman.models import ContestStatus, Identity, MemberStatus, Outcome
from lastman.services.contest_service import ContestService
from lastman.services.results_service import ALREADY_PROCESSED, PROCESSED, ResultsService


@pytest.fixture
def contests():
    return ContestService()


def _open_contest(world, contests, admin, *others):
    contest = contests.create_contest(world.conn, admin, "Sunday League")
    for ident in others:
        contests.join_contest(world.conn, ident, contest.invite_token)
    return contest


# ---------- Create / join / start ----------


def test_create_contest_makes_creator_admin_and_member(world, contests, alice):
    contest = contests.create_contest(world.conn, alice, "  Office Pool  ", start_round=4)
    assert contest.name == "Office Pool"
    assert contest.season == SEASON
    assert contest.start_round == 4
    assert contest.status == ContestStatus.OPEN.value
    assert contest.admin_user_id == alice.user_id
    assert len(contest.invite_token) == 8
    assert set(contest.invite_token) <= set(string.ascii_uppercase + string.digits)
    members = world.members.list_by_contest(world.conn, contest.id)
    assert [(m.user_id, m.display_name) for m in members] == [(alice.user_id, "Alice")]


def test_create_contest_validates_input(world, contests, alice):
    with pytest.raises(ValidationError):
        contests.create_contest(world.conn, alice, "   ")
    with pytest.raises(ValidationError):
        contests.create_contest(world.conn, alice, "Pool", start_round=0)


def test_invite_token_clash_gives_up_with_conflict(world, contests, alice, bob):
    first = contests.create_contest(world.conn, alice, "First")
    with patch("lastman.services.contest_service.generate_invite_token", return_value=first.invite_token):
        with pytest.raises(ConflictError):
            contests.create_contest(world.conn, bob, "Second")
    assert len(world.contests.list_by_season(world.conn, SEASON)) == 1


def test_join_is_case_insensitive_and_unique(world, contests, alice, bob):
    contest = contests.create_contest(world.conn, alice, "Pool")
    member = contests.join_contest(world.conn, bob, contest.invite_token.lower())
    assert member.contest_id == contest.id
    assert member.status == MemberStatus.ALIVE.value
    with pytest.raises(ConflictError):
        contests.join_contest(world.conn, bob, contest.invite_token)
    with pytest.raises(NotFoundError):
        contests.join_contest(world.conn, bob, "ZZZZZZZZ")
    with pytest.raises(ValidationError):
        contests.join_contest(world.conn, bob, "")


def test_join_rejected_once_started(world, contests, alice, bob, carol):
    contest = _open_contest(world, contests, alice, bob)
    contests.start_contest(world.conn, alice, contest.id)
    with pytest.raises(PolicyRejection) as exc:
        contests.join_contest(world.conn, carol, contest.invite_token)
    assert exc.value.reason == "contest_not_open"


def test_start_requires_two_members(world, contests, alice, bob):
    contest = contests.create_contest(world.conn, alice, "Pool")
    with pytest.raises(PolicyRejection) as exc:
        contests.start_contest(world.conn, alice, contest.id)
    assert exc.value.reason == "not_enough_members"
    contests.join_contest(world.conn, bob, contest.invite_token)
    started = contests.start_contest(world.conn, alice, contest.id)
    assert started.status == ContestStatus.ACTIVE.value


def test_start_permissions_and_state(world, contests, alice, bob, site_admin):
    contest = _open_contest(world, contests, alice, bob)
    with pytest.raises(PermissionDenied):
        contests.start_contest(world.conn, bob, contest.id)
    contests.start_contest(world.conn, site_admin, contest.id)
    with pytest.raises(PolicyRejection) as exc:
        contests.start_contest(world.conn, alice, contest.id)
    assert exc.value.reason == "contest_not_open"


# ---------- Views ----------


def test_list_contests_annotates_viewer(world, contests, alice, bob, carol):
    joined = _open_contest(world, contests, alice, bob)
    contests.create_contest(world.conn, carol, "Elsewhere")

    rows = {c["name"]: c for c in contests.list_contests(world.conn, viewer=bob)}
    assert rows["Sunday League"]["is_member"] is True
    assert rows["Sunday League"]["user_status"] == MemberStatus.ALIVE.value
    assert rows["Sunday League"]["member_count"] == 2
    assert rows["Sunday League"]["alive_count"] == 2
    assert rows["Elsewhere"]["is_member"] is False
    assert rows["Elsewhere"]["user_status"] is None
    assert "invite_token" not in rows["Sunday League"]

    anonymous = contests.list_contests(world.conn)
    assert all("is_member" not in c for c in anonymous)
    assert joined.id in {c["id"] for c in anonymous}


def test_detail_redacts_invite_token(world, contests, alice, bob, site_admin):
    contest = _open_contest(world, contests, alice, bob)
    assert "invite_token" not in contests.get_contest_detail(world.conn, contest.id)["contest"]
    assert "invite_token" not in contests.get_contest_detail(world.conn, contest.id, viewer=bob)["contest"]
    for viewer in (alice, site_admin):
        detail = contests.get_contest_detail(world.conn, contest.id, viewer=viewer)
        assert detail["contest"]["invite_token"] == contest.invite_token
    with pytest.raises(NotFoundError):
        contests.get_contest_detail(world.conn, "missing")


def test_detail_orders_members_by_status(world, contests, alice, bob, carol, dave):
    contest, members = world.contest(alice, [bob, carol, dave])
    world.members.eliminate(world.conn, members[bob.user_id].id, 2, None)
    world.members.eliminate(world.conn, members[carol.user_id].id, 4, None)
    world.members.update_status(world.conn, members[dave.user_id].id, MemberStatus.WINNER.value)

    detail = contests.get_contest_detail(world.conn, contest.id)
    assert [m["display_name"] for m in detail["members"]] == ["Dave", "Alice", "Carol", "Bob"]
    assert all(m["picks_made"] == 0 for m in detail["members"])


def test_standings_count_picks_and_distinct_entities(world, contests, alice, bob):
    t = world.add_entities(3)
    contest, members = world.contest(alice, [bob])
    world.nominate(contest, members[alice.user_id], 1, t[0], outcome=Outcome.WIN.value)
    world.nominate(contest, members[alice.user_id], 2, t[1], outcome=Outcome.WIN.value)
    world.nominate(contest, members[bob.user_id], 1, t[2], outcome=Outcome.WIN.value)

    rows = {r["display_name"]: r for r in contests.standings(world.conn, contest.id)["standings"]}
    assert rows["Alice"]["picks_made"] == 2
    assert rows["Alice"]["entities_used"] == 2
    assert rows["Bob"]["picks_made"] == 1


def test_history_groups_rounds_with_opponents_and_gate(world, contests, alice, bob):
    t = world.add_entities(4)
    last_week = NOW - timedelta(days=7)
    world.add_fixture(1, t[0], t[1], kickoff=last_week, status="finished", home_score=1, away_score=0)
    world.add_fixture(1, t[2], t[3], kickoff=last_week, status="finished", home_score=2, away_score=0)
    world.add_fixture(2, t[0], t[2])
    world.add_fixture(2, t[1], t[3])
    contest, members = world.contest(alice, [bob])
    world.nominate(contest, members[alice.user_id], 1, t[0], outcome=Outcome.WIN.value)
    world.nominate(contest, members[bob.user_id], 1, t[2], outcome=Outcome.WIN.value)
    world.nominate(contest, members[alice.user_id], 2, t[3])
    world.nominate(contest, members[bob.user_id], 2, t[0])

    view = contests.history(world.conn, contest.id, viewer=alice, now=BEFORE_DEADLINE)
    assert list(view["history"]) == [2, 1]
    round1 = {r["display_name"]: r for r in view["history"][1]}
    assert round1["Alice"]["opponent"] == "T02 (H)"
    assert round1["Bob"]["opponent"] == "T04 (H)"
    round2 = {r["display_name"]: r for r in view["history"][2]}
    assert round2["Alice"]["opponent"] == "T02 (A)"
    assert round2["Alice"]["hidden"] is False
    assert round2["Bob"]["hidden"] is True
    assert round2["Bob"]["entity_id"] is None
    assert round2["Bob"]["opponent"] is None

    later = contests.history(world.conn, contest.id, viewer=None, now=AFTER_DEADLINE)
    assert all(not r["hidden"] for r in later["history"][2])


# ---------- Delete ----------


def test_delete_cascades_members_and_nominations(world, contests, alice, bob):
    t = world.add_entities(2)
    contest, members = world.contest(alice, [bob])
    world.nominate(contest, members[bob.user_id], 1, t[0])
    with pytest.raises(PermissionDenied):
        contests.delete_contest(world.conn, bob, contest.id)

    contests.delete_contest(world.conn, alice, contest.id)

    assert world.contests.get(world.conn, contest.id) is None
    assert world.members.list_by_contest(world.conn, contest.id) == []
    assert world.nominations.list_by_contest(world.conn, contest.id) == []
    with pytest.raises(NotFoundError):
        contests.delete_contest(world.conn, alice, contest.id)


# ---------- Administrative ----------


def test_add_member(world, contests, alice, bob):
    contest, _ = world.contest(alice, [bob])
    member = contests.add_member(world.conn, contest.id, "u-late", "Latecomer")
    assert member.status == MemberStatus.ALIVE.value
    with pytest.raises(ConflictError):
        contests.add_member(world.conn, contest.id, "u-late", "Latecomer")
    world.contests.complete_as_draw(world.conn, contest.id)
    with pytest.raises(PolicyRejection):
        contests.add_member(world.conn, contest.id, "u-later", "Later")


def test_override_member_status(world, contests, alice, bob):
    t = world.add_entities(2)
    contest, members = world.contest(alice, [bob])
    bob_id = members[bob.user_id].id
    nomination = world.nominate(contest, members[bob.user_id], 3, t[1], outcome=Outcome.LOSS.value)

    eliminated = contests.override_member_status(
        world.conn, contest.id, bob_id, "eliminated", eliminated_round=3
    )
    assert eliminated.status == MemberStatus.ELIMINATED.value
    assert eliminated.eliminated_round == 3
    assert eliminated.eliminated_nomination_id == nomination.id

    revived = contests.override_member_status(world.conn, contest.id, bob_id, "alive")
    assert revived.status == MemberStatus.ALIVE.value
    assert revived.eliminated_round is None
    assert revived.eliminated_nomination_id is None

    with pytest.raises(ValidationError):
        contests.override_member_status(world.conn, contest.id, bob_id, "zombie")
    other, _ = world.contest(Identity("u-x", "X"), [])
    with pytest.raises(NotFoundError):
        contests.override_member_status(world.conn, other.id, bob_id, "alive")


def test_import_nomination_skips_deadline_and_reuse(world, contests, alice, bob):
    t = world.add_entities(2)
    last_week = NOW - timedelta(days=7)
    world.add_fixture(1, t[0], t[1], kickoff=last_week, status="finished", home_score=1, away_score=0)
    world.add_fixture(2, t[1], t[0], status="finished", home_score=0, away_score=0)
    contest, members = world.contest(alice, [bob], start_round=5)
    alice_id = members[alice.user_id].id

    first = contests.import_nomination(world.conn, contest.id, alice_id, 1, t[0].id, outcome="win")
    second = contests.import_nomination(world.conn, contest.id, alice_id, 2, t[0].id)
    assert first.outcome == Outcome.WIN.value
    assert second.outcome is None
    replaced = contests.import_nomination(world.conn, contest.id, alice_id, 2, t[1].id, outcome="draw")
    assert replaced.id == second.id
    assert replaced.entity_id == t[1].id

    with pytest.raises(PolicyRejection) as exc:
        contests.import_nomination(world.conn, contest.id, alice_id, 3, t[0].id)
    assert exc.value.reason == "no_fixture"
    with pytest.raises(ValidationError):
        contests.import_nomination(world.conn, contest.id, alice_id, 1, t[0].id, outcome="maybe")
    with pytest.raises(NotFoundError):
        contests.import_nomination(world.conn, contest.id, alice_id, 1, 9999)


def test_import_with_outcome_requires_processed_round(world, contests, alice, bob, carol, dave):
    t = world.add_entities(4)
    f1 = world.add_fixture(1, t[0], t[1])
    f2 = world.add_fixture(1, t[2], t[3])
    contest, members = world.contest(alice, [bob, carol, dave])
    ids = {user_id: m.id for user_id, m in members.items()}

    with pytest.raises(PolicyRejection) as exc:
        contests.import_nomination(world.conn, contest.id, ids[alice.user_id], 1, t[0].id, outcome="win")
    assert exc.value.reason == "round_not_processed"
    assert world.nominations.list_by_contest(world.conn, contest.id) == []

    contests.import_nomination(world.conn, contest.id, ids[alice.user_id], 1, t[0].id)
    contests.import_nomination(world.conn, contest.id, ids[bob.user_id], 1, t[2].id)
    world.finish(f1, 1, 0)
    world.finish(f2, 2, 0)

    report = ResultsService().process_round(world.conn, contest.id, 1)
    assert report.status == PROCESSED
    assert sorted(report.eliminated_member_ids) == sorted([ids[carol.user_id], ids[dave.user_id]])

    # once processed, a late pick may carry its outcome
    late = contests.import_nomination(world.conn, contest.id, ids[carol.user_id], 1, t[1].id, outcome="loss")
    assert late.outcome == Outcome.LOSS.value
    assert world.member(ids[carol.user_id]).status == MemberStatus.ELIMINATED.value


def test_reimport_without_outcome_keeps_recorded_outcome(world, contests, alice, bob, carol):
    t = world.add_entities(4)
    world.add_fixture(1, t[0], t[1], status="finished", home_score=2, away_score=1)
    world.add_fixture(1, t[2], t[3], status="finished", home_score=1, away_score=0)
    contest, members = world.contest(alice, [bob, carol])
    alice_id = members[alice.user_id].id
    contests.import_nomination(world.conn, contest.id, alice_id, 1, t[0].id)
    contests.import_nomination(world.conn, contest.id, members[bob.user_id].id, 1, t[2].id)
    results = ResultsService()
    assert results.process_round(world.conn, contest.id, 1).status == PROCESSED

    again = contests.import_nomination(world.conn, contest.id, alice_id, 1, t[0].id)

    assert again.outcome == Outcome.WIN.value
    assert results.process_round(world.conn, contest.id, 1).status == ALREADY_PROCESSED
    assert world.member(alice_id).status == MemberStatus.ALIVE.value
