"""
Contest registry: contests, their roster and each member's status.
Create / join / start, read views (list, detail, standings, history), delete, and the
administrative overrides. Round results are applied by results_service, not here.
"""
from __future__ import annotations

import logging
import secrets
import sqlite3
import string
from datetime import datetime
from typing import Any

from lastman.errors import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    PolicyRejection,
    ValidationError,
)
from lastman.models import Contest, ContestStatus, Identity, Member, MemberStatus, Nomination, Outcome
from lastman.persistence.db import transaction
from lastman.persistence.repositories import (
    ContestRepository,
    EntityRepository,
    FixtureRepository,
    MemberRepository,
    NominationRepository,
)
from lastman.services import rounds, settings
from lastman.services.pick_service import project_nomination

logger = logging.getLogger(__name__)

INVITE_TOKEN_LENGTH = 8
_INVITE_ALPHABET = string.ascii_uppercase + string.digits
_MAX_TOKEN_ATTEMPTS = 5
MIN_MEMBERS_TO_START = 2

# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[str, set[str]] = {
    ContestStatus.OPEN.value: {ContestStatus.ACTIVE.value},
    ContestStatus.ACTIVE.value: {ContestStatus.COMPLETED.value},  # results_service only
    ContestStatus.COMPLETED.value: set(),
}

_STATUS_ORDER = {
    MemberStatus.WINNER.value: 1,
    MemberStatus.ALIVE.value: 2,
    MemberStatus.DRAWN.value: 3,
    MemberStatus.ELIMINATED.value: 4,
}


def generate_invite_token() -> str:
    return "".join(secrets.choice(_INVITE_ALPHABET) for _ in range(INVITE_TOKEN_LENGTH))


def _standing_key(m: Member) -> tuple[int, int, int]:
    """winner, alive, drawn, eliminated; within a status the latest elimination first."""
    has_round = 0 if m.eliminated_round is None else 1
    return (_STATUS_ORDER.get(m.status, 5), has_round, -(m.eliminated_round or 0))


def _can_manage(identity: Identity, contest: Contest) -> bool:
    return identity.is_admin or identity.user_id == contest.admin_user_id


# ---------- ContestService ----------


class ContestService:
    """
    Domain logic for contests: lifecycle, membership, views.
    Persistence is delegated to repositories; writes run inside transaction().
    """

    def __init__(self) -> None:
        self._contest_repo = ContestRepository()
        self._member_repo = MemberRepository()
        self._nomination_repo = NominationRepository()
        self._entity_repo = EntityRepository()
        self._fixture_repo = FixtureRepository()

    def _get_contest(self, conn: sqlite3.Connection, contest_id: str) -> Contest:
        contest = self._contest_repo.get(conn, contest_id)
        if contest is None:
            raise NotFoundError(f"Contest not found: {contest_id}")
        return contest

    def _get_member(self, conn: sqlite3.Connection, contest_id: str, member_id: str) -> Member:
        member = self._member_repo.get(conn, member_id)
        if member is None or member.contest_id != contest_id:
            raise NotFoundError(f"Member not found: {member_id}")
        return member

    def assert_transition(self, contest: Contest, new_status: str) -> None:
        allowed = _VALID_TRANSITIONS.get(contest.status, set())
        if new_status not in allowed:
            expected = (
                ContestStatus.OPEN.value if new_status == ContestStatus.ACTIVE.value
                else ContestStatus.ACTIVE.value
            )
            raise PolicyRejection(
                f"Invalid transition: {contest.status} -> {new_status}",
                reason=f"contest_not_{expected}",
            )

    # ---------- Lifecycle ----------

    def create_contest(
        self,
        conn: sqlite3.Connection,
        identity: Identity,
        name: str,
        start_round: int | None = None,
    ) -> Contest:
        """Create a contest in the current season; the creator is its admin and first member."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required")
        start_round = 1 if start_round is None else start_round
        if start_round < 1:
            raise ValidationError("start_round must be >= 1")

        with transaction(conn):
            season = settings.current_season(conn)
            for _ in range(_MAX_TOKEN_ATTEMPTS):
                token = generate_invite_token()
                if self._contest_repo.get_by_invite_token(conn, token) is None:
                    break
            else:
                raise ConflictError("Invite token conflict, please try again")
            contest = self._contest_repo.create(
                conn, name, season, identity.user_id, token, start_round=start_round
            )
            self._member_repo.create(conn, contest.id, identity.user_id, identity.name)

        logger.info("Contest %s created by %s (season %s, start round %s)",
                    contest.id, identity.user_id, season, start_round)
        return contest

    def join_contest(self, conn: sqlite3.Connection, identity: Identity, invite_token: str) -> Member:
        token = (invite_token or "").strip().upper()
        if not token:
            raise ValidationError("invite_token is required")
        with transaction(conn):
            contest = self._contest_repo.get_by_invite_token(conn, token)
            if contest is None:
                raise NotFoundError("Invalid invite token")
            if contest.status != ContestStatus.OPEN.value:
                raise PolicyRejection("This contest is no longer accepting members", reason="contest_not_open")
            if self._member_repo.get_by_user(conn, contest.id, identity.user_id) is not None:
                raise ConflictError("Already a member of this contest", reason="already_member")
            member = self._member_repo.create(conn, contest.id, identity.user_id, identity.name)
        logger.info("User %s joined contest %s", identity.user_id, contest.id)
        return member

    def start_contest(self, conn: sqlite3.Connection, identity: Identity, contest_id: str) -> Contest:
        with transaction(conn):
            contest = self._get_contest(conn, contest_id)
            if not _can_manage(identity, contest):
                raise PermissionDenied("Only the contest admin can start this contest")
            self.assert_transition(contest, ContestStatus.ACTIVE.value)
            member_count = len(self._member_repo.list_by_contest(conn, contest_id))
            if member_count < MIN_MEMBERS_TO_START:
                raise PolicyRejection(
                    f"Need at least {MIN_MEMBERS_TO_START} members to start",
                    reason="not_enough_members",
                )
            self._contest_repo.update_status(conn, contest_id, ContestStatus.ACTIVE.value)
        logger.info("Contest %s started with %d members", contest_id, member_count)
        return self._get_contest(conn, contest_id)

    def delete_contest(self, conn: sqlite3.Connection, identity: Identity, contest_id: str) -> None:
        with transaction(conn):
            contest = self._get_contest(conn, contest_id)
            if not _can_manage(identity, contest):
                raise PermissionDenied("Only the contest admin can delete this contest")
            self._contest_repo.delete(conn, contest_id)
        logger.info("Contest %s deleted by %s", contest_id, identity.user_id)

    # ---------- Views ----------

    def list_contests(
        self,
        conn: sqlite3.Connection,
        viewer: Identity | None = None,
        season: int | None = None,
    ) -> list[dict[str, Any]]:
        if season is None:
            season = settings.current_season(conn)
        memberships = self._member_repo.statuses_by_user(conn, viewer.user_id) if viewer else {}
        out = []
        for contest in self._contest_repo.list_by_season(conn, season):
            counts = self._member_repo.count_by_status(conn, contest.id)
            d = contest.to_dict()
            d["member_count"] = sum(counts.values())
            d["alive_count"] = counts[MemberStatus.ALIVE.value]
            if viewer is not None:
                d["is_member"] = contest.id in memberships
                d["user_status"] = memberships.get(contest.id)
            out.append(d)
        return out

    def get_contest_detail(
        self,
        conn: sqlite3.Connection,
        contest_id: str,
        viewer: Identity | None = None,
    ) -> dict[str, Any]:
        """Contest plus ordered members. The invite token is shown only to the contest admin or a site admin."""
        contest = self._get_contest(conn, contest_id)
        summary = self._member_repo.pick_summary(conn, contest_id)
        members = sorted(self._member_repo.list_by_contest(conn, contest_id), key=_standing_key)
        include_invite = viewer is not None and _can_manage(viewer, contest)
        rows = []
        for m in members:
            d = m.to_dict()
            d["picks_made"] = summary.get(m.id, {}).get("picks_made", 0)
            rows.append(d)
        return {"contest": contest.to_dict(include_invite=include_invite), "members": rows}

    def standings(self, conn: sqlite3.Connection, contest_id: str) -> dict[str, Any]:
        contest = self._get_contest(conn, contest_id)
        summary = self._member_repo.pick_summary(conn, contest_id)
        members = sorted(self._member_repo.list_by_contest(conn, contest_id), key=_standing_key)
        rows = []
        for m in members:
            d = m.to_dict()
            d.update(summary.get(m.id, {"picks_made": 0, "entities_used": 0}))
            rows.append(d)
        return {"contest": contest.to_dict(), "standings": rows}

    def history(
        self,
        conn: sqlite3.Connection,
        contest_id: str,
        viewer: Identity | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Nominations grouped by round (latest first), each with an opponent label such as
        "ARS (H)". Rounds whose deadline has not passed are redacted like list_picks_for_round.
        """
        contest = self._get_contest(conn, contest_id)
        season = contest.season
        entities = {e.id: e for e in self._entity_repo.list_by_season(conn, season)}
        members = {m.id: m for m in self._member_repo.list_by_contest(conn, contest_id)}

        by_round: dict[int, list[Nomination]] = {}
        for n in self._nomination_repo.list_by_contest(conn, contest_id):
            by_round.setdefault(n.round, []).append(n)

        history: dict[int, list[dict[str, Any]]] = {}
        for round_no in sorted(by_round, reverse=True):
            revealed = rounds.picks_revealed(conn, season, round_no, now)
            fixtures = self._fixture_repo.list_by_round(conn, season, round_no)
            rows = []
            for n in by_round[round_no]:
                member = members[n.member_id]
                row = {
                    "nomination_id": n.id,
                    "member_id": member.id,
                    "display_name": member.display_name,
                    "member_status": member.status,
                    "entity_id": n.entity_id,
                    "entity_name": entities[n.entity_id].name if n.entity_id in entities else None,
                    "entity_short": entities[n.entity_id].short_name if n.entity_id in entities else None,
                    "opponent": self._opponent_label(n.entity_id, fixtures, entities),
                    "outcome": n.outcome,
                }
                hidden = not revealed and (viewer is None or viewer.user_id != member.user_id)
                rows.append(project_nomination(row, hidden))
            rows.sort(key=lambda r: r["display_name"].lower())
            history[round_no] = rows
        return {
            "contest_id": contest_id,
            "current_round": rounds.resolve_active_round(conn, season),
            "history": history,
        }

    @staticmethod
    def _opponent_label(entity_id: int, fixtures: list, entities: dict) -> str | None:
        for f in fixtures:
            if f.home_entity_id == entity_id:
                opp = entities.get(f.away_entity_id)
                return f"{opp.short_name} (H)" if opp else None
            if f.away_entity_id == entity_id:
                opp = entities.get(f.home_entity_id)
                return f"{opp.short_name} (A)" if opp else None
        return None

    # ---------- Administrative ----------

    def add_member(
        self,
        conn: sqlite3.Connection,
        contest_id: str,
        user_id: str,
        display_name: str,
    ) -> Member:
        """Add a member regardless of the invite flow. Not allowed once the contest is completed."""
        if not (user_id or "").strip() or not (display_name or "").strip():
            raise ValidationError("user_id and display_name are required")
        with transaction(conn):
            contest = self._get_contest(conn, contest_id)
            if contest.status == ContestStatus.COMPLETED.value:
                raise PolicyRejection("Contest is completed", reason="contest_completed")
            if self._member_repo.get_by_user(conn, contest_id, user_id) is not None:
                raise ConflictError("User is already a member of this contest", reason="already_member")
            member = self._member_repo.create(conn, contest_id, user_id, display_name.strip())
        logger.info("Admin added user %s to contest %s", user_id, contest_id)
        return member

    def override_member_status(
        self,
        conn: sqlite3.Connection,
        contest_id: str,
        member_id: str,
        status: str,
        eliminated_round: int | None = None,
    ) -> Member:
        """
        Set a member's status directly; the only way out of a terminal state.
        alive and winner clear the elimination fields; eliminated and drawn keep the given
        (or existing) round and point at that round's nomination if there is one.
        """
        try:
            new_status = MemberStatus(status).value
        except ValueError:
            raise ValidationError(f"Invalid member status: {status!r}")
        with transaction(conn):
            member = self._get_member(conn, contest_id, member_id)
            if new_status in (MemberStatus.ALIVE.value, MemberStatus.WINNER.value):
                round_no, nomination_id = None, None
            else:
                round_no = eliminated_round if eliminated_round is not None else member.eliminated_round
                nomination_id = None
                if round_no is not None:
                    nomination = self._nomination_repo.get_for_round(conn, contest_id, member_id, round_no)
                    nomination_id = nomination.id if nomination else None
            self._member_repo.override_status(conn, member_id, new_status, round_no, nomination_id)
        logger.warning("Member %s in contest %s overridden: %s -> %s",
                       member_id, contest_id, member.status, new_status)
        return self._get_member(conn, contest_id, member_id)

    def import_nomination(
        self,
        conn: sqlite3.Connection,
        contest_id: str,
        member_id: str,
        round: int,
        entity_id: int,
        outcome: str | None = None,
    ) -> Nomination:
        """
        Retroactive nomination. Skips deadline, start-round and reuse checks but still
        requires the entity to have a fixture in that round.

        An outcome is accepted only for rounds before start_round or rounds that have
        already been processed; otherwise the round would count as processed.
        """
        if round is None or round < 1:
            raise ValidationError("round must be >= 1")
        if outcome is not None:
            try:
                outcome = Outcome(outcome).value
            except ValueError:
                raise ValidationError(f"Invalid outcome: {outcome!r}")
        with transaction(conn):
            contest = self._get_contest(conn, contest_id)
            self._get_member(conn, contest_id, member_id)
            if self._entity_repo.get(conn, entity_id) is None:
                raise NotFoundError(f"Entity not found: {entity_id}")
            if self._fixture_repo.find_for_entity(conn, contest.season, round, entity_id) is None:
                raise PolicyRejection(
                    f"Entity {entity_id} has no fixture in round {round}", reason="no_fixture"
                )
            if (
                outcome is not None
                and round >= contest.start_round
                and self._nomination_repo.count_with_outcome(conn, contest_id, round) == 0
            ):
                raise PolicyRejection(
                    f"Round {round} has not been processed; import without an outcome",
                    reason="round_not_processed",
                )
            nomination = self._nomination_repo.upsert(
                conn, contest_id, member_id, round, entity_id, outcome=outcome
            )
        logger.info("Imported nomination for member %s, contest %s, round %s", member_id, contest_id, round)
        return nomination
