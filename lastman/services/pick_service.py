"""
Pick validator and visibility gate.

submit_nomination checks, in order: contest active, round reached start_round, caller is an
alive member, deadline not passed (unless bypassed), round not already processed, entity has a
fixture this round, entity not already used (unless the pool is exhausted or it is the pick
being replaced). Checks and the upsert share one BEGIN IMMEDIATE transaction, so concurrent
submissions for the same round serialize and the last one to commit wins.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any

from lastman.errors import NotFoundError, PermissionDenied, PolicyRejection, ValidationError
from lastman.models import Contest, ContestStatus, Identity, MemberStatus, Nomination
from lastman.persistence.db import transaction
from lastman.persistence.repositories import (
    ContestRepository,
    EntityRepository,
    FixtureRepository,
    MemberRepository,
    NominationRepository,
)
from lastman.services import rounds

logger = logging.getLogger(__name__)

# Fields withheld from other members until the round's deadline passes.
_REDACTED_FIELDS = ("entity_id", "entity_name", "entity_short", "crest_url", "opponent", "outcome")


def project_nomination(row: dict[str, Any], hidden: bool) -> dict[str, Any]:
    """Read-time projection: the nominator stays visible, the pick does not."""
    out = dict(row)
    if hidden:
        for key in _REDACTED_FIELDS:
            if key in out:
                out[key] = None
    out["hidden"] = hidden
    return out


class PickService:
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

    def submit_nomination(
        self,
        conn: sqlite3.Connection,
        identity: Identity,
        contest_id: str,
        entity_id: int | None,
        now: datetime | None = None,
    ) -> Nomination:
        """Create or replace the caller's nomination for the active round."""
        if entity_id is None:
            raise ValidationError("entity_id is required")
        try:
            entity_id = int(entity_id)
        except (TypeError, ValueError):
            raise ValidationError(f"entity_id must be an integer, got {entity_id!r}")

        with transaction(conn):
            contest = self._get_contest(conn, contest_id)
            season = contest.season
            round_no = rounds.resolve_active_round(conn, season)

            if contest.status != ContestStatus.ACTIVE.value:
                raise PolicyRejection("Contest is not active", reason="contest_not_active")
            if round_no < contest.start_round:
                raise PolicyRejection(
                    f"Contest has not started yet (starts round {contest.start_round})",
                    reason="round_not_started",
                )
            member = self._member_repo.get_by_user(conn, contest_id, identity.user_id)
            if member is None:
                raise PermissionDenied("Not a member of this contest")
            if member.status != MemberStatus.ALIVE.value:
                raise PolicyRejection("Member is no longer alive in this contest", reason="member_not_alive")
            if rounds.deadline_passed(conn, season, round_no, now):
                raise PolicyRejection(f"Deadline has passed for round {round_no}", reason="deadline_passed")

            existing = self._nomination_repo.get_for_round(conn, contest_id, member.id, round_no)
            if existing is not None and existing.outcome is not None:
                raise PolicyRejection(
                    f"Round {round_no} has already been processed", reason="round_already_processed"
                )

            if self._entity_repo.get(conn, entity_id) is None:
                raise NotFoundError(f"Entity not found: {entity_id}")
            if self._fixture_repo.find_for_entity(conn, season, round_no, entity_id) is None:
                raise PolicyRejection(
                    f"Entity has no fixture in round {round_no}", reason="no_fixture"
                )

            replacing_same = existing is not None and existing.entity_id == entity_id
            if not replacing_same:
                used_elsewhere = {
                    n.entity_id for n in self._nomination_repo.list_by_member(conn, member.id)
                    if n.round != round_no
                }
                pool_size = self._entity_repo.count_by_season(conn, season)
                if entity_id in used_elsewhere and len(used_elsewhere) < pool_size:
                    raise PolicyRejection("Entity already used by this member", reason="entity_already_used")

            nomination = self._nomination_repo.upsert(conn, contest_id, member.id, round_no, entity_id)

        logger.info(
            "Nomination %s: member %s, contest %s, round %s, entity %s%s",
            nomination.id, member.id, contest_id, round_no, entity_id,
            " (replaced)" if existing is not None and not replacing_same else "",
        )
        return nomination

    def list_my_nominations(
        self, conn: sqlite3.Connection, identity: Identity, contest_id: str
    ) -> dict[str, Any]:
        self._get_contest(conn, contest_id)
        member = self._member_repo.get_by_user(conn, contest_id, identity.user_id)
        if member is None:
            raise NotFoundError("Not a member of this contest")
        rows = []
        for n in self._nomination_repo.list_by_member(conn, member.id):
            entity = self._entity_repo.get(conn, n.entity_id)
            d = n.to_dict()
            d["entity_name"] = entity.name if entity else None
            d["entity_short"] = entity.short_name if entity else None
            d["crest_url"] = entity.crest_url if entity else None
            rows.append(d)
        return {"member_id": member.id, "member_status": member.status, "nominations": rows}

    def list_picks_for_round(
        self,
        conn: sqlite3.Connection,
        contest_id: str,
        round: int,
        viewer: Identity | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Every nomination of the round. Until the deadline passes each entity is redacted unless the
        viewer made that nomination; the deadline bypass reveals everything. Never writes.
        """
        contest = self._get_contest(conn, contest_id)
        deadline = rounds.round_deadline(conn, contest.season, round)
        passed = rounds.deadline_passed(conn, contest.season, round, now)
        revealed = rounds.picks_revealed(conn, contest.season, round, now)
        members = {m.id: m for m in self._member_repo.list_by_contest(conn, contest_id)}

        picks = []
        for n in self._nomination_repo.list_by_contest_round(conn, contest_id, round):
            member = members[n.member_id]
            entity = self._entity_repo.get(conn, n.entity_id)
            row = {
                "nomination_id": n.id,
                "member_id": member.id,
                "display_name": member.display_name,
                "member_status": member.status,
                "entity_id": n.entity_id,
                "entity_name": entity.name if entity else None,
                "entity_short": entity.short_name if entity else None,
                "crest_url": entity.crest_url if entity else None,
                "outcome": n.outcome,
            }
            hidden = not revealed and (viewer is None or viewer.user_id != member.user_id)
            picks.append(project_nomination(row, hidden))
        picks.sort(key=lambda r: r["display_name"].lower())
        return {
            "contest_id": contest_id,
            "round": round,
            "deadline": deadline.isoformat() if deadline else None,
            "deadline_passed": passed,
            "revealed": revealed,
            "picks": picks,
        }
