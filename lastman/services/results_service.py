"""
Round results processor: the elimination state machine for one (contest, round).

pending -> processed is a single transaction. Re-running a processed round is a no-op,
which lets the admin trigger and the poller overlap safely.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Iterable

from lastman.errors import NotFoundError, PolicyRejection
from lastman.models import ContestStatus, Fixture, MemberStatus, Outcome
from lastman.persistence.db import transaction
from lastman.persistence.repositories import (
    ContestRepository,
    FixtureRepository,
    MemberRepository,
    NominationRepository,
)

logger = logging.getLogger(__name__)

PROCESSED = "processed"
NOT_READY = "not_ready"
ALREADY_PROCESSED = "already_processed"


def outcome_map(fixtures: Iterable[Fixture]) -> dict[int, str]:
    """entity_id -> win | draw | loss from finished fixtures. Unfinished fixtures are ignored."""
    outcomes: dict[int, str] = {}
    for f in fixtures:
        if not f.is_finished or f.home_score is None or f.away_score is None:
            continue
        if f.home_score > f.away_score:
            outcomes[f.home_entity_id] = Outcome.WIN.value
            outcomes[f.away_entity_id] = Outcome.LOSS.value
        elif f.home_score < f.away_score:
            outcomes[f.home_entity_id] = Outcome.LOSS.value
            outcomes[f.away_entity_id] = Outcome.WIN.value
        else:
            outcomes[f.home_entity_id] = Outcome.DRAW.value
            outcomes[f.away_entity_id] = Outcome.DRAW.value
    return outcomes


@dataclass
class RoundReport:
    contest_id: str
    round: int
    status: str  # processed | not_ready | already_processed
    contest_status: str
    eliminated_member_ids: list[str] = field(default_factory=list)
    alive_count: int | None = None
    winner_member_id: str | None = None
    is_drawn: bool = False
    unfinished_fixtures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "contest_id": self.contest_id,
            "round": self.round,
            "status": self.status,
            "contest_status": self.contest_status,
            "eliminated_member_ids": list(self.eliminated_member_ids),
            "alive_count": self.alive_count,
            "winner_member_id": self.winner_member_id,
            "is_drawn": self.is_drawn,
            "unfinished_fixtures": self.unfinished_fixtures,
        }


class ResultsService:
    def __init__(self) -> None:
        self._contest_repo = ContestRepository()
        self._member_repo = MemberRepository()
        self._nomination_repo = NominationRepository()
        self._fixture_repo = FixtureRepository()

    def process_round(self, conn: sqlite3.Connection, contest_id: str, round: int) -> RoundReport:
        """
        Apply the round's results to the contest.

        Everything from the readiness check to the completion write happens under one
        BEGIN IMMEDIATE, so a concurrent call for the same contest waits and then sees
        already_processed. Any exception rolls the whole round back.
        """
        with transaction(conn):
            contest = self._contest_repo.get(conn, contest_id)
            if contest is None:
                raise NotFoundError(f"Contest not found: {contest_id}")

            if self._nomination_repo.count_with_outcome(conn, contest_id, round) > 0:
                logger.debug("Contest %s round %s already processed", contest_id, round)
                return RoundReport(contest_id, round, ALREADY_PROCESSED, contest.status)

            if contest.status != ContestStatus.ACTIVE.value:
                raise PolicyRejection(
                    f"Contest is not active (current: {contest.status})", reason="contest_not_active"
                )

            fixtures = self._fixture_repo.list_by_round(conn, contest.season, round)
            unfinished = self._fixture_repo.count_unfinished_in_round(conn, contest.season, round)
            if not fixtures or unfinished:
                logger.debug("Contest %s round %s not ready: %d/%d fixtures unfinished",
                             contest_id, round, unfinished, len(fixtures))
                return RoundReport(contest_id, round, NOT_READY, contest.status,
                                   unfinished_fixtures=unfinished)

            outcomes = outcome_map(fixtures)

            # Record every nomination's outcome.
            nominated: dict[str, tuple[str, str]] = {}
            for n in self._nomination_repo.list_by_contest_round(conn, contest_id, round):
                outcome = outcomes.get(n.entity_id, Outcome.LOSS.value)
                self._nomination_repo.set_outcome(conn, n.id, outcome)
                nominated[n.member_id] = (n.id, outcome)

            # Anyone alive without a win is out, including members with no nomination.
            eliminated: list[str] = []
            for member in self._member_repo.list_by_status(conn, contest_id, MemberStatus.ALIVE.value):
                nomination_id, outcome = nominated.get(member.id, (None, None))
                if outcome == Outcome.WIN.value:
                    continue
                if self._member_repo.eliminate(conn, member.id, round, nomination_id):
                    eliminated.append(member.id)

            survivors = self._member_repo.list_by_status(conn, contest_id, MemberStatus.ALIVE.value)
            report = RoundReport(
                contest_id, round, PROCESSED, ContestStatus.ACTIVE.value,
                eliminated_member_ids=eliminated, alive_count=len(survivors),
            )
            if len(survivors) == 1:
                winner = survivors[0]
                self._member_repo.update_status(conn, winner.id, MemberStatus.WINNER.value)
                self._contest_repo.complete_with_winner(conn, contest_id, winner.id)
                report.contest_status = ContestStatus.COMPLETED.value
                report.winner_member_id = winner.id
            elif not survivors and eliminated:
                # Only this pass's eliminations share the draw.
                for member_id in eliminated:
                    self._member_repo.update_status(conn, member_id, MemberStatus.DRAWN.value)
                self._contest_repo.complete_as_draw(conn, contest_id)
                report.contest_status = ContestStatus.COMPLETED.value
                report.is_drawn = True
            elif not survivors:
                logger.warning("Contest %s is active with no alive members; left active", contest_id)

        if eliminated:
            logger.info("Contest %s round %s: eliminated %s", contest_id, round, ", ".join(eliminated))
        logger.info(
            "Processed contest %s round %s: %d eliminated, %d alive, contest %s%s",
            contest_id, round, len(eliminated), report.alive_count, report.contest_status,
            " (drawn)" if report.is_drawn else (f" (winner {report.winner_member_id})" if report.winner_member_id else ""),
        )
        return report
