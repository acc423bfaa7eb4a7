"""
Results poller: pull fresh results from the feed, then process a trailing window of rounds
for every active contest. A missed tick heals on the next one because process_round is
idempotent. One contest failing never stops the others.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from lastman.errors import FeedNotConfigured, UpstreamError
from lastman.feed import MatchFeedClient
from lastman.models import ContestStatus
from lastman.persistence.db import get_connection
from lastman.persistence.repositories import ContestRepository
from lastman.services import rounds, settings
from lastman.services.catalog import CatalogService
from lastman.services.results_service import ResultsService

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 3


@dataclass
class PollReport:
    season: int
    active_round: int
    fixtures_updated: int | None = None
    feed_error: str | None = None
    reports: list[dict[str, Any]] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "season": self.season,
            "active_round": self.active_round,
            "fixtures_updated": self.fixtures_updated,
            "feed_error": self.feed_error,
            "reports": list(self.reports),
            "failures": list(self.failures),
        }


def round_window(start_round: int, active_round: int, window: int) -> range:
    """Rounds max(start_round, active_round - window + 1) .. active_round, ascending."""
    return range(max(start_round, active_round - window + 1), active_round + 1)


def run_results_check(
    conn: sqlite3.Connection,
    feed: MatchFeedClient | None,
    window: int = DEFAULT_WINDOW,
) -> PollReport:
    """One poller pass. feed=None skips the feed update and only processes rounds."""
    fixtures_updated = None
    feed_error = None
    if feed is None:
        feed_error = "feed not configured"
        logger.warning("Results check: match feed not configured, skipping fixture update")
    else:
        try:
            fixtures_updated = CatalogService().update_results(conn, feed).fixtures_updated
        except (UpstreamError, FeedNotConfigured) as e:
            feed_error = e.message
            logger.warning("Results check: fixture update failed: %s", e.message)

    season = settings.current_season(conn)
    active_round = rounds.resolve_active_round(conn, season)
    poll = PollReport(season, active_round, fixtures_updated=fixtures_updated, feed_error=feed_error)

    results = ResultsService()
    contests = ContestRepository().list_by_status(conn, ContestStatus.ACTIVE.value, season=season)
    for contest in contests:
        for round_no in round_window(contest.start_round, active_round, window):
            try:
                report = results.process_round(conn, contest.id, round_no)
            except Exception as e:
                logger.exception("Results check failed for contest %s round %s", contest.id, round_no)
                poll.failures.append({"contest_id": contest.id, "round": round_no, "error": str(e)})
                continue
            poll.reports.append(report.to_dict())
            if report.contest_status == ContestStatus.COMPLETED.value:
                break

    processed = sum(1 for r in poll.reports if r["status"] == "processed")
    logger.info(
        "Results check: season %s round %s, %d contests, %d rounds processed, %d failures",
        season, active_round, len(contests), processed, len(poll.failures),
    )
    return poll


class ResultsPoller:
    """
    Periodic background trigger for run_results_check. Each tick runs in a worker thread
    with its own connection so the event loop is never blocked on SQLite.
    """

    def __init__(
        self,
        interval_seconds: float,
        window: int = DEFAULT_WINDOW,
        feed_factory: Callable[[], MatchFeedClient | None] | None = None,
        startup_delay_seconds: float = 10,
        db_path: str | Path | None = None,
    ) -> None:
        self.interval_seconds = interval_seconds
        self.window = window
        self.startup_delay_seconds = startup_delay_seconds
        self._feed_factory = feed_factory or (lambda: None)
        self._db_path = db_path
        self._task: asyncio.Task | None = None

    def tick(self) -> PollReport | None:
        """Run one pass synchronously. Errors are logged so the loop keeps going."""
        try:
            feed = self._feed_factory()
        except FeedNotConfigured:
            feed = None
        conn = get_connection(self._db_path)
        try:
            return run_results_check(conn, feed, window=self.window)
        except Exception:
            logger.exception("Results check failed")
            return None
        finally:
            conn.close()

    async def run_forever(self) -> None:
        loop = asyncio.get_running_loop()
        await asyncio.sleep(self.startup_delay_seconds)
        while True:
            await loop.run_in_executor(None, self.tick)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            logger.info("Results poller started (every %ss, window %s)", self.interval_seconds, self.window)
            self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Results poller stopped")
