"""
Catalog: entities and fixtures per season.

Writes come only from the match feed (import_season, update_results); everything else reads.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from lastman.feed import MatchFeedClient
from lastman.models import Entity
from lastman.persistence.db import transaction
from lastman.persistence.repositories import EntityRepository, FixtureRepository
from lastman.services import rounds, settings

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    season: int
    entities_imported: int
    fixtures_imported: int
    fixtures_skipped: int
    current_round: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "season": self.season,
            "entities_imported": self.entities_imported,
            "fixtures_imported": self.fixtures_imported,
            "fixtures_skipped": self.fixtures_skipped,
            "current_round": self.current_round,
        }


@dataclass
class UpdateReport:
    season: int
    fixtures_updated: int
    current_round: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "season": self.season,
            "fixtures_updated": self.fixtures_updated,
            "current_round": self.current_round,
        }


class CatalogService:
    def __init__(self) -> None:
        self._entity_repo = EntityRepository()
        self._fixture_repo = FixtureRepository()

    # ---------- Feed writes ----------

    def import_season(
        self, conn: sqlite3.Connection, feed: MatchFeedClient, season: int | None = None
    ) -> ImportReport:
        """
        Upsert every team and match for the season, then make it the current season.
        Feed calls happen before the transaction opens, so an upstream failure writes nothing.
        """
        if season is None:
            season = settings.current_season(conn)
        feed_entities = feed.fetch_entities(season)
        feed_matches = feed.fetch_matches(season)

        imported = skipped = 0
        with transaction(conn):
            by_provider: dict[int, int] = {}
            for fe in feed_entities:
                entity = self._entity_repo.upsert(
                    conn, season, fe.name, fe.short_name,
                    provider_id=fe.provider_id, crest_url=fe.crest_url,
                )
                by_provider[fe.provider_id] = entity.id
            for fm in feed_matches:
                home_id = by_provider.get(fm.home_provider_id)
                away_id = by_provider.get(fm.away_provider_id)
                if home_id is None or away_id is None:
                    skipped += 1
                    continue
                self._fixture_repo.upsert_by_provider_id(
                    conn, fm.provider_match_id, season, fm.round, home_id, away_id,
                    fm.kickoff_at, fm.status, fm.home_score, fm.away_score,
                )
                imported += 1
            settings.set_setting(conn, settings.CURRENT_SEASON, season)
            detected = self._refresh_current_round(conn, season)

        logger.info(
            "Imported season %s: %d entities, %d fixtures (%d skipped), round %s",
            season, len(feed_entities), imported, skipped, detected,
        )
        return ImportReport(season, len(feed_entities), imported, skipped, detected)

    def update_results(
        self, conn: sqlite3.Connection, feed: MatchFeedClient, season: int | None = None
    ) -> UpdateReport:
        """Refresh status, kickoff and score of every not-yet-finished fixture. Finished ones are left alone."""
        if season is None:
            season = settings.current_season(conn)
        feed_matches = feed.fetch_matches(season)

        updated = 0
        with transaction(conn):
            pending = {
                f.provider_match_id
                for f in self._fixture_repo.list_unfinished(conn, season)
                if f.provider_match_id is not None
            }
            for fm in feed_matches:
                if fm.provider_match_id not in pending:
                    continue
                updated += self._fixture_repo.update_unfinished_by_provider_id(
                    conn, fm.provider_match_id, fm.status, fm.kickoff_at,
                    fm.home_score, fm.away_score,
                )
            detected = self._refresh_current_round(conn, season)

        logger.info("Updated %d fixtures for season %s, round %s", updated, season, detected)
        return UpdateReport(season, updated, detected)

    def _refresh_current_round(self, conn: sqlite3.Connection, season: int) -> int | None:
        detected = rounds.detect_round(conn, season)
        if detected is not None:
            settings.set_setting(conn, settings.CURRENT_ROUND, detected)
        return detected

    # ---------- Reads ----------

    def list_entities(self, conn: sqlite3.Connection, season: int | None = None) -> list[Entity]:
        if season is None:
            season = settings.current_season(conn)
        return self._entity_repo.list_by_season(conn, season)

    def list_fixtures(
        self, conn: sqlite3.Connection, round: int, season: int | None = None
    ) -> list[dict[str, Any]]:
        """Fixtures of a round with team names attached."""
        if season is None:
            season = settings.current_season(conn)
        entities = {e.id: e for e in self._entity_repo.list_by_season(conn, season)}
        out = []
        for f in self._fixture_repo.list_by_round(conn, season, round):
            d = f.to_dict()
            home = entities.get(f.home_entity_id)
            away = entities.get(f.away_entity_id)
            d["home_name"] = home.name if home else None
            d["home_short"] = home.short_name if home else None
            d["away_name"] = away.name if away else None
            d["away_short"] = away.short_name if away else None
            out.append(d)
        return out

    def deadline_info(
        self,
        conn: sqlite3.Connection,
        round: int,
        season: int | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        if season is None:
            season = settings.current_season(conn)
        now = now or datetime.now(timezone.utc)
        deadline = rounds.round_deadline(conn, season, round)
        return {
            "season": season,
            "round": round,
            "deadline": deadline.isoformat() if deadline else None,
            "deadline_passed": rounds.deadline_passed(conn, season, round, now),
            "bypass": settings.deadline_bypass(conn),
        }

