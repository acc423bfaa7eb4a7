"""
Match feed client (football-data.org v4 compatible).

Maps the provider's team and match payloads to FeedEntity / FeedMatch. Nothing here touches
the database; the catalog service owns the upserts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from lastman.config import Config
from lastman.errors import FeedNotConfigured, UpstreamError
from lastman.models import FixtureStatus

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "FINISHED": FixtureStatus.FINISHED.value,
    "IN_PLAY": FixtureStatus.IN_PLAY.value,
    "PAUSED": FixtureStatus.IN_PLAY.value,
    "POSTPONED": FixtureStatus.POSTPONED.value,
}


def map_status(provider_status: str | None) -> str:
    """Provider status -> fixture status. Anything unrecognised is scheduled."""
    return _STATUS_MAP.get((provider_status or "").upper(), FixtureStatus.SCHEDULED.value)


@dataclass
class FeedEntity:
    provider_id: int
    name: str
    short_name: str
    crest_url: str | None = None


@dataclass
class FeedMatch:
    provider_match_id: int
    round: int
    home_provider_id: int
    away_provider_id: int
    kickoff_at: datetime | None
    status: str
    home_score: int | None = None
    away_score: int | None = None


def _parse_kickoff(value: Any) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_entity(raw: dict[str, Any]) -> FeedEntity:
    short = raw.get("tla") or raw.get("shortName")
    if raw.get("id") is None or not raw.get("name") or not short:
        raise ValueError(f"team missing id/name/tla: {raw!r}")
    return FeedEntity(
        provider_id=int(raw["id"]),
        name=str(raw["name"]),
        short_name=str(short),
        crest_url=raw.get("crest"),
    )


def _parse_match(raw: dict[str, Any]) -> FeedMatch | None:
    """One provider match, or None when it is not yet assigned to a round."""
    if raw.get("matchday") is None:
        return None
    home = raw.get("homeTeam") or {}
    away = raw.get("awayTeam") or {}
    if raw.get("id") is None or home.get("id") is None or away.get("id") is None:
        raise ValueError(f"match missing id or team ids: {raw.get('id')!r}")
    full_time = (raw.get("score") or {}).get("fullTime") or {}
    home_score = full_time.get("home")
    away_score = full_time.get("away")
    return FeedMatch(
        provider_match_id=int(raw["id"]),
        round=int(raw["matchday"]),
        home_provider_id=int(home["id"]),
        away_provider_id=int(away["id"]),
        kickoff_at=_parse_kickoff(raw.get("utcDate")),
        status=map_status(raw.get("status")),
        home_score=int(home_score) if home_score is not None else None,
        away_score=int(away_score) if away_score is not None else None,
    )


class MatchFeedClient:
    """
    Thin client over the provider's competition endpoints.
    transport is passed through to httpx (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        competition: str = "PL",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise FeedNotConfigured("FOOTBALL_DATA_API_KEY not configured")
        self.base_url = base_url.rstrip("/")
        self.competition = competition
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: Config) -> "MatchFeedClient":
        if not config.feed_configured:
            raise FeedNotConfigured("FOOTBALL_DATA_API_KEY not configured")
        return cls(
            base_url=config.feed_base_url,
            api_key=config.feed_api_key,
            competition=config.feed_competition,
        )

    def _get(self, path: str, season: int) -> dict[str, Any]:
        url = f"{self.base_url}/competitions/{self.competition}/{path}"
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                r = client.get(url, params={"season": season}, headers={"X-Auth-Token": self._api_key})
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"Feed returned {e.response.status_code} for {path}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Feed request failed for {path}: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"Feed returned invalid JSON for {path}") from e
        if not isinstance(data, dict):
            raise UpstreamError(f"Feed returned unexpected payload for {path}")
        return data

    def fetch_entities(self, season: int) -> list[FeedEntity]:
        data = self._get("teams", season)
        teams = data.get("teams")
        if not isinstance(teams, list):
            raise UpstreamError("Feed payload has no 'teams' list")
        try:
            entities = [_parse_entity(t) for t in teams]
        except (TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed team in feed: {e}") from e
        logger.debug("Fetched %d teams for season %s", len(entities), season)
        return entities

    def fetch_matches(self, season: int) -> list[FeedMatch]:
        data = self._get("matches", season)
        raw_matches = data.get("matches")
        if not isinstance(raw_matches, list):
            raise UpstreamError("Feed payload has no 'matches' list")
        matches: list[FeedMatch] = []
        try:
            for raw in raw_matches:
                parsed = _parse_match(raw)
                if parsed is not None:
                    matches.append(parsed)
        except (TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed match in feed: {e}") from e
        logger.debug("Fetched %d matches for season %s", len(matches), season)
        return matches
