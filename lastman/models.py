"""
Data models for the Last Man Standing backend.
Domain objects only, no persistence or API logic.

A contest runs over one season of the underlying competition. Members nominate one
entity (team) per round; a nomination that does not win eliminates the member.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- Contest status (state machine) ----------
class ContestStatus(str, Enum):
    """Contest lifecycle: open → active → completed."""
    OPEN = "open"            # Accepting members
    ACTIVE = "active"        # Picks required, rounds being processed
    COMPLETED = "completed"  # Winner found or drawn


# ---------- Member status ----------
class MemberStatus(str, Enum):
    """alive → eliminated | winner | drawn. Terminal states only change by admin override."""
    ALIVE = "alive"
    ELIMINATED = "eliminated"
    WINNER = "winner"
    DRAWN = "drawn"


# ---------- Fixture status ----------
class FixtureStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PLAY = "in_play"
    POSTPONED = "postponed"
    FINISHED = "finished"


# ---------- Nomination outcome ----------
class Outcome(str, Enum):
    WIN = "win"
    DRAW = "draw"
    LOSS = "loss"


# ---------- Site-wide role ----------
class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


# ---------- User / Identity ----------
@dataclass
class User:
    """
    A local account. Passwords are stored only as hashes.
    role is the site-wide role: user | admin.
    """
    id: str
    username: str
    name: str
    role: str
    created_at: datetime
    password_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, as supplied per request by the identity collaborator."""
    user_id: str
    name: str
    role: str = Role.USER.value

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


# ---------- Entity (team) ----------
@dataclass
class Entity:
    """A competing team, scoped to a season. Imported from the match feed."""
    id: int
    season: int
    name: str
    short_name: str
    provider_id: int | None = None
    crest_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "season": self.season,
            "name": self.name,
            "short_name": self.short_name,
            "provider_id": self.provider_id,
            "crest_url": self.crest_url,
        }


# ---------- Fixture ----------
@dataclass
class Fixture:
    """
    One scheduled match in a season/round. Owned by the catalog; written only by the
    feed import (upsert by provider_match_id). Scores are set once finished.
    """
    id: int
    season: int
    round: int
    home_entity_id: int
    away_entity_id: int
    kickoff_at: datetime | None
    home_score: int | None
    away_score: int | None
    status: str  # FixtureStatus value
    provider_match_id: int | None = None

    @property
    def is_finished(self) -> bool:
        return self.status == FixtureStatus.FINISHED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "season": self.season,
            "round": self.round,
            "home_entity_id": self.home_entity_id,
            "away_entity_id": self.away_entity_id,
            "kickoff_at": self.kickoff_at.isoformat() if self.kickoff_at else None,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status,
            "provider_match_id": self.provider_match_id,
        }


# ---------- Contest ----------
@dataclass
class Contest:
    """
    One run of the competition ("game"). Status: open → active → completed.
    Once completed exactly one of winner_member_id / is_drawn is set.
    """
    id: str
    name: str
    season: int
    admin_user_id: str
    created_by: str
    invite_token: str
    start_round: int
    status: str  # ContestStatus value
    created_at: datetime
    winner_member_id: str | None = None
    is_drawn: bool = False

    def to_dict(self, include_invite: bool = False) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "season": self.season,
            "admin_user_id": self.admin_user_id,
            "created_by": self.created_by,
            "start_round": self.start_round,
            "status": self.status,
            "winner_member_id": self.winner_member_id,
            "is_drawn": self.is_drawn,
            "created_at": self.created_at.isoformat(),
        }
        if include_invite:
            d["invite_token"] = self.invite_token
        return d


# ---------- Member ----------
@dataclass
class Member:
    """
    One user's seat in one contest. eliminated_nomination_id is None when the member
    was eliminated for not nominating.
    """
    id: str
    contest_id: str
    user_id: str
    display_name: str
    status: str  # MemberStatus value
    joined_at: datetime
    eliminated_round: int | None = None
    eliminated_nomination_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "contest_id": self.contest_id,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "status": self.status,
            "eliminated_round": self.eliminated_round,
            "eliminated_nomination_id": self.eliminated_nomination_id,
            "joined_at": self.joined_at.isoformat(),
        }


# ---------- Nomination (pick) ----------
@dataclass
class Nomination:
    """One member's entity for one round. outcome stays None until the round is processed."""
    id: str
    contest_id: str
    member_id: str
    round: int
    entity_id: int
    created_at: datetime
    updated_at: datetime
    outcome: str | None = None  # Outcome value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "contest_id": self.contest_id,
            "member_id": self.member_id,
            "round": self.round,
            "entity_id": self.entity_id,
            "outcome": self.outcome,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
