"""
REST API for the Last Man Standing backend.
Thin wrappers around services and persistence. Service errors (LmsError) are mapped to
HTTP responses by one exception handler.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from lastman.auth import create_access_token, decode_token, hash_password, verify_password
from lastman.config import get_config
from lastman.errors import ConflictError, LmsError, NotAuthenticated, NotFoundError, PermissionDenied
from lastman.feed import MatchFeedClient
from lastman.log import setup_logging
from lastman.models import Identity, Role
from lastman.persistence import EntityRepository, UserRepository, get_connection, init_db
from lastman.services import (
    CatalogService,
    ContestService,
    PickService,
    ResultsPoller,
    ResultsService,
    resolve_active_round,
)
from lastman.services import settings as settings_store

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


def _feed_client() -> MatchFeedClient:
    return MatchFeedClient.from_config(get_config())


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config = get_config()
    setup_logging(config)
    init_db()
    poller = None
    if config.poll_enabled:
        poller = ResultsPoller(
            interval_seconds=config.poll_interval_seconds,
            window=config.poll_window,
            feed_factory=_feed_client,
            startup_delay_seconds=config.poll_startup_delay_seconds,
        )
        poller.start()
    yield
    if poller is not None:
        await poller.stop()


# ---------- FastAPI app ----------
app = FastAPI(
    title="Last Man Standing API",
    description="Elimination contests over a season of fixtures",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LmsError)
async def _lms_error_handler(request: Request, exc: LmsError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "reason": exc.reason})


@app.exception_handler(Exception)
async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


contest_service = ContestService()
pick_service = PickService()
results_service = ResultsService()
catalog_service = CatalogService()

security = HTTPBearer(auto_error=False)


# ---------- Request models ----------


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
    name: str | None = Field(None, max_length=100, description="Display name; defaults to username")


class LoginRequest(BaseModel):
    username: str
    password: str


class SettingUpdateRequest(BaseModel):
    value: Any = Field(None, description="New value; null or empty clears round_override")


class SeasonRequest(BaseModel):
    season: int | None = Field(None, ge=1)


class CreateContestRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    start_round: int | None = Field(None, ge=1, description="First round picks are required; default 1")


class JoinContestRequest(BaseModel):
    invite_token: str = Field(..., min_length=1)


class SubmitPickRequest(BaseModel):
    entity_id: int | None = None


class AddMemberRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1, max_length=100)


class OverrideMemberRequest(BaseModel):
    status: str = Field(..., description="alive | eliminated | winner | drawn")
    eliminated_round: int | None = Field(None, ge=1)


class ImportPickRequest(BaseModel):
    round: int = Field(..., ge=1)
    entity_id: int
    outcome: str | None = Field(None, description="win | draw | loss; omit to leave unprocessed")


# ---------- Identity dependencies ----------


def _current_identity(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> Identity | None:
    """Identity from JWT or None if no/invalid token."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def _require_identity(identity: Identity | None = Depends(_current_identity)) -> Identity:
    if identity is None:
        raise NotAuthenticated("Login required")
    return identity


def _require_admin(identity: Identity = Depends(_require_identity)) -> Identity:
    if not identity.is_admin:
        raise PermissionDenied("Admin access required")
    return identity


# ---------- Identity ----------


@app.post("/signup")
def signup(req: SignupRequest) -> dict[str, Any]:
    """Create account. Usernames listed in LMS_ADMIN_USERNAMES get the admin role."""
    role = Role.ADMIN.value if req.username in get_config().admin_usernames else Role.USER.value
    with db_conn() as conn:
        user_repo = UserRepository()
        if user_repo.get_by_username(conn, req.username):
            raise ConflictError("Username already taken")
        user = user_repo.create_with_password(
            conn, req.username, hash_password(req.password), name=req.name or req.username, role=role
        )
        return {"user_id": user.id, "username": user.username, "role": user.role, "token": create_access_token(user)}


@app.post("/login")
def login(req: LoginRequest) -> dict[str, Any]:
    with db_conn() as conn:
        user = UserRepository().get_by_username(conn, req.username)
        if user is None or not verify_password(req.password, user.password_hash or ""):
            raise NotAuthenticated("Invalid username or password")
        return {"user_id": user.id, "username": user.username, "role": user.role, "token": create_access_token(user)}


@app.get("/me")
def me(identity: Identity = Depends(_require_identity)) -> dict[str, Any]:
    with db_conn() as conn:
        user = UserRepository().get(conn, identity.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user.to_dict()


@app.get("/health")
def health() -> dict[str, Any]:
    with db_conn() as conn:
        conn.execute("SELECT 1").fetchone()
    return {"status": "ok"}


# ---------- Settings and rounds ----------


@app.get("/settings")
def get_settings() -> dict[str, Any]:
    with db_conn() as conn:
        return {"settings": settings_store.all_settings(conn)}


@app.put("/settings/{key}")
def put_setting(key: str, req: SettingUpdateRequest, identity: Identity = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        value = settings_store.set_setting(conn, key, req.value)
    logger.info("Setting %s changed to %r by %s", key, value, identity.user_id)
    return {"key": key, "value": value}


@app.get("/rounds/current")
def current_round() -> dict[str, Any]:
    """Resolved active round for the current season, with its deadline."""
    with db_conn() as conn:
        season = settings_store.current_season(conn)
        round_no = resolve_active_round(conn, season)
        info = catalog_service.deadline_info(conn, round_no, season=season)
        info["override"] = settings_store.round_override(conn)
        return info


# ---------- Catalog ----------


@app.get("/entities")
def list_entities(season: int | None = Query(None, ge=1)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"entities": [e.to_dict() for e in catalog_service.list_entities(conn, season)]}


@app.get("/fixtures/{round}")
def list_fixtures(round: int, season: int | None = Query(None, ge=1)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"round": round, "fixtures": catalog_service.list_fixtures(conn, round, season=season)}


@app.get("/fixtures/{round}/deadline")
def fixture_deadline(round: int, season: int | None = Query(None, ge=1)) -> dict[str, Any]:
    with db_conn() as conn:
        return catalog_service.deadline_info(conn, round, season=season)


@app.post("/fixtures/import")
def import_fixtures(req: SeasonRequest | None = None, identity: Identity = Depends(_require_admin)) -> dict[str, Any]:
    feed = _feed_client()
    with db_conn() as conn:
        report = catalog_service.import_season(conn, feed, season=req.season if req else None)
    return report.to_dict()


@app.post("/fixtures/update-results")
def update_results(req: SeasonRequest | None = None, identity: Identity = Depends(_require_admin)) -> dict[str, Any]:
    feed = _feed_client()
    with db_conn() as conn:
        report = catalog_service.update_results(conn, feed, season=req.season if req else None)
    return report.to_dict()


# ---------- Contests ----------


@app.post("/contests", status_code=201)
def create_contest(req: CreateContestRequest, identity: Identity = Depends(_require_identity)) -> dict[str, Any]:
    with db_conn() as conn:
        contest = contest_service.create_contest(conn, identity, req.name, start_round=req.start_round)
    return {"contest": contest.to_dict(include_invite=True)}


@app.get("/contests")
def list_contests(
    season: int | None = Query(None, ge=1),
    identity: Identity | None = Depends(_current_identity),
) -> dict[str, Any]:
    with db_conn() as conn:
        return {"contests": contest_service.list_contests(conn, viewer=identity, season=season)}


@app.post("/contests/join")
def join_contest(req: JoinContestRequest, identity: Identity = Depends(_require_identity)) -> dict[str, Any]:
    with db_conn() as conn:
        member = contest_service.join_contest(conn, identity, req.invite_token)
    return {"contest_id": member.contest_id, "member": member.to_dict()}


@app.get("/contests/{contest_id}")
def get_contest(contest_id: str, identity: Identity | None = Depends(_current_identity)) -> dict[str, Any]:
    with db_conn() as conn:
        return contest_service.get_contest_detail(conn, contest_id, viewer=identity)


@app.post("/contests/{contest_id}/start")
def start_contest(contest_id: str, identity: Identity = Depends(_require_identity)) -> dict[str, Any]:
    with db_conn() as conn:
        contest = contest_service.start_contest(conn, identity, contest_id)
    return {"contest": contest.to_dict()}


@app.delete("/contests/{contest_id}")
def delete_contest(contest_id: str, identity: Identity = Depends(_require_identity)) -> dict[str, Any]:
    with db_conn() as conn:
        contest_service.delete_contest(conn, identity, contest_id)
    return {"deleted": True, "contest_id": contest_id}


@app.get("/contests/{contest_id}/standings")
def contest_standings(contest_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return contest_service.standings(conn, contest_id)


@app.get("/contests/{contest_id}/history")
def contest_history(contest_id: str, identity: Identity | None = Depends(_current_identity)) -> dict[str, Any]:
    with db_conn() as conn:
        return contest_service.history(conn, contest_id, viewer=identity)


# ---------- Picks ----------


@app.post("/contests/{contest_id}/picks")
def submit_pick(
    contest_id: str,
    req: SubmitPickRequest,
    identity: Identity = Depends(_require_identity),
) -> dict[str, Any]:
    with db_conn() as conn:
        nomination = pick_service.submit_nomination(conn, identity, contest_id, req.entity_id)
        entity = EntityRepository().get(conn, nomination.entity_id)
    out = nomination.to_dict()
    out["entity_name"] = entity.name if entity else None
    out["entity_short"] = entity.short_name if entity else None
    return {"nomination": out}


@app.get("/contests/{contest_id}/my-picks")
def my_picks(contest_id: str, identity: Identity = Depends(_require_identity)) -> dict[str, Any]:
    with db_conn() as conn:
        return pick_service.list_my_nominations(conn, identity, contest_id)


@app.get("/contests/{contest_id}/picks/{round}")
def round_picks(
    contest_id: str,
    round: int,
    identity: Identity | None = Depends(_current_identity),
) -> dict[str, Any]:
    with db_conn() as conn:
        return pick_service.list_picks_for_round(conn, contest_id, round, viewer=identity)


# ---------- Round processing ----------


@app.post("/contests/{contest_id}/rounds/{round}/process")
def process_round(contest_id: str, round: int, identity: Identity = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        report = results_service.process_round(conn, contest_id, round)
    logger.info("Round %s of contest %s processed on request of %s: %s",
                round, contest_id, identity.user_id, report.status)
    return report.to_dict()


# ---------- Member administration ----------


@app.post("/contests/{contest_id}/members", status_code=201)
def add_member(contest_id: str, req: AddMemberRequest, identity: Identity = Depends(_require_admin)) -> dict[str, Any]:
    with db_conn() as conn:
        member = contest_service.add_member(conn, contest_id, req.user_id, req.display_name)
    return {"member": member.to_dict()}


@app.patch("/contests/{contest_id}/members/{member_id}")
def override_member(
    contest_id: str,
    member_id: str,
    req: OverrideMemberRequest,
    identity: Identity = Depends(_require_admin),
) -> dict[str, Any]:
    with db_conn() as conn:
        member = contest_service.override_member_status(
            conn, contest_id, member_id, req.status, eliminated_round=req.eliminated_round
        )
    return {"member": member.to_dict()}


@app.post("/contests/{contest_id}/members/{member_id}/picks")
def import_pick(
    contest_id: str,
    member_id: str,
    req: ImportPickRequest,
    identity: Identity = Depends(_require_admin),
) -> dict[str, Any]:
    with db_conn() as conn:
        nomination = contest_service.import_nomination(
            conn, contest_id, member_id, req.round, req.entity_id, outcome=req.outcome
        )
    return {"nomination": nomination.to_dict()}
