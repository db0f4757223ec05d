"""
REST API for the FantaAiuto auction tracker.
Thin wrappers around services; authorization happens in dependencies.
"""
from __future__ import annotations

import sqlite3
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Literal

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from fantaaiuto.auth import TokenService
from fantaaiuto.config import Settings, settings as default_settings
from fantaaiuto.dependencies import (
    AuthRateLimit,
    get_conn,
    get_current_user,
    get_league_context,
    get_path_league_context,
    get_settings,
    get_token_service,
    limit_auth_requests,
)
from fantaaiuto.errors import AppError, DuplicateResource, InternalError, ServiceUnavailable, ValidationError
from fantaaiuto.importer import ImportRow, import_rows
from fantaaiuto.logger import logger, setup_logging
from fantaaiuto.models import GameMode, LeagueContext, User
from fantaaiuto.persistence import Database, PoolTimeout
from fantaaiuto.services import (
    FormationService,
    LeagueService,
    ParticipantService,
    PlayerService,
    UserService,
)
from fantaaiuto.services.formation_service import images_dir
from fantaaiuto.spreadsheet import parse_workbook

MAX_SPREADSHEET_BYTES = 10 * 1024 * 1024
SPREADSHEET_SUFFIXES = (".xlsx", ".xlsm")

_USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"
_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------- Request models ----------


class CamelModel(BaseModel):
    """Request bodies use camelCase on the wire (displayName, costoReale...)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=_USERNAME_PATTERN)
    email: str = Field(..., max_length=254, pattern=_EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=128)
    display_name: str | None = Field(None, max_length=100)


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class ProfileUpdateRequest(CamelModel):
    display_name: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, max_length=254, pattern=_EMAIL_PATTERN)


class CreateLeagueRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    game_mode: Literal["Classic", "Mantra"] = GameMode.CLASSIC.value
    total_budget: int = Field(500, ge=100, le=2000)
    max_players_per_team: int = Field(25, ge=11, le=50)
    max_members: int = Field(8, ge=2, le=50)
    description: str | None = Field(None, max_length=500)
    team_name: str | None = Field(None, min_length=1, max_length=100)
    season: str | None = Field(None, max_length=20)


class UpdateLeagueRequest(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    total_budget: int | None = Field(None, ge=100, le=2000)
    max_players_per_team: int | None = Field(None, ge=11, le=50)
    max_members: int | None = Field(None, ge=2, le=50)
    description: str | None = Field(None, max_length=500)
    status: Literal["active", "archived"] | None = None


class JoinLeagueRequest(CamelModel):
    code: str = Field(..., min_length=1, max_length=20)
    team_name: str | None = Field(None, min_length=1, max_length=100)


class InviteRequest(CamelModel):
    username: str = Field(..., min_length=1, max_length=50)
    team_name: str | None = Field(None, min_length=1, max_length=100)


class PlayerStatusRequest(CamelModel):
    status: str | None = None
    interessante: bool | None = None
    costo_reale: float | None = Field(None, ge=0)
    prezzo_atteso: float | None = Field(None, ge=0)
    acquistatore: str | None = Field(None, max_length=100)
    note: str | None = Field(None, max_length=1000)


class ImportPlayer(CamelModel):
    nome: str = ""
    squadra: str = ""
    ruolo: str = ""
    prezzo: float | None = None
    fvm: float | None = None
    ruolo_classic: str | None = None

    def to_row(self) -> ImportRow:
        return ImportRow(
            nome=self.nome, squadra=self.squadra, ruolo=self.ruolo,
            prezzo=self.prezzo, fvm=self.fvm, ruolo_classic=self.ruolo_classic,
        )


class ImportRequest(CamelModel):
    players: list[ImportPlayer] = Field(..., min_length=1)
    mode: int = Field(1, ge=1, le=4)


class BatchImportRequest(ImportRequest):
    batch_size: int | None = Field(None, ge=1, le=500)


class ParticipantRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)


class AssignPlayerRequest(CamelModel):
    costo_altri: float = Field(0, ge=0)


class FormationRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    formation_schema: str = Field(..., alias="schema", max_length=20)
    players: list[str] = Field(default_factory=list)
    is_active: bool = False


class FormationUpdateRequest(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    formation_schema: str | None = Field(None, alias="schema", max_length=20)
    players: list[str] | None = None
    is_active: bool | None = None


def _auth_payload(message: str, user: User, tokens: TokenService) -> dict[str, Any]:
    return {"message": message, "user": user.to_dict(), "token": tokens.issue(user.id, user.username)}


router = APIRouter()


# ---------- Health ----------


@router.get("/health")
def health(cfg: Settings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": cfg.app_version,
    }


# ---------- Auth ----------


@router.post("/auth/register", status_code=201, dependencies=[Depends(limit_auth_requests)])
def register(
    req: RegisterRequest,
    conn: sqlite3.Connection = Depends(get_conn),
    tokens: TokenService = Depends(get_token_service),
) -> dict[str, Any]:
    """Create an account and return a token for it."""
    user = UserService().register(conn, req.username, req.email, req.password, req.display_name)
    return _auth_payload("User registered successfully", user, tokens)


@router.post("/auth/login", dependencies=[Depends(limit_auth_requests)])
def login(
    req: LoginRequest,
    conn: sqlite3.Connection = Depends(get_conn),
    tokens: TokenService = Depends(get_token_service),
) -> dict[str, Any]:
    """Login with username or email."""
    user = UserService().authenticate(conn, req.username, req.password)
    return _auth_payload("Login successful", user, tokens)


@router.post("/auth/verify")
def verify(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {"valid": True, "user": user.to_dict()}


@router.post("/auth/change-password", dependencies=[Depends(limit_auth_requests)])
def change_password(
    req: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    UserService().change_password(conn, user, req.current_password, req.new_password)
    return {"message": "Password changed successfully"}


# ---------- Users ----------


@router.get("/users/profile")
def get_profile(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {"user": user.to_dict()}


@router.put("/users/profile")
def update_profile(
    req: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    updated = UserService().update_profile(conn, user, display_name=req.display_name, email=req.email)
    return {"message": "Profile updated successfully", "user": updated.to_dict()}


@router.get("/users/analytics")
def user_analytics(
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    """Counts and budget across every league the caller belongs to."""
    return UserService().analytics(conn, user)


@router.post("/users/deactivate")
def deactivate_account(
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    UserService().deactivate(conn, user)
    return {"message": "Account deactivated"}


# ---------- Leagues ----------


@router.post("/leagues", status_code=201)
def create_league(
    req: CreateLeagueRequest,
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
    cfg: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Create a league; the caller becomes its master."""
    service = LeagueService()
    league = service.create(
        conn,
        user,
        name=req.name,
        game_mode=req.game_mode,
        total_budget=req.total_budget,
        max_players_per_team=req.max_players_per_team,
        max_members=req.max_members,
        season=req.season or cfg.default_season,
        description=req.description,
        team_name=req.team_name,
    )
    ctx = service.context(conn, league.id, user)
    return {"message": "League created successfully", "league": service.get(conn, ctx)}


@router.get("/leagues")
def list_leagues(
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    return {"leagues": LeagueService().list_for_user(conn, user)}


@router.post("/leagues/join", status_code=201)
def join_league(
    req: JoinLeagueRequest,
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    league, member = LeagueService().join(conn, req.code, user, req.team_name)
    return {
        "message": "Successfully joined league",
        "leagueId": league.id,
        "membershipId": member.id,
        "role": member.role,
        "league": league.to_dict(),
    }


@router.get("/leagues/invite/{code}")
def invite_info(code: str, conn: sqlite3.Connection = Depends(get_conn)) -> dict[str, Any]:
    """Public: what a join code points at."""
    return {"league": LeagueService().invite_info(conn, code)}


@router.get("/leagues/{league_id}")
def get_league(
    ctx: LeagueContext = Depends(get_path_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    return {"league": LeagueService().get(conn, ctx)}


@router.put("/leagues/{league_id}")
def update_league(
    req: UpdateLeagueRequest,
    ctx: LeagueContext = Depends(get_path_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    league = LeagueService().update(conn, ctx, req.model_dump(exclude_unset=True))
    return {"message": "League updated successfully", "league": league.to_dict()}


@router.delete("/leagues/{league_id}")
def delete_league(
    ctx: LeagueContext = Depends(get_path_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
    cfg: Settings = Depends(get_settings),
) -> dict[str, Any]:
    LeagueService().delete(conn, ctx, upload_dir=Path(cfg.upload_dir))
    return {"message": "League deleted successfully"}


@router.post("/leagues/{league_id}/leave")
def leave_league(
    league_id: str,
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    result = LeagueService().leave(conn, league_id, user)
    return {"message": "Left league successfully", **result}


@router.get("/leagues/{league_id}/members")
def list_members(
    ctx: LeagueContext = Depends(get_path_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    return {"members": [m.to_dict() for m in LeagueService().members(conn, ctx)]}


@router.delete("/leagues/{league_id}/members/{user_id}")
def remove_member(
    user_id: str,
    ctx: LeagueContext = Depends(get_path_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    LeagueService().remove_member(conn, ctx, user_id)
    return {"message": "Member removed successfully"}


@router.post("/leagues/{league_id}/invite/username", status_code=201)
def invite_by_username(
    req: InviteRequest,
    ctx: LeagueContext = Depends(get_path_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    member = LeagueService().invite_by_username(conn, ctx, req.username, req.team_name)
    return {"message": f"{member.username} added to the league", "member": member.to_dict()}


# ---------- Players (league-scoped via x-league-id) ----------


@router.get("/players")
def list_players(
    status: str | None = None,
    role: str | None = None,
    search: str | None = None,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    """
    League players, filterable.
    status: available | owned | removed | taken_by_other | interesting
    role: classic role (P, D, C, A) or a Mantra tag
    """
    players = PlayerService().list_players(conn, ctx, status=status, role=role, search=search)
    return {"players": [p.to_dict() for p in players], "total": len(players)}


@router.get("/players/stats")
def player_stats(
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    return PlayerService().stats(conn, ctx)


@router.patch("/players/{player_id}/status")
def update_player_status(
    player_id: str,
    req: PlayerStatusRequest,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    player = PlayerService().update_status(conn, ctx, player_id, req.model_dump(exclude_unset=True))
    return {"message": "Player status updated successfully", "player": player.to_dict()}


def _run_import(
    conn: sqlite3.Connection,
    ctx: LeagueContext,
    cfg: Settings,
    rows: list[ImportRow],
    mode: int,
    batch_size: int | None = None,
) -> dict[str, Any]:
    if len(rows) > cfg.import_max_rows:
        raise ValidationError(f"Too many rows: {len(rows)} (max {cfg.import_max_rows})")
    result = import_rows(
        conn,
        ctx.league_id,
        rows,
        mode=mode,
        batch_size=batch_size or cfg.import_batch_size,
        season=ctx.league.season,
    )
    message = "Players imported successfully" if not result.failed else "Players imported with errors"
    return {"message": message, "mode": mode, **result.to_dict()}


@router.post("/players/import")
def import_players(
    req: ImportRequest,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
    cfg: Settings = Depends(get_settings),
) -> dict[str, Any]:
    return _run_import(conn, ctx, cfg, [p.to_row() for p in req.players], req.mode)


@router.post("/players/import/batch")
def import_players_batch(
    req: BatchImportRequest,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
    cfg: Settings = Depends(get_settings),
) -> dict[str, Any]:
    return _run_import(conn, ctx, cfg, [p.to_row() for p in req.players], req.mode, req.batch_size)


@router.post("/players/import/excel")
def import_players_excel(
    file: UploadFile = File(...),
    mode: int = Form(1, ge=1, le=4),
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
    cfg: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Upload an .xlsx player list and import it."""
    name = (file.filename or "").lower()
    if not name.endswith(SPREADSHEET_SUFFIXES):
        raise ValidationError("Only .xlsx files are supported", code="INVALID_FILE_TYPE")
    content = file.file.read(MAX_SPREADSHEET_BYTES + 1)
    if len(content) > MAX_SPREADSHEET_BYTES:
        raise ValidationError("File too large", code="FILE_TOO_LARGE")
    rows = parse_workbook(content)
    if not rows:
        raise ValidationError("No player rows found in file", code="EMPTY_FILE")
    return _run_import(conn, ctx, cfg, rows, mode)


# ---------- Participants ----------


@router.get("/participants")
def list_participants(
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    return {"participants": [p.to_dict() for p in ParticipantService().list(conn, ctx)]}


@router.post("/participants", status_code=201)
def create_participant(
    req: ParticipantRequest,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    participant = ParticipantService().create(conn, ctx, req.name)
    return {"message": "Participant created successfully", "participant": participant.to_dict()}


@router.put("/participants/{participant_id}")
def rename_participant(
    participant_id: str,
    req: ParticipantRequest,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    participant = ParticipantService().rename(conn, ctx, participant_id, req.name)
    return {"message": "Participant updated successfully", "participant": participant.to_dict()}


@router.delete("/participants/{participant_id}")
def delete_participant(
    participant_id: str,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    released = ParticipantService().delete(conn, ctx, participant_id)
    return {"message": "Participant deleted successfully", "playersReleased": released}


@router.get("/participants/{participant_id}/players")
def participant_players(
    participant_id: str,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    players = ParticipantService().list_players(conn, ctx, participant_id)
    return {"players": [p.to_dict() for p in players]}


@router.post("/participants/{participant_id}/players/{player_id}")
def assign_player(
    participant_id: str,
    player_id: str,
    req: AssignPlayerRequest | None = None,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    cost = req.costo_altri if req is not None else 0
    player = ParticipantService().assign(conn, ctx, participant_id, player_id, cost)
    return {"message": "Player assigned successfully", "player": player.to_dict()}


@router.delete("/participants/{participant_id}/players/{player_id}")
def unassign_player(
    participant_id: str,
    player_id: str,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    player = ParticipantService().unassign(conn, ctx, participant_id, player_id)
    return {"message": "Player removed from participant", "player": player.to_dict()}


# ---------- Formations ----------


@router.get("/formations")
def list_formations(
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    return {"formations": [f.to_dict() for f in FormationService().list(conn, ctx)]}


@router.post("/formations", status_code=201)
def create_formation(
    req: FormationRequest,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    formation = FormationService().create(
        conn, ctx, req.name, req.formation_schema, players=req.players, is_active=req.is_active
    )
    return {"message": "Formation created successfully", "formation": formation.to_dict()}


@router.get("/formations/images")
def list_formation_images(
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    return {"images": [i.to_dict() for i in FormationService().list_images(conn, ctx)]}


@router.post("/formations/images", status_code=201)
def upload_formation_image(
    image: UploadFile = File(...),
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
    cfg: Settings = Depends(get_settings),
) -> dict[str, Any]:
    content = image.file.read(cfg.max_image_bytes + 1)
    saved = FormationService().save_image(
        conn,
        ctx,
        cfg.upload_dir,
        original_name=image.filename or "",
        content=content,
        mime_type=image.content_type or "",
        max_bytes=cfg.max_image_bytes,
    )
    return {"message": "Image uploaded successfully", "image": saved.to_dict()}


@router.delete("/formations/images/{image_id}")
def delete_formation_image(
    image_id: str,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
    cfg: Settings = Depends(get_settings),
) -> dict[str, Any]:
    FormationService().delete_image(conn, ctx, cfg.upload_dir, image_id)
    return {"message": "Image deleted successfully"}


@router.put("/formations/{formation_id}")
def update_formation(
    formation_id: str,
    req: FormationUpdateRequest,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    changes = req.model_dump(exclude_unset=True)
    if "formation_schema" in changes:
        changes["schema"] = changes.pop("formation_schema")
    formation = FormationService().update(conn, ctx, formation_id, changes)
    return {"message": "Formation updated successfully", "formation": formation.to_dict()}


@router.delete("/formations/{formation_id}")
def delete_formation(
    formation_id: str,
    ctx: LeagueContext = Depends(get_league_context),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict[str, Any]:
    FormationService().delete(conn, ctx, formation_id)
    return {"message": "Formation deleted successfully"}


# ---------- Error handlers ----------


def _install_error_handlers(app: FastAPI, cfg: Settings) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation failed",
                "code": ValidationError.code,
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(sqlite3.IntegrityError)
    async def integrity_error_handler(request: Request, exc: sqlite3.IntegrityError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path}: constraint violation: {exc}")
        return JSONResponse(status_code=409, content=DuplicateResource().to_dict())

    # Plain def: SlowAPIMiddleware calls this handler without awaiting it
    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.warning(f"Rate limit exceeded: {get_remote_address(request)} {request.url.path}")
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests, please try again later", "code": "RATE_LIMITED"},
        )

    @app.exception_handler(PoolTimeout)
    async def pool_timeout_handler(request: Request, exc: PoolTimeout) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content=ServiceUnavailable().to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = "NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}"
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message, "code": code})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        content: dict[str, Any] = InternalError().to_dict()
        if cfg.debug:
            content["trace"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return JSONResponse(status_code=500, content=content)


# ---------- App factory ----------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    cfg: Settings = app.state.settings
    db = Database(cfg.database_path, pool_size=cfg.db_pool_size)
    db.init_schema()
    app.state.db = db
    images_dir(cfg.upload_dir).mkdir(parents=True, exist_ok=True)
    logger.info(f"{cfg.app_name} {cfg.app_version} started ({cfg.environment})")
    try:
        yield
    finally:
        db.close()
        logger.info("Database pool closed")


def create_app(config: Settings | None = None) -> FastAPI:
    """Build an app bound to config (process settings by default)."""
    cfg = config or default_settings
    setup_logging(cfg.log_level, cfg.log_dir, cfg.log_file)

    app = FastAPI(
        title=cfg.app_name,
        description="Fantacalcio auction tracker: leagues, player lists, participants, formations",
        version=cfg.app_version,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.tokens = TokenService(cfg)
    # Per-app limiters: the default rate for every route through SlowAPIMiddleware,
    # the stricter credential rate through the limit_auth_requests dependency
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[cfg.rate_limit_default],
        enabled=cfg.rate_limit_enabled,
    )
    limiter.exempt(health)
    app.state.limiter = limiter
    app.state.auth_rate_limit = AuthRateLimit(cfg.rate_limit_auth, enabled=cfg.rate_limit_enabled)

    _install_error_handlers(app, cfg)

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
        return response

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.mount("/uploads", StaticFiles(directory=cfg.upload_dir, check_dir=False), name="uploads")
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the default app with uvicorn."""
    import uvicorn

    uvicorn.run("fantaaiuto.api:app", host=default_settings.host, port=default_settings.port)
