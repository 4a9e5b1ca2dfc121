"""
REST API for the handball stats backend.
Thin wrappers around domain logic and persistence.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from handball_stats.analytics import (
    compare_players,
    match_list_entry,
    match_summary,
    player_rollups,
)
from handball_stats.config import configure_logging, get_settings
from handball_stats.live_session import (
    LivePlayerNotFoundError,
    LiveMatchSession,
    SessionFinalizedError,
    SubstitutionError,
    UnknownStatError,
    open_session,
)
from handball_stats.models import validate_player_fields
from handball_stats.persistence import (
    MatchNotFoundError,
    MatchPlayerNotFoundError,
    MatchRepository,
    PlayerNotFoundError,
    PlayerRepository,
    PreferenceRepository,
    get_connection,
    init_db,
)
from handball_stats.scoring import (
    CRITERION_DESCRIPTIONS,
    parse_criterion,
    rank_players,
    score_players,
    select_best_team,
)
from handball_stats.services import (
    LiveSessionNotFoundError,
    LiveSessionRegistry,
    MailDeliveryError,
    MailjetDispatcher,
    NoRecipientsError,
    validate_selection,
)

logger = logging.getLogger(__name__)

SETUP_REDIRECT = "/match/setup"
THEME_KEY = "theme"
THEMES = ("light", "dark")
DEFAULT_THEME = "light"


@contextmanager
def db_conn() -> Generator[sqlite3.Connection, None, None]:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Live sessions (process-local) ----------
_live_registry = LiveSessionRegistry(tick_seconds=get_settings().live_tick_seconds)


def get_live_registry() -> LiveSessionRegistry:
    return _live_registry


def get_mail_dispatcher() -> MailjetDispatcher:
    return MailjetDispatcher(get_settings())


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    init_db()
    yield
    await _live_registry.shutdown()


# ---------- FastAPI app ----------
app = FastAPI(
    title="Handball Stats API",
    description="Backend for squad registration, live match tracking and season statistics",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query params are client errors (400), like every other validation failure."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ---------- Request models ----------


class CamelModel(BaseModel):
    """Accepts camelCase (wire) or snake_case keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreatePlayerRequest(CamelModel):
    # Typed loosely: missing or malformed values answer 400 from validate_player_fields, not 422.
    name: Any = None
    position: Any = None
    number: Any = None
    category: Any = None


class SelectedPlayer(CamelModel):
    id: int
    starter: bool = False


class CreateMatchRequest(CamelModel):
    opponent: str | None = None
    date: str | None = None
    location: str | None = None
    selected_players: list[SelectedPlayer] = Field(default_factory=list)


class UpdatedStat(CamelModel):
    match_player_id: int
    goals: int | None = Field(None, ge=0)
    assists: int | None = Field(None, ge=0)
    saves: int | None = Field(None, ge=0)
    turnovers: int | None = Field(None, ge=0)
    shots_on_goal: int | None = Field(None, ge=0)
    shots_off_target: int | None = Field(None, ge=0)
    recoveries: int | None = Field(None, ge=0)
    fouls_committed: int | None = Field(None, ge=0)
    fouls_received: int | None = Field(None, ge=0)
    yellow_cards: int | None = Field(None, ge=0)
    red_cards: int | None = Field(None, ge=0)
    play_time: int | None = Field(None, ge=0)


class UpdateMatchRequest(CamelModel):
    updated_stats: list[UpdatedStat] = Field(default_factory=list)
    opponent_score: int | None = Field(None, ge=0)


class OpenLiveSessionRequest(CamelModel):
    match_id: int | None = None


class LiveStatRequest(CamelModel):
    match_player_id: int
    stat: str


class SubstitutionRequest(CamelModel):
    player_out: int | None = None
    player_in: int | None = None


class OpponentScoreRequest(CamelModel):
    delta: int = Field(..., description="+1 or -1")


class MassEmailRequest(CamelModel):
    to_emails: str | None = None
    to_name: str | None = None
    subject: str | None = None
    text: str | None = None
    html: str | None = None


class ThemeRequest(CamelModel):
    theme: str


# ---------- Validation helpers ----------


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_iso_date(value: str) -> str:
    try:
        datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"date must be ISO-8601, got {value!r}") from e
    return value.strip()


# ---------- Players ----------


@app.get("/players")
def list_players() -> list[dict[str, Any]]:
    """All registered players, in registration order."""
    with db_conn() as conn:
        return [p.to_dict() for p in PlayerRepository().list_all(conn)]


@app.post("/players")
def create_player(req: CreatePlayerRequest) -> dict[str, Any]:
    try:
        fields = validate_player_fields(req.name, req.position, req.number, req.category)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    with db_conn() as conn:
        player = PlayerRepository().create(conn, **fields)
    logger.info(f"Player registered: #{player.number} {player.name} ({player.position})")
    return player.to_dict()


# ---------- Matches ----------


@app.post("/matches")
def create_match(
    req: CreateMatchRequest,
    strict: bool = Query(False, description="Apply the 5 starters + 9 substitutes squad rule"),
) -> dict[str, Any]:
    """Create a match and one zeroed MatchPlayer per selected player."""
    if _is_blank(req.opponent) or _is_blank(req.date) or _is_blank(req.location):
        raise HTTPException(status_code=400, detail="opponent, date and location are required")
    date = _parse_iso_date(req.date)
    selected = [(sp.id, sp.starter) for sp in req.selected_players]
    ids = [pid for pid, _ in selected]
    if len(set(ids)) != len(ids):
        raise HTTPException(status_code=400, detail="Un jugador no puede seleccionarse dos veces")
    if strict:
        problem = validate_selection(selected)
        if problem:
            raise HTTPException(status_code=400, detail=problem)
    with db_conn() as conn:
        try:
            match = MatchRepository().create(
                conn, req.opponent.strip(), date, req.location.strip(), selected
            )
        except PlayerNotFoundError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
    logger.info(f"Match {match.id} created vs {match.opponent} with {len(selected)} players")
    return {"match": match.to_dict()}


@app.get("/matches/{match_id}")
def get_match(match_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        match = MatchRepository().get(conn, match_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Partido no encontrado")
    return {"match": match.to_dict()}


@app.patch("/matches/{match_id}")
def update_match_stats(match_id: int, req: UpdateMatchRequest) -> dict[str, Any]:
    """Bulk overwrite of MatchPlayer counters plus the opponent score, all or nothing."""
    items = [s.model_dump() for s in req.updated_stats]
    with db_conn() as conn:
        try:
            MatchRepository().update_stats(conn, match_id, items, req.opponent_score)
        except (MatchNotFoundError, MatchPlayerNotFoundError) as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
    return {"message": "Estadísticas actualizadas"}


# ---------- Live sessions ----------


def _seed_live_session(match_id: int | None) -> LiveMatchSession:
    """Load the match and seed a session. Runs in the threadpool; the registry is only touched on the loop."""
    with db_conn() as conn:
        return open_session(conn, match_id)


def _live_session_or_404(registry: LiveSessionRegistry, match_id: int) -> LiveMatchSession:
    try:
        return registry.get(match_id)
    except LiveSessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.post("/live-sessions")
async def open_live_session(
    req: OpenLiveSessionRequest,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> dict[str, Any]:
    """Open (or rejoin) the live session of a match. Unknown match: 404 pointing back to setup."""
    session = registry.find_open(req.match_id)
    if session is None:
        try:
            seeded = await run_in_threadpool(_seed_live_session, req.match_id)
        except MatchNotFoundError as e:
            raise HTTPException(
                status_code=404,
                detail={"message": str(e), "redirect": SETUP_REDIRECT},
            ) from e
        session = registry.register(seeded)
    return session.snapshot()


@app.get("/live-sessions/{match_id}")
async def get_live_session(
    match_id: int,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> dict[str, Any]:
    return _live_session_or_404(registry, match_id).snapshot()


@app.post("/live-sessions/{match_id}/clock")
async def toggle_live_clock(
    match_id: int,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> dict[str, Any]:
    _live_session_or_404(registry, match_id)
    try:
        session = await registry.toggle_clock(match_id)
    except SessionFinalizedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return session.snapshot()


@app.post("/live-sessions/{match_id}/stats")
async def record_live_stat(
    match_id: int,
    req: LiveStatRequest,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> dict[str, Any]:
    session = _live_session_or_404(registry, match_id)
    try:
        session.increment_stat(req.match_player_id, req.stat)
    except SessionFinalizedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except UnknownStatError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except LivePlayerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await registry.broadcast(match_id)
    return session.snapshot()


@app.post("/live-sessions/{match_id}/substitutions")
async def substitute_live_player(
    match_id: int,
    req: SubstitutionRequest,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> dict[str, Any]:
    session = _live_session_or_404(registry, match_id)
    try:
        session.substitute(req.player_out, req.player_in)
    except SessionFinalizedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except SubstitutionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except LivePlayerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await registry.broadcast(match_id)
    return session.snapshot()


@app.post("/live-sessions/{match_id}/opponent-score")
async def adjust_opponent_score(
    match_id: int,
    req: OpponentScoreRequest,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> dict[str, Any]:
    session = _live_session_or_404(registry, match_id)
    if req.delta not in (1, -1):
        raise HTTPException(status_code=400, detail="delta must be 1 or -1")
    try:
        if req.delta == 1:
            session.increment_opponent_score()
        else:
            session.decrement_opponent_score()
    except SessionFinalizedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    await registry.broadcast(match_id)
    return session.snapshot()


@app.post("/live-sessions/{match_id}/finalize")
async def finalize_live_session(
    match_id: int,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> dict[str, Any]:
    """Write the whole session back in one transaction. On failure the session stays open for a retry."""
    _live_session_or_404(registry, match_id)
    with db_conn() as conn:
        try:
            session = await registry.finalize(conn, match_id)
        except SessionFinalizedError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except (sqlite3.Error, MatchNotFoundError, MatchPlayerNotFoundError) as e:
            logger.error(f"Saving match {match_id} failed: {e}")
            raise HTTPException(
                status_code=500,
                detail=f"Error al guardar las estadísticas: {e}",
            ) from e
    return {
        "message": "Estadísticas guardadas correctamente",
        "summaryUrl": f"/stats/matches/{match_id}",
        "snapshot": session.snapshot(),
    }


@app.delete("/live-sessions/{match_id}")
async def discard_live_session(
    match_id: int,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> dict[str, Any]:
    _live_session_or_404(registry, match_id)
    await registry.discard(match_id)
    return {"message": "Sesión descartada"}


@app.websocket("/ws/live-sessions/{match_id}")
async def websocket_live_session(
    websocket: WebSocket,
    match_id: int,
    registry: LiveSessionRegistry = Depends(get_live_registry),
):
    """Snapshot on connect, then one message per tick and per mutation."""
    await websocket.accept()
    try:
        session = registry.get(match_id)
    except LiveSessionNotFoundError as e:
        await websocket.send_json({"type": "error", "detail": str(e), "redirect": SETUP_REDIRECT})
        await websocket.close()
        return
    registry.subscribe(match_id, websocket)
    try:
        await websocket.send_json({"type": "live_update", **session.snapshot()})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        registry.unsubscribe(match_id, websocket)


# ---------- Stats ----------


def _load_rollups(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    players = PlayerRepository().list_all(conn)
    rows = MatchRepository().list_all_match_players(conn)
    return player_rollups(players, rows)


@app.get("/stats/players")
def stats_players() -> list[dict[str, Any]]:
    """Season totals and per-match averages for every player."""
    with db_conn() as conn:
        return _load_rollups(conn)


@app.get("/stats/matches")
def stats_matches() -> list[dict[str, Any]]:
    with db_conn() as conn:
        return [match_list_entry(m) for m in MatchRepository().list_all(conn)]


@app.get("/stats/matches/{match_id}")
def stats_match_detail(match_id: int) -> dict[str, Any]:
    """Post-match summary with team score and result."""
    with db_conn() as conn:
        match = MatchRepository().get(conn, match_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Partido no encontrado")
    return {"match": match_summary(match)}


@app.get("/stats/best-team")
def stats_best_team(criteria: str | None = Query(None)) -> dict[str, Any]:
    """Rank every player under a criterion and pick the best five-player formation."""
    criterion = parse_criterion(criteria)
    with db_conn() as conn:
        rollups = _load_rollups(conn)
    scored = score_players(rollups, criterion)
    best = select_best_team(scored)
    best_ids = {p.id for p in best}
    ranked = []
    for p in rank_players(scored):
        d = p.to_dict()
        d["inBestTeam"] = p.id in best_ids
        ranked.append(d)
    return {
        "criteria": criterion.value,
        "description": CRITERION_DESCRIPTIONS[criterion],
        "players": ranked,
        "bestTeam": [p.to_dict() for p in best],
    }


@app.get("/stats/compare")
def stats_compare(player1: int = Query(...), player2: int = Query(...)) -> dict[str, Any]:
    with db_conn() as conn:
        by_id = {r["id"]: r for r in _load_rollups(conn)}
    for pid in (player1, player2):
        if pid not in by_id:
            raise HTTPException(status_code=404, detail=f"Player not found: {pid}")
    return compare_players(by_id[player1], by_id[player2])


# ---------- Mass email ----------


@app.post("/mass-email")
def send_mass_email(
    req: MassEmailRequest,
    dispatcher: MailjetDispatcher = Depends(get_mail_dispatcher),
) -> JSONResponse:
    try:
        body = dispatcher.send(req.to_emails, req.to_name, req.subject, req.text, req.html)
    except NoRecipientsError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except MailDeliveryError as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return JSONResponse(content={"success": True, "body": body})


# ---------- Preferences ----------


@app.get("/preferences/theme")
def get_theme() -> dict[str, str]:
    with db_conn() as conn:
        theme = PreferenceRepository().get(conn, THEME_KEY, DEFAULT_THEME)
    return {"theme": theme}


@app.post("/preferences/theme/toggle")
def toggle_theme() -> dict[str, str]:
    with db_conn() as conn:
        repo = PreferenceRepository()
        current = repo.get(conn, THEME_KEY, DEFAULT_THEME)
        theme = "light" if current == "dark" else "dark"
        repo.set(conn, THEME_KEY, theme)
    return {"theme": theme}


@app.put("/preferences/theme")
def set_theme(req: ThemeRequest) -> dict[str, str]:
    theme = req.theme.strip().lower()
    if theme not in THEMES:
        raise HTTPException(status_code=400, detail="theme must be 'light' or 'dark'")
    with db_conn() as conn:
        PreferenceRepository().set(conn, THEME_KEY, theme)
    return {"theme": theme}


# ---------- Run with: uvicorn handball_stats.api:app --reload ----------
