from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware
from typing import List, Optional, Union

import logging
import re
import time
import uuid

from . import crud, game, rewards, verifier
from .cache import get_cache, get_cached_leaderboard, cache_leaderboard
from .deps import get_session, get_settings, get_generator, settings
from .errors import GridError, IntegrityError, TransientError, StorageUnavailable, ValidationError
from .init_db import create_db_engine
from .logging_utils import setup_logging, get_logger, request_id_ctx
from .config import Settings
from .puzzle import PuzzleGenerator


# Rate limiting - store last request times per IP
_RATE_LIMIT_STORE: dict = {}


def check_rate_limit(request: Request, max_requests: int = 30, window_seconds: int = 60) -> bool:
    """In-memory sliding window per client IP. Returns False when the caller is over the limit."""
    client_ip = request.client.host if request.client else "unknown"
    now = time.time()
    cutoff = now - window_seconds
    recent = [t for t in _RATE_LIMIT_STORE.get(client_ip, []) if t > cutoff]
    _RATE_LIMIT_STORE[client_ip] = recent
    if len(recent) >= max_requests:
        return False
    recent.append(now)
    return True


def rate_limit_dependency(max_requests: int = 30, window_seconds: int = 60):
    """Create a dependency function that raises HTTP 429 if rate limited"""
    def dependency(request: Request):
        if not check_rate_limit(request, max_requests, window_seconds):
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Maximum {max_requests} requests per {window_seconds} seconds."
            )
    return dependency


def current_day() -> int:
    return game.current_day_id()


setup_logging(logging.INFO)
logger = get_logger("gridday")
app = FastAPI(title="Grid of the Day")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        # JSON-only API: nothing should be rendered or framed
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        response.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Strict-Transport-Security', 'max-age=31536000; includeSubDomains')
        return response


app.add_middleware(SecurityHeadersMiddleware)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(rid)
        start = time.time()
        response = None
        try:
            response = await call_next(request)
            return response
        except Exception:
            logger.exception("request_error", extra={"path": request.url.path, "method": request.method})
            raise
        finally:
            logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": getattr(response, "status_code", 500),
                    "duration_ms": int((time.time() - start) * 1000),
                    "client": request.client.host if request.client else "-",
                },
            )
            if response is not None:
                response.headers["X-Request-ID"] = rid
            request_id_ctx.reset(token)


app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted({settings.app_url, "http://localhost:3000", "http://127.0.0.1:3000"}),
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Accept", "Content-Type", "X-Request-ID"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # ctx may hold the validator's exception object
    errors = jsonable_encoder(exc.errors())
    logger.warning("validation_error", extra={"method": request.method, "path": request.url.path, "errors": errors})
    return JSONResponse(
        status_code=422,
        content={"detail": errors, "message": "Input validation failed"},
    )


def _reject(e: GridError, flag: Optional[str] = None) -> JSONResponse:
    content = e.to_dict()
    if flag:
        content = {flag: False, **content}
    headers = {"Retry-After": "1"} if isinstance(e, TransientError) else None
    return JSONResponse(status_code=e.http_status, content=content, headers=headers)


@app.exception_handler(GridError)
async def grid_error_handler(request: Request, exc: GridError):
    if isinstance(exc, IntegrityError):
        logger.warning("security_event", extra={"path": request.url.path, "reason": exc.code})
    return _reject(exc)


@app.on_event("startup")
def on_startup():
    from .migrations import run_migrations

    engine = create_db_engine(settings.database_url, settings.db_timeout_seconds)
    try:
        run_migrations(engine)
    except Exception as e:
        logger.warning("migrations_failed", extra={"error": str(e)})
    crud.engine = engine
    if settings.using_dev_secrets:
        logger.warning("dev_secrets_in_use", extra={"event": "set DAILY_SECRET and COMMITMENT_SALT"})


@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok", "dayId": game.current_day_id()}


@app.get("/api/cache/stats", include_in_schema=False)
def cache_stats():
    return {"cache_stats": get_cache().get_stats(), "status": "ok"}


@app.get("/api/daily")
def get_daily(generator: PuzzleGenerator = Depends(get_generator), day: int = Depends(current_day)):
    """Today's signed puzzle metadata. The solution itself never leaves the server."""
    meta = generator.metadata(day)
    logger.debug("puzzle_issued", extra={"day_id": day})
    return JSONResponse(meta.to_dict(), headers={"Cache-Control": "no-store"})


_PLAYER_ID_RE = re.compile(r'^[A-Za-z0-9_-]+$')
_WALLET_RE = re.compile(r'^0x[0-9a-fA-F]{40}$')


class GuessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day_id: int = Field(..., alias="dayId")
    # "R,G,B,Y,P" or ["R", "G", "B", "Y", "P"]
    guess: Union[str, List[str]]


@app.post("/api/guess")
def score_guess(
    body: GuessRequest,
    generator: PuzzleGenerator = Depends(get_generator),
    day: int = Depends(current_day),
    _: None = Depends(rate_limit_dependency(max_requests=60, window_seconds=60)),
):
    """Stateless scoring for live feedback; nothing is stored."""
    try:
        if body.day_id != day:
            raise ValidationError("WRONG_DAY", "Invalid dayId", currentDayId=day)
        guess = game.parse_guess(body.guess, generator.token_set_version)
    except GridError as e:
        return _reject(e, "valid")
    feedback = generator.score(day, guess)
    return {"valid": True, "feedback": feedback, "solved": game.is_win(feedback)}


class SubmitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(..., alias="playerId", min_length=1, max_length=64)
    wallet: Optional[str] = Field(None, max_length=42)
    day_id: int = Field(..., alias="dayId")
    mode: str = Field(game.NORMAL, pattern=r'^(normal|hard)$')
    attempts_used: int = Field(..., alias="attemptsUsed", ge=0, le=100)
    solved: bool
    time_ms: int = Field(..., alias="timeMs", ge=0)
    guess_history: List[str] = Field(..., alias="guessHistory", max_length=32)
    metadata_signature: str = Field(..., alias="metadataSignature", min_length=1, max_length=128)

    @field_validator('player_id')
    @classmethod
    def validate_player_id(cls, v):
        v = v.strip()
        if not _PLAYER_ID_RE.match(v):
            raise ValueError('playerId can only contain letters, numbers, underscore, and hyphen')
        return v

    @field_validator('wallet')
    @classmethod
    def validate_wallet(cls, v):
        if v is None or v.strip() == "":
            return None
        v = v.strip()
        if not _WALLET_RE.match(v):
            raise ValueError('wallet must be a 0x-prefixed 20-byte hex address')
        return v.lower()


@app.post("/api/submit")
def submit_result(
    body: SubmitRequest,
    session: Session = Depends(get_session),
    generator: PuzzleGenerator = Depends(get_generator),
    cfg: Settings = Depends(get_settings),
    day: int = Depends(current_day),
    _: None = Depends(rate_limit_dependency(max_requests=10, window_seconds=60)),
):
    claim = verifier.Claim(
        player_id=body.player_id,
        wallet=body.wallet,
        day_id=body.day_id,
        mode=body.mode,
        attempts_used=body.attempts_used,
        claimed_solved=body.solved,
        time_ms=body.time_ms,
        guess_history=body.guess_history,
        metadata_signature=body.metadata_signature,
    )
    try:
        auth = verifier.verify_submission(session, generator, claim, day, cfg)
        _, streak = crud.record_result(session, auth)
    except GridError as e:
        return _reject(e, "accepted")

    logger.info("result_recorded", extra={"player_id": auth.player_id, "day_id": auth.day_id, "event": "solved" if auth.solved else "failed"})

    standing = None
    if auth.solved:
        try:
            standing = crud.rank_and_percentile(session, auth.player_id, auth.day_id)
        except StorageUnavailable:
            # result is already stored; answer without a rank rather than invite a retry
            logger.warning("rank_unavailable", extra={"player_id": auth.player_id, "day_id": auth.day_id})

    payload = {
        "accepted": True,
        "solved": auth.solved,
        "attemptsUsed": auth.attempts_used,
        "streak": {"current": streak.current_streak, "best": streak.best_streak},
        "claimable": rewards.claimable(auth.solved, auth.attempts_used, streak.current_streak),
        "share": {
            "summaryText": rewards.share_text(
                auth.feedback_history, auth.day_id, auth.attempts_used, auth.solved, auth.mode, streak.current_streak
            ),
            "shareLink": rewards.share_link(cfg.app_url, auth.day_id),
        },
    }
    if standing:
        payload["rank"] = standing["rank"]
        payload["percentile"] = standing["percentile"]
    return payload


@app.get("/api/leaderboard")
def leaderboard(
    scope: str = "daily",
    day_id: Optional[int] = Query(None, alias="dayId"),
    limit: int = 50,
    session: Session = Depends(get_session),
    day: int = Depends(current_day),
    _: None = Depends(rate_limit_dependency(max_requests=20, window_seconds=60)),
):
    if scope not in ("daily", "weekly"):
        raise HTTPException(status_code=400, detail="scope must be daily or weekly")
    actual_day = day if day_id is None else day_id
    if actual_day < 1 or actual_day > day:
        raise HTTPException(status_code=400, detail="Invalid dayId")
    if limit < 1 or limit > 100:
        raise HTTPException(status_code=400, detail="Limit must be between 1 and 100")

    entries = get_cached_leaderboard(scope, actual_day, limit)
    if entries is None:
        if scope == "weekly":
            entries = crud.weekly_leaderboard(session, actual_day, limit)
        else:
            entries = crud.daily_leaderboard(session, actual_day, limit)
        cache_leaderboard(scope, actual_day, limit, entries)
    return {"scope": scope, "dayId": actual_day, "entries": entries, "total": len(entries)}


def _validate_player_id_param(player_id: str) -> str:
    pid = (player_id or "").strip()
    if not pid or len(pid) > 64 or not _PLAYER_ID_RE.match(pid):
        raise HTTPException(status_code=400, detail="Invalid playerId")
    return pid


@app.get("/api/streak/{player_id}")
def get_streak(player_id: str, session: Session = Depends(get_session)):
    s = crud.get_user_streak(session, _validate_player_id_param(player_id))
    return {
        "playerId": s.player_id,
        "wallet": s.wallet,
        "currentStreak": s.current_streak,
        "bestStreak": s.best_streak,
        "lastPlayedDayId": s.last_played_day_id,
        "totalGames": s.total_games,
        "totalWins": s.total_wins,
        "hardModeWins": s.hard_mode_wins,
    }


@app.get("/api/metadata/badges/{token_id}")
def badge_metadata(token_id: int):
    if token_id < 1:
        raise HTTPException(status_code=400, detail="Invalid token ID")
    return rewards.badge_metadata(token_id, settings.app_url)


@app.get("/api/metadata/frames/{frame_id}")
def frame_metadata(frame_id: int):
    if frame_id < 1 or frame_id > 100:
        raise HTTPException(status_code=400, detail="Invalid frame ID")
    return rewards.frame_metadata(frame_id, settings.app_url)
