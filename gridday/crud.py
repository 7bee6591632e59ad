from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from typing import Optional
import json
import threading
import zlib

from sqlmodel import Session, select as sqlmodel_select, col
from sqlalchemy import func, case, select as sa_select
from sqlalchemy.exc import IntegrityError as DBIntegrityError, OperationalError, TimeoutError as PoolTimeoutError

from . import models, game
from .cache import invalidate_leaderboards
from .errors import AlreadySubmitted, ConflictError, StorageUnavailable
from .logging_utils import get_logger

logger = get_logger("gridday.crud")

engine = None

WEEK_DAYS = 7

# Striped per-player locks: all writes for one player go through the same lock,
# which serialises the result insert and the streak read-modify-write in-process.
# The unique constraint on (player_id, day_id) covers other processes.
_LOCK_STRIPES = [threading.RLock() for _ in range(64)]


def _player_lock(player_id: str) -> threading.RLock:
    return _LOCK_STRIPES[zlib.crc32(player_id.encode()) % len(_LOCK_STRIPES)]


def _storage_errors(fn):
    """Turn driver-level outages into a retryable StorageUnavailable."""
    @wraps(fn)
    def wrapper(session: Session, *args, **kwargs):
        try:
            return fn(session, *args, **kwargs)
        except (OperationalError, PoolTimeoutError) as e:
            session.rollback()
            logger.warning("storage_unavailable", extra={"error": str(e), "event": fn.__name__})
            raise StorageUnavailable() from e
    return wrapper


@contextmanager
def _transaction(session: Session):
    try:
        yield
        session.commit()
    except DBIntegrityError as e:
        # anything other than the (player, day) insert lost a cross-process race
        session.rollback()
        logger.warning("write_conflict", extra={"error": str(e)})
        raise StorageUnavailable("concurrent write, retry later") from e
    except Exception:
        session.rollback()
        raise


def display_name(player_id: str, wallet: Optional[str] = None) -> str:
    if wallet:
        return f"{wallet[:6]}...{wallet[-4:]}"
    return f"Player {player_id[:6]}"


def _insert_result(session: Session, result: models.GameResult) -> None:
    session.add(result)
    try:
        session.flush()
    except DBIntegrityError as e:
        session.rollback()
        raise AlreadySubmitted(result.player_id, result.day_id) from e


@_storage_errors
def save_result(session: Session, result: models.GameResult) -> models.GameResult:
    """Store a result; at most one per (player_id, day_id).

    The insert itself is the existence check, so two concurrent saves for the same
    key cannot both succeed.
    """
    if result.submitted_at is None:
        result.submitted_at = datetime.now(timezone.utc)
    with _player_lock(result.player_id):
        with _transaction(session):
            _insert_result(session, result)
    session.refresh(result)
    invalidate_leaderboards(result.day_id)
    return result


@_storage_errors
def get_result(session: Session, player_id: str, day_id: int) -> Optional[models.GameResult]:
    return session.exec(
        sqlmodel_select(models.GameResult)
        .where(models.GameResult.player_id == player_id)
        .where(models.GameResult.day_id == day_id)
    ).first()


@_storage_errors
def get_user_streak(session: Session, player_id: str) -> models.UserStreak:
    """Return the stored streak, or an unsaved zeroed record for unknown players."""
    s = session.get(models.UserStreak, player_id)
    if s is None:
        return models.UserStreak(player_id=player_id)
    return s


def apply_game(streak: models.UserStreak, day_id: int, solved: bool, mode: str, wallet: Optional[str] = None) -> models.UserStreak:
    """Advance a streak record by one played day (mutates and returns it)."""
    if day_id <= streak.last_played_day_id:
        raise ConflictError(
            "STREAK_OUT_OF_ORDER",
            f"day {day_id} is not after last played day {streak.last_played_day_id}",
        )
    if wallet:
        streak.wallet = wallet
    streak.total_games += 1
    if solved:
        streak.total_wins += 1
        if mode == game.HARD:
            streak.hard_mode_wins += 1
        if streak.last_played_day_id == 0 or streak.last_played_day_id == day_id - 1:
            streak.current_streak += 1
        else:
            streak.current_streak = 1
        streak.best_streak = max(streak.best_streak, streak.current_streak)
    else:
        streak.current_streak = 0
    streak.last_played_day_id = day_id
    return streak


def _locked_streak(session: Session, player_id: str) -> models.UserStreak:
    s = session.exec(
        sqlmodel_select(models.UserStreak)
        .where(models.UserStreak.player_id == player_id)
        .with_for_update()
    ).first()
    if s is None:
        s = models.UserStreak(player_id=player_id)
    return s


@_storage_errors
def update_streak(session: Session, player_id: str, day_id: int, solved: bool, mode: str, wallet: Optional[str] = None) -> models.UserStreak:
    with _player_lock(player_id):
        with _transaction(session):
            s = apply_game(_locked_streak(session, player_id), day_id, solved, mode, wallet)
            session.add(s)
    session.refresh(s)
    return s


@_storage_errors
def record_result(session: Session, auth):
    """Persist an authenticated game and advance the player's streak atomically.

    Returns (GameResult, UserStreak). Either both writes land or neither does.
    """
    result = models.GameResult(
        player_id=auth.player_id,
        wallet=auth.wallet,
        day_id=auth.day_id,
        mode=auth.mode,
        solved=auth.solved,
        attempts_used=auth.attempts_used,
        time_ms=auth.time_ms,
        guess_history_json=json.dumps([game.guess_to_string(g) for g in auth.guess_history]),
        feedback_history_json=json.dumps(auth.feedback_history),
        submitted_at=datetime.now(timezone.utc),
    )
    with _player_lock(auth.player_id):
        with _transaction(session):
            _insert_result(session, result)
            streak = apply_game(_locked_streak(session, auth.player_id), auth.day_id, auth.solved, auth.mode, auth.wallet)
            session.add(streak)
    session.refresh(result)
    session.refresh(streak)
    invalidate_leaderboards(auth.day_id)
    return result, streak


def _solved_for_day(session: Session, day_id: int):
    return session.exec(
        sqlmodel_select(models.GameResult)
        .where(models.GameResult.day_id == day_id)
        .where(models.GameResult.solved == True)  # noqa: E712
        .order_by(
            models.GameResult.attempts_used,
            models.GameResult.time_ms,
            models.GameResult.submitted_at,
            models.GameResult.id,
        )
    ).all()


def _streaks_for(session: Session, player_ids) -> dict:
    if not player_ids:
        return {}
    rows = session.exec(
        sqlmodel_select(models.UserStreak).where(col(models.UserStreak.player_id).in_(list(player_ids)))
    ).all()
    return {s.player_id: s for s in rows}


@_storage_errors
def rank_and_percentile(session: Session, player_id: str, day_id: int) -> Optional[dict]:
    """Return {rank, percentile} among solved results for the day.

    rank is 1-based; percentile = round((1 - rank/solved) * 100). Unsolved or
    absent players have no rank (None).
    """
    solved = _solved_for_day(session, day_id)
    for idx, r in enumerate(solved, start=1):
        if r.player_id == player_id:
            return {"rank": idx, "percentile": round((1 - idx / len(solved)) * 100)}
    return None


@_storage_errors
def daily_leaderboard(session: Session, day_id: int, limit: int = 50) -> list:
    rows = _solved_for_day(session, day_id)[:limit]
    streaks = _streaks_for(session, {r.player_id for r in rows})
    entries = []
    for r in rows:
        st = streaks.get(r.player_id)
        wallet = (st.wallet if st else None) or r.wallet
        entries.append({
            "playerId": r.player_id,
            "wallet": wallet,
            "displayName": display_name(r.player_id, wallet),
            "solved": True,
            "attemptsUsed": r.attempts_used,
            "timeMs": r.time_ms,
            "mode": r.mode,
            "streak": st.current_streak if st else 0,
        })
    return entries


@_storage_errors
def weekly_leaderboard(session: Session, day_id: int, limit: int = 50) -> list:
    """Aggregate solved results over the 7 days ending at day_id.

    Sorted by total wins (desc), then average attempts, then average time.
    """
    gr = models.GameResult
    stmt = (
        sa_select(
            gr.player_id,
            func.count(gr.id).label("wins"),
            func.avg(gr.attempts_used).label("avg_attempts"),
            func.avg(gr.time_ms).label("avg_time"),
            func.sum(case((gr.mode == game.HARD, 1), else_=0)).label("hard_wins"),
            func.max(gr.wallet).label("wallet"),
        )
        .where(gr.day_id > day_id - WEEK_DAYS)
        .where(gr.day_id <= day_id)
        .where(gr.solved == True)  # noqa: E712
        .group_by(gr.player_id)
    )
    rows = session.execute(stmt).all()
    streaks = _streaks_for(session, {r[0] for r in rows})
    ranked = []
    for pid, wins, avg_attempts, avg_time, hard_wins, wallet in rows:
        st = streaks.get(pid)
        wallet = (st.wallet if st else None) or wallet
        avg_attempts = float(avg_attempts)
        avg_time = float(avg_time)
        ranked.append(((-int(wins), avg_attempts, avg_time, pid), {
            "playerId": pid,
            "wallet": wallet,
            "displayName": display_name(pid, wallet),
            "solved": True,
            "attemptsUsed": round(avg_attempts),
            "timeMs": round(avg_time),
            "mode": game.HARD if int(hard_wins or 0) == int(wins) else game.NORMAL,
            "streak": st.current_streak if st else 0,
            "totalWins": int(wins),
            "averageAttempts": round(avg_attempts, 2),
            "averageTimeMs": round(avg_time),
        }))
    ranked.sort(key=lambda pair: pair[0])
    return [entry for _, entry in ranked[:limit]]
