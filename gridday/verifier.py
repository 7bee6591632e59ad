"""
Server-side replay of a submitted game.

A client claims an outcome and sends its whole guess history. The verifier
re-derives the day's solution, checks the metadata signature, replays every guess
(hard-mode rules included) and only hands back an AuthenticatedResult when the
recomputed outcome matches the claim. It never writes anything; storing the
result is crud.record_result's job.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlmodel import Session

from . import crud, game
from .config import Settings
from .errors import (
    AlreadySubmitted,
    GridError,
    HardModeViolation,
    IntegrityError,
    ValidationError,
)
from .logging_utils import get_logger
from .puzzle import PuzzleGenerator

logger = get_logger("gridday.verifier")


@dataclass
class Claim:
    player_id: str
    day_id: int
    mode: str
    attempts_used: int
    claimed_solved: bool
    time_ms: int
    guess_history: Sequence[str]
    metadata_signature: str
    wallet: Optional[str] = None


@dataclass
class AuthenticatedResult:
    player_id: str
    day_id: int
    mode: str
    solved: bool
    attempts_used: int
    time_ms: int
    guess_history: List[List[str]] = field(default_factory=list)
    feedback_history: List[List[str]] = field(default_factory=list)
    wallet: Optional[str] = None


def replay(solution: Sequence[str], guesses: Sequence, mode: str, version: int = game.CURRENT_TOKEN_SET):
    """Score each guess in order and return (parsed_guesses, feedback_history, solved).

    Raises on malformed guesses, hard-mode violations, or guesses after a win.
    """
    parsed: List[List[str]] = []
    feedback: List[List[str]] = []
    solved = False
    last = len(guesses) - 1
    for i, raw in enumerate(guesses):
        try:
            guess = game.parse_guess(raw, version)
        except ValidationError as e:
            raise ValidationError("INVALID_GUESS", f"guess {i + 1}: {e.message}", attempt=i + 1) from e
        if mode == game.HARD and i > 0:
            ok, violation = game.validate_hard_mode(parsed, feedback, guess)
            if not ok:
                raise HardModeViolation(violation, attempt=i + 1)
        fb = game.score(guess, solution)
        parsed.append(guess)
        feedback.append(fb)
        if game.is_win(fb):
            solved = True
            if i < last:
                raise IntegrityError(
                    "EXCESS_GUESSES_AFTER_WIN",
                    f"guesses continued after winning on attempt {i + 1}",
                )
    return parsed, feedback, solved


def _check(claim: Claim, session: Session, generator: PuzzleGenerator, current_day: int, settings: Settings) -> AuthenticatedResult:
    if claim.day_id != current_day:
        raise ValidationError("WRONG_DAY", "Invalid dayId - must be today's puzzle", currentDayId=current_day)

    if claim.mode not in game.MODES:
        raise ValidationError("INVALID_MODE", f"mode must be one of {', '.join(game.MODES)}")

    # fast path only; the unique insert in crud.record_result is the real guard
    if crud.get_result(session, claim.player_id, claim.day_id) is not None:
        raise AlreadySubmitted(claim.player_id, claim.day_id)

    if not generator.verify_metadata_signature(claim.day_id, claim.metadata_signature):
        raise IntegrityError("INVALID_SIGNATURE", "Invalid daily signature")

    n = len(claim.guess_history)
    if n < 1 or n > game.MAX_ATTEMPTS:
        raise ValidationError("INVALID_ATTEMPT_COUNT", f"Guess history must be 1-{game.MAX_ATTEMPTS} guesses")
    if claim.attempts_used != n:
        raise ValidationError("ATTEMPTS_MISMATCH", "attemptsUsed does not match guessHistory length")

    # abuse signal, not proof: clients control their own clock
    if claim.time_ms < settings.min_time_ms or claim.time_ms > settings.max_time_ms:
        raise ValidationError("IMPLAUSIBLE_TIME", "Invalid time value")

    solution = generator.derive_solution(claim.day_id)
    guesses, feedback, solved = replay(solution, claim.guess_history, claim.mode, generator.token_set_version)

    if solved != claim.claimed_solved:
        raise IntegrityError("OUTCOME_MISMATCH", "Solved status mismatch")

    return AuthenticatedResult(
        player_id=claim.player_id,
        day_id=claim.day_id,
        mode=claim.mode,
        solved=solved,
        attempts_used=n,
        time_ms=claim.time_ms,
        guess_history=guesses,
        feedback_history=feedback,
        wallet=claim.wallet,
    )


def verify_submission(
    session: Session,
    generator: PuzzleGenerator,
    claim: Claim,
    current_day: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> AuthenticatedResult:
    """Authenticate a claimed game; raises a GridError subclass on the first failed check."""
    if current_day is None:
        current_day = game.current_day_id()
    if settings is None:
        settings = Settings()
    try:
        return _check(claim, session, generator, current_day, settings)
    except IntegrityError as e:
        logger.warning(
            "security_event",
            extra={"reason": e.code, "kind": e.kind, "player_id": claim.player_id, "day_id": claim.day_id, "error": e.message},
        )
        raise
    except GridError as e:
        logger.info(
            "submission_rejected",
            extra={"reason": e.code, "kind": e.kind, "player_id": claim.player_id, "day_id": claim.day_id},
        )
        raise
