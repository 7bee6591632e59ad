import datetime
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from .errors import InvalidLength, InvalidToken, ValidationError


# token sets are immutable once published; add a new version instead of editing one
TOKEN_SETS = {
    1: [
        {"id": "R", "emoji": "\U0001F534", "name": "Red", "color": "#EF4444"},
        {"id": "O", "emoji": "\U0001F7E0", "name": "Orange", "color": "#F97316"},
        {"id": "Y", "emoji": "\U0001F7E1", "name": "Yellow", "color": "#EAB308"},
        {"id": "G", "emoji": "\U0001F7E2", "name": "Green", "color": "#22C55E"},
        {"id": "B", "emoji": "\U0001F535", "name": "Blue", "color": "#3B82F6"},
        {"id": "P", "emoji": "\U0001F7E3", "name": "Purple", "color": "#A855F7"},
        {"id": "K", "emoji": "⚫", "name": "Black", "color": "#171717"},
        {"id": "W", "emoji": "⚪", "name": "White", "color": "#F5F5F5"},
    ],
}
CURRENT_TOKEN_SET = 1

SEQUENCE_LENGTH = 5
MAX_ATTEMPTS = 6

CORRECT = "correct"
WRONG_POSITION = "wrongPos"
ABSENT = "absent"
FEEDBACK_EMOJI = {CORRECT: "\U0001F7E9", WRONG_POSITION: "\U0001F7E8", ABSENT: "⬛"}

NORMAL = "normal"
HARD = "hard"
MODES = (NORMAL, HARD)

# day 1 is 2024-01-01 (UTC)
EPOCH = datetime.date(2024, 1, 1)


def token_ids(version: int = CURRENT_TOKEN_SET) -> List[str]:
    try:
        tokens = TOKEN_SETS[version]
    except KeyError:
        raise ValueError(f"unknown token set version {version}") from None
    return [t["id"] for t in tokens]


def is_valid_token(token: str, version: int = CURRENT_TOKEN_SET) -> bool:
    return token in token_ids(version)


def day_id(when: Union[datetime.date, datetime.datetime, None] = None) -> int:
    """Return the puzzle day number for a UTC calendar date.

    Datetimes are converted to UTC first (naive ones are taken as UTC), so every
    caller agrees on the day regardless of local timezone.
    """
    if when is None:
        when = datetime.datetime.now(datetime.timezone.utc)
    if isinstance(when, datetime.datetime):
        if when.tzinfo is not None:
            when = when.astimezone(datetime.timezone.utc)
        when = when.date()
    if when < EPOCH:
        raise ValueError(f"{when} is before the first puzzle day {EPOCH}")
    return (when - EPOCH).days + 1


def current_day_id() -> int:
    return day_id()


def date_for_day(day: int) -> datetime.date:
    return EPOCH + datetime.timedelta(days=day - 1)


def parse_guess(raw: Union[str, Sequence[str]], version: int = CURRENT_TOKEN_SET) -> List[str]:
    """Turn "R,G,B,Y,P" (or a list of ids) into a validated guess."""
    if isinstance(raw, str):
        tokens = [t.strip().upper() for t in raw.split(",")] if raw.strip() else []
    else:
        tokens = [str(t).strip().upper() for t in raw]
    if len(tokens) != SEQUENCE_LENGTH:
        raise InvalidLength(SEQUENCE_LENGTH, len(tokens))
    allowed = token_ids(version)
    for i, t in enumerate(tokens):
        if t not in allowed:
            raise InvalidToken(t, i)
    return tokens


def guess_to_string(guess: Sequence[str]) -> str:
    return ",".join(guess)


def score(guess: Sequence[str], solution: Sequence[str]) -> List[str]:
    """Score a guess against the solution with duplicate-aware marking.

    Exact matches are marked first and consume their solution position. Every
    remaining guess token then takes the leftmost unconsumed solution position
    holding the same token, so a token never earns more credit than it has
    occurrences in the solution.
    """
    if len(guess) != SEQUENCE_LENGTH:
        raise InvalidLength(SEQUENCE_LENGTH, len(guess))
    if len(solution) != SEQUENCE_LENGTH:
        raise InvalidLength(SEQUENCE_LENGTH, len(solution), what="solution")

    feedback = [ABSENT] * SEQUENCE_LENGTH
    used = [False] * SEQUENCE_LENGTH

    for i in range(SEQUENCE_LENGTH):
        if guess[i] == solution[i]:
            feedback[i] = CORRECT
            used[i] = True

    for i in range(SEQUENCE_LENGTH):
        if feedback[i] == CORRECT:
            continue
        for j in range(SEQUENCE_LENGTH):
            if not used[j] and solution[j] == guess[i]:
                feedback[i] = WRONG_POSITION
                used[j] = True
                break
    return feedback


def is_win(feedback: Sequence[str]) -> bool:
    return len(feedback) == SEQUENCE_LENGTH and all(f == CORRECT for f in feedback)


POSITION_LOCKED = "POSITION_LOCKED"
TOKEN_MISSING = "TOKEN_MISSING"
POSITION_STILL_WRONG = "POSITION_STILL_WRONG"


@dataclass(frozen=True)
class Violation:
    kind: str
    position: int  # 0-based
    token: str

    @property
    def message(self) -> str:
        if self.kind == POSITION_LOCKED:
            return f"Position {self.position + 1} must be {self.token} (revealed as correct)"
        if self.kind == TOKEN_MISSING:
            return f"Guess must include {self.token} (revealed as present)"
        return f"{self.token} cannot be in position {self.position + 1} (revealed as wrong position)"


def validate_hard_mode(
    prior_guesses: Sequence[Sequence[str]],
    prior_feedback: Sequence[Sequence[str]],
    new_guess: Sequence[str],
) -> Tuple[bool, Optional[Violation]]:
    # hints accumulate: every earlier attempt is checked, not only the last one
    if len(prior_guesses) != len(prior_feedback):
        raise ValidationError("HISTORY_MISMATCH", "guess and feedback histories differ in length")
    if len(new_guess) != SEQUENCE_LENGTH:
        raise InvalidLength(SEQUENCE_LENGTH, len(new_guess))
    for prev_guess, prev_fb in zip(prior_guesses, prior_feedback):
        if len(prev_guess) != SEQUENCE_LENGTH:
            raise InvalidLength(SEQUENCE_LENGTH, len(prev_guess), what="prior guess")
        if len(prev_fb) != SEQUENCE_LENGTH:
            raise InvalidLength(SEQUENCE_LENGTH, len(prev_fb), what="prior feedback")
        for i in range(SEQUENCE_LENGTH):
            mark = prev_fb[i]
            token = prev_guess[i]
            if mark == CORRECT and new_guess[i] != token:
                return False, Violation(POSITION_LOCKED, i, token)
            if mark == WRONG_POSITION:
                if token not in new_guess:
                    return False, Violation(TOKEN_MISSING, i, token)
                if new_guess[i] == token:
                    return False, Violation(POSITION_STILL_WRONG, i, token)
    return True, None
