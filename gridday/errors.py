"""
Request-scoped failures raised by the puzzle engine, verifier and store.

Every error carries a stable reason ``code`` that is returned to clients, and the
HTTP status the API layer should answer with. Nothing here is fatal to the process.
"""

from typing import Any, Dict, Optional


class GridError(Exception):
    http_status = 400
    kind = "error"

    def __init__(self, code: str, message: str = "", **details: Any):
        super().__init__(message or code)
        self.code = code
        self.message = message or code
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.details:
            payload.update(self.details)
        return payload


class ValidationError(GridError):
    """Malformed input: wrong guess length, wrong day, missing fields."""
    kind = "validation"


class IntegrityError(GridError):
    """Signature or outcome mismatch. Logged as a security event."""
    kind = "integrity"


class ConflictError(GridError):
    """Already submitted, or a hard-mode violation. Retrying the same payload won't help."""
    http_status = 409
    kind = "conflict"


class TransientError(GridError):
    """Storage unavailable or timed out; safe to retry, nothing was applied."""
    http_status = 503
    kind = "transient"


class InvalidLength(ValidationError):
    def __init__(self, expected: int, got: int, what: str = "guess"):
        super().__init__(
            "INVALID_LENGTH",
            f"{what} must have {expected} tokens, got {got}",
            expected=expected,
            got=got,
        )


class InvalidToken(ValidationError):
    def __init__(self, token: str, position: Optional[int] = None):
        msg = f"unknown token {token!r}"
        if position is not None:
            msg += f" at position {position + 1}"
        super().__init__("INVALID_TOKEN", msg)


class AlreadySubmitted(ConflictError):
    def __init__(self, player_id: str, day_id: int):
        super().__init__("ALREADY_SUBMITTED", f"already submitted for day {day_id}")
        self.player_id = player_id
        self.day_id = day_id


class HardModeViolation(ConflictError):
    def __init__(self, violation, attempt: Optional[int] = None):
        super().__init__(
            "HARD_MODE_VIOLATION",
            f"Hard mode violation: {violation.message}",
            violation=violation.kind,
        )
        self.violation = violation
        self.attempt = attempt


class StorageUnavailable(TransientError):
    def __init__(self, message: str = "storage unavailable, retry later"):
        super().__init__("STORAGE_UNAVAILABLE", message)
