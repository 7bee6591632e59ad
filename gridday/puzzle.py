"""
Daily solution derivation and puzzle metadata signing.

The solution is a keyed function of the day number, so every server instance
holding the same secret produces the same puzzle without storing it. Clients get
a commitment to the solution (keyed with a separate salt) and a signature over
``(day_id, commitment)``; both are recomputed on demand for verification.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass, asdict
from typing import List, Optional, Sequence

from . import game

NAMESPACE = "grid-of-the-day"


def _hmac_hex(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()


def derive_solution(day_id: int, server_secret: str, version: int = game.CURRENT_TOKEN_SET) -> List[str]:
    # one hash byte per position; modulo bias over 8 tokens is zero (256 % 8 == 0)
    digest = hmac.new(server_secret.encode(), f"{NAMESPACE}:{day_id}".encode(), hashlib.sha256).digest()
    ids = game.token_ids(version)
    return [ids[digest[i] % len(ids)] for i in range(game.SEQUENCE_LENGTH)]


def commit(solution: Sequence[str], day_id: int, commitment_salt: str) -> str:
    return _hmac_hex(commitment_salt, f"commitment:{day_id}:{','.join(solution)}")


def sign(day_id: int, commitment: str, server_secret: str) -> str:
    return _hmac_hex(server_secret, f"sign:{day_id}:{commitment}")


def verify(day_id: int, commitment: str, signature: str, server_secret: str) -> bool:
    if not isinstance(signature, str) or not isinstance(commitment, str):
        return False
    expected = sign(day_id, commitment, server_secret)
    # compare_digest refuses non-ASCII str, so compare bytes
    return hmac.compare_digest(expected.encode(), signature.encode())


@dataclass(frozen=True)
class PuzzleMetadata:
    dayId: int
    tokenSetVersion: int
    commitment: str
    issuedAt: int
    signature: str

    def to_dict(self):
        return asdict(self)


class PuzzleGenerator:
    """Holds the key material for one deployment and derives puzzles from it."""

    def __init__(self, secret: str, commitment_salt: str, token_set_version: int = game.CURRENT_TOKEN_SET):
        if not secret:
            raise ValueError("server secret must not be empty")
        if not commitment_salt:
            raise ValueError("commitment salt must not be empty")
        game.token_ids(token_set_version)  # fail fast on unknown versions
        self._secret = secret
        self._salt = commitment_salt
        self.token_set_version = token_set_version

    @classmethod
    def from_settings(cls, settings) -> "PuzzleGenerator":
        return cls(settings.daily_secret, settings.commitment_salt, settings.token_set_version)

    def derive_solution(self, day_id: int) -> List[str]:
        return derive_solution(day_id, self._secret, self.token_set_version)

    def commitment(self, day_id: int) -> str:
        return commit(self.derive_solution(day_id), day_id, self._salt)

    def sign(self, day_id: int, commitment: str) -> str:
        return sign(day_id, commitment, self._secret)

    def verify(self, day_id: int, commitment: str, signature: str) -> bool:
        return verify(day_id, commitment, signature, self._secret)

    def verify_metadata_signature(self, day_id: int, signature: str) -> bool:
        """Recompute the day's commitment and check a client-held signature against it."""
        return self.verify(day_id, self.commitment(day_id), signature)

    def metadata(self, day_id: int, issued_at: Optional[int] = None) -> PuzzleMetadata:
        c = self.commitment(day_id)
        if issued_at is None:
            issued_at = int(time.time() * 1000)
        return PuzzleMetadata(
            dayId=day_id,
            tokenSetVersion=self.token_set_version,
            commitment=c,
            issuedAt=issued_at,
            signature=self.sign(day_id, c),
        )

    def score(self, day_id: int, guess: Sequence[str]) -> List[str]:
        return game.score(guess, self.derive_solution(day_id))
