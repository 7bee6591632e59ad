import os
from dataclasses import dataclass

from . import game

# development defaults; override with env vars in production
DEV_DAILY_SECRET = "dev-daily-secret-change-me"
DEV_COMMITMENT_SALT = "dev-commitment-salt-change-me"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    daily_secret: str = DEV_DAILY_SECRET
    commitment_salt: str = DEV_COMMITMENT_SALT
    token_set_version: int = game.CURRENT_TOKEN_SET
    database_url: str = "sqlite:///./gridday.db"
    app_url: str = "http://localhost:3000"
    # plausible play time window, in ms
    min_time_ms: int = 1000
    max_time_ms: int = 600000
    db_timeout_seconds: float = 5.0

    @property
    def using_dev_secrets(self) -> bool:
        return self.daily_secret == DEV_DAILY_SECRET or self.commitment_salt == DEV_COMMITMENT_SALT


def load_settings() -> Settings:
    """Build settings from the environment.

    DAILY_SECRET and COMMITMENT_SALT must differ; the commitment key is kept
    separate from the signing key.
    """
    s = Settings(
        daily_secret=os.environ.get("DAILY_SECRET", DEV_DAILY_SECRET),
        commitment_salt=os.environ.get("COMMITMENT_SALT", DEV_COMMITMENT_SALT),
        token_set_version=_int_env("TOKEN_SET_VERSION", game.CURRENT_TOKEN_SET),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./gridday.db"),
        app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
        min_time_ms=_int_env("MIN_TIME_MS", 1000),
        max_time_ms=_int_env("MAX_TIME_MS", 600000),
        db_timeout_seconds=_float_env("DB_TIMEOUT_SECONDS", 5.0),
    )
    if s.daily_secret == s.commitment_salt:
        raise ValueError("DAILY_SECRET and COMMITMENT_SALT must be different keys")
    if s.min_time_ms > s.max_time_ms:
        raise ValueError("MIN_TIME_MS must not exceed MAX_TIME_MS")
    return s
