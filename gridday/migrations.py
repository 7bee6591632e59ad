"""
Schema migrations for the results and streak tables.
Each migration runs once and is recorded in the migration table.
"""

from sqlmodel import SQLModel, Field, text, Session, select
from typing import Optional
from datetime import datetime, timezone
import logging

from .config import load_settings
from .init_db import create_db_engine

logger = logging.getLogger(__name__)


class Migration(SQLModel, table=True):
    """Track applied migrations"""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    applied_at: datetime


MIGRATIONS = [
    (
        "001_leaderboard_indexes",
        """
        -- daily ranking: solved results for a day ordered by attempts then time
        CREATE INDEX IF NOT EXISTS idx_result_day_rank ON gameresult(day_id, solved, attempts_used, time_ms);
        -- weekly aggregation per player over a day range
        CREATE INDEX IF NOT EXISTS idx_result_player_day ON gameresult(player_id, day_id)
        """,
    ),
    (
        "002_streak_indexes",
        """
        CREATE INDEX IF NOT EXISTS idx_streak_last_played ON userstreak(last_played_day_id);
        CREATE INDEX IF NOT EXISTS idx_streak_wallet ON userstreak(wallet)
        """,
    ),
]


def get_engine():
    s = load_settings()
    return create_db_engine(s.database_url, s.db_timeout_seconds)


def has_migration_been_applied(engine, migration_name: str) -> bool:
    Migration.metadata.create_all(engine)
    with Session(engine) as session:
        return session.exec(select(Migration).where(Migration.name == migration_name)).first() is not None


def apply_migration(engine, migration_name: str, migration_sql: str) -> bool:
    """Apply a migration and record it. Returns False when it was already applied."""
    if has_migration_been_applied(engine, migration_name):
        logger.info("migration_skipped", extra={"event": migration_name})
        return False

    with Session(engine) as session:
        try:
            for statement in migration_sql.strip().split(';'):
                lines = [ln for ln in statement.strip().splitlines() if not ln.strip().startswith('--')]
                statement = "\n".join(lines).strip()
                if statement:
                    session.execute(text(statement))
            session.add(Migration(name=migration_name, applied_at=datetime.now(timezone.utc)))
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("migration_failed", extra={"event": migration_name, "error": str(e)})
            raise
    logger.info("migration_applied", extra={"event": migration_name})
    return True


def run_migrations(engine=None) -> list:
    """Create tables and apply pending migrations; returns names applied this run."""
    engine = engine or get_engine()
    SQLModel.metadata.create_all(engine)
    applied = [name for name, sql in MIGRATIONS if apply_migration(engine, name, sql)]
    logger.info("migrations_complete", extra={"event": ",".join(applied) or "none"})
    return applied


if __name__ == "__main__":
    from .logging_utils import setup_logging
    setup_logging(logging.INFO)
    run_migrations()
