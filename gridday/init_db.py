from sqlmodel import create_engine, SQLModel
from . import models  # noqa: F401  registers tables on SQLModel.metadata
from .config import load_settings
from .logging_utils import get_logger

logger = get_logger("gridday.init_db")


def create_db_engine(url: str, timeout_seconds: float = 5.0):
    """Engine with a short wait on locks/connections so blocked writes fail fast."""
    if url.startswith("sqlite"):
        return create_engine(url, echo=False, connect_args={"check_same_thread": False, "timeout": timeout_seconds})
    connect_args = {}
    if url.startswith("postgresql"):
        # row-lock and unique-insert waits surface as OperationalError after this long
        ms = int(timeout_seconds * 1000)
        connect_args["options"] = f"-c lock_timeout={ms} -c statement_timeout={ms}"
    return create_engine(
        url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
        pool_timeout=timeout_seconds,
    )


def init_db(url: str = "", timeout_seconds: float = 5.0):
    url = url or load_settings().database_url
    engine = create_db_engine(url, timeout_seconds)
    SQLModel.metadata.create_all(engine)
    logger.info("db_initialized", extra={"path": url})
    return engine


if __name__ == '__main__':
    init_db()
