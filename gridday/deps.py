from sqlmodel import Session
from . import crud
from .config import load_settings
from .puzzle import PuzzleGenerator

settings = load_settings()
generator = PuzzleGenerator.from_settings(settings)


def get_session():
    # simple dependency that yields a session
    with Session(crud.engine) as session:
        yield session


def get_settings():
    return settings


def get_generator() -> PuzzleGenerator:
    return generator
