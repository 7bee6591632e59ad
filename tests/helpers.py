from sqlmodel import SQLModel, create_engine

from gridday import crud, game
from gridday.puzzle import PuzzleGenerator

SECRET = "test-daily-secret"
SALT = "test-commitment-salt"


def setup_db(tmp_path, name='grid.db'):
    db = tmp_path / name
    engine = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    crud.engine = engine
    return engine


def make_generator():
    return PuzzleGenerator(SECRET, SALT)


def miss_everywhere(solution):
    """A guess that differs from the solution at every position."""
    ids = game.token_ids()
    return [ids[(ids.index(t) + 1) % len(ids)] for t in solution]


def as_history(*guesses):
    return [game.guess_to_string(g) for g in guesses]
