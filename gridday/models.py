from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from datetime import datetime


class GameResult(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("player_id", "day_id", name="uq_gameresult_player_day"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: str = Field(index=True)
    wallet: Optional[str] = None
    day_id: int = Field(index=True)
    mode: str = "normal"
    solved: bool = False
    attempts_used: int
    time_ms: int
    guess_history_json: str = "[]"
    feedback_history_json: str = "[]"
    submitted_at: Optional[datetime] = None


class UserStreak(SQLModel, table=True):
    player_id: str = Field(primary_key=True)
    wallet: Optional[str] = None
    current_streak: int = 0
    best_streak: int = 0
    last_played_day_id: int = 0
    total_games: int = 0
    total_wins: int = 0
    hard_mode_wins: int = 0
