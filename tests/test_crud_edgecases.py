import json

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from gridday import crud, game, models
from gridday.errors import AlreadySubmitted, ConflictError, StorageUnavailable
from gridday.verifier import AuthenticatedResult

from helpers import setup_db


def authenticated(pid='zoe', day=20, solved=True):
    sol = ['R', 'G', 'B', 'Y', 'P']
    return AuthenticatedResult(
        player_id=pid, day_id=day, mode=game.NORMAL, solved=solved,
        attempts_used=1, time_ms=5000,
        guess_history=[sol], feedback_history=[game.score(sol, sol)],
    )


def test_save_result_refuses_second_row_for_same_day(tmp_path):
    engine = setup_db(tmp_path)
    with Session(engine) as s:
        crud.save_result(s, models.GameResult(player_id='zoe', day_id=20, solved=True, attempts_used=2, time_ms=9000))
        with pytest.raises(AlreadySubmitted):
            crud.save_result(s, models.GameResult(player_id='zoe', day_id=20, solved=False, attempts_used=6, time_ms=9000))
        # other days and other players are unaffected
        crud.save_result(s, models.GameResult(player_id='zoe', day_id=21, solved=False, attempts_used=6, time_ms=9000))
        crud.save_result(s, models.GameResult(player_id='yan', day_id=20, solved=True, attempts_used=1, time_ms=9000))
        stored = crud.get_result(s, 'zoe', 20)
        assert stored is not None and stored.attempts_used == 2 and stored.submitted_at is not None


def test_record_result_stores_history_and_streak(tmp_path):
    engine = setup_db(tmp_path)
    with Session(engine) as s:
        result, streak = crud.record_result(s, authenticated())
        assert result.id is not None
        assert json.loads(result.guess_history_json) == ["R,G,B,Y,P"]
        assert json.loads(result.feedback_history_json) == [[game.CORRECT] * 5]
        assert streak.current_streak == 1 and streak.last_played_day_id == 20


def test_duplicate_record_result_applies_nothing(tmp_path):
    engine = setup_db(tmp_path)
    with Session(engine) as s:
        crud.record_result(s, authenticated())
        with pytest.raises(AlreadySubmitted):
            crud.record_result(s, authenticated(solved=False))
    with Session(engine) as s:
        st = crud.get_user_streak(s, 'zoe')
        assert st.total_games == 1 and st.current_streak == 1


def test_streak_failure_rolls_back_result(tmp_path):
    engine = setup_db(tmp_path)
    with Session(engine) as s:
        crud.update_streak(s, 'zoe', 25, True, game.NORMAL)
        # day 20 is behind the streak's last played day, so the whole write is refused
        with pytest.raises(ConflictError):
            crud.record_result(s, authenticated(day=20))
    with Session(engine) as s:
        assert crud.get_result(s, 'zoe', 20) is None


def test_storage_outage_becomes_transient_error(tmp_path, monkeypatch):
    engine = setup_db(tmp_path)
    with Session(engine) as s:
        def boom(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        monkeypatch.setattr(s, "exec", boom)
        with pytest.raises(StorageUnavailable) as ei:
            crud.get_result(s, 'zoe', 20)
        assert ei.value.http_status == 503 and ei.value.code == "STORAGE_UNAVAILABLE"


def test_display_name():
    assert crud.display_name('abcdefgh') == 'Player abcdef'
    assert crud.display_name('abcdefgh', '0x1234567890abcdef1234567890abcdef12345678') == '0x1234...5678'
