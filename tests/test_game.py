import datetime
import itertools
import random

import pytest

from gridday import game
from gridday.errors import InvalidLength, InvalidToken

C, W, A = game.CORRECT, game.WRONG_POSITION, game.ABSENT


def test_score_mixed_example():
    solution = ['R', 'G', 'B', 'Y', 'P']
    guess = ['R', 'B', 'G', 'Y', 'K']
    assert game.score(guess, solution) == [C, W, W, C, A]


def test_score_identity_is_win():
    s = ['K', 'K', 'W', 'O', 'K']
    fb = game.score(s, s)
    assert fb == [C] * 5
    assert game.is_win(fb)


def test_duplicate_guess_tokens_only_credited_once():
    # one R in the solution, three in the guess
    solution = ['R', 'G', 'B', 'Y', 'P']
    assert game.score(['G', 'R', 'R', 'R', 'K'], solution) == [W, W, A, A, A]


def test_exact_match_consumes_before_wrong_position():
    # the R at index 3 is exact, so the earlier R gets nothing
    solution = ['G', 'B', 'Y', 'R', 'P']
    assert game.score(['R', 'K', 'K', 'R', 'K'], solution) == [A, A, A, C, A]


def test_wrong_position_consumes_leftmost_solution_occurrence():
    solution = ['R', 'R', 'G', 'B', 'Y']
    assert game.score(['K', 'G', 'R', 'R', 'R'], solution) == [A, W, W, W, A]


def test_duplicate_safety_over_random_pairs():
    rng = random.Random(1234)
    ids = game.token_ids()
    for _ in range(2000):
        s = [rng.choice(ids[:4]) for _ in range(5)]
        g = [rng.choice(ids[:4]) for _ in range(5)]
        fb = game.score(g, s)
        for t in set(g):
            credited = sum(1 for i in range(5) if g[i] == t and fb[i] in (C, W))
            assert credited <= s.count(t)


def test_exact_positions_always_correct():
    ids = game.token_ids()[:3]
    for s in itertools.product(ids, repeat=5):
        g = ['R', 'O', 'Y', 'R', 'O']
        fb = game.score(g, list(s))
        for i in range(5):
            assert (fb[i] == C) == (g[i] == s[i])


def test_score_rejects_wrong_lengths():
    with pytest.raises(InvalidLength):
        game.score(['R', 'G'], ['R', 'G', 'B', 'Y', 'P'])
    with pytest.raises(InvalidLength):
        game.score(['R', 'G', 'B', 'Y', 'P'], ['R'] * 6)


def test_is_win_requires_all_correct():
    assert not game.is_win([C, C, C, C, W])
    assert not game.is_win([C, C, C, C])
    assert game.is_win([C] * 5)


def test_day_id_anchor_and_utc():
    assert game.day_id(datetime.date(2024, 1, 1)) == 1
    assert game.day_id(datetime.date(2024, 1, 2)) == 2
    assert game.day_id(datetime.date(2025, 1, 1)) == 367  # 2024 is a leap year
    # 23:30 in UTC-5 on Jan 1 is already Jan 2 in UTC
    est = datetime.timezone(datetime.timedelta(hours=-5))
    assert game.day_id(datetime.datetime(2024, 1, 1, 23, 30, tzinfo=est)) == 2
    assert game.date_for_day(367) == datetime.date(2025, 1, 1)


def test_day_id_refuses_dates_before_first_puzzle():
    with pytest.raises(ValueError):
        game.day_id(datetime.date(2023, 12, 31))
    # 2024-01-01 00:30 in UTC+2 is still 2023-12-31 in UTC
    plus2 = datetime.timezone(datetime.timedelta(hours=2))
    with pytest.raises(ValueError):
        game.day_id(datetime.datetime(2024, 1, 1, 0, 30, tzinfo=plus2))


def test_current_day_is_positive():
    assert game.current_day_id() >= 1


def test_parse_guess_formats():
    assert game.parse_guess("R,G,B,Y,P") == ['R', 'G', 'B', 'Y', 'P']
    assert game.parse_guess(" r, g ,b,y,p ") == ['R', 'G', 'B', 'Y', 'P']
    assert game.parse_guess(['K', 'W', 'O', 'O', 'K']) == ['K', 'W', 'O', 'O', 'K']
    assert game.guess_to_string(['R', 'G', 'B', 'Y', 'P']) == "R,G,B,Y,P"


def test_parse_guess_rejects_bad_input():
    with pytest.raises(InvalidLength):
        game.parse_guess("R,G,B")
    with pytest.raises(InvalidLength):
        game.parse_guess("")
    with pytest.raises(InvalidToken):
        game.parse_guess("R,G,B,Y,Z")


def test_alphabet_is_eight_distinct_tokens():
    ids = game.token_ids()
    assert len(ids) == 8 and len(set(ids)) == 8
    with pytest.raises(ValueError):
        game.token_ids(99)
