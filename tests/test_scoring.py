import itertools

import pytest

from healthtrack.health_scoring import BASE_POINTS, MAX_SCORE, is_perfect_day, score, score_activity
from healthtrack.schemas.activity import ActivityScore


def test_clean_day_without_bonuses_scores_base_points():
    assert score(0, 0, 0, False, False) == BASE_POINTS == 4


def test_perfect_day_scores_six():
    assert score(0, 0, 0, True, True) == MAX_SCORE == 6


@pytest.mark.parametrize(
    "bad_meals, alcohol, snacks, exercise, greens, expected",
    [
        (1, 0, 0, True, False, 4),
        (1, 0, 0, False, False, 3),
        (2, 1, 1, False, False, 0),
        (10, 10, 10, True, True, 2),
        (3, 0, 0, False, True, 2),
    ],
)
def test_known_scores(bad_meals, alcohol, snacks, exercise, greens, expected):
    assert score(bad_meals, alcohol, snacks, exercise, greens) == expected


def test_score_stays_within_bounds():
    """Every combination lands in [0, 6] and deductions never eat the bonuses"""
    for bad, alc, snk in itertools.product(range(6), repeat=3):
        for exercise, greens in itertools.product([False, True], repeat=2):
            total = score(bad, alc, snk, exercise, greens)
            bonus = int(exercise) + int(greens)
            assert 0 <= total <= MAX_SCORE
            assert total >= bonus


def test_more_deductions_never_raise_the_score():
    for flags in itertools.product([False, True], repeat=2):
        previous = score(0, 0, 0, *flags)
        for n in range(1, 8):
            current = score(n, 0, 0, *flags)
            assert current <= previous
            previous = current


def test_score_activity_reads_the_model():
    activity_score = ActivityScore(badMeals=1, alcohol=0, snacks=0, exercise=True, greens=False)
    assert score_activity(activity_score) == 4
    assert not is_perfect_day(activity_score)
    assert is_perfect_day(ActivityScore(bad_meals=0, alcohol=0, snacks=0, exercise=True, greens=True))
