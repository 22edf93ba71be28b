from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from healthtrack.schemas.activity import ActivityScore

BASE_POINTS = 4
MAX_SCORE = BASE_POINTS + 2


def score(bad_meals: int, alcohol: int, snacks: int, exercise: bool, greens: bool) -> int:
    """Points for one day: 4 minus deductions (floored at 0) plus one per bonus habit.

    This is the only place the formula lives. Stored totals, rollup deltas,
    recomputes and user summaries all call it, so it must stay small,
    deterministic and free of I/O.
    """
    deductions = bad_meals + alcohol + snacks
    bonus_points = (1 if exercise else 0) + (1 if greens else 0)
    return max(0, BASE_POINTS - deductions) + bonus_points


def score_activity(activity_score: "ActivityScore") -> int:
    return score(
        activity_score.bad_meals,
        activity_score.alcohol,
        activity_score.snacks,
        activity_score.exercise,
        activity_score.greens,
    )


def is_perfect_day(activity_score: "ActivityScore") -> bool:
    return score_activity(activity_score) == MAX_SCORE
