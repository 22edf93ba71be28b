"""Daily health scoring.

A day's behaviours (bad meals, alcohol, snacks, exercise, greens) map to an
integer between 0 and 6 through `score`. Everything else in the service that
needs a point value goes through this package.
"""

from .engine import BASE_POINTS, MAX_SCORE, score, score_activity, is_perfect_day
