"""Calendar-day and calendar-month keys used by daily activities and rollups."""
import re
from datetime import date, datetime
from typing import Optional

from healthtrack.core.exceptions import InvalidInput

DAY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
MONTH_PATTERN = r"^\d{4}-\d{2}$"

_DAY_RE = re.compile(DAY_PATTERN)
_MONTH_RE = re.compile(MONTH_PATTERN)


def parse_day(value: Optional[str]) -> str:
    """Validate an ISO calendar day and return it as `YYYY-MM-DD`."""
    if value is None or not str(value).strip():
        raise InvalidInput("Date is required")
    value = str(value).strip()
    if not _DAY_RE.match(value):
        raise InvalidInput(f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise InvalidInput(f"Invalid date '{value}', not a calendar day")
    return value


def parse_month(value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        raise InvalidInput("Month is required")
    value = str(value).strip()
    if not _MONTH_RE.match(value) or not 1 <= int(value[5:7]) <= 12:
        raise InvalidInput(f"Invalid month '{value}', expected YYYY-MM")
    return value


def month_of(day: str) -> str:
    """The rollup key a day belongs to: its own calendar month."""
    return day[:7]


def to_date(day: str) -> date:
    return datetime.strptime(day, "%Y-%m-%d").date()


def from_date(value: date) -> str:
    return value.isoformat()
