"""
Occurrence arithmetic shared by recurring tasks and calendar events.

Everything here is pure: no database access and no clock reads.
"""
import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from models import RECURRENCE_PATTERNS, WEEKDAY_NAMES

ANCHOR_KEY_FORMAT = "%Y-%m-%dT%H:%M:%S"

_WEEKDAY_INDEX = {name: idx for idx, name in enumerate(WEEKDAY_NAMES)}


@dataclass(frozen=True)
class RecurrenceConfig:
    pattern: Optional[str]
    days: List[str] = field(default_factory=list)
    end_date: Optional[datetime] = None
    # Cumulative instance cap. Enforced by the materializer, never here.
    count: Optional[int] = None


def _as_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    return value


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def anchor_key(value) -> Optional[str]:
    """Comparable key for an anchor value (second precision)."""
    value = _as_datetime(value)
    if value is None:
        return None
    return value.strftime(ANCHOR_KEY_FORMAT)


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's last day."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    _, last_dom = calendar.monthrange(year, month)
    return value.replace(year=year, month=month, day=min(value.day, last_dom))


def add_years(value: datetime, years: int) -> datetime:
    return add_months(value, years * 12)


def normalize_recurrence_days(days: Optional[Iterable[str]]) -> List[str]:
    """Lowercase full weekday names; unknown entries are dropped."""
    normalized = []
    for day in days or []:
        name = str(day or "").strip().lower()
        if name in _WEEKDAY_INDEX and name not in normalized:
            normalized.append(name)
    return normalized


def weekday_indices(days: Optional[Iterable[str]]) -> List[int]:
    """Sorted unique weekday indices with 0=Sunday .. 6=Saturday."""
    return sorted({_WEEKDAY_INDEX[name] for name in normalize_recurrence_days(days)})


def sunday_based_weekday(value: datetime) -> int:
    return (value.weekday() + 1) % 7


def validate_recurrence_config(config: RecurrenceConfig) -> bool:
    if not config.pattern or config.pattern.lower() not in RECURRENCE_PATTERNS:
        return False
    if config.count is not None and config.count < 1:
        return False
    if config.pattern.lower() == "weekly" and config.days:
        return all(str(d or "").strip().lower() in _WEEKDAY_INDEX for d in config.days)
    return True


def _next_weekly(anchor: datetime, days) -> datetime:
    indices = weekday_indices(days)
    if not indices:
        return anchor + timedelta(weeks=1)

    # Day-list recurrences land on midnight; time of day is not carried over.
    current = sunday_based_weekday(anchor)
    later_this_week = [d for d in indices if d > current]
    if later_this_week:
        offset = later_this_week[0] - current
    else:
        offset = 7 - current + indices[0]
    return start_of_day(anchor) + timedelta(days=offset)


def compute_next_occurrence(anchor: datetime, config: RecurrenceConfig) -> Optional[datetime]:
    """
    Return the occurrence that follows ``anchor`` under ``config``.

    None means the series has no further occurrence: either the pattern is
    unknown or the candidate falls after ``config.end_date``.
    """
    pattern = (config.pattern or "").lower()
    anchor = _as_datetime(anchor)
    if anchor is None:
        return None

    if pattern == "daily":
        candidate = anchor + timedelta(days=1)
    elif pattern == "weekly":
        candidate = _next_weekly(anchor, config.days)
    elif pattern == "monthly":
        candidate = add_months(anchor, 1)
    elif pattern == "yearly":
        candidate = add_years(anchor, 1)
    else:
        return None

    end_date = _as_datetime(config.end_date)
    if end_date is not None and candidate > end_date:
        return None
    return candidate
