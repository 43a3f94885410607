"""Streak and completion-rate arithmetic over habit completion timestamps.

Every day here is a UTC calendar day. Naive datetimes are read as UTC and
aware ones are converted, so a completion logged at 23:30 in UTC-2 lands on
the next UTC day. Callers must not mix in local dates.
"""
from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

Timestamp = str | datetime | date


@dataclass(frozen=True)
class HabitStats:
    completed_days: frozenset[date]
    completion_rate: int
    current_streak: int
    longest_streak: int

    def as_dict(self) -> dict:
        return {
            "completed_days": sorted(day.isoformat() for day in self.completed_days),
            "completion_rate": self.completion_rate,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_day(value: Timestamp) -> date:
    """Project one completion timestamp onto its UTC calendar day.

    Strings are ISO 8601 (a trailing ``Z`` is accepted). Anything that does
    not parse raises ``ValueError``.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise ValueError(f"not a timestamp: {value!r}")


def to_utc_timestamp(day: date) -> str:
    """Midnight UTC of ``day`` in the stored ``completed_at`` format."""
    return f"{day.isoformat()}T00:00:00Z"


def completed_days(events: Iterable[Timestamp]) -> frozenset[date]:
    return frozenset(to_utc_day(event) for event in events)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(100 * part / whole)


def completion_rate(days: frozenset[date] | set[date], window_days: int, today: date) -> int:
    """Share of the ``window_days`` days ending at ``today`` that were completed."""
    if window_days < 1:
        raise ValueError("window_days must be at least 1")
    start = today - timedelta(days=window_days - 1)
    in_window = sum(1 for day in days if start <= day <= today)
    return percent(in_window, window_days)


def current_streak(days: frozenset[date] | set[date], today: date) -> int:
    """Consecutive completed days ending today, or ending yesterday if today is open.

    An unmarked today does not break the chain yet; an unmarked today and
    yesterday does.
    """
    if today in days:
        cursor = today
    elif today - timedelta(days=1) in days:
        cursor = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def longest_streak(days: frozenset[date] | set[date]) -> int:
    longest = 0
    run = 0
    previous: date | None = None
    for day in sorted(days):
        if previous is not None and (day - previous).days == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def calculate(
    events: Iterable[Timestamp],
    window_days: int = 30,
    now: datetime | None = None,
) -> HabitStats:
    """Derive completed days, completion rate and both streaks for one habit.

    ``now`` is the instant treated as today; it defaults to the wall clock.
    The longest streak covers every supplied event, the completion rate only
    the trailing window.
    """
    if window_days < 1:
        raise ValueError("window_days must be at least 1")
    today = to_utc_day(now or utc_now())
    days = completed_days(events)
    return HabitStats(
        completed_days=days,
        completion_rate=completion_rate(days, window_days, today),
        current_streak=current_streak(days, today),
        longest_streak=longest_streak(days),
    )


def week_dates(now: datetime | None = None) -> list[date]:
    """Monday through Sunday of the UTC week containing ``now``."""
    today = to_utc_day(now or utc_now())
    monday = today - timedelta(days=today.weekday())
    return [monday + timedelta(days=offset) for offset in range(7)]


def month_dates(now: datetime | None = None) -> list[date]:
    today = to_utc_day(now or utc_now())
    last = calendar.monthrange(today.year, today.month)[1]
    return [today.replace(day=number) for number in range(1, last + 1)]


def weekly_progress(
    events: Iterable[Timestamp], now: datetime | None = None
) -> list[tuple[str, date, bool]]:
    days = completed_days(events)
    return [
        (WEEKDAY_LABELS[index], day, day in days)
        for index, day in enumerate(week_dates(now))
    ]


def monthly_buckets(
    events: Iterable[Timestamp], now: datetime | None = None
) -> list[tuple[str, int]]:
    """Completed days per "Week N" of the month; days 29-31 form week 5."""
    dates = month_dates(now)
    counts = [0] * ((len(dates) + 6) // 7)
    month = dates[0]
    for day in completed_days(events):
        if (day.year, day.month) == (month.year, month.month):
            counts[(day.day - 1) // 7] += 1
    return [(f"Week {index + 1}", count) for index, count in enumerate(counts)]


def month_progress(events: Iterable[Timestamp], now: datetime | None = None) -> dict:
    dates = month_dates(now)
    month = dates[0]
    days = {
        day
        for day in completed_days(events)
        if (day.year, day.month) == (month.year, month.month)
    }
    return {
        "month_name": month.strftime("%B"),
        "dates": dates,
        "completed_days": days,
        "days_completed": len(days),
        "days_in_month": len(dates),
        "completion_rate": percent(len(days), len(dates)),
        # Blank cells before the 1st in a Sunday-first calendar grid.
        "leading_blanks": (month.weekday() + 1) % 7,
    }


def day_of_year(now: datetime | None = None) -> tuple[int, int]:
    today = to_utc_day(now or utc_now())
    total = 366 if calendar.isleap(today.year) else 365
    return today.timetuple().tm_yday, total
