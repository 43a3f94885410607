from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from typing import Any, Callable, Mapping

import streaks
from changes import DELETE, ChangeFeed
from streaks import HabitStats

logger = logging.getLogger(__name__)


class StatsService:
    """Per-habit statistics with a cache kept fresh by change notifications.

    ``habits`` needs ``list(owner_id)``; ``completions`` needs
    ``completed_at(owner_id, habit_id=None, since=None, until=None)``.
    """

    def __init__(
        self,
        habits,
        completions,
        feed: ChangeFeed | None = None,
        window_days: int = 30,
        clock: Callable[[], datetime] = streaks.utc_now,
    ):
        self.habits = habits
        self.completions = completions
        self.window_days = window_days
        self.clock = clock
        # (owner_id, habit_id) -> (UTC day the entry was computed for, stats)
        self._cache: dict[tuple[int, int], tuple[date, HabitStats]] = {}
        self._lock = threading.Lock()
        self._subscriptions = []
        if feed is not None:
            self._subscriptions = [
                feed.subscribe("habit_logs", self._on_completion_change),
                feed.subscribe("habits", self._on_habit_change),
            ]

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def compute(self, owner_id: int, habit_id: int, now: datetime | None = None) -> HabitStats:
        events = self.completions.completed_at(owner_id, habit_id)
        return streaks.calculate(events, self.window_days, now or self.clock())

    def habit_stats(self, owner_id: int, habit_id: int) -> HabitStats:
        """Stats for one habit, recomputed once the UTC day has moved on."""
        key = (owner_id, habit_id)
        now = self.clock()
        today = streaks.to_utc_day(now)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None and cached[0] == today:
            return cached[1]
        result = self.compute(owner_id, habit_id, now)
        with self._lock:
            self._cache[key] = (today, result)
        return result

    def is_cached(self, owner_id: int, habit_id: int) -> bool:
        with self._lock:
            return (owner_id, habit_id) in self._cache

    def overview(self, owner_id: int) -> list[dict[str, Any]]:
        now = self.clock()
        rows = []
        for habit in self.habits.list(owner_id):
            events = self.completions.completed_at(owner_id, habit["id"])
            rows.append(
                {
                    "habit_id": habit["id"],
                    "name": habit["name"],
                    "category": habit["category"],
                    "stats": self.habit_stats(owner_id, habit["id"]),
                    "week": streaks.weekly_progress(events, now),
                    "month": streaks.monthly_buckets(events, now),
                }
            )
        return rows

    def week(self, owner_id: int, habit_id: int) -> list[tuple[str, Any, bool]]:
        now = self.clock()
        dates = streaks.week_dates(now)
        events = self.completions.completed_at(owner_id, habit_id, dates[0], dates[-1])
        return streaks.weekly_progress(events, now)

    def month_progress(self, owner_id: int) -> dict[str, Any]:
        now = self.clock()
        dates = streaks.month_dates(now)
        events = self.completions.completed_at(owner_id, None, dates[0], dates[-1])
        return streaks.month_progress(events, now)

    def _on_completion_change(self, event: str, row: Mapping[str, Any]) -> None:
        key = (row.get("user_id"), row.get("habit_id"))
        with self._lock:
            if key not in self._cache:
                return
        logger.debug("Recomputing stats for habit %s after %s", key[1], event)
        now = self.clock()
        result = self.compute(*key, now=now)
        with self._lock:
            self._cache[key] = (streaks.to_utc_day(now), result)

    def _on_habit_change(self, event: str, row: Mapping[str, Any]) -> None:
        if event != DELETE:
            return
        with self._lock:
            self._cache.pop((row.get("user_id"), row.get("id")), None)
