from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

Callback = Callable[[str, Mapping[str, Any]], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, callback: Callback, filters: dict):
        self.feed = feed
        self.table = table
        self.callback = callback
        self.filters = filters

    def matches(self, table: str, row: Mapping[str, Any]) -> bool:
        if table != self.table:
            return False
        return all(row.get(key) == value for key, value in self.filters.items())

    def unsubscribe(self) -> None:
        self.feed.remove(self)


class ChangeFeed:
    """Row-change notifications for one process.

    Repositories publish after every write; interested code subscribes to a
    table with optional equality filters, e.g.
    ``feed.subscribe("habit_logs", callback, habit_id=3)``. Callbacks receive
    the event name and the written row.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: Callback, **filters: Any) -> Subscription:
        subscription = Subscription(self, table, callback, filters)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, table: str, event: str, row: Mapping[str, Any]) -> int:
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(table, row)]
        for subscription in targets:
            try:
                subscription.callback(event, row)
            except Exception:
                logger.exception("Change callback failed for %s %s", event, table)
        return len(targets)
