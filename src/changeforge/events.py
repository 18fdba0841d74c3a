"""Event fan-out to live observers."""

from __future__ import annotations

import itertools
import threading
from typing import Any, Callable

from changeforge.util.logging import get_logger

Subscriber = Callable[[dict[str, Any]], None]


class EventBroadcaster:
    """Thread-safe publish/subscribe hub.

    Subscribers register for the lifetime of a connection and must unsubscribe when it
    closes. A subscriber that raises is dropped so one broken observer cannot stall the
    others. Orchestration never depends on anyone listening.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[int, Subscriber] = {}
        self._ids = itertools.count(1)
        self.logger = get_logger("changeforge.events")

    def subscribe(self, subscriber: Subscriber) -> int:
        with self._lock:
            subscription_id = next(self._ids)
            self._subscribers[subscription_id] = subscriber
        return subscription_id

    def unsubscribe(self, subscription_id: int) -> None:
        with self._lock:
            self._subscribers.pop(subscription_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: dict[str, Any]) -> int:
        with self._lock:
            targets = list(self._subscribers.items())
        delivered = 0
        for subscription_id, subscriber in targets:
            try:
                subscriber(event)
            except Exception as exc:
                self.logger.warning(
                    "events.subscriber_dropped id=%s error=%s", subscription_id, exc
                )
                self.unsubscribe(subscription_id)
                continue
            delivered += 1
        return delivered


def event_from_webhook(event_name: str | None, payload: dict[str, Any]) -> dict[str, Any] | None:
    """Translate a GitHub webhook delivery into a broadcast event, or None if ignored."""
    repo = (payload.get("repository") or {}).get("name")
    if event_name == "check_run":
        check = payload.get("check_run") or {}
        return {
            "type": "ci_update",
            "repo": repo,
            "sha": check.get("head_sha"),
            "name": check.get("name"),
            "status": check.get("status"),
            "conclusion": check.get("conclusion"),
        }
    if event_name == "pull_request":
        pr = payload.get("pull_request") or {}
        return {
            "type": "pr_update",
            "repo": repo,
            "action": payload.get("action"),
            "pr_number": pr.get("number"),
            "sha": (pr.get("head") or {}).get("sha"),
            "state": pr.get("state"),
            "merged": bool(pr.get("merged")),
        }
    return None
