"""Cooperative cancellation for in-flight runs."""

from __future__ import annotations

import threading


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Block for up to `timeout` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)
