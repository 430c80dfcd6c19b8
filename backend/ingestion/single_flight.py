from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class SingleFlight:
    """Allow at most one in-flight task per key; concurrent callers are turned away, not queued."""

    def __init__(self) -> None:
        self._in_flight: set[str] = set()
        self._guard = threading.Lock()

    @contextmanager
    def claim(self, key: str) -> Iterator[bool]:
        with self._guard:
            acquired = key not in self._in_flight
            if acquired:
                self._in_flight.add(key)
        try:
            yield acquired
        finally:
            if acquired:
                with self._guard:
                    self._in_flight.discard(key)


__all__ = ["SingleFlight"]
