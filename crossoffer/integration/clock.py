"""Shared ledger clock: the one notion of "now" every participant reads."""

from __future__ import annotations

import threading

from ..errors import InvalidParameter, TemporalViolation


class LedgerClock:
    """Monotonic ledger timestamp (seconds). Never moves backwards."""

    def __init__(self, start: int = 0) -> None:
        if not isinstance(start, int) or isinstance(start, bool) or start < 0:
            raise InvalidParameter(f"start must be a non-negative int, got {start!r}")
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance_to(self, timestamp: int) -> int:
        if not isinstance(timestamp, int) or isinstance(timestamp, bool):
            raise InvalidParameter(f"timestamp must be an int, got {timestamp!r}")
        with self._lock:
            if timestamp < self._now:
                raise TemporalViolation(f"clock cannot move backwards ({timestamp} < {self._now})")
            self._now = timestamp
            return self._now

    def advance_by(self, seconds: int) -> int:
        if not isinstance(seconds, int) or isinstance(seconds, bool) or seconds < 0:
            raise InvalidParameter(f"seconds must be a non-negative int, got {seconds!r}")
        with self._lock:
            self._now += seconds
            return self._now
