"""
Observable event log.

Events are appended in emission order. Subscribers are called synchronously,
after the event is recorded; a subscriber that raises does not un-record it.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional

from ..core.types import Event, OfferEvent


logger = logging.getLogger(__name__)

Subscriber = Callable[[OfferEvent], None]


class EventLog:
    def __init__(self) -> None:
        self._events: List[OfferEvent] = []
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def emit(self, event: Event, **fields: Any) -> OfferEvent:
        record = OfferEvent(event=event, fields=dict(fields))
        with self._lock:
            self._events.append(record)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(record)
            except Exception:
                logger.exception("event subscriber failed on %s", event.value)
        return record

    def events(self, event: Optional[Event] = None) -> List[OfferEvent]:
        with self._lock:
            if event is None:
                return list(self._events)
            return [e for e in self._events if e.event is event]

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback`; the returned function unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def __len__(self) -> int:
        return len(self._events)
