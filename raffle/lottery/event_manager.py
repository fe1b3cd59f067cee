"""Append-only, in-memory log of raffle events."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

from raffle.lottery.models import RaffleEvent
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

ALL_EVENTS = "*"

Listener = Callable[[RaffleEvent], None]


class EventLog:
    """Ordered record of committed raffle events with listener fan-out."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: List[RaffleEvent] = []
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------
    def add_listener(self, event_name: str, callback: Listener) -> None:
        with self._lock:
            self._listeners[event_name].append(callback)
        logger.debug("[EventLog] Added listener for %s: %r", event_name, callback)

    def _emit(self, event: RaffleEvent) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event.name, []))
            listeners += self._listeners.get(ALL_EVENTS, [])
        for callback in listeners:
            try:
                callback(event)
            except Exception as exc:  # pragma: no cover
                logger.error("Listener for %s failed: %s", event.name, exc)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    def publish(self, events: Iterable[RaffleEvent]) -> None:
        """Append committed events in order, then notify listeners."""
        batch = list(events)
        if not batch:
            return
        with self._lock:
            self._events.extend(batch)
        for event in batch:
            logger.info("[EventLog] %s", event.to_dict())
            self._emit(event)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def events(self, name: Optional[str] = None, limit: Optional[int] = None) -> List[RaffleEvent]:
        with self._lock:
            items = list(self._events)
        if name is not None:
            items = [event for event in items if event.name == name]
        if limit is not None:
            return items[-limit:] if limit > 0 else []
        return items

    def latest(self, name: str) -> Optional[RaffleEvent]:
        items = self.events(name, limit=1)
        return items[0] if items else None
