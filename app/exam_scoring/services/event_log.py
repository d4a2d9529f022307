"""Bounded in-memory log of recent scoring events, owned by the app."""
from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import current_app

EXTENSION_KEY = "scoring_event_log"


class ScoringEventLog:
    """Ring buffer; the oldest event is dropped once ``maxlen`` is reached."""

    def __init__(self, maxlen: int = 200):
        if maxlen < 1:
            raise ValueError("maxlen must be at least 1")
        self._events: deque = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._events.maxlen

    def __len__(self) -> int:
        return len(self._events)

    def record(self, kind: str, **fields: Any) -> Dict[str, Any]:
        event = {"kind": kind, "timestamp": datetime.now(timezone.utc).isoformat(), **fields}
        self._events.append(event)
        return event

    def recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Newest first."""
        events = list(reversed(self._events))
        return events if limit is None else events[: max(limit, 0)]

    def clear(self) -> int:
        dropped = len(self._events)
        self._events.clear()
        return dropped


def init_event_log(app) -> ScoringEventLog:
    log = ScoringEventLog(app.config.get("EVENT_LOG_SIZE", 200))
    app.extensions[EXTENSION_KEY] = log
    return log


def get_event_log() -> ScoringEventLog:
    return current_app.extensions[EXTENSION_KEY]
