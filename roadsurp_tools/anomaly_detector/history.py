"""Time-bounded in-memory stores for readings, vertical values and emitted events."""

from collections import deque

import numpy as np

from roadsurp_tools.anomaly_detector.types import EventType, RoadEvent


class BoundedTimeWindow:
    """Append-only (timestamp, value) sequence that keeps only the last `retention_s` seconds.

    Timestamps must be non-decreasing; append() refuses an older timestamp and
    returns False. Eviction happens on every successful append, relative to the
    newest timestamp.
    """

    def __init__(self, retention_s: float):
        self.retention_s = retention_s
        self._items = deque()

    def append(self, timestamp: float, value) -> bool:
        if self._items and timestamp < self._items[-1][0]:
            return False
        self._items.append((timestamp, value))
        cutoff = timestamp - self.retention_s
        while self._items and self._items[0][0] < cutoff:
            self._items.popleft()
        return True

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    @property
    def newest_time(self):
        return self._items[-1][0] if self._items else None

    def last(self, n: int) -> list:
        """The n newest (timestamp, value) pairs, oldest first."""
        if n <= 0:
            return []
        return list(self._items)[-n:]

    def between(self, start: float, end: float, include_start: bool = True,
                include_end: bool = True) -> list:
        out = []
        for t, v in self._items:
            if t < start or (t == start and not include_start):
                continue
            if t > end or (t == end and not include_end):
                continue
            out.append((t, v))
        return out

    def arrays(self) -> tuple:
        """(times, values) as float arrays; values must be numeric."""
        if not self._items:
            return np.empty(0), np.empty(0)
        times, values = zip(*self._items)
        return np.asarray(times, dtype=float), np.asarray(values, dtype=float)


class EventHistory:
    """Append-only log of emitted (non-Normal) events, cleared only explicitly."""

    def __init__(self):
        self._events = []

    def append(self, event: RoadEvent) -> None:
        if event.type == EventType.NORMAL:
            raise ValueError("Normal classifications are never recorded")
        self._events.append(event)

    def clear(self) -> None:
        self._events = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)

    def all(self) -> list:
        return list(self._events)

    def last(self):
        return self._events[-1] if self._events else None

    def since(self, start: float) -> list:
        return [e for e in self._events if e.timestamp >= start]
