from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Generic, Hashable, TypeVar

T = TypeVar("T")


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"


class RunState(Generic[T]):
    """State owned by one run: pending FIFO, in-flight keys and the stop flag.

    The queue and the flag are the only things workers share; every access to
    them goes through ``_lock``.
    """

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._lock = threading.Lock()
        self._pending: deque[T] = deque(items)
        self._in_flight: set[Hashable] = set()
        self._cancel_event = threading.Event()
        self._stopped_early = False
        self.total = len(self._pending)
        self.status = RunStatus.IDLE

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def stopped_early(self) -> bool:
        return self._stopped_early

    def next_item(self, key_of: Callable[[T], Hashable] | None = None) -> T | None:
        """Pop the next pending item, or None once drained or cancelled."""
        with self._lock:
            if self._cancel_event.is_set() or not self._pending:
                return None
            item = self._pending.popleft()
            if key_of is not None:
                self._in_flight.add(key_of(item))
            return item

    def finish_item(self, key: Hashable) -> None:
        with self._lock:
            self._in_flight.discard(key)

    def in_flight(self) -> frozenset:
        with self._lock:
            return frozenset(self._in_flight)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def cancel(self) -> None:
        with self._lock:
            if self._cancel_event.is_set():
                return
            self._stopped_early = bool(self._pending or self._in_flight)
            self._cancel_event.set()

    def pause(self, seconds: float) -> bool:
        """Sleep between requests; returns True if the run was cancelled meanwhile."""
        if seconds <= 0:
            return self._cancel_event.is_set()
        return self._cancel_event.wait(seconds)

    def final_status(self) -> RunStatus:
        return RunStatus.STOPPED if self._stopped_early else RunStatus.COMPLETED
