from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from apiprobe.models import ExecutionOutcome, Identity, ResultKey

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Latest outcome per result key; last write (by completion time) wins.

    The lock only guards single dict operations, so writers to different keys
    never wait on a request.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: dict[ResultKey, ExecutionOutcome] = {}
        self._running: set[ResultKey] = set()

    def record(self, key: ResultKey, outcome: ExecutionOutcome) -> bool:
        with self._lock:
            current = self._outcomes.get(key)
            if current is not None and current.completed_at > outcome.completed_at:
                logger.debug("Discarding stale outcome for %s", key.label())
                return False
            self._outcomes[key] = outcome
            return True

    def get(self, key: ResultKey) -> ExecutionOutcome | None:
        with self._lock:
            return self._outcomes.get(key)

    def for_identity(self, identity: Identity) -> dict[ResultKey, ExecutionOutcome]:
        with self._lock:
            return {key: value for key, value in self._outcomes.items() if key.identity == identity}

    def last_status(self, key: ResultKey) -> int | None:
        outcome = self.get(key)
        return None if outcome is None else outcome.status

    def mark_running(self, key: ResultKey) -> None:
        with self._lock:
            self._running.add(key)

    def mark_done(self, key: ResultKey) -> None:
        with self._lock:
            self._running.discard(key)

    def is_running(self, key: ResultKey) -> bool:
        with self._lock:
            return key in self._running

    def clear_all(self) -> None:
        with self._lock:
            self._outcomes.clear()

    def items(self) -> list[tuple[ResultKey, ExecutionOutcome]]:
        with self._lock:
            return list(self._outcomes.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)

    def __iter__(self) -> Iterator[ResultKey]:
        return iter([key for key, _ in self.items()])
