"""Worker pool that turns test cases into HTTP calls.

Exactly ``workers`` loops run on a private QThreadPool and drain one shared
FIFO. Outcomes are handed back to the consuming thread via a queue, so the
caller sees them as a plain iterator.
"""

from __future__ import annotations

import logging
import queue
import random
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass

from PySide6.QtCore import QRunnable, QThreadPool

from apiprobe import http_client
from apiprobe.config import RunConfiguration
from apiprobe.models import (
    ALL_METHODS,
    EMPTY_OVERRIDES,
    ErrorKind,
    ExecutionOutcome,
    Identity,
    ResultKey,
    TestCase,
    VariableOverrides,
    combination_key,
)
from apiprobe.placeholders import PlaceholderResolver
from apiprobe.request_builder import build_request, path_variables
from apiprobe.results import ResultAggregator
from apiprobe.run_state import RunState, RunStatus

logger = logging.getLogger(__name__)

SendRequest = Callable[..., ExecutionOutcome]
OverridesMap = Mapping[Identity, VariableOverrides]


@dataclass(frozen=True)
class WorkItem:
    key: ResultKey
    test_case: TestCase
    overrides: VariableOverrides
    method: str | None = None


@dataclass(frozen=True)
class OutcomeEvent:
    key: ResultKey
    outcome: ExecutionOutcome

    @property
    def identity(self) -> Identity:
        return self.key.identity

    @property
    def method(self) -> str:
        return self.key.method or self.outcome.method


@dataclass(frozen=True)
class RunFinished:
    status: RunStatus
    total: int
    recorded: int


_WORKER_EXIT = object()


class _WorkerRunnable(QRunnable):
    def __init__(self, loop: Callable[[], None]) -> None:
        super().__init__()
        self.loop = loop

    def run(self) -> None:
        self.loop()


def expand_items(
    test_case: TestCase,
    overrides: VariableOverrides | None = None,
    method: str | None = None,
) -> list[WorkItem]:
    """One work item, or one per path-variable combination when candidates were given."""
    overrides = overrides or EMPTY_OVERRIDES
    names = path_variables(test_case.path)
    if not names or not overrides.has_path_candidates():
        key = ResultKey(test_case.identity, method)
        return [WorkItem(key, test_case, overrides, method)]
    combinations = overrides.path_combinations(names)
    if len(combinations) == 1:
        key = ResultKey(test_case.identity, method)
        return [WorkItem(key, test_case, overrides.with_path(combinations[0]), method)]
    items = []
    for values in combinations:
        key = ResultKey(test_case.identity, method, combination_key(values))
        items.append(WorkItem(key, test_case, overrides.with_path(values), method))
    return items


def all_methods(config: RunConfiguration) -> tuple[str, ...]:
    if config.allow_delete_in_all_methods:
        return ALL_METHODS
    return tuple(m for m in ALL_METHODS if m != "DELETE")


class Scheduler:
    def __init__(
        self,
        config: RunConfiguration,
        aggregator: ResultAggregator | None = None,
        send_request: SendRequest | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.aggregator = aggregator if aggregator is not None else ResultAggregator()
        self.send_request = send_request or http_client.send_request
        self.resolver = PlaceholderResolver.for_config(config, rng)

    def plan(self, test_cases: Iterable[TestCase], overrides: OverridesMap | None = None) -> list[WorkItem]:
        overrides = overrides or {}
        items: list[WorkItem] = []
        for test_case in test_cases:
            items.extend(expand_items(test_case, overrides.get(test_case.identity)))
        return items

    def plan_all_methods(self, test_case: TestCase, overrides: VariableOverrides | None = None) -> list[WorkItem]:
        items: list[WorkItem] = []
        for method in all_methods(self.config):
            items.extend(expand_items(test_case, overrides, method))
        return items

    def execute_item(self, item: WorkItem, cancel_event: threading.Event | None = None) -> ExecutionOutcome:
        try:
            request = build_request(
                item.test_case,
                self.config,
                item.overrides,
                method=item.method,
                resolver=self.resolver,
            )
            return self.send_request(request, self.config.timeout, cancel_event)
        except Exception as exc:
            logger.exception("Failed to execute %s", item.key.label())
            return ExecutionOutcome.failed(
                None,
                ErrorKind.INVALID_REQUEST,
                f"SchedulerError: {exc}",
                method=item.method or item.test_case.method or "GET",
            )

    def run(self, state: RunState[WorkItem]) -> Iterator[OutcomeEvent | RunFinished]:
        """Drain the state's pending items and yield outcomes as they complete.

        The last value is always a RunFinished. Abandoning the iterator stops
        the run and waits for in-flight workers.
        """
        state.status = RunStatus.RUNNING
        events: queue.Queue = queue.Queue()
        lanes = min(self.config.workers, state.total)
        logger.info("Starting run: %d items on %d workers", state.total, lanes)

        pool = QThreadPool()
        pool.setMaxThreadCount(max(1, lanes))
        runnables = [_WorkerRunnable(lambda: self._worker_loop(state, events)) for _ in range(lanes)]
        for runnable in runnables:
            pool.start(runnable)

        recorded = 0
        remaining = lanes
        finished = False
        try:
            while remaining:
                event = events.get()
                if event is _WORKER_EXIT:
                    remaining -= 1
                    continue
                recorded += 1
                yield event
            pool.waitForDone()
            state.status = state.final_status()
            finished = True
            logger.info("Run %s: %d/%d outcomes recorded", state.status.value, recorded, state.total)
            yield RunFinished(state.status, state.total, recorded)
        finally:
            if not finished:
                state.cancel()
                pool.waitForDone()
                state.status = RunStatus.STOPPED

    def _worker_loop(self, state: RunState[WorkItem], events: queue.Queue) -> None:
        try:
            while True:
                item = state.next_item(key_of=lambda work: work.key)
                if item is None:
                    break
                self.aggregator.mark_running(item.key)
                try:
                    outcome = self.execute_item(item, state.cancel_event)
                    self.aggregator.record(item.key, outcome)
                finally:
                    self.aggregator.mark_done(item.key)
                    state.finish_item(item.key)
                events.put(OutcomeEvent(item.key, outcome))
                if state.pause(self.config.delay_seconds):
                    break
        finally:
            events.put(_WORKER_EXIT)
