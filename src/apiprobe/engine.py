from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator

from PySide6.QtCore import QObject, Signal

from apiprobe.config import RunConfiguration
from apiprobe.errors import RunInProgressError
from apiprobe.method_sweeper import MethodSweeper, SweepFinished, without_method
from apiprobe.models import ExecutionOutcome, TestCase, VariableOverrides
from apiprobe.results import ResultAggregator
from apiprobe.run_state import RunState, RunStatus
from apiprobe.scheduler import (
    OutcomeEvent,
    OverridesMap,
    RunFinished,
    Scheduler,
    SendRequest,
    WorkItem,
    expand_items,
)

logger = logging.getLogger(__name__)


class ApiTestEngine(QObject):
    """Host-facing entry point for running test cases and method sweeps.

    Streams are plain iterators; the signals fire from whichever thread
    consumes them.
    """

    progress = Signal(int, int)
    outcome_recorded = Signal(object)
    method_discovered = Signal(str)
    finished = Signal(str)

    def __init__(self, aggregator: ResultAggregator | None = None, send_request: SendRequest | None = None) -> None:
        super().__init__()
        self.results = aggregator if aggregator is not None else ResultAggregator()
        self._send_request = send_request
        self._lock = threading.Lock()
        self._run_state: RunState[WorkItem] | None = None
        self._sweep_state: RunState[TestCase] | None = None
        self._sweeper: MethodSweeper | None = None
        self._single_events: set[threading.Event] = set()

    @property
    def is_running(self) -> bool:
        return _is_active(self._run_state)

    @property
    def is_determining(self) -> bool:
        return _is_active(self._sweep_state)

    @property
    def discovered_lines(self) -> list[str]:
        sweeper = self._sweeper
        return sweeper.snapshot() if sweeper is not None else []

    def run_all(
        self,
        test_cases: Iterable[TestCase],
        config: RunConfiguration,
        overrides: OverridesMap | None = None,
    ) -> Iterator[OutcomeEvent | RunFinished]:
        scheduler = Scheduler(config, self.results, self._send_request)
        return self._start_run(scheduler, scheduler.plan(test_cases, overrides))

    def run_all_methods(
        self,
        test_case: TestCase,
        config: RunConfiguration,
        overrides: VariableOverrides | None = None,
    ) -> Iterator[OutcomeEvent | RunFinished]:
        scheduler = Scheduler(config, self.results, self._send_request)
        return self._start_run(scheduler, scheduler.plan_all_methods(test_case, overrides))

    def run_single(
        self,
        test_case: TestCase,
        config: RunConfiguration,
        overrides: VariableOverrides | None = None,
        method: str | None = None,
    ) -> ExecutionOutcome:
        """Execute one request in the calling thread.

        With several path candidates only the first combination is sent.
        """
        scheduler = Scheduler(config, self.results, self._send_request)
        item = expand_items(test_case, overrides, method)[0]
        cancel_event = threading.Event()
        with self._lock:
            self._single_events.add(cancel_event)
        self.results.mark_running(item.key)
        try:
            outcome = scheduler.execute_item(item, cancel_event)
            self.results.record(item.key, outcome)
        finally:
            self.results.mark_done(item.key)
            with self._lock:
                self._single_events.discard(cancel_event)
        self.outcome_recorded.emit(OutcomeEvent(item.key, outcome))
        return outcome

    def stop_all(self) -> None:
        with self._lock:
            state = self._run_state
            single_events = list(self._single_events)
        if state is not None:
            logger.info("Stopping active run")
            state.cancel()
        for event in single_events:
            event.set()

    def determine_methods(
        self,
        test_cases: Iterable[TestCase],
        config: RunConfiguration,
    ) -> Iterator[str | SweepFinished]:
        with self._lock:
            self._check_sweep_idle()
        sweeper = MethodSweeper(config, self._send_request)
        return self._stream_sweep(sweeper, without_method(test_cases))

    def stop_determine(self) -> None:
        with self._lock:
            state = self._sweep_state
        if state is not None:
            logger.info("Stopping method sweep")
            state.cancel()

    def clear_results(self) -> None:
        self.results.clear_all()

    def _start_run(self, scheduler: Scheduler, items: list[WorkItem]) -> Iterator[OutcomeEvent | RunFinished]:
        with self._lock:
            self._check_run_idle()
        return self._stream_run(scheduler, items)

    def _check_run_idle(self) -> None:
        if _is_active(self._run_state):
            raise RunInProgressError("a run is already active; call stop_all() first")

    def _check_sweep_idle(self) -> None:
        if _is_active(self._sweep_state):
            raise RunInProgressError("a method sweep is already running")

    def _stream_run(self, scheduler: Scheduler, items: list[WorkItem]) -> Iterator[OutcomeEvent | RunFinished]:
        # the run only becomes active once the stream is consumed
        state: RunState[WorkItem] = RunState(items)
        with self._lock:
            self._check_run_idle()
            self._run_state = state
        completed = 0
        try:
            for event in scheduler.run(state):
                if isinstance(event, OutcomeEvent):
                    completed += 1
                    self.outcome_recorded.emit(event)
                    self.progress.emit(completed, state.total)
                else:
                    self.finished.emit(event.status.value)
                yield event
        finally:
            with self._lock:
                if self._run_state is state:
                    self._run_state = None

    def _stream_sweep(self, sweeper: MethodSweeper, test_cases: list[TestCase]) -> Iterator[str | SweepFinished]:
        state: RunState[TestCase] = RunState(test_cases)
        with self._lock:
            self._check_sweep_idle()
            self._sweep_state = state
            self._sweeper = sweeper
        try:
            for item in sweeper.sweep(state):
                if isinstance(item, str):
                    self.method_discovered.emit(item)
                else:
                    self.finished.emit(item.status.value)
                yield item
        finally:
            with self._lock:
                if self._sweep_state is state:
                    self._sweep_state = None


def _is_active(state: RunState | None) -> bool:
    if state is None or state.cancelled:
        return False
    return state.status in {RunStatus.IDLE, RunStatus.RUNNING}
