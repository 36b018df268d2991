"""OPTIONS sweep that discovers the methods of endpoints declared without one."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from apiprobe import http_client
from apiprobe.config import RunConfiguration
from apiprobe.models import ExecutionOutcome, TestCase
from apiprobe.placeholders import PlaceholderResolver
from apiprobe.request_builder import build_request
from apiprobe.run_state import RunState, RunStatus
from apiprobe.scheduler import SendRequest

logger = logging.getLogger(__name__)

ALLOW_HEADERS = ("Allow", "Access-Control-Allow-Methods")


@dataclass(frozen=True)
class SweepFinished:
    status: RunStatus
    lines: tuple[str, ...]


def allowed_methods(outcome: ExecutionOutcome) -> list[str]:
    """Methods listed by the Allow header (or its CORS equivalent), in header order."""
    lowered = {str(k).lower(): v for k, v in outcome.response_headers.items()}
    for header in ALLOW_HEADERS:
        value = lowered.get(header.lower())
        if not value:
            continue
        methods: list[str] = []
        for token in str(value).split(","):
            method = token.strip().upper()
            if method and method != "OPTIONS" and method not in methods:
                methods.append(method)
        if methods:
            return methods
    return []


def format_line(method: str, path: str) -> str:
    return f"[{method}] {path}"


class MethodSweeper:
    """Probes endpoints one at a time, in submission order.

    Discovered lines accumulate in ``lines`` as they are found, and are also
    yielded by ``sweep``.
    """

    def __init__(self, config: RunConfiguration, send_request: SendRequest | None = None) -> None:
        self.config = config
        self.send_request = send_request or http_client.send_request
        self.resolver = PlaceholderResolver.for_config(config)
        self.lines: list[str] = []
        self._lock = threading.Lock()

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self.lines)

    def sweep(self, state: RunState[TestCase]) -> Iterator[str | SweepFinished]:
        state.status = RunStatus.RUNNING
        logger.info("Determining methods for %d endpoints", state.total)
        finished = False
        try:
            while True:
                test_case = state.next_item(key_of=lambda tc: tc.identity)
                if test_case is None:
                    break
                try:
                    discovered = self._probe(test_case, state.cancel_event)
                finally:
                    state.finish_item(test_case.identity)
                for method in discovered:
                    line = format_line(method, test_case.path)
                    with self._lock:
                        self.lines.append(line)
                    yield line
            state.status = state.final_status()
            finished = True
            yield SweepFinished(state.status, tuple(self.snapshot()))
        finally:
            if not finished:
                state.cancel()
                state.status = RunStatus.STOPPED

    def _probe(self, test_case: TestCase, cancel_event: threading.Event) -> list[str]:
        request = build_request(test_case, self.config, method="OPTIONS", resolver=self.resolver)
        outcome = self.send_request(request, self.config.timeout, cancel_event)
        if not outcome.success:
            logger.debug("OPTIONS %s failed: %s", request.url, outcome.error)
            return []
        methods = allowed_methods(outcome)
        if not methods:
            logger.debug("OPTIONS %s listed no methods", request.url)
        return methods


def without_method(test_cases: Iterable[TestCase]) -> list[TestCase]:
    return [test_case for test_case in test_cases if not test_case.method]
