from __future__ import annotations

import json
import logging
import socket
import threading
import time
from typing import Any

import requests

from apiprobe.models import ErrorKind, ExecutionOutcome, RequestDescriptor

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
WATCH_INTERVAL = 0.05

# requests drops merged headers whose value is None; this keeps its session
# defaults (User-Agent, Accept-Encoding, Connection) off the wire.
_SUPPRESSED_DEFAULTS = ("User-Agent", "Accept-Encoding", "Connection")


class _Watchdog:
    """Shuts the response socket down once the deadline passes or the run is stopped.

    A blocked read then returns instead of waiting for the next byte, so a
    body that trickles in cannot hold the worker past the deadline.
    """

    def __init__(self, sock: socket.socket | None, deadline: float, cancel_event: threading.Event | None) -> None:
        self._sock = sock
        self._deadline = deadline
        self._cancel_event = cancel_event
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._watch, name="apiprobe-watchdog", daemon=True)
        self.tripped: ErrorKind | None = None

    def __enter__(self) -> _Watchdog:
        if self._sock is not None:
            self._thread.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._done.set()
        if self._thread.is_alive():
            self._thread.join()

    def _watch(self) -> None:
        while True:
            reason = _interruption(self._cancel_event, self._deadline)
            if reason is not None:
                break
            remaining = self._deadline - time.perf_counter()
            if self._done.wait(min(remaining, WATCH_INTERVAL)):
                return
        self.tripped = reason
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            logger.debug("Socket already closed: %s", exc)


def send_request(
    request: RequestDescriptor,
    timeout_ms: int,
    cancel_event: threading.Event | None = None,
) -> ExecutionOutcome:
    method = str(request.method).upper() if request.method else ""
    if not method:
        return ExecutionOutcome.failed(request, ErrorKind.INVALID_REQUEST, "method is required")
    if not request.url:
        return ExecutionOutcome.failed(request, ErrorKind.INVALID_REQUEST, "url is required")
    if cancel_event is not None and cancel_event.is_set():
        return ExecutionOutcome.failed(request, ErrorKind.CANCELLED, "run stopped before dispatch")

    timeout_s = timeout_ms / 1000
    started = time.perf_counter()
    deadline = started + timeout_s

    def elapsed_ms() -> int:
        return int((time.perf_counter() - started) * 1000)

    headers: dict[str, Any] = {name: None for name in _SUPPRESSED_DEFAULTS}
    headers.update(dict(request.headers))
    request_kwargs: dict[str, Any] = {
        "method": method,
        "url": request.url,
        "headers": headers,
        "timeout": (timeout_s, timeout_s),
        "allow_redirects": False,
        "stream": True,
    }
    if request.body is not None:
        request_kwargs["data"] = request.body.encode("utf-8")

    logger.debug("Dispatching %s %s", method, request.url)
    try:
        response = requests.request(**request_kwargs)
    except requests.exceptions.Timeout as exc:
        return _aborted_or(request, cancel_event, ErrorKind.TIMEOUT, f"timeout: {exc}", elapsed_ms())
    except requests.exceptions.ConnectionError as exc:
        logger.warning("Connection error for %s %s: %s", method, request.url, exc)
        return _aborted_or(request, cancel_event, ErrorKind.TRANSPORT, f"connection error: {exc}", elapsed_ms())
    except requests.RequestException as exc:
        logger.warning("Request failed for %s %s: %s", method, request.url, exc)
        return _aborted_or(request, cancel_event, ErrorKind.TRANSPORT, str(exc), elapsed_ms())

    chunks: list[bytes] = []
    complete = False
    failure: requests.RequestException | None = None
    watchdog = _Watchdog(_socket_of(response), deadline, cancel_event)
    try:
        with watchdog:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if _interruption(cancel_event, deadline) is not None:
                    break
                chunks.append(chunk)
            else:
                complete = True
    except requests.RequestException as exc:
        failure = exc
    finally:
        response.close()

    interrupted = watchdog.tripped
    if interrupted is None and not complete:
        interrupted = _interruption(cancel_event, deadline)
    if interrupted is ErrorKind.CANCELLED:
        return ExecutionOutcome.failed(request, ErrorKind.CANCELLED, "run stopped while receiving response", elapsed_ms())
    if interrupted is ErrorKind.TIMEOUT:
        logger.debug("Deadline passed while receiving %s %s", method, request.url)
        return ExecutionOutcome.failed(
            request, ErrorKind.TIMEOUT, f"no complete response within {timeout_ms} ms", elapsed_ms()
        )
    if failure is not None:
        kind = ErrorKind.TIMEOUT if isinstance(failure, requests.exceptions.Timeout) else ErrorKind.TRANSPORT
        return _aborted_or(request, cancel_event, kind, str(failure), elapsed_ms())

    text = _decode(b"".join(chunks), response)
    outcome = ExecutionOutcome.received(
        request,
        status=response.status_code,
        elapsed_ms=elapsed_ms(),
        headers=response.headers,
        body=parse_body(text),
        text=text,
    )
    logger.debug("%s %s -> %s in %d ms", method, request.url, outcome.status, outcome.response_time_ms)
    return outcome


def _interruption(cancel_event: threading.Event | None, deadline: float) -> ErrorKind | None:
    if cancel_event is not None and cancel_event.is_set():
        return ErrorKind.CANCELLED
    if time.perf_counter() >= deadline:
        return ErrorKind.TIMEOUT
    return None


def _socket_of(response: requests.Response) -> socket.socket | None:
    # urllib3 keeps the connection on streamed responses until they are closed
    connection = getattr(getattr(response, "raw", None), "connection", None)
    return getattr(connection, "sock", None)


def _aborted_or(
    request: RequestDescriptor,
    cancel_event: threading.Event | None,
    kind: ErrorKind,
    message: str,
    elapsed: int,
) -> ExecutionOutcome:
    if cancel_event is not None and cancel_event.is_set():
        return ExecutionOutcome.failed(request, ErrorKind.CANCELLED, "run stopped while in flight", elapsed)
    if kind is ErrorKind.TIMEOUT:
        logger.debug("Timeout for %s %s: %s", request.method, request.url, message)
    return ExecutionOutcome.failed(request, kind, message, elapsed)


def _decode(raw: bytes, response: requests.Response) -> str:
    encoding = response.encoding
    if not encoding or encoding.lower() in {"iso-8859-1", "latin-1"}:
        encoding = "utf-8"
    try:
        return raw.decode(encoding, errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def parse_body(text: str) -> Any:
    stripped = text.strip()
    if not stripped or stripped.startswith("<"):
        return text
    try:
        return json.loads(stripped)
    except ValueError:
        return text
