import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from apiprobe.config import RunConfiguration
from apiprobe.models import ErrorKind, ExecutionOutcome


class FakeSender:
    """Stands in for http_client.send_request and tracks concurrency."""

    def __init__(self, delay: float = 0.0, responses=None, on_call=None) -> None:
        self.delay = delay
        self.responses = dict(responses or {})
        self.on_call = on_call
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, request, timeout_ms, cancel_event=None):
        with self._lock:
            self.calls.append(request)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            call_number = len(self.calls)
        try:
            if self.on_call is not None:
                self.on_call(call_number, request)
            if self.delay:
                time.sleep(self.delay)
            response = self.responses.get((request.method, request.path))
            if response is None:
                return ExecutionOutcome(
                    success=True,
                    method=request.method,
                    status=200,
                    request_url=request.url,
                    request_path=request.path,
                )
            if isinstance(response, ErrorKind):
                return ExecutionOutcome.failed(request, response, response.value)
            return ExecutionOutcome(
                success=True,
                method=request.method,
                status=200,
                response_headers=response,
                request_url=request.url,
            )
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def config():
    return RunConfiguration(base_url="http://api.local", workers=3, delay_between_requests=0, timeout=1000)


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path.startswith("/trickle"):
            self._trickle()
            return
        if self.path.startswith("/slow"):
            time.sleep(2.5)
        body = b'{"ok": true}'
        status = 500 if self.path.startswith("/broken") else 200
        try:
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def _trickle(self):
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", "20")
            self.end_headers()
            for _ in range(20):
                self.wfile.write(b"x")
                self.wfile.flush()
                time.sleep(0.2)
        except OSError:
            pass

    def do_OPTIONS(self):
        self.send_response(204)
        if self.path.startswith("/pets"):
            self.send_header("Allow", "GET, POST, OPTIONS")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def live_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()
