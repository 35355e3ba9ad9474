from __future__ import annotations

import logging
import os
import re
import threading
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TypeVar, overload

logger = logging.getLogger(__name__)

T = TypeVar("T", int, float, bool, str)

_OPERATION_PATH = re.compile(r"^/operations/([0-9a-f]{32})$")


@overload
def get_env(key: str, default: int) -> int: ...
@overload
def get_env(key: str, default: float) -> float: ...
@overload
def get_env(key: str, default: bool) -> bool: ...
@overload
def get_env(key: str, default: str) -> str: ...


def get_env(key: str, default: T) -> T:
    value = os.environ.get(key)
    if value is None:
        return default

    if isinstance(default, bool):
        return value.lower() in ("true", "1", "yes")  # type: ignore[return-value]
    if isinstance(default, int):
        return int(value)  # type: ignore[return-value]
    if isinstance(default, float):
        return float(value)  # type: ignore[return-value]
    return value  # type: ignore[return-value]


def split_env_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def start_health_server(
    port: int = 8081,
    metrics_fn: Callable[[], str] | None = None,
    operation_fn: Callable[[str], str | None] | None = None,
) -> ThreadingHTTPServer:
    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):  # noqa: N802
            if self.path in ("/health", "/ready"):
                self._reply(200, "application/json", b'{"status":"ok"}')
                return

            if self.path == "/metrics" and metrics_fn:
                try:
                    payload = metrics_fn()
                except Exception:  # noqa: BLE001
                    logger.exception("Failed to collect metrics")
                    payload = "speechsession_metrics_error 1\n"
                self._reply(200, "text/plain", payload.encode())
                return

            match = _OPERATION_PATH.match(self.path)
            if match and operation_fn:
                body = operation_fn(match.group(1))
                if body is not None:
                    self._reply(200, "application/json", body.encode())
                    return

            self.send_response(404)
            self.end_headers()

        def _reply(self, status: int, content_type: str, body: bytes) -> None:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):  # noqa: A003,N802
            return

    server = ThreadingHTTPServer(("", port), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server
