"""Serve an in-process ASGI application to a real browser."""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Any, Optional

import uvicorn

from .config import ServerConfig
from .errors import DriverError

LOGGER = logging.getLogger(__name__)


def find_free_port(host: str = "127.0.0.1") -> int:
    sock = socket.socket()
    sock.bind((host, 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class ErrorRecordingApp:
    """ASGI wrapper remembering the first exception the application raised."""

    def __init__(self, app: Any) -> None:
        self._app = app
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        try:
            await self._app(scope, receive, send)
        except Exception as exc:
            with self._lock:
                if self._error is None:
                    self._error = exc
            raise

    def pop_error(self) -> Optional[BaseException]:
        with self._lock:
            error, self._error = self._error, None
            return error


class AppServer:
    """Run an ASGI application with uvicorn on a background thread."""

    def __init__(self, app: Any, config: Optional[ServerConfig] = None) -> None:
        self._config = config or ServerConfig()
        self._app = ErrorRecordingApp(app)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._port: Optional[int] = None

    @property
    def base_url(self) -> str:
        if self._port is None:
            raise DriverError("Application server is not running")
        return f"http://{self._config.host}:{self._port}"

    def start(self) -> None:
        if self._server:
            return
        self._port = self._config.port or find_free_port(self._config.host)
        server_config = uvicorn.Config(
            self._app,
            host=self._config.host,
            port=self._port,
            log_level="warning",
            lifespan="off",
        )
        self._server = uvicorn.Server(server_config)
        self._thread = threading.Thread(target=self._server.run, daemon=True)
        self._thread.start()
        deadline = time.monotonic() + self._config.startup_timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() >= deadline:
                self.stop()
                raise DriverError("Application server failed to start")
            time.sleep(0.01)
        LOGGER.debug("Serving application at %s", self.base_url)

    def stop(self) -> None:
        if self._server:
            self._server.should_exit = True
        if self._thread:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
        self._port = None

    def pop_error(self) -> Optional[BaseException]:
        return self._app.pop_error()
