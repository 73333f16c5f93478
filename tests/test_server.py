from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from browser_harness.config import ServerConfig
from browser_harness.errors import DriverError
from browser_harness.server import AppServer, ErrorRecordingApp, find_free_port
from fixture_app import FixtureAppError, create_app


def _wait_for_error(server: AppServer, timeout: float = 2.0):
    # the 500 response can reach the client before the exception unwinds
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        error = server.pop_error()
        if error is not None:
            return error
        time.sleep(0.01)
    return None


def test_error_recording_app_keeps_the_first_error_once() -> None:
    async def failing_app(scope, receive, send) -> None:
        raise ValueError(scope["path"])

    recorder = ErrorRecordingApp(failing_app)

    async def call(path: str) -> None:
        with pytest.raises(ValueError):
            await recorder({"type": "http", "path": path}, None, None)

    asyncio.run(call("/first"))
    asyncio.run(call("/second"))

    error = recorder.pop_error()
    assert str(error) == "/first"
    assert recorder.pop_error() is None


def test_base_url_requires_a_running_server() -> None:
    server = AppServer(create_app())

    with pytest.raises(DriverError):
        server.base_url


def test_app_server_serves_the_application() -> None:
    server = AppServer(create_app(), ServerConfig(port=find_free_port()))
    server.start()
    client = httpx.Client(trust_env=False)
    try:
        response = client.get(f"{server.base_url}/foo")
        assert response.status_code == 200
        assert "Another World" in response.text

        response = client.get(f"{server.base_url}/error")
        assert response.status_code == 500
        assert isinstance(_wait_for_error(server), FixtureAppError)
        assert server.pop_error() is None
    finally:
        client.close()
        server.stop()

    with pytest.raises(DriverError):
        server.base_url
