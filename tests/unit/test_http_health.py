"""Tests for the async HTTP liveness server."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from outbox_relay.observability.http_health import HealthServer


def _status() -> dict[str, Any]:
    return {
        "scheduler": {"state": "idle", "ticks": 3, "skipped": 0},
        "last_cycle": {"outcome": "ok", "read": 10, "marked": 10},
        "pending": 0,
    }


def _broken_status() -> dict[str, Any]:
    raise RuntimeError("scheduler not started")


async def _request(port: int, path: str, method: str = "GET") -> tuple[int, dict[str, Any]]:
    """Send a minimal HTTP request and return (status_code, json_body)."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(f"{method} {path} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode())
    await writer.drain()
    data = await reader.read(4096)
    writer.close()
    await writer.wait_closed()

    text = data.decode()
    status_line = text.split("\r\n")[0]
    status_code = int(status_line.split(" ")[1])
    body = json.loads(text.split("\r\n\r\n", 1)[1])
    return status_code, body


@pytest.fixture
async def free_port() -> int:
    """Find a free TCP port."""
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


async def test_root_returns_200(free_port: int) -> None:
    srv = HealthServer(port=free_port)
    await srv.start()
    try:
        code, body = await _request(free_port, "/")
        assert code == 200
        assert body == {"status": "ok"}
    finally:
        await srv.stop()


@pytest.mark.parametrize("path", ["/healthz", "/anything/else", "/?probe=1"])
async def test_any_path_returns_200(free_port: int, path: str) -> None:
    srv = HealthServer(port=free_port)
    await srv.start()
    try:
        code, body = await _request(free_port, path)
        assert code == 200
        assert body == {"status": "ok"}
    finally:
        await srv.stop()


async def test_any_method_returns_200(free_port: int) -> None:
    srv = HealthServer(port=free_port)
    await srv.start()
    try:
        code, _ = await _request(free_port, "/", method="POST")
        assert code == 200
    finally:
        await srv.stop()


async def test_status_includes_snapshot(free_port: int) -> None:
    srv = HealthServer(port=free_port, status_provider=_status)
    await srv.start()
    try:
        code, body = await _request(free_port, "/status")
        assert code == 200
        assert body["status"] == "ok"
        assert body["scheduler"]["ticks"] == 3
        assert body["last_cycle"]["outcome"] == "ok"
    finally:
        await srv.stop()


async def test_status_provider_failure_still_200(free_port: int) -> None:
    srv = HealthServer(port=free_port, status_provider=_broken_status)
    await srv.start()
    try:
        code, body = await _request(free_port, "/status")
        assert code == 200
        assert body["status"] == "ok"
        assert "scheduler not started" in body["status_error"]
    finally:
        await srv.stop()


async def test_port_zero_binds_free_port() -> None:
    srv = HealthServer(port=0, host="127.0.0.1")
    await srv.start()
    try:
        assert srv.port != 0
        code, _ = await _request(srv.port, "/")
        assert code == 200
    finally:
        await srv.stop()


async def test_stop_closes_server(free_port: int) -> None:
    srv = HealthServer(port=free_port)
    await srv.start()
    await srv.stop()

    with pytest.raises(OSError):
        await asyncio.open_connection("127.0.0.1", free_port)
