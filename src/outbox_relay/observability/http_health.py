"""Lightweight async HTTP liveness server.

Zero-dependency implementation using ``asyncio.start_server``. Every request
gets a 200: the probe says the process is alive, not that dispatch is making
progress. ``/status`` adds a snapshot from the optional status provider.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import structlog

logger = structlog.get_logger()

StatusProvider = Callable[[], dict[str, Any]]


class HealthServer:
    """Async TCP server that answers HTTP liveness probes.

    Parameters
    ----------
    port:
        TCP port to listen on. ``0`` picks a free port (see ``port`` after start).
    status_provider:
        Optional callable whose dict is included in ``/status`` responses.
    """

    def __init__(
        self,
        port: int,
        status_provider: StatusProvider | None = None,
        host: str = "0.0.0.0",  # noqa: S104
    ) -> None:
        self._port = port
        self._host = host
        self._status_provider = status_provider
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        if self._server is not None and self._server.sockets:
            return int(self._server.sockets[0].getsockname()[1])
        return self._port

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle, host=self._host, port=self._port
        )
        logger.info("health.server_started", port=self.port)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("health.server_stopped")

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            request_line = await asyncio.wait_for(reader.readline(), timeout=5.0)
            path = self._parse_path(request_line)
            body: dict[str, Any] = {"status": "ok"}
            if path == "/status" and self._status_provider is not None:
                try:
                    body.update(self._status_provider())
                except Exception as exc:
                    logger.warning("health.status_provider_failed", error=str(exc))
                    body["status_error"] = str(exc)
            await self._respond(writer, 200, body)
        except Exception:
            logger.debug("health.request_error", exc_info=True)
        finally:
            with suppress(Exception):
                writer.close()
                await writer.wait_closed()

    @staticmethod
    def _parse_path(request_line: bytes) -> str:
        parts = request_line.decode("utf-8", errors="replace").strip().split()
        if len(parts) >= 2:
            return parts[1].split("?", 1)[0]
        return ""

    @staticmethod
    async def _respond(
        writer: asyncio.StreamWriter, status: int, body: dict[str, Any]
    ) -> None:
        reasons = {200: "OK"}
        reason = reasons.get(status, "Unknown")
        payload = json.dumps(body, default=str).encode()
        header = (
            f"HTTP/1.1 {status} {reason}\r\n"
            f"Content-Type: application/json\r\n"
            f"Content-Length: {len(payload)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(header.encode() + payload)
        await writer.drain()
