"""Readiness probing for dev servers.

A launched process is not necessarily accepting connections yet; the
probe polls the port until it does or the bound elapses.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from gamehub_agent.config import ReadinessConfig

logger = logging.getLogger(__name__)

# Dev servers bound to "localhost" may listen on either family only
LOOPBACK_HOSTS = ("127.0.0.1", "::1")


class ReadinessProbe:
    """Port-accept (tcp) or any-HTTP-response (http) probe.

    A port is ready when any of ``hosts`` answers on it.
    """

    def __init__(
        self, config: ReadinessConfig, hosts: Sequence[str] = LOOPBACK_HOSTS
    ) -> None:
        self._mode = config.mode
        self._timeout = config.timeout
        self._interval = config.interval
        self._hosts = tuple(hosts)

    async def check(self, port: int) -> bool:
        """Single probe attempt across every host."""
        attempt = self._check_http if self._mode == "http" else self._check_tcp
        for host in self._hosts:
            if await attempt(host, port):
                return True
        return False

    async def wait_ready(self, port: int, timeout: float | None = None) -> bool:
        """Poll until ready. Returns False at the deadline, never raises."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self._timeout if timeout is None else timeout)
        while True:
            if await self.check(port):
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self._interval, remaining))

    async def _check_tcp(self, host: str, port: int) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._interval + 0.5,
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def _check_http(self, host: str, port: int) -> bool:
        netloc = f"[{host}]" if ":" in host else host
        url = f"http://{netloc}:{port}/"
        try:
            async with httpx.AsyncClient(timeout=self._interval + 1.0) as client:
                await client.get(url)
        except httpx.HTTPError:
            return False
        # Any HTTP response implies a server is listening
        return True
