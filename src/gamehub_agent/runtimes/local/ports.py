"""Port conflict detection and release.

Every path that kills a port owner goes through a PortConflictResolver.
Two strategies are available:
- psutil: cross-platform socket table scan (default)
- lsof: POSIX ``lsof`` tooling

Missing or failing tooling never aborts the caller: the port is assumed
free and a warning is logged.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import psutil

from gamehub_agent.api.errors import ReleaseError
from gamehub_agent.logging_schema import LogEvent
from gamehub_agent.metrics import AGENT_PORT_RELEASES
from gamehub_agent.runtimes.local.signals import send_signal

if TYPE_CHECKING:
    from gamehub_agent.config import PortConfig

logger = logging.getLogger(__name__)


class PortConflictResolver(ABC):
    """Detects listeners on a port and frees the port by terminating them."""

    strategy = ""

    def __init__(self, config: PortConfig) -> None:
        self._release_timeout = config.release_timeout
        self._poll_interval = config.poll_interval
        self._term_grace = config.term_grace

    @abstractmethod
    async def find_pids(self, port: int) -> set[int]:
        """PIDs of processes listening on ``port`` (empty when unknown)."""
        ...

    @abstractmethod
    async def is_port_bound(self, port: int) -> bool:
        """True if something is listening on ``port``."""
        ...

    async def release_port(self, port: int) -> None:
        """Signal every listener on ``port`` and wait until it is free.

        SIGTERM first, SIGKILL after ``term_grace``. Polling is bounded by
        ``release_timeout``.

        Raises:
            ReleaseError: Port still bound at the deadline.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._release_timeout
        kill_at = loop.time() + self._term_grace

        pids = await self._foreign_pids(port)
        for pid in pids:
            send_signal(pid, signal.SIGTERM)
        escalated = False

        while True:
            if not await self.is_port_bound(port):
                AGENT_PORT_RELEASES.labels(result="released").inc()
                logger.info(
                    "Port released",
                    extra={
                        "event": LogEvent.PORT_RELEASED,
                        "port": port,
                        "pids": sorted(pids),
                    },
                )
                return

            now = loop.time()
            if now >= deadline:
                break

            if not escalated and now >= kill_at:
                remaining = await self._foreign_pids(port)
                for pid in remaining:
                    send_signal(pid, signal.SIGKILL)
                pids |= remaining
                escalated = True

            await asyncio.sleep(min(self._poll_interval, max(0.0, deadline - now)))

        AGENT_PORT_RELEASES.labels(result="timeout").inc()
        logger.error(
            "Port still bound after release timeout",
            extra={
                "event": LogEvent.PORT_RELEASE_FAILED,
                "port": port,
                "pids": sorted(pids),
                "timeout_s": self._release_timeout,
            },
        )
        raise ReleaseError(port)

    async def _foreign_pids(self, port: int) -> set[int]:
        # Never signal the agent itself
        return {pid for pid in await self.find_pids(port) if pid != os.getpid()}

    def _warn_tooling(self, port: int, error: object) -> None:
        logger.warning(
            "Port inspection unavailable, assuming port is free",
            extra={
                "event": LogEvent.PORT_TOOLING_MISSING,
                "port": port,
                "strategy": self.strategy,
                "error": str(error),
            },
        )


class PsutilPortResolver(PortConflictResolver):
    """Socket table scan via psutil."""

    strategy = "psutil"

    async def find_pids(self, port: int) -> set[int]:
        listeners = await self._listeners(port)
        if listeners is None:
            return set()
        return {pid for pid in listeners if pid is not None}

    async def is_port_bound(self, port: int) -> bool:
        listeners = await self._listeners(port)
        return bool(listeners)

    async def _listeners(self, port: int) -> list[int | None] | None:
        try:
            return await asyncio.to_thread(_scan_listeners, port)
        except (psutil.AccessDenied, PermissionError, OSError) as e:
            self._warn_tooling(port, e)
            return None


def _scan_listeners(port: int) -> list[int | None]:
    return [
        conn.pid
        for conn in psutil.net_connections(kind="tcp")
        if conn.laddr
        and conn.laddr.port == port
        and conn.status == psutil.CONN_LISTEN
    ]


class LsofPortResolver(PortConflictResolver):
    """Listener lookup via ``lsof``."""

    strategy = "lsof"

    def __init__(self, config: PortConfig) -> None:
        super().__init__(config)
        self._tool_timeout = config.tool_timeout

    async def find_pids(self, port: int) -> set[int]:
        pids = await self._lsof(port)
        return pids or set()

    async def is_port_bound(self, port: int) -> bool:
        pids = await self._lsof(port)
        return bool(pids)

    async def _lsof(self, port: int) -> set[int] | None:
        cmd = ["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN", "-t"]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            self._warn_tooling(port, e)
            return None

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self._tool_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            self._warn_tooling(port, f"lsof timed out after {self._tool_timeout:g}s")
            return None

        # lsof exits 1 when nothing matches
        pids: set[int] = set()
        for line in stdout.decode("utf-8", errors="replace").split():
            try:
                pids.add(int(line))
            except ValueError:
                continue
        return pids


def create_port_resolver(config: PortConfig) -> PortConflictResolver:
    """Build the resolver for the configured strategy."""
    if config.strategy == "lsof":
        return LsofPortResolver(config)
    return PsutilPortResolver(config)
