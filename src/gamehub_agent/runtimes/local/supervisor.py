"""Dev-server process supervisor.

Spawns one long-running process per role, tracks its state, and records
its exit asynchronously. There is no restart policy: a dev server that
dies while Running is recorded as Failed and stays that way until the
next explicit start.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import signal
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from gamehub_agent.api.errors import AgentError, ReleaseError, SpawnError
from gamehub_agent.logging import child_logger
from gamehub_agent.logging_schema import LogEvent
from gamehub_agent.metrics import AGENT_PROCESS_EXITS, AGENT_PROCESSES_RUNNING
from gamehub_agent.runtimes.local.models import (
    ManagedProcess,
    ProcessState,
    ProcessStatus,
    Role,
    utcnow,
)
from gamehub_agent.runtimes.local.signals import pid_alive, send_signal, signal_group

if TYPE_CHECKING:
    from gamehub_agent.config import ProcessConfig
    from gamehub_agent.runtimes.local.ports import PortConflictResolver

logger = logging.getLogger(__name__)

# Max bytes per forwarded output line
_STREAM_LIMIT = 1024 * 1024


class ProcessSupervisor:
    """Per-role process state machine.

    NotStarted -> Installing -> Starting -> Running -> {Exited | Failed}

    All ManagedProcess mutations, including the ones made by exit watchers,
    happen under ``_state_lock``. The lock is never held while waiting on
    a child process.
    """

    def __init__(
        self,
        config: ProcessConfig,
        resolver: PortConflictResolver,
        forward_output: bool = True,
    ) -> None:
        self._startup_delay = config.startup_delay
        self._stop_timeout = config.stop_timeout
        self._resolver = resolver
        self._forward_output = forward_output
        self._processes: dict[Role, ManagedProcess] = {}
        self._state_lock = asyncio.Lock()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, role: Role) -> ManagedProcess | None:
        return self._processes.get(role)

    def snapshot(self) -> dict[Role, ProcessStatus]:
        return {role: _snapshot(mp) for role, mp in self._processes.items()}

    # =========================================================================
    # Start
    # =========================================================================

    async def start(
        self,
        role: Role,
        command: str | Sequence[str],
        cwd: Path,
        env: Mapping[str, str],
        port: int,
        install: Callable[[], Awaitable[None]] | None = None,
    ) -> ManagedProcess:
        """Launch the dev server for ``role``.

        Any process already tracked for the role is discarded first and a
        stale listener on ``port`` is released. When ``install`` is given it
        runs while the process is in Installing state.

        Resolves once the process has stayed alive for ``startup_delay``;
        it does not wait for the process to finish.

        Raises:
            ReleaseError: Port could not be freed.
            InstallError: ``install`` failed.
            SpawnError: Command could not be launched or exited during startup.
        """
        argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not argv:
            raise SpawnError("empty command")

        self._check_port_owner(role, port)

        existing = self._processes.get(role)
        if existing is not None:
            await self._terminate(existing)

        mp = ManagedProcess(role=role, port=port)
        async with self._state_lock:
            self._processes[role] = mp

        try:
            if await self._resolver.is_port_bound(port):
                await self._resolver.release_port(port)

            if install is not None:
                await self._transition(mp, ProcessState.INSTALLING)
                await install()

            await self._transition(mp, ProcessState.STARTING)
            await self._spawn(mp, argv, cwd, env)
        except AgentError as e:
            await self._fail(mp, e.message)
            raise

        return mp

    def _check_port_owner(self, role: Role, port: int) -> None:
        for other_role, other in self._processes.items():
            if other_role != role and other.port == port and not other.is_terminal:
                raise SpawnError(f"port {port} is already used by the {other_role} process")

    async def _spawn(
        self,
        mp: ManagedProcess,
        argv: list[str],
        cwd: Path,
        env: Mapping[str, str],
    ) -> None:
        output = asyncio.subprocess.PIPE if self._forward_output else asyncio.subprocess.DEVNULL
        try:
            handle = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=dict(env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=output,
                stderr=output,
                start_new_session=True,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            raise SpawnError(f"failed to launch `{shlex.join(argv)}`: {e}") from e

        async with self._state_lock:
            mp.handle = handle
            mp.pid = handle.pid
            mp.started_at = utcnow()

        if self._forward_output:
            log = child_logger(mp.role.value)
            mp.tasks.append(asyncio.create_task(_forward(handle.stdout, log, logging.INFO)))
            mp.tasks.append(asyncio.create_task(_forward(handle.stderr, log, logging.WARNING)))

        watcher = asyncio.create_task(self._watch(mp, handle))
        mp.tasks.append(watcher)

        done, _ = await asyncio.wait({watcher}, timeout=self._startup_delay)
        async with self._state_lock:
            if done or mp.state != ProcessState.STARTING:
                code = handle.returncode
                raise SpawnError(
                    f"{mp.role} process exited during startup with code {code}"
                )
            mp.mark_running(handle.pid)
            self._refresh_gauge()

        logger.info(
            "Process started",
            extra={
                "event": LogEvent.PROCESS_STARTED,
                "role": mp.role.value,
                "pid": handle.pid,
                "port": mp.port,
                "command": shlex.join(argv),
                "cwd": str(cwd),
            },
        )

    async def _watch(self, mp: ManagedProcess, handle: asyncio.subprocess.Process) -> None:
        """Record the exit of ``handle`` on ``mp``."""
        exit_code = await handle.wait()

        async with self._state_lock:
            if mp.handle is handle:
                mp.handle = None

            if mp.stopping:
                mp.mark_exited(exit_code)
                outcome = "stopped"
            elif mp.state == ProcessState.RUNNING:
                mp.mark_failed(f"exited unexpectedly with code {exit_code}", exit_code)
                outcome = "failed"
            elif mp.state == ProcessState.STARTING:
                mp.mark_failed(f"exited during startup with code {exit_code}", exit_code)
                outcome = "failed"
            else:
                mp.exit_code = exit_code
                outcome = "stopped"
            self._refresh_gauge()

        AGENT_PROCESS_EXITS.labels(role=mp.role.value, outcome=outcome).inc()
        if outcome == "failed":
            logger.error(
                "Process exited unexpectedly",
                extra={
                    "event": LogEvent.PROCESS_FAILED,
                    "role": mp.role.value,
                    "pid": handle.pid,
                    "exit_code": exit_code,
                },
            )
        else:
            logger.info(
                "Process exited",
                extra={
                    "event": LogEvent.PROCESS_EXITED,
                    "role": mp.role.value,
                    "pid": handle.pid,
                    "exit_code": exit_code,
                },
            )

    # =========================================================================
    # Stop
    # =========================================================================

    async def stop(self, role: Role, port: int | None = None) -> ManagedProcess:
        """Stop the process tracked for ``role``. Idempotent.

        Without a tracked PID the port (``port`` or the tracked one) is
        released best-effort. The role always ends in a terminal state.
        """
        mp = self._processes.get(role)
        if mp is None:
            if port is None:
                raise ValueError(f"no process tracked for {role} and no port given")
            mp = ManagedProcess(role=role, port=port)
            async with self._state_lock:
                self._processes[role] = mp

        if mp.pid is not None and not mp.is_terminal:
            await self._terminate(mp)
        else:
            await self._release_best_effort(mp.port)
            async with self._state_lock:
                if not mp.is_terminal:
                    mp.mark_exited(mp.exit_code)
                self._refresh_gauge()

        logger.info(
            "Process stopped",
            extra={
                "event": LogEvent.PROCESS_STOPPED,
                "role": role.value,
                "port": mp.port,
                "state": mp.state.value,
            },
        )
        return mp

    async def stop_all(self) -> None:
        """Stop every tracked role."""
        for role in list(self._processes):
            await self.stop(role)

    async def _terminate(self, mp: ManagedProcess) -> None:
        """Terminate ``mp`` and leave it in Exited (or keep Failed)."""
        async with self._state_lock:
            mp.stopping = True

        handle = mp.handle
        if handle is not None and handle.returncode is None:
            signal_group(handle.pid, signal.SIGTERM)
            try:
                await asyncio.wait_for(handle.wait(), timeout=self._stop_timeout)
            except asyncio.TimeoutError:
                signal_group(handle.pid, signal.SIGKILL)
                try:
                    await asyncio.wait_for(handle.wait(), timeout=self._stop_timeout)
                except asyncio.TimeoutError:
                    logger.error(
                        "Process did not exit after SIGKILL",
                        extra={"event": LogEvent.PROCESS_FAILED, "role": mp.role.value, "pid": handle.pid},
                    )
            else:
                # Leader is gone; make sure the rest of its group follows
                signal_group(handle.pid, signal.SIGKILL)
        elif handle is None and mp.pid is not None and pid_alive(mp.pid):
            await self._terminate_pid(mp.pid)

        await self._release_best_effort(mp.port)

        async with self._state_lock:
            if mp.state != ProcessState.FAILED:
                code = handle.returncode if handle is not None else mp.exit_code
                mp.mark_exited(code)
            mp.handle = None
            self._refresh_gauge()

        for task in mp.tasks:
            if not task.done():
                task.cancel()
        mp.tasks.clear()

    async def _terminate_pid(self, pid: int) -> None:
        """Terminate a process we hold no handle for (adopted after restart)."""
        loop = asyncio.get_running_loop()
        send_signal(pid, signal.SIGTERM)
        deadline = loop.time() + self._stop_timeout
        while pid_alive(pid) and loop.time() < deadline:
            await asyncio.sleep(0.05)
        if pid_alive(pid):
            send_signal(pid, signal.SIGKILL)

    async def _release_best_effort(self, port: int) -> None:
        try:
            if await self._resolver.is_port_bound(port):
                await self._resolver.release_port(port)
        except ReleaseError as e:
            logger.warning(
                "Port still bound after stop",
                extra={"event": LogEvent.PORT_RELEASE_FAILED, "port": port, "error": e.message},
            )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def adopt(self, role: Role, port: int, pid: int) -> ManagedProcess:
        """Track a listener left by a previous agent run.

        Adopted processes have no handle, so their exit is not observed.
        """
        mp = ManagedProcess(role=role, port=port, adopted=True, ready=True)
        mp.mark_running(pid)
        async with self._state_lock:
            self._processes[role] = mp
            self._refresh_gauge()
        logger.info(
            "Adopted running process",
            extra={"event": LogEvent.PROCESS_ADOPTED, "role": role.value, "pid": pid, "port": port},
        )
        return mp

    # =========================================================================
    # Helpers
    # =========================================================================

    async def set_ready(self, role: Role, ready: bool) -> None:
        async with self._state_lock:
            mp = self._processes.get(role)
            if mp is not None and mp.state == ProcessState.RUNNING:
                mp.ready = ready

    async def fail(self, role: Role, error: str) -> None:
        """Stop the process for ``role`` and record it as Failed."""
        mp = self._processes.get(role)
        if mp is not None:
            await self._fail(mp, error)

    async def _transition(self, mp: ManagedProcess, state: ProcessState) -> None:
        async with self._state_lock:
            mp.state = state

    async def _fail(self, mp: ManagedProcess, error: str) -> None:
        handle = mp.handle
        if handle is not None and handle.returncode is None:
            await self._terminate(mp)
        async with self._state_lock:
            mp.mark_failed(error, mp.exit_code if handle is None else handle.returncode)
            self._refresh_gauge()

    def _refresh_gauge(self) -> None:
        AGENT_PROCESSES_RUNNING.set(
            sum(1 for mp in self._processes.values() if mp.state == ProcessState.RUNNING)
        )


def _snapshot(mp: ManagedProcess) -> ProcessStatus:
    status = mp.snapshot()
    # Adopted processes have no exit watcher; report a dead PID as Exited
    if mp.adopted and mp.is_live and not pid_alive(mp.pid):
        status = status.model_copy(update={"state": ProcessState.EXITED.value, "ready": False})
    return status


async def _forward(stream: asyncio.StreamReader | None, log: logging.Logger, level: int) -> None:
    """Forward child output to ``log`` line by line until EOF."""
    if stream is None:
        return
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # Line longer than the stream limit
            line = await stream.read(_STREAM_LIMIT)
        if not line:
            return
        log.log(level, line.decode("utf-8", errors="replace").rstrip())
