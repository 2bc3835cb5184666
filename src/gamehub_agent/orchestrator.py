"""Lifecycle orchestrator for the single ephemeral instance.

Composes the local runtime into initialize/start/stop/regenerate/status.
Every mutating operation holds one instance lock; a request arriving while
another is in flight is rejected with BusyError. status() never takes the
lock.

Failed steps are tagged on the raised AgentError (``extract``,
``install:backend``, ``regenerate:start:start:frontend``...) and kept as
the instance's last error until a later initialize or start succeeds.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from gamehub_agent.api.errors import (
    AgentError,
    InternalError,
    InvalidStateError,
    ReadinessError,
)
from gamehub_agent.config import AgentConfig, get_agent_config
from gamehub_agent.logging_schema import LogEvent
from gamehub_agent.metrics import AGENT_OPERATION_DURATION, AGENT_OPERATION_ERRORS
from gamehub_agent.runtimes.local.lock import acquire_or_reject
from gamehub_agent.runtimes.local.models import (
    ErrorStatus,
    InitializeResult,
    Instance,
    InstanceState,
    InstanceStatus,
    LastError,
    ProcessState,
    ProcessStatus,
    RegenerateResult,
    Role,
    StartResult,
    StopResult,
    utcnow,
)

if TYPE_CHECKING:
    from gamehub_agent.runtimes.local import LocalRuntime

logger = logging.getLogger(__name__)

_STARTABLE_STATES = frozenset({InstanceState.READY, InstanceState.RUNNING})


class LifecycleOrchestrator:
    """Owns the Instance aggregate and serializes every transition on it."""

    def __init__(self, runtime: LocalRuntime, config: AgentConfig | None = None) -> None:
        self._config = config or get_agent_config()
        self._runtime = runtime
        self._paths = runtime.paths
        self._lock = asyncio.Lock()
        self._instance = Instance(path=self._paths.root)
        # True while the instance directory holds a complete template
        self._extracted = False
        self._ports = {
            Role.FRONTEND: self._config.ports.frontend,
            Role.BACKEND: self._config.ports.backend,
        }

    @property
    def instance(self) -> Instance:
        return self._instance

    @property
    def ports(self) -> dict[Role, int]:
        return dict(self._ports)

    # =========================================================================
    # Public operations
    # =========================================================================

    async def initialize(self) -> InitializeResult:
        """Tear down any previous instance and extract a fresh template.

        Raises:
            BusyError: Another operation is in progress.
            DeletionError: Old directory could not be removed (step ``delete``).
            ExtractError: Template could not be extracted (step ``extract``).
        """
        async with self._operation("initialize"):
            return await self._initialize()

    async def start(self) -> StartResult:
        """Install dependencies and launch both dev servers.

        Raises:
            BusyError: Another operation is in progress.
            InvalidStateError: Instance has not been initialized.
            InstallError, ReleaseError, SpawnError: First failing role's error.
            ReadinessError: A role never became ready and readiness is required.
        """
        async with self._operation("start"):
            return await self._start()

    async def stop(self) -> StopResult:
        """Stop both dev servers. Succeeds when nothing is running."""
        async with self._operation("stop"):
            return await self._stop()

    async def regenerate(self) -> RegenerateResult:
        """stop, initialize and start in sequence, aborting at the first failure."""
        async with self._operation("regenerate"):
            phase = "stop"
            try:
                await self._stop()
                phase = "initialize"
                initialized = await self._initialize()
                phase = "start"
                started = await self._start()
            except AgentError as e:
                self._record_failure(e.with_step(f"regenerate:{phase}:{e.step or phase}"))
                raise

            return RegenerateResult(path=initialized.path, **started.model_dump())

    def status(self) -> InstanceStatus:
        """Snapshot of the instance and both processes. No side effects."""
        tracked = self._runtime.processes.snapshot()
        processes: dict[str, ProcessStatus] = {}
        for role, port in self._ports.items():
            processes[role.value] = tracked.get(role) or ProcessStatus(
                role=role.value,
                port=port,
                state=ProcessState.NOT_STARTED.value,
            )

        inst = self._instance
        last_error = None
        if inst.last_error is not None:
            last_error = ErrorStatus(
                step=inst.last_error.step,
                code=inst.last_error.code,
                message=inst.last_error.message,
                at=inst.last_error.at,
            )

        return InstanceStatus(
            state=inst.state.value,
            path=str(inst.path),
            created_at=inst.created_at,
            processes=processes,
            last_error=last_error,
        )

    async def save_file(self, relative_path: str, content: str) -> str:
        """Write ``content`` to ``relative_path`` inside the instance directory.

        Returns the written path relative to the instance root.

        Raises:
            BusyError: Another operation is in progress.
            InvalidPathError: Path is absolute or escapes the instance root.
            InvalidStateError: Instance has not been initialized.
        """
        async with self._operation("save_file"):
            target = self._paths.resolve_file(relative_path)
            if not self._extracted or not self._paths.root.is_dir():
                raise InvalidStateError("instance is not initialized")

            try:
                await self._runtime.directories.ensure_present(target.parent)
                await asyncio.to_thread(target.write_text, content, encoding="utf-8")
            except OSError as e:
                raise InternalError(f"failed to write {relative_path}: {e}") from e

            saved = target.relative_to(self._paths.root).as_posix()
            logger.info(
                "Source file saved",
                extra={"event": LogEvent.FILE_SAVED, "path": saved, "bytes": len(content.encode())},
            )
            return saved

    # =========================================================================
    # Startup / shutdown
    # =========================================================================

    async def reconcile(self, policy: str | None = None) -> None:
        """Rebuild in-memory state after an agent restart.

        The instance directory is the only state that survives a restart.
        Listeners found on the role ports are adopted, released or left
        alone according to ``policy``.
        """
        policy = policy or self._config.server.reconcile_on_startup
        resolver = self._runtime.ports
        supervisor = self._runtime.processes

        async with self._lock:
            inst = self._instance
            self._extracted = self._paths.root.is_dir()
            inst.state = InstanceState.READY if self._extracted else InstanceState.UNINITIALIZED

            adopted: list[str] = []
            released: list[str] = []
            for role, port in self._ports.items():
                if not await resolver.is_port_bound(port):
                    continue

                if policy == "release":
                    await supervisor.stop(role, port=port)
                    released.append(role.value)
                elif policy == "adopt":
                    pids = await resolver.find_pids(port)
                    if not pids:
                        logger.warning(
                            "Port is bound by an unknown process, not adopting",
                            extra={"event": LogEvent.PROCESS_ADOPTED, "role": role.value, "port": port},
                        )
                        continue
                    await supervisor.adopt(role, port, min(pids))
                    adopted.append(role.value)
                else:
                    logger.info(
                        "Leaving existing listener in place",
                        extra={"event": LogEvent.RECONCILE_COMPLETED, "role": role.value, "port": port},
                    )

            if adopted and self._extracted:
                inst.state = InstanceState.RUNNING

        logger.info(
            "Reconciled instance state",
            extra={
                "event": LogEvent.RECONCILE_COMPLETED,
                "policy": policy,
                "state": inst.state.value,
                "adopted": adopted,
                "released": released,
            },
        )

    async def shutdown(self) -> None:
        """Stop every dev server if configured to. Waits for in-flight operations."""
        if not self._config.server.stop_on_shutdown:
            return
        async with self._lock:
            await self._runtime.processes.stop_all()

    # =========================================================================
    # Operation bodies (caller holds the lock)
    # =========================================================================

    async def _initialize(self) -> InitializeResult:
        inst = self._instance
        root = self._paths.root
        inst.state = InstanceState.INITIALIZING

        try:
            await self._stop_roles()
        except AgentError as e:
            self._record_failure(e.with_step("stop"))
            raise

        try:
            await self._runtime.directories.ensure_absent(root)
        except AgentError as e:
            self._record_failure(e.with_step("delete"))
            raise
        self._extracted = False

        try:
            await self._runtime.templates.extract(self._config.template.archive_path, root)
        except AgentError as e:
            self._record_failure(e.with_step("extract"))
            raise

        self._extracted = True
        inst.state = InstanceState.READY
        inst.created_at = utcnow()
        inst.last_error = None
        return InitializeResult(path=str(root))

    async def _start(self) -> StartResult:
        inst = self._instance
        if not self._can_start():
            raise InvalidStateError(
                f"cannot start from state {inst.state.value}, initialize first"
            )
        if not self._paths.root.is_dir():
            self._extracted = False
            inst.state = InstanceState.UNINITIALIZED
            raise InvalidStateError("instance directory is missing, initialize first")

        inst.state = InstanceState.STARTING
        roles = list(self._ports)
        outcomes = await asyncio.gather(
            *(self._start_role(role) for role in roles),
            return_exceptions=True,
        )

        errors: list[AgentError] = []
        for role, outcome in zip(roles, outcomes):
            if isinstance(outcome, AgentError):
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                logger.error(
                    "Unexpected error while starting role",
                    exc_info=outcome,
                    extra={"event": LogEvent.OPERATION_FAILED, "role": role.value},
                )
                errors.append(InternalError(str(outcome)).with_step(f"start:{role}"))

        if errors:
            self._record_failure(errors[0])
            raise errors[0]

        ready = await self._probe_readiness(roles)

        inst.state = InstanceState.RUNNING
        inst.last_error = None
        host = self._config.instance.public_host
        return StartResult(
            ports={role.value: port for role, port in self._ports.items()},
            urls={role.value: f"http://{host}:{port}" for role, port in self._ports.items()},
            ready={role.value: ready.get(role, False) for role in roles},
        )

    async def _start_role(self, role: Role) -> None:
        port = self._ports[role]
        project_dir = self._paths.role_dir(role)

        async def install() -> None:
            try:
                await self._runtime.installer.install(project_dir, role.value)
            except AgentError as e:
                e.with_step(f"install:{role}")
                raise

        try:
            await self._runtime.processes.start(
                role,
                self._config.process.command,
                cwd=project_dir,
                env=self._role_env(port),
                port=port,
                install=install,
            )
        except AgentError as e:
            if e.step is None:
                e.with_step(f"start:{role}")
            raise

    async def _probe_readiness(self, roles: list[Role]) -> dict[Role, bool]:
        settings = self._config.readiness
        if not settings.enabled:
            return {}

        probe = self._runtime.readiness
        supervisor = self._runtime.processes
        results = await asyncio.gather(*(probe.wait_ready(self._ports[role]) for role in roles))
        ready = dict(zip(roles, results))

        for role, is_ready in ready.items():
            await supervisor.set_ready(role, is_ready)
            log = logger.info if is_ready else logger.warning
            log(
                "Process ready" if is_ready else "Process did not become ready",
                extra={
                    "event": LogEvent.PROCESS_READY if is_ready else LogEvent.PROCESS_NOT_READY,
                    "role": role.value,
                    "port": self._ports[role],
                    "timeout_s": settings.timeout,
                },
            )

        if settings.required:
            not_ready = [role for role in roles if not ready[role]]
            for role in not_ready:
                await supervisor.fail(role, f"did not become ready within {settings.timeout:g}s")
            if not_ready:
                role = not_ready[0]
                error = ReadinessError(self._ports[role]).with_step(f"readiness:{role}")
                self._record_failure(error)
                raise error

        return ready

    async def _stop(self) -> StopResult:
        inst = self._instance
        inst.state = InstanceState.STOPPING
        try:
            stopped = await self._stop_roles()
        except AgentError as e:
            self._record_failure(e.with_step("stop"))
            raise

        if self._extracted and self._paths.root.is_dir():
            inst.state = InstanceState.READY
        else:
            inst.state = InstanceState.UNINITIALIZED
        return StopResult(stopped=[role.value for role in stopped])

    async def _stop_roles(self) -> list[Role]:
        """Stop both roles; returns the ones that had a live process."""
        supervisor = self._runtime.processes
        tracked = supervisor.snapshot()
        stopped = [role for role in self._ports if role in tracked and tracked[role].running]
        for role, port in self._ports.items():
            await supervisor.stop(role, port=port)
        return stopped

    # =========================================================================
    # Helpers
    # =========================================================================

    @asynccontextmanager
    async def _operation(self, operation: str) -> AsyncIterator[None]:
        try:
            async with acquire_or_reject(self._lock, operation):
                started = time.monotonic()
                logger.info(
                    "Lifecycle operation started",
                    extra={"event": LogEvent.OPERATION_STARTED, "operation": operation},
                )
                try:
                    yield
                finally:
                    AGENT_OPERATION_DURATION.labels(operation=operation).observe(
                        time.monotonic() - started
                    )
        except AgentError as e:
            AGENT_OPERATION_ERRORS.labels(operation=operation, code=e.code.value).inc()
            logger.warning(
                "Lifecycle operation failed",
                extra={
                    "event": LogEvent.OPERATION_FAILED,
                    "operation": operation,
                    "step": e.step,
                    "error_code": e.code.value,
                    "error_message": e.message,
                },
            )
            raise

        logger.info(
            "Lifecycle operation completed",
            extra={
                "event": LogEvent.OPERATION_COMPLETED,
                "operation": operation,
                "state": self._instance.state.value,
                "duration_s": round(time.monotonic() - started, 3),
            },
        )

    def _can_start(self) -> bool:
        return self._instance.state in _STARTABLE_STATES

    def _record_failure(self, error: AgentError) -> None:
        inst = self._instance
        inst.state = InstanceState.FAILED
        inst.last_error = LastError(step=error.step, code=error.code.value, message=error.message)

    def _role_env(self, port: int) -> dict[str, str]:
        env = dict(os.environ)
        env[self._config.process.port_env_var] = str(port)
        return env
