"""Instance and ManagedProcess aggregate.

One Instance owns at most one ManagedProcess per role. Both are plain
mutable records owned by the orchestrator; API-facing views are the
pydantic snapshots at the bottom of this module.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel


class Role(StrEnum):
    """Dev-server role."""

    FRONTEND = "frontend"
    BACKEND = "backend"


class InstanceState(StrEnum):
    """Instance lifecycle state."""

    UNINITIALIZED = "Uninitialized"
    INITIALIZING = "Initializing"
    READY = "Ready"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    FAILED = "Failed"


class ProcessState(StrEnum):
    """ManagedProcess state.

    NotStarted -> Installing -> Starting -> Running -> {Exited | Failed}
    """

    NOT_STARTED = "NotStarted"
    INSTALLING = "Installing"
    STARTING = "Starting"
    RUNNING = "Running"
    EXITED = "Exited"
    FAILED = "Failed"


TERMINAL_PROCESS_STATES = frozenset({ProcessState.EXITED, ProcessState.FAILED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ManagedProcess:
    """One supervised dev server bound to a fixed port."""

    role: Role
    port: int
    state: ProcessState = ProcessState.NOT_STARTED
    pid: int | None = None
    exit_code: int | None = None
    error: str | None = None
    ready: bool = False
    adopted: bool = False
    started_at: datetime | None = None

    # Runtime-only bookkeeping
    handle: asyncio.subprocess.Process | None = field(default=None, repr=False)
    stopping: bool = field(default=False, repr=False)
    tasks: list[asyncio.Task] = field(default_factory=list, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_PROCESS_STATES

    @property
    def is_live(self) -> bool:
        """Tracked with a PID and not yet observed to exit."""
        return self.pid is not None and self.state in (
            ProcessState.STARTING,
            ProcessState.RUNNING,
        )

    def mark_running(self, pid: int) -> None:
        # A Running process always carries a PID
        self.pid = pid
        self.state = ProcessState.RUNNING

    def mark_exited(self, exit_code: int | None) -> None:
        self.state = ProcessState.EXITED
        self.exit_code = exit_code
        self.ready = False

    def mark_failed(self, error: str, exit_code: int | None = None) -> None:
        self.state = ProcessState.FAILED
        self.error = error
        self.exit_code = exit_code
        self.ready = False

    def snapshot(self) -> ProcessStatus:
        return ProcessStatus(
            role=self.role.value,
            port=self.port,
            state=self.state.value,
            pid=self.pid,
            exit_code=self.exit_code,
            error=self.error,
            ready=self.ready,
            adopted=self.adopted,
            started_at=self.started_at,
        )


@dataclass
class LastError:
    """Most recent failure, kept until a later initialize/start succeeds."""

    step: str | None
    code: str
    message: str
    at: datetime = field(default_factory=utcnow)


@dataclass
class Instance:
    """The single ephemeral deployment managed by the orchestrator."""

    path: Path
    state: InstanceState = InstanceState.UNINITIALIZED
    created_at: datetime | None = None
    last_error: LastError | None = None


# =============================================================================
# Snapshots
# =============================================================================


class ProcessStatus(BaseModel):
    """Point-in-time view of a ManagedProcess."""

    role: str
    port: int
    state: str
    pid: int | None = None
    exit_code: int | None = None
    error: str | None = None
    ready: bool = False
    adopted: bool = False
    started_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self.state == ProcessState.RUNNING.value


class ErrorStatus(BaseModel):
    """Last failure as exposed by status()."""

    step: str | None = None
    code: str
    message: str
    at: datetime


class InstanceStatus(BaseModel):
    """Point-in-time view of the Instance and its processes."""

    state: str
    path: str
    created_at: datetime | None = None
    processes: dict[str, ProcessStatus]
    last_error: ErrorStatus | None = None

    @property
    def running(self) -> dict[str, bool]:
        return {role: proc.running for role, proc in self.processes.items()}

    @property
    def ports(self) -> dict[str, int]:
        return {role: proc.port for role, proc in self.processes.items()}


# =============================================================================
# Operation results
# =============================================================================


class InitializeResult(BaseModel):
    """Outcome of a successful initialize()."""

    path: str


class StartResult(BaseModel):
    """Outcome of a successful start().

    ``ready`` is False for roles that were not probed or never answered.
    """

    ports: dict[str, int]
    urls: dict[str, str]
    ready: dict[str, bool]


class RegenerateResult(StartResult):
    """Outcome of a successful regenerate()."""

    path: str


class StopResult(BaseModel):
    """Outcome of stop(). ``stopped`` lists roles that had a live process."""

    stopped: list[str]

    @property
    def already_stopped(self) -> bool:
        return not self.stopped
