"""Dependency installer for instance projects."""

from __future__ import annotations

import asyncio
import logging
import shlex
import signal
import time
from pathlib import Path
from typing import TYPE_CHECKING

from gamehub_agent.api.errors import InstallError
from gamehub_agent.logging_schema import LogEvent
from gamehub_agent.metrics import AGENT_INSTALL_DURATION
from gamehub_agent.runtimes.local.signals import signal_group

if TYPE_CHECKING:
    from gamehub_agent.config import InstallConfig

logger = logging.getLogger(__name__)


class DependencyInstaller:
    """Runs the package-install command with a bounded timeout.

    Holds no per-call state, so calls for different directories may run
    concurrently.
    """

    def __init__(self, config: InstallConfig) -> None:
        self._command = shlex.split(config.command)
        self._timeout = config.timeout
        self._tail_chars = config.stderr_tail_chars
        if not self._command:
            raise ValueError("install command is empty")

    async def install(self, project_dir: Path, role: str = "") -> None:
        """Run the install command in ``project_dir``.

        Raises:
            InstallError: Command missing, exited non-zero, or timed out.
        """
        project_dir = Path(project_dir)
        if not project_dir.is_dir():
            raise InstallError(f"project directory not found: {project_dir}")

        command_str = shlex.join(self._command)
        logger.info(
            "Installing dependencies",
            extra={
                "event": LogEvent.INSTALL_STARTED,
                "role": role,
                "path": str(project_dir),
                "command": command_str,
            },
        )

        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command,
                cwd=str(project_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise InstallError(f"`{command_str}` could not be run: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            signal_group(process.pid, signal.SIGKILL)
            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=5.0)
            except asyncio.TimeoutError:
                stderr = b""
            self._log_failure(role, project_dir, None, "timeout")
            raise InstallError(
                f"`{command_str}` timed out after {self._timeout:g}s",
                exit_code=None,
                stderr_tail=self._tail(stderr),
            )
        finally:
            AGENT_INSTALL_DURATION.labels(role=role or "unknown").observe(
                time.monotonic() - started
            )

        if process.returncode != 0:
            tail = self._tail(stderr) or self._tail(stdout)
            self._log_failure(role, project_dir, process.returncode, tail)
            raise InstallError(
                f"`{command_str}` failed with exit code {process.returncode}",
                exit_code=process.returncode,
                stderr_tail=tail,
            )

        logger.info(
            "Dependencies installed",
            extra={
                "event": LogEvent.INSTALL_COMPLETED,
                "role": role,
                "path": str(project_dir),
                "duration_s": round(time.monotonic() - started, 3),
            },
        )

    def _tail(self, data: bytes | None) -> str:
        text = (data or b"").decode("utf-8", errors="replace").strip()
        return text[-self._tail_chars :]

    def _log_failure(self, role: str, project_dir: Path, exit_code: int | None, detail: str) -> None:
        logger.warning(
            "Dependency install failed",
            extra={
                "event": LogEvent.INSTALL_FAILED,
                "role": role,
                "path": str(project_dir),
                "exit_code": exit_code,
                "detail": detail,
            },
        )
