"""Fixtures for Agent unit tests."""

import shlex
import sys
import zipfile
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from gamehub_agent.config import (
    AgentConfig,
    InstallConfig,
    InstanceConfig,
    LoggingConfig,
    PortConfig,
    ProcessConfig,
    ReadinessConfig,
    TemplateConfig,
)
from gamehub_agent.runtimes.local.ports import PortConflictResolver


def python_command(code: str) -> str:
    """Shell-quoted command running ``code`` with the current interpreter."""
    return shlex.join([sys.executable, "-c", code])


@pytest.fixture
def template_archive(tmp_path: Path) -> Path:
    """Zip laid out like the packaged template: one ReactNodeTemplate root."""
    archive = tmp_path / "ReactNodeTemplate.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("ReactNodeTemplate/index.html", "<html></html>")
        zf.writestr("ReactNodeTemplate/frontend/package.json", '{"name": "frontend"}')
        zf.writestr("ReactNodeTemplate/frontend/src/App.jsx", "export default () => null;")
        zf.writestr("ReactNodeTemplate/backend/package.json", '{"name": "backend"}')
        zf.writestr("ReactNodeTemplate/backend/server.js", "// server")
    return archive


@pytest.fixture
def agent_config(tmp_path: Path, template_archive: Path) -> AgentConfig:
    """AgentConfig pointing at tmp_path with short timeouts."""
    return AgentConfig(
        template=TemplateConfig(archive_path=template_archive),
        instance=InstanceConfig(path=tmp_path / "generated_games" / "current_game"),
        install=InstallConfig(command=python_command("pass"), timeout=10),
        ports=PortConfig(
            frontend=45173,
            backend=45000,
            release_timeout=1.0,
            poll_interval=0.01,
            term_grace=0.2,
        ),
        process=ProcessConfig(
            command=python_command("import time; time.sleep(60)"),
            startup_delay=0.2,
            stop_timeout=2.0,
        ),
        readiness=ReadinessConfig(enabled=False),
        logging=LoggingConfig(child_output=False),
    )


@pytest.fixture
def python_cmd() -> Callable[[str], str]:
    """Build a command string that runs a Python snippet."""
    return python_command


@pytest.fixture
def mock_resolver() -> AsyncMock:
    """Port resolver that reports every port as free."""
    resolver = AsyncMock(spec=PortConflictResolver)
    resolver.is_port_bound = AsyncMock(return_value=False)
    resolver.find_pids = AsyncMock(return_value=set())
    resolver.release_port = AsyncMock()
    return resolver
