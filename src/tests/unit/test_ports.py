"""Unit tests for port conflict resolution.

Signals are patched out; real sockets are covered by the integration tests.
"""

import asyncio
import os
import signal
from unittest.mock import AsyncMock, MagicMock, patch

import psutil
import pytest

from gamehub_agent.api.errors import ReleaseError
from gamehub_agent.config import PortConfig
from gamehub_agent.runtimes.local.ports import (
    LsofPortResolver,
    PortConflictResolver,
    PsutilPortResolver,
    create_port_resolver,
)


class FakeResolver(PortConflictResolver):
    """Listener table controlled by the test."""

    strategy = "fake"

    def __init__(self, config: PortConfig, pids: set[int]) -> None:
        super().__init__(config)
        self.pids = pids
        self.bound = True
        self.bound_checks = 0

    async def find_pids(self, port: int) -> set[int]:
        return set(self.pids) if self.bound else set()

    async def is_port_bound(self, port: int) -> bool:
        self.bound_checks += 1
        return self.bound


@pytest.fixture
def port_config() -> PortConfig:
    return PortConfig(release_timeout=0.5, poll_interval=0.01, term_grace=0.1)


@pytest.fixture
def mock_send_signal() -> MagicMock:
    with patch("gamehub_agent.runtimes.local.ports.send_signal") as mock:
        mock.return_value = True
        yield mock


class TestReleasePort:
    """Tests for PortConflictResolver.release_port()."""

    async def test_sigterm_frees_port(self, port_config: PortConfig, mock_send_signal: MagicMock) -> None:
        """Listeners get SIGTERM and the call returns once the port is free."""
        resolver = FakeResolver(port_config, {4242})

        def on_signal(pid: int, sig: signal.Signals) -> bool:
            resolver.bound = False
            return True

        mock_send_signal.side_effect = on_signal

        await resolver.release_port(5000)

        mock_send_signal.assert_called_once_with(4242, signal.SIGTERM)
        assert not await resolver.is_port_bound(5000)

    async def test_escalates_to_sigkill(self, port_config: PortConfig, mock_send_signal: MagicMock) -> None:
        """A listener ignoring SIGTERM is killed after term_grace."""
        resolver = FakeResolver(port_config, {4242})

        def on_signal(pid: int, sig: signal.Signals) -> bool:
            if sig == signal.SIGKILL:
                resolver.bound = False
            return True

        mock_send_signal.side_effect = on_signal

        await resolver.release_port(5000)

        sent = [call.args for call in mock_send_signal.call_args_list]
        assert sent == [(4242, signal.SIGTERM), (4242, signal.SIGKILL)]

    async def test_timeout_raises_release_error(
        self, port_config: PortConfig, mock_send_signal: MagicMock
    ) -> None:
        """A port that never frees fails explicitly within the bound."""
        resolver = FakeResolver(port_config, {4242})

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(ReleaseError) as exc_info:
            await resolver.release_port(5000)

        assert exc_info.value.port == 5000
        assert loop.time() - started < 2.0
        assert resolver.bound_checks > 1

    async def test_never_signals_itself(self, port_config: PortConfig, mock_send_signal: MagicMock) -> None:
        """The agent's own PID is excluded from signalling."""
        resolver = FakeResolver(port_config, {os.getpid()})

        with pytest.raises(ReleaseError):
            await resolver.release_port(5000)

        mock_send_signal.assert_not_called()

    async def test_already_free(self, port_config: PortConfig, mock_send_signal: MagicMock) -> None:
        """A free port returns immediately without signals."""
        resolver = FakeResolver(port_config, set())
        resolver.bound = False

        await resolver.release_port(5000)

        mock_send_signal.assert_not_called()


class TestPsutilPortResolver:
    """Tests for PsutilPortResolver."""

    async def test_matches_listening_sockets(self, port_config: PortConfig) -> None:
        """Only LISTEN sockets on the port count."""
        listening = MagicMock(laddr=MagicMock(port=5000), status=psutil.CONN_LISTEN, pid=11)
        client = MagicMock(laddr=MagicMock(port=5000), status=psutil.CONN_ESTABLISHED, pid=12)
        other = MagicMock(laddr=MagicMock(port=5173), status=psutil.CONN_LISTEN, pid=13)
        resolver = PsutilPortResolver(port_config)

        with patch("psutil.net_connections", return_value=[listening, client, other]):
            assert await resolver.find_pids(5000) == {11}
            assert await resolver.is_port_bound(5000) is True
            assert await resolver.is_port_bound(5001) is False

    async def test_access_denied_assumes_free(self, port_config: PortConfig) -> None:
        """Missing privileges log a warning and assume the port is free."""
        resolver = PsutilPortResolver(port_config)

        with patch("psutil.net_connections", side_effect=psutil.AccessDenied()):
            assert await resolver.is_port_bound(5000) is False
            assert await resolver.find_pids(5000) == set()


class TestLsofPortResolver:
    """Tests for LsofPortResolver."""

    async def test_missing_lsof_assumes_free(self, port_config: PortConfig) -> None:
        """No lsof binary means the port is assumed free."""
        resolver = LsofPortResolver(port_config)

        with patch(
            "gamehub_agent.runtimes.local.ports.asyncio.create_subprocess_exec",
            side_effect=FileNotFoundError("lsof"),
        ):
            assert await resolver.is_port_bound(5000) is False
            assert await resolver.find_pids(5000) == set()

    async def test_parses_pids(self, port_config: PortConfig) -> None:
        """lsof -t output is one PID per line."""
        process = MagicMock()
        process.communicate = AsyncMock(return_value=(b"101\n202\n", b""))
        resolver = LsofPortResolver(port_config)

        with patch(
            "gamehub_agent.runtimes.local.ports.asyncio.create_subprocess_exec",
            AsyncMock(return_value=process),
        ):
            assert await resolver.find_pids(5000) == {101, 202}


class TestCreatePortResolver:
    """Tests for create_port_resolver()."""

    @pytest.mark.parametrize(
        "strategy,expected",
        [("psutil", PsutilPortResolver), ("lsof", LsofPortResolver)],
    )
    def test_strategy(self, strategy: str, expected: type) -> None:
        """The configured strategy picks the implementation."""
        resolver = create_port_resolver(PortConfig(strategy=strategy))
        assert isinstance(resolver, expected)
        assert resolver.strategy == strategy
