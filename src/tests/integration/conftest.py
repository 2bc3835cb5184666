"""Integration test fixtures.

These tests bind real sockets and spawn real child processes, so they
only run where psutil can map sockets to PIDs without extra privileges.
"""

import asyncio
import socket
import sys
from collections.abc import Callable

import pytest

LISTENER_SCRIPT = """
import signal, socket, sys, time
if sys.argv[2] == "ignore-term":
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
s = socket.socket()
s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
s.bind(("127.0.0.1", int(sys.argv[1])))
s.listen()
print("listening", flush=True)
time.sleep(120)
"""


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def free_port() -> Callable[[], int]:
    """Return an ephemeral port that is currently unbound."""
    return _free_port


@pytest.fixture
async def spawn_listener() -> Callable[..., asyncio.subprocess.Process]:
    """Start a foreign process listening on a port; killed at teardown."""
    spawned: list[asyncio.subprocess.Process] = []

    async def _spawn(port: int, ignore_term: bool = False) -> asyncio.subprocess.Process:
        process = await asyncio.create_subprocess_exec(
            sys.executable,
            "-c",
            LISTENER_SCRIPT,
            str(port),
            "ignore-term" if ignore_term else "default",
            stdout=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        spawned.append(process)
        line = await asyncio.wait_for(process.stdout.readline(), timeout=10)
        assert line.strip() == b"listening"
        return process

    yield _spawn

    for process in spawned:
        if process.returncode is None:
            process.kill()
            await process.wait()
