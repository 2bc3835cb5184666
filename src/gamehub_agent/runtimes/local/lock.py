"""Instance lock for lifecycle operations."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from gamehub_agent.api.errors import BusyError
from gamehub_agent.logging_schema import LogEvent

logger = logging.getLogger(__name__)


@asynccontextmanager
async def acquire_or_reject(lock: asyncio.Lock, operation: str) -> AsyncIterator[None]:
    """Hold ``lock`` for ``operation`` or fail fast if it is taken.

    Lifecycle operations never queue behind each other: a second request
    while one is in flight gets BusyError instead of waiting for an npm
    install to finish.

    Raises:
        BusyError: Another operation holds the lock.
    """
    if lock.locked():
        logger.warning(
            "Lifecycle operation rejected, instance is busy",
            extra={"event": LogEvent.OPERATION_REJECTED, "operation": operation},
        )
        raise BusyError(f"cannot {operation}: another lifecycle operation is in progress")

    # Uncontended acquire does not yield, so nothing can slip in after the check
    async with lock:
        yield
