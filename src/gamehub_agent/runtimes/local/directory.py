"""Instance directory management."""

import asyncio
import logging
import shutil
from pathlib import Path

from gamehub_agent.api.errors import DeletionError
from gamehub_agent.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class InstanceDirectory:
    """Creates and forcibly removes instance working directories.

    Callers must stop every process rooted under a path before removing it.
    """

    async def ensure_absent(self, path: Path) -> None:
        """Recursively remove ``path`` if present.

        Raises:
            DeletionError: Removal could not complete.
        """
        path = Path(path)
        if not path.exists() and not path.is_symlink():
            return

        _check_removable(path)
        try:
            await asyncio.to_thread(_remove, path)
        except OSError as e:
            raise DeletionError(f"failed to remove {path}: {e}") from e

        if path.exists():
            raise DeletionError(f"{path} still exists after removal")

        logger.info(
            "Instance directory removed",
            extra={"event": LogEvent.DIRECTORY_REMOVED, "path": str(path)},
        )

    async def ensure_present(self, path: Path) -> None:
        """Create ``path`` and any missing parents."""
        Path(path).mkdir(parents=True, exist_ok=True)


def _check_removable(path: Path) -> None:
    resolved = path.resolve()
    if resolved == Path(resolved.anchor) or resolved == Path.home().resolve():
        raise DeletionError(f"refusing to remove {resolved}")


def _remove(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    shutil.rmtree(path)
