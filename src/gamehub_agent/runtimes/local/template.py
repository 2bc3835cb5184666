"""Template archive extraction.

Archives are unpacked into a staging directory and renamed into place, so
the destination either does not exist or holds a complete tree.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import shutil
import tarfile
import uuid
import zipfile
from pathlib import Path, PurePosixPath

from gamehub_agent.api.errors import ExtractError
from gamehub_agent.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class TemplateStore:
    """Extracts packaged application templates."""

    def __init__(self, root_folder: str | None = None, staging_parent: Path | None = None) -> None:
        self._root_folder = root_folder
        self._staging_parent = staging_parent

    async def extract(self, archive_path: Path, destination: Path) -> None:
        """Extract ``archive_path`` so that ``destination`` holds the template root.

        The caller must have removed ``destination`` beforehand.

        Raises:
            ExtractError: Archive missing or corrupt, or the tree could not be written.
        """
        await asyncio.to_thread(self._extract, Path(archive_path), Path(destination))
        logger.info(
            "Template extracted",
            extra={
                "event": LogEvent.TEMPLATE_EXTRACTED,
                "archive": str(archive_path),
                "path": str(destination),
            },
        )

    def _extract(self, archive_path: Path, destination: Path) -> None:
        if not archive_path.is_file():
            raise ExtractError("archive not found")
        if destination.exists():
            raise ExtractError(f"destination already exists: {destination}")

        staging_parent = self._staging_parent or destination.parent
        staging = staging_parent / f".{destination.name}.staging-{uuid.uuid4().hex[:8]}"
        try:
            staging_parent.mkdir(parents=True, exist_ok=True)
            destination.parent.mkdir(parents=True, exist_ok=True)
            staging.mkdir()

            self._unpack(archive_path, staging)
            self._move_into_place(self._template_root(staging), destination)
        except ExtractError:
            raise
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise ExtractError("insufficient space to extract template") from e
            raise ExtractError(f"failed to extract template: {e}") from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def _unpack(self, archive_path: Path, target: Path) -> None:
        if zipfile.is_zipfile(archive_path):
            try:
                with zipfile.ZipFile(archive_path) as zf:
                    for name in zf.namelist():
                        _check_member(name)
                    zf.extractall(target)
            except zipfile.BadZipFile as e:
                raise ExtractError(f"corrupt archive: {e}") from e
            return

        try:
            with tarfile.open(archive_path) as tf:
                tf.extractall(target, filter="data")
        except tarfile.TarError as e:
            raise ExtractError(f"corrupt archive: {e}") from e

    def _template_root(self, staging: Path) -> Path:
        """Pick the directory that becomes the instance root.

        Uses the configured root folder when present, hoists a lone
        top-level directory otherwise, and falls back to the staging root.
        """
        if self._root_folder:
            candidate = staging / self._root_folder
            if candidate.is_dir():
                return candidate

        entries = [p for p in staging.iterdir() if p.name != "__MACOSX"]
        if len(entries) == 1 and entries[0].is_dir():
            return entries[0]
        return staging

    def _move_into_place(self, source: Path, destination: Path) -> None:
        try:
            source.rename(destination)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            # Staging lives on another filesystem
            partial = destination.with_name(f".{destination.name}.partial-{uuid.uuid4().hex[:8]}")
            try:
                shutil.copytree(source, partial, symlinks=True)
                partial.rename(destination)
            finally:
                shutil.rmtree(partial, ignore_errors=True)


def _check_member(name: str) -> None:
    """Reject archive members that would land outside the target."""
    path = PurePosixPath(name.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ExtractError(f"corrupt archive: unsafe member path {name!r}")
