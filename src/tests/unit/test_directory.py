"""Tests for InstanceDirectory."""

from pathlib import Path
from unittest.mock import patch

import pytest

from gamehub_agent.api.errors import DeletionError
from gamehub_agent.runtimes.local.directory import InstanceDirectory


class TestInstanceDirectory:
    """Tests for ensure_absent() and ensure_present()."""

    @pytest.fixture
    def directory(self) -> InstanceDirectory:
        return InstanceDirectory()

    async def test_ensure_absent_removes_tree(self, directory: InstanceDirectory, tmp_path: Path) -> None:
        """Nested trees are removed."""
        root = tmp_path / "game"
        (root / "frontend" / "node_modules" / "pkg").mkdir(parents=True)
        (root / "frontend" / "node_modules" / "pkg" / "index.js").write_text("x")
        (root / "index.html").write_text("<html></html>")

        await directory.ensure_absent(root)

        assert not root.exists()

    async def test_ensure_absent_missing_is_noop(self, directory: InstanceDirectory, tmp_path: Path) -> None:
        """Removing a missing path succeeds."""
        await directory.ensure_absent(tmp_path / "never-created")

    async def test_ensure_absent_file(self, directory: InstanceDirectory, tmp_path: Path) -> None:
        """A plain file in place of the directory is removed too."""
        target = tmp_path / "game"
        target.write_text("stray")

        await directory.ensure_absent(target)

        assert not target.exists()

    async def test_ensure_absent_failure(self, directory: InstanceDirectory, tmp_path: Path) -> None:
        """OS failures surface as DeletionError."""
        root = tmp_path / "game"
        root.mkdir()

        with patch(
            "gamehub_agent.runtimes.local.directory.shutil.rmtree",
            side_effect=PermissionError("file is busy"),
        ):
            with pytest.raises(DeletionError, match="file is busy"):
                await directory.ensure_absent(root)

        assert root.exists()

    async def test_ensure_absent_refuses_filesystem_root(self, directory: InstanceDirectory) -> None:
        """The filesystem root is never removed."""
        with pytest.raises(DeletionError, match="refusing"):
            await directory.ensure_absent(Path("/"))

    async def test_ensure_present_creates_parents(self, directory: InstanceDirectory, tmp_path: Path) -> None:
        """Missing parents are created; existing paths are fine."""
        target = tmp_path / "a" / "b" / "c"

        await directory.ensure_present(target)
        await directory.ensure_present(target)

        assert target.is_dir()
