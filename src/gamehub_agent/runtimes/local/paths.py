"""Path conventions for the local runtime."""

from pathlib import Path, PurePosixPath

from gamehub_agent.api.errors import InvalidPathError
from gamehub_agent.config import AgentConfig
from gamehub_agent.runtimes.local.models import Role


class InstancePaths:
    """Centralized path conventions for the instance directory."""

    def __init__(self, config: AgentConfig) -> None:
        self._root = Path(config.instance.path).expanduser().resolve()
        self._role_dirs = {
            Role.FRONTEND: config.instance.frontend_dir,
            Role.BACKEND: config.instance.backend_dir,
        }

    @property
    def root(self) -> Path:
        return self._root

    def role_dir(self, role: Role) -> Path:
        return self._root / self._role_dirs[role]

    def resolve_file(self, relative_path: str) -> Path:
        """Resolve a client-supplied path inside the instance root.

        Raises:
            InvalidPathError: Path is empty, absolute, or escapes the root.
        """
        clean = relative_path.replace("\\", "/").strip()
        if not clean or clean.startswith("/"):
            raise InvalidPathError(f"invalid file path: {relative_path!r}")

        parts = PurePosixPath(clean).parts
        if ".." in parts:
            raise InvalidPathError(f"invalid file path: {relative_path!r}")

        target = (self._root / Path(*parts)).resolve()
        if not target.is_relative_to(self._root) or target == self._root:
            raise InvalidPathError(f"invalid file path: {relative_path!r}")
        return target
