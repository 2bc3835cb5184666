"""Error handling module for gamehub_agent.

This module defines error codes, exception classes, and response models.

Error Response Format:
{
    "success": false,
    "error": "archive not found",
    "code": "EXTRACT_ERROR",
    "step": "extract"
}
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes for Agent API."""

    EXTRACT_ERROR = "EXTRACT_ERROR"
    DELETION_ERROR = "DELETION_ERROR"
    INSTALL_ERROR = "INSTALL_ERROR"
    RELEASE_ERROR = "RELEASE_ERROR"
    SPAWN_ERROR = "SPAWN_ERROR"
    READINESS_ERROR = "READINESS_ERROR"
    BUSY = "BUSY"
    INVALID_STATE = "INVALID_STATE"
    INVALID_PATH = "INVALID_PATH"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Error response format."""

    success: bool = False
    error: str
    code: str
    step: str | None = None


class AgentError(Exception):
    """Base exception for gamehub_agent.

    All agent-specific exceptions should inherit from this class.
    This enables centralized exception handling in FastAPI.

    Attributes:
        code: The error code from ErrorCode enum.
        message: Human-readable error message.
        status_code: HTTP status code to return.
        step: Lifecycle step that failed (set by the orchestrator).
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int,
        step: str | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.step = step
        super().__init__(message)

    def with_step(self, step: str) -> "AgentError":
        """Tag the error with the failing step and return it."""
        self.step = step
        return self

    def to_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse model."""
        return ErrorResponse(error=self.message, code=self.code.value, step=self.step)


class ExtractError(AgentError):
    """500 - Template archive missing, corrupt, or could not be written."""

    def __init__(self, message: str = "template extraction failed") -> None:
        super().__init__(ErrorCode.EXTRACT_ERROR, message, 500)


class DeletionError(AgentError):
    """500 - Instance directory could not be removed."""

    def __init__(self, message: str = "instance directory could not be removed") -> None:
        super().__init__(ErrorCode.DELETION_ERROR, message, 500)


class InstallError(AgentError):
    """500 - Package install exited non-zero or timed out.

    ``exit_code`` is None when the command timed out or could not be run.
    """

    def __init__(
        self,
        message: str = "dependency install failed",
        exit_code: int | None = None,
        stderr_tail: str = "",
    ) -> None:
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(ErrorCode.INSTALL_ERROR, message, 500)


class ReleaseError(AgentError):
    """500 - Port still bound after the release timeout."""

    def __init__(self, port: int, message: str | None = None) -> None:
        self.port = port
        super().__init__(
            ErrorCode.RELEASE_ERROR,
            message or f"port {port} is still bound",
            500,
        )


class SpawnError(AgentError):
    """500 - Dev server could not be launched or died during startup."""

    def __init__(self, message: str = "process failed to start") -> None:
        super().__init__(ErrorCode.SPAWN_ERROR, message, 500)


class ReadinessError(AgentError):
    """504 - Dev server never accepted connections."""

    def __init__(self, port: int, message: str | None = None) -> None:
        self.port = port
        super().__init__(
            ErrorCode.READINESS_ERROR,
            message or f"port {port} did not become ready",
            504,
        )


class BusyError(AgentError):
    """409 Conflict - Another lifecycle operation is in flight."""

    def __init__(self, message: str = "another lifecycle operation is in progress") -> None:
        super().__init__(ErrorCode.BUSY, message, 409)


class InvalidStateError(AgentError):
    """409 Conflict - Operation not allowed in the current instance state."""

    def __init__(self, message: str = "operation not allowed in current state") -> None:
        super().__init__(ErrorCode.INVALID_STATE, message, 409)


class InvalidPathError(AgentError):
    """400 Bad Request - Path escapes the instance directory."""

    def __init__(self, message: str = "path must stay inside the instance directory") -> None:
        super().__init__(ErrorCode.INVALID_PATH, message, 400)


class InternalError(AgentError):
    """500 Internal Server Error - Internal error."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(ErrorCode.INTERNAL_ERROR, message, 500)
