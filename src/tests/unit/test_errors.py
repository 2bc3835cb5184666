"""Tests for error handling classes."""

import pytest

from gamehub_agent.api.errors import (
    AgentError,
    BusyError,
    DeletionError,
    ErrorCode,
    ExtractError,
    InstallError,
    InternalError,
    InvalidPathError,
    InvalidStateError,
    ReadinessError,
    ReleaseError,
    SpawnError,
)


class TestInstallError:
    """Tests for InstallError."""

    def test_inherits_agent_error(self) -> None:
        """InstallError should inherit from AgentError."""
        exc = InstallError()
        assert isinstance(exc, AgentError)
        assert isinstance(exc, Exception)

    def test_carries_exit_code_and_stderr_tail(self) -> None:
        """Should keep the exit code and stderr tail for callers."""
        exc = InstallError("npm install failed", exit_code=1, stderr_tail="ERR! 404")

        assert exc.code == ErrorCode.INSTALL_ERROR
        assert exc.status_code == 500
        assert exc.exit_code == 1
        assert exc.stderr_tail == "ERR! 404"

    def test_timeout_has_no_exit_code(self) -> None:
        """Default exit code is None (timeout or not runnable)."""
        assert InstallError().exit_code is None


class TestReleaseError:
    """Tests for ReleaseError."""

    def test_default_message_names_port(self) -> None:
        """Default message should name the port."""
        exc = ReleaseError(5000)
        assert exc.port == 5000
        assert exc.message == "port 5000 is still bound"
        assert exc.code == ErrorCode.RELEASE_ERROR


class TestStepTagging:
    """Tests for with_step() and to_response()."""

    def test_with_step_returns_same_error(self) -> None:
        """with_step() tags in place and returns the error."""
        exc = ExtractError("archive not found")
        assert exc.with_step("extract") is exc
        assert exc.step == "extract"

    def test_to_response(self) -> None:
        """to_response() should render the failure body."""
        exc = ExtractError("archive not found").with_step("extract")
        resp = exc.to_response()

        assert resp.model_dump() == {
            "success": False,
            "error": "archive not found",
            "code": "EXTRACT_ERROR",
            "step": "extract",
        }

    def test_untagged_step_is_none(self) -> None:
        """Errors raised outside the orchestrator carry no step."""
        assert SpawnError().to_response().step is None


class TestErrorClasses:
    """Status and code of every error class."""

    @pytest.mark.parametrize(
        "error_class,args,code,status",
        [
            (ExtractError, (), ErrorCode.EXTRACT_ERROR, 500),
            (DeletionError, (), ErrorCode.DELETION_ERROR, 500),
            (SpawnError, (), ErrorCode.SPAWN_ERROR, 500),
            (ReadinessError, (5173,), ErrorCode.READINESS_ERROR, 504),
            (BusyError, (), ErrorCode.BUSY, 409),
            (InvalidStateError, (), ErrorCode.INVALID_STATE, 409),
            (InvalidPathError, (), ErrorCode.INVALID_PATH, 400),
            (InternalError, (), ErrorCode.INTERNAL_ERROR, 500),
        ],
    )
    def test_code_and_status(
        self,
        error_class: type[AgentError],
        args: tuple,
        code: ErrorCode,
        status: int,
    ) -> None:
        """Each error maps to its code and HTTP status."""
        exc = error_class(*args)
        assert exc.code == code
        assert exc.status_code == status
        assert str(exc) == exc.message
