"""Log event types for structured logging."""

from enum import StrEnum


class LogEvent(StrEnum):
    """Log event types for Agent.

    Used with logger.info/warning/error extra dict:
        logger.info("message", extra={"event": LogEvent.PROCESS_STARTED, ...})
    """

    # Application lifecycle
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"

    # Lifecycle operations
    OPERATION_STARTED = "operation_started"
    OPERATION_COMPLETED = "operation_completed"
    OPERATION_FAILED = "operation_failed"
    OPERATION_REJECTED = "operation_rejected"

    # Filesystem events
    TEMPLATE_EXTRACTED = "template_extracted"
    DIRECTORY_REMOVED = "directory_removed"
    FILE_SAVED = "file_saved"

    # Install events
    INSTALL_STARTED = "install_started"
    INSTALL_COMPLETED = "install_completed"
    INSTALL_FAILED = "install_failed"

    # Port events
    PORT_RELEASED = "port_released"
    PORT_RELEASE_FAILED = "port_release_failed"
    PORT_TOOLING_MISSING = "port_tooling_missing"

    # Process events
    PROCESS_STARTED = "process_started"
    PROCESS_STOPPED = "process_stopped"
    PROCESS_EXITED = "process_exited"
    PROCESS_FAILED = "process_failed"
    PROCESS_READY = "process_ready"
    PROCESS_NOT_READY = "process_not_ready"

    # Restart reconciliation
    RECONCILE_COMPLETED = "reconcile_completed"
    PROCESS_ADOPTED = "process_adopted"

    # Error events
    UNHANDLED_EXCEPTION = "unhandled_exception"
    AGENT_ERROR = "agent_error"
