"""Prometheus metrics for GameHub Agent."""

from gamehub_agent.metrics.collector import (
    AGENT_INSTALL_DURATION,
    AGENT_OPERATION_DURATION,
    AGENT_OPERATION_ERRORS,
    AGENT_PORT_RELEASES,
    AGENT_PROCESS_EXITS,
    AGENT_PROCESSES_RUNNING,
)

__all__ = [
    "AGENT_INSTALL_DURATION",
    "AGENT_OPERATION_DURATION",
    "AGENT_OPERATION_ERRORS",
    "AGENT_PORT_RELEASES",
    "AGENT_PROCESS_EXITS",
    "AGENT_PROCESSES_RUNNING",
]
