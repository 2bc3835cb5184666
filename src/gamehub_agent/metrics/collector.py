"""Prometheus metrics definitions for GameHub Agent.

Agent metrics track the instance lifecycle:
- Lifecycle operations (initialize, start, stop, regenerate)
- Dependency installs per role
- Port releases and dev-server exits
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================
# Lifecycle operations include npm installs (seconds to minutes)
_BUCKETS_SLOW = (
    0.1, 0.25, 0.5, 1, 2.5,
    5, 10, 20, 40, 80,
    160, 300,
)  # 12 buckets

# =============================================================================
# Lifecycle Operation Metrics
# =============================================================================

AGENT_OPERATION_DURATION = Histogram(
    "gamehub_agent_operation_duration_seconds",
    "Duration of lifecycle operations",
    ["operation"],  # initialize, start, stop, regenerate
    buckets=_BUCKETS_SLOW,
)

AGENT_OPERATION_ERRORS = Counter(
    "gamehub_agent_operation_errors_total",
    "Total failed lifecycle operations",
    ["operation", "code"],  # code: ErrorCode value
)

# =============================================================================
# Install Metrics
# =============================================================================

AGENT_INSTALL_DURATION = Histogram(
    "gamehub_agent_install_duration_seconds",
    "Duration of dependency installs",
    ["role"],
    buckets=_BUCKETS_SLOW,
)

# =============================================================================
# Port / Process Metrics
# =============================================================================

AGENT_PORT_RELEASES = Counter(
    "gamehub_agent_port_releases_total",
    "Port release attempts",
    ["result"],  # released, timeout
)

AGENT_PROCESS_EXITS = Counter(
    "gamehub_agent_process_exits_total",
    "Dev-server exits",
    ["role", "outcome"],  # outcome: stopped, failed
)

AGENT_PROCESSES_RUNNING = Gauge(
    "gamehub_agent_processes_running",
    "Dev servers currently in Running state",
)


# =============================================================================
# Metric Initialization
# =============================================================================

def _init_metrics() -> None:
    """Initialize labeled metrics with zero values."""
    for op in ["initialize", "start", "stop", "regenerate"]:
        AGENT_OPERATION_DURATION.labels(operation=op)

    for role in ["frontend", "backend"]:
        AGENT_INSTALL_DURATION.labels(role=role)
        AGENT_PROCESS_EXITS.labels(role=role, outcome="stopped")
        AGENT_PROCESS_EXITS.labels(role=role, outcome="failed")

    AGENT_PORT_RELEASES.labels(result="released")
    AGENT_PORT_RELEASES.labels(result="timeout")


_init_metrics()
