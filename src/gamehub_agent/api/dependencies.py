"""API dependencies for dependency injection."""

from gamehub_agent.config import AgentConfig, get_agent_config
from gamehub_agent.orchestrator import LifecycleOrchestrator
from gamehub_agent.runtimes import LocalRuntime

# Singleton orchestrator instance
_orchestrator: LifecycleOrchestrator | None = None


async def init_orchestrator(config: AgentConfig | None = None) -> LifecycleOrchestrator:
    """Initialize orchestrator singleton.

    Builds the LocalRuntime and reconciles in-memory state against the
    instance directory and the role ports. Must be called during app startup.
    """
    global _orchestrator
    config = config or get_agent_config()
    _orchestrator = LifecycleOrchestrator(LocalRuntime(config), config)
    await _orchestrator.reconcile()
    return _orchestrator


async def close_orchestrator() -> None:
    """Shut down the orchestrator, stopping dev servers if configured."""
    global _orchestrator
    if _orchestrator:
        await _orchestrator.shutdown()
        _orchestrator = None


def get_orchestrator() -> LifecycleOrchestrator:
    """Get orchestrator singleton.

    Raises:
        RuntimeError: If called before init_orchestrator().
    """
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not initialized. Call init_orchestrator() first.")
    return _orchestrator


def reset_orchestrator() -> None:
    """Reset orchestrator singleton (for testing)."""
    global _orchestrator
    _orchestrator = None
