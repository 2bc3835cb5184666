"""Runtime implementations for Agent."""

from gamehub_agent.runtimes.local import LocalRuntime

__all__ = ["LocalRuntime"]
