"""API v1 module."""

from gamehub_agent.api.v1.health import router as health_router
from gamehub_agent.api.v1.instance import router as instance_router

__all__ = [
    "health_router",
    "instance_router",
]
