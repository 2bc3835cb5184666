"""Health check endpoint."""

from fastapi import APIRouter

from gamehub_agent import __version__
from gamehub_agent.api.v1.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)
