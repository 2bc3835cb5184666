"""API v1 schemas.

Consolidated request/response models for all API endpoints.
Error bodies use ErrorResponse from gamehub_agent.api.errors.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from gamehub_agent.runtimes.local.models import ErrorStatus, ProcessStatus


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


# =============================================================================
# Instance lifecycle
# =============================================================================


class InitializeResponse(BaseModel):
    """Initialize response."""

    success: bool = True
    message: str
    path: str


class StartResponse(BaseModel):
    """Start response.

    ``ready`` reports the readiness probe per role; a role can be spawned
    and still not accepting connections.
    """

    success: bool = True
    message: str
    ports: dict[str, int]
    urls: dict[str, str]
    ready: dict[str, bool]


class StopResponse(BaseModel):
    """Stop response."""

    success: bool = True
    message: str


class RegenerateResponse(StartResponse):
    """Regenerate response (initialize + start)."""

    path: str


class StatusResponse(BaseModel):
    """Instance status response."""

    success: bool = True
    state: str
    running: dict[str, bool]
    ports: dict[str, int]
    path: str
    processes: dict[str, ProcessStatus]
    last_error: ErrorStatus | None = None
    created_at: datetime | None = None


# =============================================================================
# Source files
# =============================================================================


class SaveFileRequest(BaseModel):
    """Source file contents."""

    content: str = Field(min_length=1)


class SaveFileResponse(BaseModel):
    """Save file response."""

    success: bool = True
    path: str
