"""GameHub Agent FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Callable

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from gamehub_agent import __version__
from gamehub_agent.api.dependencies import close_orchestrator, init_orchestrator
from gamehub_agent.api.errors import AgentError, ErrorCode, ErrorResponse
from gamehub_agent.api.v1 import health_router, instance_router
from gamehub_agent.config import get_agent_config
from gamehub_agent.logging import setup_logging
from gamehub_agent.logging_schema import LogEvent

# Import metrics to ensure they are registered
import gamehub_agent.metrics  # noqa: F401

# Configure logging using config
_config = get_agent_config()
setup_logging(_config.logging)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup reconciles against whatever a previous run left on the role
    ports; shutdown (SIGINT/SIGTERM via uvicorn) stops the dev servers.
    """
    logger.info(
        "Starting GameHub Agent",
        extra={
            "event": LogEvent.APP_STARTED,
            "version": __version__,
            "instance_path": str(_config.instance.path),
            "ports": {"frontend": _config.ports.frontend, "backend": _config.ports.backend},
        },
    )

    await init_orchestrator(_config)

    yield
    logger.info("Shutting down GameHub Agent", extra={"event": LogEvent.APP_STOPPED})
    await close_orchestrator()


app = FastAPI(
    title="GameHub Agent",
    description="Lifecycle agent for the generated game instance",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=_config.server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AgentError)
async def agent_error_handler(request: Request, exc: AgentError) -> JSONResponse:
    """Handle AgentError exceptions."""
    logger.warning(
        "Agent error",
        extra={
            "event": LogEvent.AGENT_ERROR,
            "error_code": exc.code.value,
            "error_message": exc.message,
            "step": exc.step,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures in the common error shape."""
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "invalid request"
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(error=message, code=ErrorCode.INVALID_REQUEST.value).model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions with logging."""
    logger.exception(
        "Unhandled exception",
        extra={
            "event": LogEvent.UNHANDLED_EXCEPTION,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            code=ErrorCode.INTERNAL_ERROR.value,
        ).model_dump(),
    )


# API key authentication middleware
@app.middleware("http")
async def api_key_middleware(
    request: Request, call_next: Callable[[Request], Response]
) -> Response:
    """Validate API key for non-health endpoints."""
    config = get_agent_config()

    # Skip auth for health and metrics endpoints
    if request.url.path in ("/health", "/metrics"):
        return await call_next(request)

    if config.server.api_key:
        auth_header = request.headers.get("Authorization", "")
        expected = f"Bearer {config.server.api_key}"
        if auth_header != expected:
            return JSONResponse(
                status_code=401,
                content=ErrorResponse(
                    error="Invalid API key",
                    code=ErrorCode.UNAUTHORIZED.value,
                ).model_dump(),
            )

    return await call_next(request)


# /health endpoint without prefix (for health checks)
app.include_router(health_router)


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


app.include_router(instance_router, prefix="/api/v1")


def main() -> None:
    """Run the agent server."""
    config = get_agent_config()
    uvicorn.run(
        "gamehub_agent.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
