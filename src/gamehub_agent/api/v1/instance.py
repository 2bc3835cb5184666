"""Instance lifecycle API endpoints.

Every lifecycle call is synchronous: the response is sent once the
operation has finished (or failed). Failures surface as AgentError and
are rendered by the application error handler.
"""

from fastapi import APIRouter, Depends

from gamehub_agent.api.dependencies import get_orchestrator
from gamehub_agent.api.v1.schemas import (
    InitializeResponse,
    RegenerateResponse,
    SaveFileRequest,
    SaveFileResponse,
    StartResponse,
    StatusResponse,
    StopResponse,
)
from gamehub_agent.orchestrator import LifecycleOrchestrator

router = APIRouter(prefix="/instance", tags=["instance"])


@router.post("/initialize", response_model=InitializeResponse)
async def initialize_instance(
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> InitializeResponse:
    """Reset the instance directory from the template."""
    result = await orchestrator.initialize()
    return InitializeResponse(message="Instance initialized", path=result.path)


@router.post("/start", response_model=StartResponse)
async def start_instance(
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> StartResponse:
    """Install dependencies and start both dev servers."""
    result = await orchestrator.start()
    return StartResponse(message="Instance started", **result.model_dump())


@router.post("/stop", response_model=StopResponse)
async def stop_instance(
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> StopResponse:
    """Stop both dev servers. Idempotent."""
    result = await orchestrator.stop()
    message = "Nothing was running" if result.already_stopped else "Instance stopped"
    return StopResponse(message=message)


@router.post("/regenerate", response_model=RegenerateResponse)
async def regenerate_instance(
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> RegenerateResponse:
    """Stop, re-initialize and start the instance."""
    result = await orchestrator.regenerate()
    return RegenerateResponse(message="Instance regenerated", **result.model_dump())


@router.get("/status", response_model=StatusResponse)
async def get_instance_status(
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> StatusResponse:
    """Current instance state. Never blocks on a running operation."""
    status = orchestrator.status()
    return StatusResponse(
        state=status.state,
        running=status.running,
        ports=status.ports,
        path=status.path,
        processes=status.processes,
        last_error=status.last_error,
        created_at=status.created_at,
    )


@router.put("/files/{file_path:path}", response_model=SaveFileResponse)
async def save_file(
    file_path: str,
    request: SaveFileRequest,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> SaveFileResponse:
    """Write a source file into the instance directory."""
    saved = await orchestrator.save_file(file_path, request.content)
    return SaveFileResponse(path=saved)
