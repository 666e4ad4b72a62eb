"""Health check and status routes."""

from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from services.api_gateway.app.dependencies import Commands

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"]
    service: str
    version: str = "0.1.0"


class CommandStatus(BaseModel):
    """Circuit status of one protected command."""

    name: str
    state: str
    attempts: int
    failures: int
    error_percentage: float
    retry_after: int | None = None
    active: int
    queued: int


class StatusResponse(BaseModel):
    """Full system status response."""

    status: Literal["healthy", "degraded", "unhealthy"]
    gateway: HealthResponse
    commands: list[CommandStatus]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check - returns if the service is running."""
    return HealthResponse(
        status="healthy",
        service="api-gateway",
    )


@router.get("/status", response_model=StatusResponse)
async def system_status(commands: Commands) -> StatusResponse:
    """Get full system status including every command's circuit."""
    command_states = [
        CommandStatus(
            name=name,
            state=state["state"],
            attempts=state["attempts"],
            failures=state["failures"],
            error_percentage=state["error_percentage"],
            retry_after=state["retry_after"],
            active=state["bulkhead"]["active"],
            queued=state["bulkhead"]["queued"],
        )
        for name, state in sorted(commands.get_states().items())
    ]

    # Determine overall status
    open_circuits = sum(1 for s in command_states if s.state != "closed")
    if open_circuits == 0:
        status = "healthy"
    elif open_circuits < len(command_states):
        status = "degraded"
    else:
        status = "unhealthy"

    return StatusResponse(
        status=status,
        gateway=HealthResponse(status="healthy", service="api-gateway"),
        commands=command_states,
    )
