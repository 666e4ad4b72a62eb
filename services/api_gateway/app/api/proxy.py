"""Proxy route handing every other request to the gateway pipeline."""

from fastapi import APIRouter, HTTPException, Request, Response, status

from services.api_gateway.app.dependencies import Commands, Pipeline
from services.api_gateway.app.pipeline import GatewayRequest

router = APIRouter(tags=["Backend Services"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.post("/admin/circuit-breakers/{key}/reset")
async def reset_circuit_breaker(key: str, commands: Commands) -> dict:
    """Close the circuit of one command and clear its rolling window."""
    if not commands.reset(key):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown command: {key}",
        )
    return {"command": key, "state": "closed"}


@router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy(path: str, request: Request, pipeline: Pipeline) -> Response:
    """Run the request through the pre, route and post filters."""
    gateway_request = GatewayRequest(
        method=request.method,
        path=request.url.path,
        headers=request.headers.items(),
        query_string=request.url.query,
        body=await request.body(),
        client_host=request.client.host if request.client else None,
    )

    gateway_response = await pipeline.handle(gateway_request)

    response = Response(
        content=gateway_response.body,
        status_code=gateway_response.status_code,
    )
    # Raw headers keep repeated values such as set-cookie intact
    response.raw_headers.extend(
        (name.encode("latin-1"), value.encode("latin-1"))
        for name, value in gateway_response.headers.multi_items()
        if name.lower() != "content-length"
    )
    return response
