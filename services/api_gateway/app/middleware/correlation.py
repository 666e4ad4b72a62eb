"""Correlation ID middleware for every gateway route."""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shared.utils.context import (
    CORRELATION_ID_HEADER,
    CorrelationContext,
    is_valid_correlation_id,
    new_correlation_id,
    request_scope,
)


def request_correlation_id(request: Request) -> str:
    """Correlation id chosen for ``request`` by the middleware, or a new one."""
    return getattr(request.state, "correlation_id", None) or new_correlation_id()


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Bind a correlation context for the request and echo its id.

    A well-formed inbound ``tmx-correlation-id`` is reused, anything else is
    replaced by a generated id. The proxy pipeline starts from the same id
    and sets the response header itself, so an existing header is kept.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        context = CorrelationContext.from_headers(request.headers)
        if not is_valid_correlation_id(context.correlation_id):
            context.correlation_id = new_correlation_id()

        # Store in request state for access in handlers
        request.state.correlation_id = context.correlation_id

        with request_scope(context):
            response = await call_next(request)

        if CORRELATION_ID_HEADER not in response.headers:
            response.headers[CORRELATION_ID_HEADER] = context.correlation_id
        return response
