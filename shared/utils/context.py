"""Request-scoped correlation context and its propagation over HTTP."""

import contextvars
import re
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Iterator, Mapping

import httpx
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shared.errors import InvalidArgument

CORRELATION_ID_HEADER = "tmx-correlation-id"
AUTH_TOKEN_HEADER = "tmx-auth-token"
USER_ID_HEADER = "tmx-user-id"
ORG_ID_HEADER = "tmx-org-id"

CONTEXT_HEADERS = (CORRELATION_ID_HEADER, AUTH_TOKEN_HEADER, USER_ID_HEADER, ORG_ID_HEADER)

_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def new_correlation_id() -> str:
    """Generate a new unique correlation id."""
    return str(uuid.uuid4())


def is_valid_correlation_id(value: str) -> bool:
    """Check that an inbound correlation id is safe to log and forward."""
    return bool(_VALID_CORRELATION_ID.match(value))


@dataclass
class CorrelationContext:
    """Values that follow one logical request across every service it touches."""

    correlation_id: str = field(default_factory=new_correlation_id)
    auth_token: str = ""
    user_id: str = ""
    org_id: str = ""

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "CorrelationContext":
        """Build a context from inbound headers, generating a correlation id if absent."""
        return cls(
            correlation_id=headers.get(CORRELATION_ID_HEADER) or new_correlation_id(),
            auth_token=headers.get(AUTH_TOKEN_HEADER, ""),
            user_id=headers.get(USER_ID_HEADER, ""),
            org_id=headers.get(ORG_ID_HEADER, ""),
        )

    def to_headers(self) -> dict[str, str]:
        """Headers to attach to an outbound call. Unset fields are omitted."""
        values = {
            CORRELATION_ID_HEADER: self.correlation_id,
            AUTH_TOKEN_HEADER: self.auth_token,
            USER_ID_HEADER: self.user_id,
            ORG_ID_HEADER: self.org_id,
        }
        return {name: value for name, value in values.items() if value}

    def copy(self) -> "CorrelationContext":
        return replace(self)


_context: contextvars.ContextVar[CorrelationContext | None] = contextvars.ContextVar(
    "correlation_context", default=None
)


def current() -> CorrelationContext:
    """Return the context of the calling task, creating an empty one if needed."""
    context = _context.get()
    if context is None:
        context = CorrelationContext()
        _context.set(context)
    return context


def peek() -> CorrelationContext | None:
    """Return the active context without creating one."""
    return _context.get()


def set_context(context: CorrelationContext | None) -> contextvars.Token:
    """Replace the context of the calling task.

    Raises:
        InvalidArgument: If ``context`` is None
    """
    if context is None:
        raise InvalidArgument("Only non-null CorrelationContext instances are permitted")
    return _context.set(context)


def clear() -> None:
    """Drop the context of the calling task."""
    _context.set(None)


@contextmanager
def request_scope(context: CorrelationContext | None = None) -> Iterator[CorrelationContext]:
    """Bind a context for the duration of one request and always unbind it."""
    bound = context if context is not None else CorrelationContext()
    token = set_context(bound)
    try:
        yield bound
    finally:
        _context.reset(token)


def get_correlation_id() -> str:
    """Correlation id of the active context, or an empty string."""
    context = peek()
    return context.correlation_id if context else ""


async def propagate_context(request: httpx.Request) -> None:
    """httpx request hook copying the active context onto an outbound request."""
    for name, value in current().to_headers().items():
        request.headers[name] = value


class ContextMiddleware(BaseHTTPMiddleware):
    """Populate the correlation context from inbound headers on a downstream service."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        with request_scope(CorrelationContext.from_headers(request.headers)) as context:
            request.state.correlation_id = context.correlation_id
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = context.correlation_id
            return response
