"""Client for the external authentication service."""

from typing import Protocol

import httpx

from services.api_gateway.app.pipeline.base import Principal
from shared.errors import GatewayError
from shared.utils.context import propagate_context
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class Authenticator(Protocol):
    """Validates a bearer credential; returns None when it is rejected."""

    async def authenticate(self, credential: str) -> Principal | None:
        ...


def bearer_token(credential: str) -> str:
    """Strip an optional ``Bearer`` scheme from a credential."""
    scheme, _, token = credential.strip().partition(" ")
    if scheme.lower() == "bearer":
        return token.strip()
    return credential.strip()


class RemoteAuthenticator:
    """Asks the authentication service who owns a token.

    The service answers ``{"user": ..., "authorities": [...]}`` for a valid
    token and 401 otherwise.
    """

    def __init__(
        self,
        user_info_url: str,
        timeout: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.user_info_url = user_info_url
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            event_hooks={"request": [propagate_context]},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def authenticate(self, credential: str) -> Principal | None:
        token = bearer_token(credential)
        if not token:
            return None

        try:
            response = await self._client.get(
                self.user_info_url,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.error("auth_service_unreachable", url=self.user_info_url, error=str(e))
            raise GatewayError(
                "Authentication service unavailable",
                status_code=503,
                error_code="AUTH_UNAVAILABLE",
            ) from e

        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            logger.error("auth_service_error", status_code=response.status_code)
            raise GatewayError(
                "Authentication service unavailable",
                status_code=503,
                error_code="AUTH_UNAVAILABLE",
            )

        payload = response.json()
        user = payload.get("user")
        if isinstance(user, dict):
            user = user.get("username") or user.get("name")
        if not user:
            return None
        return Principal(name=str(user), roles=frozenset(payload.get("authorities", [])))
