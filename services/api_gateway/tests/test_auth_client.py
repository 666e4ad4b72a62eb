"""Tests for the authentication service client."""

import httpx
import pytest

from services.api_gateway.app.auth.client import RemoteAuthenticator, bearer_token
from shared.errors import GatewayError
from shared.utils import context
from shared.utils.context import CorrelationContext

USER_INFO_URL = "http://authentication:8901/auth/user"


def make_authenticator(handler) -> RemoteAuthenticator:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        event_hooks={"request": [context.propagate_context]},
    )
    return RemoteAuthenticator(USER_INFO_URL, client=client)


class TestBearerToken:
    """Tests for credential parsing."""

    def test_strips_scheme(self):
        assert bearer_token("Bearer abc") == "abc"
        assert bearer_token("bearer abc ") == "abc"

    def test_plain_token(self):
        assert bearer_token("abc") == "abc"
        assert bearer_token("") == ""


class TestRemoteAuthenticator:
    """Tests for token validation against the authentication service."""

    @pytest.mark.asyncio
    async def test_valid_token(self):
        """Test a 200 answer yields the principal."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"user": {"username": "john.carnell"}, "authorities": ["ROLE_ADMIN"]},
            )

        authenticator = make_authenticator(handler)

        with context.request_scope(CorrelationContext(correlation_id="abc-123")):
            principal = await authenticator.authenticate("Bearer good")

        assert principal.name == "john.carnell"
        assert principal.roles == frozenset({"ROLE_ADMIN"})
        assert seen[0].headers["authorization"] == "Bearer good"
        assert seen[0].headers["tmx-correlation-id"] == "abc-123"
        await authenticator.close()

    @pytest.mark.asyncio
    async def test_user_as_string(self):
        """Test a plain user name in the answer."""
        authenticator = make_authenticator(
            lambda r: httpx.Response(200, json={"user": "illary.huaylupo", "authorities": []})
        )

        principal = await authenticator.authenticate("good")

        assert principal.name == "illary.huaylupo"

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        """Test 401 from the service means the token is not valid."""
        authenticator = make_authenticator(lambda r: httpx.Response(401))

        assert await authenticator.authenticate("Bearer bad") is None

    @pytest.mark.asyncio
    async def test_empty_credential(self):
        """Test an empty credential is rejected without a call."""
        calls = []
        authenticator = make_authenticator(lambda r: calls.append(r) or httpx.Response(200))

        assert await authenticator.authenticate("Bearer ") is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_service_unreachable(self):
        """Test an unreachable service is reported as unavailable."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        authenticator = make_authenticator(handler)

        with pytest.raises(GatewayError) as exc_info:
            await authenticator.authenticate("Bearer good")

        assert exc_info.value.status_code == 503
        assert exc_info.value.error_code == "AUTH_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_service_error(self):
        """Test a 5xx from the service is reported as unavailable."""
        authenticator = make_authenticator(lambda r: httpx.Response(500))

        with pytest.raises(GatewayError):
            await authenticator.authenticate("Bearer good")
