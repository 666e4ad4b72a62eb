"""Pytest fixtures for API Gateway tests."""

from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from services.api_gateway.app.config import CommandSettings, Settings
from services.api_gateway.app.main import create_app
from shared.discovery import StaticServiceRegistry


class FakeDownstream:
    """Stands in for every downstream instance behind a MockTransport.

    Records each request and answers with the handler registered for the
    target host, or 200 with an empty JSON list.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handlers: dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is not None:
            return handler(request)
        return httpx.Response(200, json=[])

    def respond(self, host: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handlers[host] = handler


@pytest.fixture
def downstream() -> FakeDownstream:
    """Fake downstream services."""
    return FakeDownstream()


@pytest.fixture
def registry() -> StaticServiceRegistry:
    """Two licensing instances and one organization instance."""
    return StaticServiceRegistry(
        {
            "licensingservice": ["licensing-1:10000", "licensing-2:10000"],
            "organizationservice": ["organization-1:11000"],
        }
    )


@pytest.fixture
def settings() -> Settings:
    """Gateway settings for tests."""
    return Settings(
        log_json=False,
        routes={
            "/api/licensing": "licensingservice",
            "/api/organization": "organizationservice",
        },
        discovery_routes=True,
        default_command=CommandSettings(timeout_ms=500),
    )


@pytest.fixture
def app(settings, registry, downstream) -> FastAPI:
    """Gateway application calling the fake downstream services."""
    return create_app(settings, registry=registry, transport=httpx.MockTransport(downstream))


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client talking to the gateway in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://gateway") as ac:
        yield ac
    await app.state.gateway.close()
