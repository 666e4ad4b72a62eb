"""Tests for the gateway filter pipeline."""

import asyncio
import json

import pytest

from services.api_gateway.app.pipeline import (
    FilterType,
    GatewayFilter,
    GatewayPipeline,
    GatewayRequest,
    GatewayResponse,
    RequestContext,
)
from services.api_gateway.app.pipeline.filters import ResponseFilter, TrackingFilter
from shared.errors import FilterAbort
from shared.utils import context


class RecordingFilter(GatewayFilter):
    """Appends its label to a shared log when run."""

    def __init__(self, log, label, filter_type, order):
        self.log = log
        self.label = label
        self.filter_type = filter_type
        self.order = order

    async def run(self, ctx: RequestContext) -> None:
        self.log.append(self.label)


class RespondFilter(GatewayFilter):
    filter_type = FilterType.ROUTE
    order = 1

    def __init__(self, body=b"ok"):
        self.body = body

    async def run(self, ctx: RequestContext) -> None:
        ctx.response = GatewayResponse(status_code=200, body=self.body)


class AbortFilter(GatewayFilter):
    filter_type = FilterType.PRE
    order = 5

    async def run(self, ctx: RequestContext) -> None:
        raise FilterAbort("Missing organization", status_code=422, error_code="ORG_REQUIRED")


class BrokenFilter(GatewayFilter):
    def __init__(self, filter_type):
        self.filter_type = filter_type

    async def run(self, ctx: RequestContext) -> None:
        raise RuntimeError("filter bug")


def make_request(path="/api/licensing/v1/licenses", headers=None) -> GatewayRequest:
    return GatewayRequest(method="GET", path=path, headers=headers or {})


class TestGatewayPipeline:
    """Tests for filter ordering and termination."""

    @pytest.mark.asyncio
    async def test_runs_stages_in_order(self):
        """Test PRE filters run before ROUTE, and POST runs last."""
        log = []
        pipeline = GatewayPipeline(
            [
                RecordingFilter(log, "post", FilterType.POST, 1),
                RecordingFilter(log, "route", FilterType.ROUTE, 1),
                RecordingFilter(log, "pre-2", FilterType.PRE, 2),
                RecordingFilter(log, "pre-1", FilterType.PRE, 1),
                RespondFilter(),
            ]
        )

        response = await pipeline.handle(make_request())

        assert response.status_code == 200
        assert log == ["pre-1", "pre-2", "route", "post"]

    def test_equal_orders_keep_registration_order(self):
        """Test filters with the same order keep the order they were added in."""
        log = []
        first = RecordingFilter(log, "a", FilterType.PRE, 1)
        second = RecordingFilter(log, "b", FilterType.PRE, 1)
        third = RecordingFilter(log, "c", FilterType.PRE, 0)

        pipeline = GatewayPipeline([first, second, third])

        assert pipeline.filters(FilterType.PRE) == [third, first, second]

    @pytest.mark.asyncio
    async def test_abort_skips_remaining_filters(self):
        """Test an aborting PRE filter skips later PRE and ROUTE filters but not POST."""
        log = []
        pipeline = GatewayPipeline(
            [
                AbortFilter(),
                RecordingFilter(log, "pre-late", FilterType.PRE, 9),
                RecordingFilter(log, "route", FilterType.ROUTE, 1),
                RecordingFilter(log, "post", FilterType.POST, 1),
            ]
        )

        response = await pipeline.handle(make_request())

        assert response.status_code == 422
        assert json.loads(response.body)["error_code"] == "ORG_REQUIRED"
        assert log == ["post"]

    @pytest.mark.asyncio
    async def test_no_route_is_not_found(self):
        """Test a pipeline that produces no response answers 404."""
        pipeline = GatewayPipeline([TrackingFilter(), ResponseFilter()])

        response = await pipeline.handle(make_request())

        assert response.status_code == 404
        assert json.loads(response.body)["error_code"] == "ROUTE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal_error(self):
        """Test an unexpected filter exception becomes a 500 with the correlation id."""
        pipeline = GatewayPipeline(
            [TrackingFilter(), BrokenFilter(FilterType.ROUTE), ResponseFilter()]
        )

        response = await pipeline.handle(
            make_request(headers={"tmx-correlation-id": "abc-123"})
        )

        body = json.loads(response.body)
        assert response.status_code == 500
        assert body["error_code"] == "INTERNAL_ERROR"
        assert body["correlation_id"] == "abc-123"
        assert response.headers["tmx-correlation-id"] == "abc-123"

    @pytest.mark.asyncio
    async def test_post_filter_error_keeps_response(self):
        """Test a failing POST filter does not replace the produced response."""
        pipeline = GatewayPipeline(
            [RespondFilter(b"licenses"), BrokenFilter(FilterType.POST), ResponseFilter()]
        )

        response = await pipeline.handle(make_request())

        assert response.status_code == 200
        assert response.body == b"licenses"
        assert "tmx-correlation-id" in response.headers

    @pytest.mark.asyncio
    async def test_context_unbound_after_request(self):
        """Test no correlation context survives the request."""
        pipeline = GatewayPipeline([TrackingFilter(), RespondFilter(), ResponseFilter()])

        await pipeline.handle(make_request(headers={"tmx-correlation-id": "abc-123"}))

        assert context.peek() is None

    @pytest.mark.asyncio
    async def test_concurrent_requests_isolated(self):
        """Test concurrent requests each see only their own correlation id."""
        seen = {}

        class SlowRoute(GatewayFilter):
            filter_type = FilterType.ROUTE

            async def run(self, ctx: RequestContext) -> None:
                await asyncio.sleep(0.01)
                seen[ctx.request.path] = context.current().correlation_id
                ctx.response = GatewayResponse(status_code=200)

        pipeline = GatewayPipeline([TrackingFilter(), SlowRoute(), ResponseFilter()])
        requests = [
            make_request(path=f"/r/{i}", headers={"tmx-correlation-id": f"id-{i}"})
            for i in range(20)
        ]

        responses = await asyncio.gather(*(pipeline.handle(r) for r in requests))

        assert seen == {f"/r/{i}": f"id-{i}" for i in range(20)}
        assert [r.headers["tmx-correlation-id"] for r in responses] == [
            f"id-{i}" for i in range(20)
        ]

    @pytest.mark.asyncio
    async def test_generated_ids_are_distinct(self):
        """Test requests without an id get distinct generated ids."""
        pipeline = GatewayPipeline([TrackingFilter(), RespondFilter(), ResponseFilter()])

        responses = await asyncio.gather(*(pipeline.handle(make_request()) for _ in range(10)))

        ids = {r.headers["tmx-correlation-id"] for r in responses}
        assert len(ids) == 10

    @pytest.mark.asyncio
    async def test_reuses_id_of_enclosing_scope(self):
        """Test the pipeline keeps the id bound by the HTTP layer but not its object."""
        pipeline = GatewayPipeline([TrackingFilter(), RespondFilter(), ResponseFilter()])
        outer = context.CorrelationContext(correlation_id="outer-1", user_id="u-1")

        with context.request_scope(outer):
            response = await pipeline.handle(make_request())
            assert context.current() is outer

        assert response.headers["tmx-correlation-id"] == "outer-1"
        assert outer.user_id == "u-1"
