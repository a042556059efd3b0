"""Tests for the HTTP cost estimate collaborator. Failures never block an assignment."""

from decimal import Decimal

import httpx
import pytest

from railfleet.models.assignment import AssignmentSource
from railfleet.services.cost_estimator import HttpCostEstimator, NullCostEstimator, build_cost_estimator


def estimator_for(handler):
    return HttpCostEstimator("http://estimates.test/", transport=httpx.MockTransport(handler))


class TestHttpCostEstimator:
    async def test_returns_decimal(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            return httpx.Response(200, json={"estimated_cost": 1875.5})

        estimate = await estimator_for(handler).estimate("GATX9001", "SHOP1", AssignmentSource.QUICK_SHOP)

        assert estimate == Decimal("1875.5")
        assert seen["url"].path == "/estimates"
        assert seen["url"].params["car_number"] == "GATX9001"
        assert seen["url"].params["source"] == "quick_shop"

    async def test_server_error_gives_none(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": "down"})

        estimate = await estimator_for(handler).estimate("GATX9002", "SHOP1", AssignmentSource.DEMAND_PLAN)

        assert estimate is None
        assert "Cost estimate unavailable" in caplog.text

    async def test_transport_error_gives_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert await estimator_for(handler).estimate("GATX9003", "SHOP1", AssignmentSource.DEMAND_PLAN) is None

    @pytest.mark.parametrize(
        "body",
        [{"estimated_cost": "n/a"}, {"estimated_cost": None}, {}, ["1200"]],
    )
    async def test_unusable_body_gives_none(self, body):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        assert await estimator_for(handler).estimate("GATX9004", "SHOP1", AssignmentSource.DEMAND_PLAN) is None

    async def test_non_json_body_gives_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        assert await estimator_for(handler).estimate("GATX9005", "SHOP1", AssignmentSource.DEMAND_PLAN) is None


class TestBuildCostEstimator:
    def test_no_url_means_no_estimates(self):
        assert isinstance(build_cost_estimator(None), NullCostEstimator)

    def test_url_builds_http_estimator(self):
        estimator = build_cost_estimator("http://estimates.internal/", timeout=2.0)
        assert isinstance(estimator, HttpCostEstimator)
        assert estimator.base_url == "http://estimates.internal"
        assert estimator.timeout == 2.0

    async def test_null_estimator(self):
        assert await NullCostEstimator().estimate("GATX9006", "SHOP1", AssignmentSource.DEMAND_PLAN) is None
