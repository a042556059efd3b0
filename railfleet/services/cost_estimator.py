"""
Cost estimate collaborator for new shop assignments.

Read-only and non-fatal: when no estimate can be obtained the assignment is
created with a null estimated_cost.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

import httpx

from railfleet.models.assignment import AssignmentSource

logger = logging.getLogger(__name__)


class CostEstimator(Protocol):
    async def estimate(self, car_number: str, shop_code: str, source: AssignmentSource) -> Optional[Decimal]:
        ...


class NullCostEstimator:
    """No estimate source configured."""

    async def estimate(self, car_number: str, shop_code: str, source: AssignmentSource) -> Optional[Decimal]:
        return None


class HttpCostEstimator:
    """Fetches ``GET {base_url}/estimates`` and reads ``estimated_cost`` from the JSON body."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def estimate(self, car_number: str, shop_code: str, source: AssignmentSource) -> Optional[Decimal]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(
                    f"{self.base_url}/estimates",
                    params={
                        "car_number": car_number,
                        "shop_code": shop_code,
                        "source": source.value,
                    },
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Cost estimate unavailable for %s at %s: %s", car_number, shop_code, exc)
            return None

        value = data.get("estimated_cost") if isinstance(data, dict) else None
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except InvalidOperation:
            logger.warning("Cost estimate for %s was not a number: %r", car_number, value)
            return None


def build_cost_estimator(url: Optional[str], timeout: float = 5.0) -> CostEstimator:
    if not url:
        return NullCostEstimator()
    return HttpCostEstimator(url, timeout=timeout)
