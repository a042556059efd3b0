"""
Shared fixtures: a fresh SQLite file database per test, built from the ORM
metadata so the partial unique indexes are real.
"""

import os
from datetime import date

# railfleet.core.db builds its module-level engine at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./railfleet-import.db"

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from railfleet.core.config import Settings
from railfleet.models.base import Base
import railfleet.models  # noqa: F401
from railfleet.models.assignment import AssignmentSource
from railfleet.models.car import FleetStatus
from railfleet.schemas.assignment import AssignmentCreate
from railfleet.schemas.car import CarCreate
from railfleet.schemas.lease import LeaseRiderCreate, MasterLeaseCreate
from railfleet.services.coordinator import TransitionCoordinator
from railfleet.services.cost_estimator import NullCostEstimator


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    return Settings(database_url="sqlite+aiosqlite://")


@pytest.fixture
def coordinator(db, settings):
    return TransitionCoordinator(db, settings=settings, cost_estimator=NullCostEstimator())


@pytest.fixture
def make_car(coordinator):
    async def _make_car(car_number: str, fleet_status: FleetStatus = FleetStatus.IN_FLEET):
        return await coordinator.register_car(
            CarCreate(car_number=car_number, car_mark=car_number[:4], car_type="Tank", fleet_status=fleet_status),
            actor_id="intake",
        )

    return _make_car


@pytest.fixture
def make_lease(coordinator):
    """Active master lease with one Active rider; returns (lease, rider)."""

    async def _make_lease(code: str = "ML-100"):
        lease = await coordinator.create_master_lease(
            MasterLeaseCreate(lease_code=code, customer_code="ACME", start_date=date(2026, 1, 1)),
            actor_id="contracts",
        )
        rider = await coordinator.create_lease_rider(
            LeaseRiderCreate(
                rider_code=f"{code}-R1",
                master_lease_id=lease.id,
                car_type="Tank",
                car_count=5,
                effective_date=date(2026, 1, 1),
            ),
            actor_id="contracts",
        )
        return lease, rider

    return _make_lease


def assignment_payload(car_number: str, source: AssignmentSource = AssignmentSource.DEMAND_PLAN, **overrides):
    values = {
        "car_number": car_number,
        "shop_code": "SHOP1",
        "target_month": "2026-11",
        "source": source,
    }
    values.update(overrides)
    return AssignmentCreate(**values)
