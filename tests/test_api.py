"""
HTTP tests against the FastAPI app.

The app's get_db dependency is overridden with a session from the per-test
database. Errors come back as {"detail": {"code", "message", "details"}}.
"""

from datetime import date, timedelta
from decimal import Decimal

import httpx
import pytest

from railfleet.core.db import get_db
from railfleet.main import app

ACTOR = {"X-Actor-Id": "planner-7"}


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test", headers=ACTOR) as client:
        yield client
    app.dependency_overrides.clear()


async def register(client, car_number, fleet_status="in_fleet"):
    response = await client.post("/api/cars", json={"car_number": car_number, "fleet_status": fleet_status})
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    async def test_healthz(self, client):
        response = await client.get("/api/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestCarsApi:
    async def test_register_and_fetch(self, client):
        await register(client, "API00001", fleet_status="onboarding")

        response = await client.post("/api/cars/API00001/activate")
        assert response.status_code == 200
        assert response.json()["fleet_status"] == "in_fleet"

        response = await client.get("/api/cars/API00001")
        assert response.json()["car_number"] == "API00001"

    async def test_duplicate_is_conflict(self, client):
        await register(client, "API00002")
        response = await client.post("/api/cars", json={"car_number": "API00002"})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "duplicate_key"

    async def test_unknown_car_is_not_found(self, client):
        response = await client.get("/api/cars/NOPE9999")
        assert response.status_code == 404
        body = response.json()["detail"]
        assert body["code"] == "not_found"
        assert body["details"] == {"car_number": "NOPE9999"}

    async def test_dispose_without_scrap_is_unprocessable(self, client):
        await register(client, "API00003")
        response = await client.post("/api/cars/API00003/dispose", json={"scrap_record_id": "none"})
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "prereq_not_met"

    async def test_ready_to_load_records_actor(self, client):
        await register(client, "API00004")
        response = await client.put("/api/cars/API00004/ready-to-load", json={"ready": True})
        assert response.status_code == 200
        assert response.json()["ready_to_load_by"] == "planner-7"


class TestAssignmentsApi:
    async def test_bad_order_then_duplicate(self, client):
        await register(client, "API00101")
        payload = {"car_number": "API00101", "shop_code": "SHOP1", "target_month": "2026-11", "source": "bad_order"}

        response = await client.post("/api/assignments", json=payload)
        assert response.status_code == 201
        assignment = response.json()
        assert assignment["priority"] == 1
        assert assignment["status"] == "Planned"

        response = await client.post("/api/assignments", json={**payload, "source": "demand_plan"})
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "duplicate_active_assignment"
        assert detail["details"]["assignment_id"] == assignment["id"]

    async def test_out_of_sequence_and_stale_version(self, client):
        await register(client, "API00102")
        response = await client.post(
            "/api/assignments",
            json={"car_number": "API00102", "shop_code": "SHOP1", "target_month": "2026-12", "source": "demand_plan"},
        )
        assignment = response.json()
        url = f"/api/assignments/{assignment['id']}/status"

        response = await client.post(url, json={"status": "InShop"})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "invalid_transition"

        response = await client.post(url, json={"status": "Scheduled", "expected_version": assignment["version"]})
        assert response.status_code == 200
        assert response.json()["version"] == assignment["version"] + 1

        response = await client.post(url, json={"status": "Enroute", "expected_version": assignment["version"]})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "concurrent_modification"

    async def test_revert_and_eligibility(self, client):
        await register(client, "API00105")
        response = await client.post(
            "/api/assignments",
            json={"car_number": "API00105", "shop_code": "SHOP1", "target_month": "2026-12", "source": "demand_plan"},
        )
        assignment = response.json()
        eligibility_url = f"/api/transitions/car_assignment/{assignment['id']}/revert-eligibility"

        response = await client.get(eligibility_url)
        assert response.status_code == 200
        assert response.json()["allowed"] is False
        assert response.json()["blockers"] == ["This transition is marked as irreversible"]

        await client.post(f"/api/assignments/{assignment['id']}/status", json={"status": "Scheduled"})
        response = await client.get(eligibility_url)
        body = response.json()
        assert body["allowed"] is True
        assert body["previous_state"] == "Planned"

        response = await client.post(f"/api/assignments/{assignment['id']}/revert", json={"notes": "Slot lost"})
        assert response.status_code == 200
        assert response.json()["status"] == "Planned"
        assert response.json()["scheduled_at"] is None

        response = await client.post(f"/api/assignments/{assignment['id']}/revert", json={})
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "prereq_not_met"

        response = await client.get(f"/api/transitions/car_assignment/{assignment['id']}")
        rows = response.json()
        assert rows[1]["reversed_by"] == "planner-7"
        assert rows[1]["reversal_transition_id"] == rows[2]["id"]

    async def test_bad_target_month_is_rejected(self, client):
        await register(client, "API00103")
        response = await client.post(
            "/api/assignments",
            json={"car_number": "API00103", "shop_code": "SHOP1", "target_month": "2026-13", "source": "demand_plan"},
        )
        assert response.status_code == 422

    async def test_costs_and_variance(self, client):
        await register(client, "API00104")
        response = await client.post(
            "/api/assignments",
            json={
                "car_number": "API00104",
                "shop_code": "SHOP1",
                "target_month": "2026-11",
                "source": "quick_shop",
                "estimated_cost": "500.00",
            },
        )
        assignment_id = response.json()["id"]

        response = await client.put(f"/api/assignments/{assignment_id}/costs", json={"actual_cost": "650.00"})
        assert response.status_code == 200
        assert Decimal(response.json()["cost_variance"]) == Decimal("150.00")


class TestTriageAndIdleApi:
    async def test_triage_round_trip(self, client):
        await register(client, "API00201")
        response = await client.post("/api/triage", json={"car_number": "API00201", "reason": "bad_order"})
        assert response.status_code == 201
        entry = response.json()

        response = await client.post("/api/triage", json={"car_number": "API00201", "reason": "manual"})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "duplicate_active_entry"

        response = await client.post(f"/api/triage/{entry['id']}/resolve", json={"resolution": "assigned_to_shop"})
        assert response.status_code == 422

        response = await client.get("/api/triage")
        assert [e["id"] for e in response.json()] == [entry["id"]]

        response = await client.post(f"/api/triage/{entry['id']}/resolve", json={"resolution": "dismissed"})
        assert response.status_code == 200
        assert response.json()["resolved_by"] == "planner-7"

    async def test_idle_rate_snapshot(self, client):
        start = date.today() - timedelta(days=10)
        await register(client, "API00202")
        response = await client.post("/api/storage-rates", json={"location_code": "YARD1", "rate_per_day": "12.50"})
        assert response.status_code == 201

        response = await client.post(
            "/api/idle-periods",
            json={"car_number": "API00202", "reason": "between_leases", "location_code": "YARD1",
                  "start_date": start.isoformat()},
        )
        assert response.status_code == 201
        await client.post("/api/storage-rates", json={"location_code": "YARD1", "rate_per_day": "15.00"})

        response = await client.get("/api/idle-periods/API00202")
        assert Decimal(response.json()[0]["daily_rate"]) == Decimal("12.50")

        as_of = (start + timedelta(days=4)).isoformat()
        response = await client.get("/api/idle-periods/API00202/cost", params={"as_of": as_of})
        summary = response.json()
        assert summary["total_idle_days"] == 4
        assert Decimal(summary["total_cost"]) == Decimal("50.00")

    async def test_close_without_open_period(self, client):
        await register(client, "API00203")
        response = await client.post("/api/idle-periods/API00203/close", json={})
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "no_open_period"


class TestLeasesApi:
    async def test_rider_car_needs_active_rider(self, client):
        await register(client, "API00301")
        response = await client.post(
            "/api/master-leases",
            json={"lease_code": "ML-API", "customer_code": "ACME", "start_date": "2026-01-01"},
        )
        lease = response.json()
        response = await client.post(
            "/api/lease-riders",
            json={"rider_code": "ML-API-R1", "master_lease_id": lease["id"], "effective_date": "2026-01-01"},
        )
        rider = response.json()

        response = await client.post(f"/api/lease-riders/{rider['id']}/cars", json={"car_number": "API00301"})
        assert response.status_code == 201
        rider_car = response.json()
        assert rider_car["status"] == "decided"

        response = await client.post(f"/api/lease-riders/{rider['id']}/transition", json={"to_status": "Expired"})
        assert response.status_code == 200

        transition_url = f"/api/rider-cars/{rider_car['id']}/transition"
        response = await client.post(transition_url, json={"to_status": "on_rent"})
        assert response.status_code == 422

        await client.post(f"/api/lease-riders/{rider['id']}/transition", json={"to_status": "Active"})
        response = await client.post(transition_url, json={"to_status": "on_rent"})
        assert response.status_code == 200
        assert response.json()["on_rent_at"] is not None

        response = await client.get("/api/transitions/cars/API00301")
        to_states = [row["to_state"] for row in response.json()]
        assert to_states[0] == "on_rent"
        assert "decided" in to_states

        response = await client.get(f"/api/transitions/rider_car/{rider_car['id']}")
        assert [row["to_state"] for row in response.json()] == ["decided", "on_rent"]
        assert all(row["actor_id"] == "planner-7" for row in response.json())


async def rent_car(client, car_number, lease_code):
    await register(client, car_number)
    lease = (await client.post(
        "/api/master-leases",
        json={"lease_code": lease_code, "customer_code": "ACME", "start_date": "2026-01-01"},
    )).json()
    rider = (await client.post(
        "/api/lease-riders",
        json={"rider_code": f"{lease_code}-R1", "master_lease_id": lease["id"], "effective_date": "2026-01-01"},
    )).json()
    rider_car = (await client.post(f"/api/lease-riders/{rider['id']}/cars", json={"car_number": car_number})).json()
    response = await client.post(f"/api/rider-cars/{rider_car['id']}/transition", json={"to_status": "on_rent"})
    assert response.status_code == 200, response.text
    return rider_car


class TestReleasesApi:
    async def test_release_round_trip(self, client):
        rider_car = await rent_car(client, "API00401", "ML-REL")

        response = await client.post("/api/releases", json={"car_number": "API00401", "release_type": "lease_expiry"})
        assert response.status_code == 201, response.text
        release = response.json()
        assert release["status"] == "initiated"
        assert release["initiated_by"] == "planner-7"

        response = await client.post("/api/releases", json={"car_number": "API00401", "release_type": "disposition"})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "duplicate_active_release"

        url = f"/api/releases/{release['id']}"
        assert (await client.post(f"{url}/approve", json={})).json()["status"] == "approved"
        assert (await client.post(f"{url}/execute")).json()["status"] == "executing"

        response = await client.post(f"{url}/cancel", json={"reason": "Too late"})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "invalid_transition"

        response = await client.post(f"{url}/complete", json={"location_code": "YARD-A"})
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

        response = await client.get("/api/releases", params={"car_number": "API00401", "status": "completed"})
        assert [row["id"] for row in response.json()] == [release["id"]]

        response = await client.get(f"/api/transitions/rider_car/{rider_car['id']}")
        assert [row["to_state"] for row in response.json()] == ["decided", "on_rent", "releasing", "off_rent"]

    async def test_release_needs_car_on_rent(self, client):
        await register(client, "API00402")
        response = await client.post("/api/releases", json={"car_number": "API00402", "release_type": "lease_expiry"})
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "prereq_not_met"

    async def test_unknown_release(self, client):
        response = await client.get("/api/releases/missing")
        assert response.status_code == 404
