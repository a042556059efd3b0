"""
Tests for the car release workflow.

Covers:
- initiate -> approve -> execute -> complete, moving the rider car off rent
- One active release per car
- Cancellation only before execution
- A linked shop visit must reach the shop before the release completes
"""

import pytest

from railfleet.core.errors import DuplicateActiveRelease, InvalidTransition, NotFound, PrereqNotMet
from railfleet.models.assignment import AssignmentStatus
from railfleet.models.lease import RiderCarStatus
from railfleet.models.release import ReleaseStatus, ReleaseType
from railfleet.models.triage import TriageReason
from railfleet.schemas.release import ReleaseCreate

from conftest import assignment_payload


async def rented_car(coordinator, make_car, make_lease, car_number, lease_code):
    await make_car(car_number)
    _, rider = await make_lease(lease_code)
    rider_car = await coordinator.decide_rider_car(rider.id, car_number, "sales")
    await coordinator.put_on_rent(rider_car.id, "billing")
    return rider, rider_car


async def walk_to_in_shop(coordinator, assignment_id):
    for status in (
        AssignmentStatus.SCHEDULED,
        AssignmentStatus.ENROUTE,
        AssignmentStatus.ARRIVED,
        AssignmentStatus.IN_SHOP,
    ):
        await coordinator.advance_assignment(assignment_id, status, "shop-desk")


class TestReleaseFlow:
    async def test_full_release_takes_car_off_rent(self, coordinator, make_car, make_lease):
        rider, rider_car = await rented_car(coordinator, make_car, make_lease, "REL00001", "ML-800")
        rider_car_id = rider_car.id

        release = await coordinator.initiate_release(
            ReleaseCreate(car_number="REL00001", release_type=ReleaseType.VOLUNTARY_RETURN, rider_id=rider.id),
            "contracts",
        )
        assert release.status == ReleaseStatus.INITIATED
        assert release.rider_car_id == rider_car_id
        assert release.initiated_by == "contracts"

        release = await coordinator.approve_release(release.id, "fleet-manager", notes="Customer notified")
        assert release.status == ReleaseStatus.APPROVED
        assert release.approved_by == "fleet-manager"
        rider_car = await coordinator.leases.get_rider_car(rider_car_id)
        assert rider_car.status == RiderCarStatus.ON_RENT

        release = await coordinator.execute_release(release.id, "yard")
        assert release.status == ReleaseStatus.EXECUTING
        assert release.executed_at is not None
        rider_car = await coordinator.leases.get_rider_car(rider_car_id)
        assert rider_car.status == RiderCarStatus.RELEASING

        release = await coordinator.complete_release(release.id, "yard", location_code="YARD-A")
        assert release.status == ReleaseStatus.COMPLETED
        assert release.completed_by == "yard"

        rider_car = await coordinator.leases.get_rider_car(rider_car_id)
        assert rider_car.status == RiderCarStatus.OFF_RENT
        entry = await coordinator.triage.get_active_for_car("REL00001")
        assert entry.reason == TriageReason.CUSTOMER_RETURN
        assert await coordinator.idle.get_open_period("REL00001") is not None
        assert await coordinator.releases.get_active_for_car("REL00001") is None

        rows = await coordinator.transitions.history("car_release", release.id)
        assert [row.to_state for row in rows] == ["initiated", "approved", "executing", "completed"]

    async def test_completion_finishes_linked_shop_visit(self, coordinator, make_car, make_lease):
        await rented_car(coordinator, make_car, make_lease, "REL00002", "ML-801")
        assignment = await coordinator.create_assignment(assignment_payload("REL00002"), "planner")
        assignment_id = assignment.id

        release = await coordinator.initiate_release(
            ReleaseCreate(
                car_number="REL00002",
                release_type=ReleaseType.SHOP_COMPLETE,
                assignment_id=assignment_id,
            ),
            "contracts",
        )
        release_id = release.id
        await coordinator.approve_release(release_id, "fleet-manager")
        await coordinator.execute_release(release_id, "yard")

        with pytest.raises(PrereqNotMet):
            await coordinator.complete_release(release_id, "yard")

        release = await coordinator.releases.get(release_id)
        assert release.status == ReleaseStatus.EXECUTING

        await walk_to_in_shop(coordinator, assignment_id)
        await coordinator.complete_release(release_id, "yard")

        assignment = await coordinator.assignments.get(assignment_id)
        assert assignment.status == AssignmentStatus.COMPLETE
        assert assignment.completed_at is not None


class TestReleaseGuards:
    async def test_one_active_release_per_car(self, coordinator, make_car, make_lease):
        await rented_car(coordinator, make_car, make_lease, "REL00010", "ML-810")
        payload = ReleaseCreate(car_number="REL00010", release_type=ReleaseType.LEASE_EXPIRY)
        first = await coordinator.initiate_release(payload, "contracts")
        first_id = first.id

        with pytest.raises(DuplicateActiveRelease) as exc_info:
            await coordinator.initiate_release(payload, "contracts")
        assert exc_info.value.details["release_id"] == first_id

        await coordinator.cancel_release(first_id, "Lease extended", "contracts")
        second = await coordinator.initiate_release(payload, "contracts")
        assert second.id != first_id

    async def test_car_must_be_on_rent(self, coordinator, make_car, make_lease):
        await make_car("REL00011")
        _, rider = await make_lease("ML-811")
        await coordinator.decide_rider_car(rider.id, "REL00011", "sales")

        with pytest.raises(PrereqNotMet) as exc_info:
            await coordinator.initiate_release(
                ReleaseCreate(car_number="REL00011", release_type=ReleaseType.VOLUNTARY_RETURN), "contracts"
            )
        assert exc_info.value.details["rider_car_status"] == "decided"

    async def test_rider_must_match(self, coordinator, make_car, make_lease):
        await rented_car(coordinator, make_car, make_lease, "REL00012", "ML-812")
        _, other_rider = await make_lease("ML-813")

        with pytest.raises(PrereqNotMet):
            await coordinator.initiate_release(
                ReleaseCreate(
                    car_number="REL00012",
                    release_type=ReleaseType.CONTRACT_TRANSFER,
                    rider_id=other_rider.id,
                ),
                "contracts",
            )
        assert await coordinator.releases.get_active_for_car("REL00012") is None

    async def test_assignment_of_another_car_is_rejected(self, coordinator, make_car, make_lease):
        await rented_car(coordinator, make_car, make_lease, "REL00013", "ML-814")
        await make_car("REL00014")
        other = await coordinator.create_assignment(assignment_payload("REL00014"), "planner")

        with pytest.raises(PrereqNotMet):
            await coordinator.initiate_release(
                ReleaseCreate(
                    car_number="REL00013",
                    release_type=ReleaseType.SHOP_COMPLETE,
                    assignment_id=other.id,
                ),
                "contracts",
            )

    async def test_cannot_cancel_once_executing(self, coordinator, make_car, make_lease):
        _, rider_car = await rented_car(coordinator, make_car, make_lease, "REL00015", "ML-815")
        rider_car_id = rider_car.id
        release = await coordinator.initiate_release(
            ReleaseCreate(car_number="REL00015", release_type=ReleaseType.VOLUNTARY_RETURN), "contracts"
        )
        release_id = release.id
        await coordinator.approve_release(release_id, "fleet-manager")
        await coordinator.execute_release(release_id, "yard")

        with pytest.raises(InvalidTransition):
            await coordinator.cancel_release(release_id, "Changed our mind", "contracts")

        release = await coordinator.releases.get(release_id)
        assert release.status == ReleaseStatus.EXECUTING
        rider_car = await coordinator.leases.get_rider_car(rider_car_id)
        assert rider_car.status == RiderCarStatus.RELEASING

    async def test_cannot_execute_before_approval(self, coordinator, make_car, make_lease):
        await rented_car(coordinator, make_car, make_lease, "REL00016", "ML-816")
        release = await coordinator.initiate_release(
            ReleaseCreate(car_number="REL00016", release_type=ReleaseType.VOLUNTARY_RETURN), "contracts"
        )

        with pytest.raises(InvalidTransition):
            await coordinator.execute_release(release.id, "yard")

    async def test_unknown_release(self, coordinator):
        with pytest.raises(NotFound):
            await coordinator.approve_release("missing", "fleet-manager")
