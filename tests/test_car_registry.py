"""
Tests for the car registry and the disposal workflow.

Disposal is the only way out of the fleet:
1. A scrap record is proposed for a car sitting in triage or idle
2. The record walks proposed -> ... -> completed
3. dispose_car marks the car disposed, closing idle time and clearing triage
"""

import pytest

from railfleet.core.errors import (
    DuplicateActiveScrap,
    DuplicateKey,
    InvalidTransition,
    NotFound,
    PrereqNotMet,
)
from railfleet.models.assignment import AssignmentSource
from railfleet.models.car import FleetStatus, ScrapStatus
from railfleet.models.idle import IdleReason
from railfleet.models.triage import TriageReason, TriageResolution
from railfleet.schemas.car import CarCreate, ScrapCreate

from conftest import assignment_payload

SCRAP_PATH = (
    ScrapStatus.UNDER_REVIEW,
    ScrapStatus.APPROVED,
    ScrapStatus.SCHEDULED,
    ScrapStatus.IN_PROGRESS,
    ScrapStatus.COMPLETED,
)


async def complete_scrap(coordinator, car_number):
    """Queue the car, propose scrap and walk the record to completed. Returns the scrap id."""
    await coordinator.enqueue_triage(car_number, TriageReason.MANUAL, "planner")
    scrap = await coordinator.propose_scrap(car_number, ScrapCreate(reason="Heavy corrosion"), "planner")
    for status in SCRAP_PATH:
        scrap = await coordinator.advance_scrap(scrap.id, status, "scrap-desk")
    return scrap.id


class TestRegistration:
    async def test_register_defaults_to_onboarding(self, coordinator):
        car = await coordinator.register_car(CarCreate(car_number="GATX1001"), "intake")
        assert car.fleet_status == FleetStatus.ONBOARDING
        assert car.ready_to_load is False

    async def test_duplicate_car_number(self, coordinator, make_car):
        await make_car("GATX1002")
        with pytest.raises(DuplicateKey):
            await make_car("GATX1002")

    async def test_cannot_register_disposed(self, coordinator):
        with pytest.raises(InvalidTransition):
            await coordinator.register_car(
                CarCreate(car_number="GATX1003", fleet_status=FleetStatus.DISPOSED), "intake"
            )

    async def test_activate(self, coordinator, make_car):
        await make_car("GATX1004", fleet_status=FleetStatus.ONBOARDING)
        car = await coordinator.activate_car("GATX1004", "intake")
        assert car.fleet_status == FleetStatus.IN_FLEET

    async def test_activate_twice_is_invalid(self, coordinator, make_car):
        await make_car("GATX1005")
        with pytest.raises(InvalidTransition):
            await coordinator.activate_car("GATX1005", "intake")

    async def test_unknown_car(self, coordinator):
        with pytest.raises(NotFound):
            await coordinator.activate_car("NOPE0001", "intake")


class TestReadyToLoad:
    async def test_stamps_actor(self, coordinator, make_car):
        await make_car("UTLX2001")
        car = await coordinator.set_ready_to_load("UTLX2001", "yard-lead")
        assert car.ready_to_load is True
        assert car.ready_to_load_by == "yard-lead"
        assert car.ready_to_load_at is not None

    async def test_clear_flag(self, coordinator, make_car):
        await make_car("UTLX2002")
        await coordinator.set_ready_to_load("UTLX2002", "yard-lead")
        car = await coordinator.set_ready_to_load("UTLX2002", "yard-lead", ready=False)
        assert car.ready_to_load is False


class TestScrapWorkflow:
    async def test_propose_requires_triage_or_idle(self, coordinator, make_car):
        await make_car("TILX3001")
        with pytest.raises(PrereqNotMet):
            await coordinator.propose_scrap("TILX3001", ScrapCreate(reason="Worn out"), "planner")

    async def test_propose_resolves_open_triage(self, coordinator, make_car):
        await make_car("TILX3002")
        entry = await coordinator.enqueue_triage("TILX3002", TriageReason.BAD_ORDER, "inspector")
        entry_id = entry.id

        scrap = await coordinator.propose_scrap("TILX3002", ScrapCreate(reason="Frame damage"), "planner")

        entry = await coordinator.triage.get(entry_id)
        assert entry.resolution == TriageResolution.SCRAP_PROPOSED
        assert entry.resolution_reference_id == scrap.id
        assert await coordinator.triage.get_active_for_car("TILX3002") is None

    async def test_propose_from_idle(self, coordinator, make_car):
        await make_car("TILX3003")
        await coordinator.open_idle_period("TILX3003", IdleReason.MARKET_CONDITIONS, "planner")
        scrap = await coordinator.propose_scrap("TILX3003", ScrapCreate(reason="Surplus"), "planner")
        assert scrap.status == ScrapStatus.PROPOSED
        assert scrap.proposed_by == "planner"

    async def test_propose_blocked_by_active_assignment(self, coordinator, make_car):
        await make_car("TILX3004")
        await coordinator.create_assignment(assignment_payload("TILX3004"), "planner")
        await coordinator.enqueue_triage("TILX3004", TriageReason.MANUAL, "planner")
        with pytest.raises(PrereqNotMet):
            await coordinator.propose_scrap("TILX3004", ScrapCreate(reason="Worn out"), "planner")

    async def test_one_active_scrap_per_car(self, coordinator, make_car):
        await make_car("TILX3005")
        await coordinator.open_idle_period("TILX3005", IdleReason.HOLD, "planner")
        await coordinator.propose_scrap("TILX3005", ScrapCreate(reason="First"), "planner")
        with pytest.raises(DuplicateActiveScrap):
            await coordinator.propose_scrap("TILX3005", ScrapCreate(reason="Second"), "planner")

    async def test_cannot_skip_review(self, coordinator, make_car):
        await make_car("TILX3006")
        await coordinator.open_idle_period("TILX3006", IdleReason.HOLD, "planner")
        scrap = await coordinator.propose_scrap("TILX3006", ScrapCreate(reason="Worn out"), "planner")
        scrap_id = scrap.id
        with pytest.raises(InvalidTransition):
            await coordinator.advance_scrap(scrap_id, ScrapStatus.COMPLETED, "scrap-desk")

    async def test_completion_records_salvage(self, coordinator, make_car):
        await make_car("TILX3007")
        await coordinator.open_idle_period("TILX3007", IdleReason.HOLD, "planner")
        scrap = await coordinator.propose_scrap("TILX3007", ScrapCreate(reason="Worn out"), "planner")
        for status in SCRAP_PATH[:-1]:
            scrap = await coordinator.advance_scrap(scrap.id, status, "scrap-desk")
        scrap = await coordinator.advance_scrap(
            scrap.id, ScrapStatus.COMPLETED, "scrap-desk", actual_salvage_value=8200
        )
        assert scrap.status == ScrapStatus.COMPLETED
        assert scrap.completed_by == "scrap-desk"
        assert scrap.actual_salvage_value == 8200

    async def test_cancel_requeues_for_triage(self, coordinator, make_car):
        await make_car("TILX3008")
        await coordinator.enqueue_triage("TILX3008", TriageReason.MANUAL, "planner")
        scrap = await coordinator.propose_scrap("TILX3008", ScrapCreate(reason="Worn out"), "planner")

        scrap = await coordinator.cancel_scrap(scrap.id, "Customer wants it", "planner")

        assert scrap.status == ScrapStatus.CANCELLED
        assert scrap.cancellation_reason == "Customer wants it"
        entry = await coordinator.triage.get_active_for_car("TILX3008")
        assert entry.reason == TriageReason.SCRAP_CANCELLED
        assert entry.source_reference_id == scrap.id

    async def test_completed_scrap_does_not_dispose(self, coordinator, make_car):
        await make_car("TILX3009")
        await complete_scrap(coordinator, "TILX3009")
        car = await coordinator.cars.get_car("TILX3009")
        assert car.fleet_status == FleetStatus.IN_FLEET


class TestDisposal:
    async def test_dispose_without_scrap_fails(self, coordinator, make_car):
        await make_car("DISP0001")
        with pytest.raises(PrereqNotMet):
            await coordinator.dispose_car("DISP0001", "no-such-scrap", "controller")
        car = await coordinator.cars.get_car("DISP0001")
        assert car.fleet_status == FleetStatus.IN_FLEET

    async def test_dispose_with_unfinished_scrap_fails(self, coordinator, make_car):
        await make_car("DISP0002")
        await coordinator.open_idle_period("DISP0002", IdleReason.HOLD, "planner")
        scrap = await coordinator.propose_scrap("DISP0002", ScrapCreate(reason="Worn out"), "planner")
        scrap_id = scrap.id
        with pytest.raises(PrereqNotMet):
            await coordinator.dispose_car("DISP0002", scrap_id, "controller")

    async def test_scrap_of_another_car_is_rejected(self, coordinator, make_car):
        await make_car("DISP0003")
        await make_car("DISP0004")
        scrap_id = await complete_scrap(coordinator, "DISP0003")
        with pytest.raises(PrereqNotMet):
            await coordinator.dispose_car("DISP0004", scrap_id, "controller")

    async def test_dispose_is_terminal(self, coordinator, make_car):
        await make_car("DISP0005")
        scrap_id = await complete_scrap(coordinator, "DISP0005")

        car = await coordinator.dispose_car("DISP0005", scrap_id, "controller")
        assert car.fleet_status == FleetStatus.DISPOSED
        assert car.disposal_scrap_id == scrap_id
        assert car.disposed_by == "controller"

        with pytest.raises(InvalidTransition):
            await coordinator.dispose_car("DISP0005", scrap_id, "controller")
        with pytest.raises(InvalidTransition):
            await coordinator.activate_car("DISP0005", "intake")

        car = await coordinator.cars.get_car("DISP0005")
        assert car.fleet_status == FleetStatus.DISPOSED

    async def test_dispose_cascades_to_idle_and_triage(self, coordinator, make_car):
        await make_car("DISP0006")
        await coordinator.open_idle_period("DISP0006", IdleReason.AWAITING_TRIAGE, "planner")
        scrap_id = await complete_scrap(coordinator, "DISP0006")
        # Cancelled-then-reproposed cars can be back in triage at disposal time
        await coordinator.enqueue_triage("DISP0006", TriageReason.MANUAL, "planner")

        await coordinator.dispose_car("DISP0006", scrap_id, "controller")

        assert await coordinator.idle.get_open_period("DISP0006") is None
        assert await coordinator.triage.get_active_for_car("DISP0006") is None
        periods = await coordinator.idle.list_periods("DISP0006")
        assert periods[0].end_date is not None

    async def test_disposed_car_rejects_new_work(self, coordinator, make_car):
        await make_car("DISP0007")
        scrap_id = await complete_scrap(coordinator, "DISP0007")
        await coordinator.dispose_car("DISP0007", scrap_id, "controller")

        with pytest.raises(PrereqNotMet):
            await coordinator.create_assignment(assignment_payload("DISP0007"), "planner")
        with pytest.raises(PrereqNotMet):
            await coordinator.enqueue_triage("DISP0007", TriageReason.MANUAL, "planner")
        with pytest.raises(PrereqNotMet):
            await coordinator.open_idle_period("DISP0007", IdleReason.HOLD, "planner")
        with pytest.raises(PrereqNotMet):
            await coordinator.set_ready_to_load("DISP0007", "yard-lead")

    async def test_dispose_blocked_by_active_assignment(self, coordinator, make_car):
        await make_car("DISP0008")
        scrap_id = await complete_scrap(coordinator, "DISP0008")
        await coordinator.create_assignment(
            assignment_payload("DISP0008", AssignmentSource.QUICK_SHOP), "planner"
        )
        with pytest.raises(PrereqNotMet):
            await coordinator.dispose_car("DISP0008", scrap_id, "controller")
        car = await coordinator.cars.get_car("DISP0008")
        assert car.fleet_status == FleetStatus.IN_FLEET
