"""Tests for the triage queue: one open entry per car, resolved with a reference."""

import pytest

from railfleet.core.errors import DuplicateActiveEntry, InvalidTransition, NotFound, PrereqNotMet
from railfleet.models.triage import TriageReason, TriageResolution
from railfleet.services.triage import DEFAULT_PRIORITY

from conftest import assignment_payload


class TestEnqueue:
    async def test_one_open_entry_per_car(self, coordinator, make_car):
        await make_car("TRI00001")
        entry = await coordinator.enqueue_triage("TRI00001", TriageReason.BAD_ORDER, "inspector")
        entry_id = entry.id
        assert entry.priority == 1

        with pytest.raises(DuplicateActiveEntry) as exc_info:
            await coordinator.enqueue_triage("TRI00001", TriageReason.MANUAL, "planner")
        assert exc_info.value.details["triage_entry_id"] == entry_id

        assignment = await coordinator.create_assignment(
            assignment_payload("TRI00001", triage_entry_id=entry_id), "planner"
        )
        entry = await coordinator.triage.get(entry_id)
        assert entry.resolution == TriageResolution.ASSIGNED_TO_SHOP
        assert entry.resolution_reference_id == assignment.id

        again = await coordinator.enqueue_triage("TRI00001", TriageReason.MANUAL, "planner")
        assert again.id != entry_id

    @pytest.mark.parametrize("reason", list(TriageReason))
    def test_every_reason_has_a_default_priority(self, reason):
        assert 1 <= DEFAULT_PRIORITY[reason] <= 4

    async def test_explicit_priority_overrides_default(self, coordinator, make_car):
        await make_car("TRI00002")
        entry = await coordinator.enqueue_triage("TRI00002", TriageReason.MANUAL, "planner", priority=1)
        assert entry.priority == 1

    async def test_unknown_car(self, coordinator):
        with pytest.raises(NotFound):
            await coordinator.enqueue_triage("NOPE0002", TriageReason.MANUAL, "planner")

    async def test_open_queue_ordering(self, coordinator, make_car):
        for car_number in ("TRI00003", "TRI00004", "TRI00005"):
            await make_car(car_number)
        await coordinator.enqueue_triage("TRI00003", TriageReason.MARKET_CONDITIONS, "planner")
        await coordinator.enqueue_triage("TRI00004", TriageReason.BAD_ORDER, "inspector")
        await coordinator.enqueue_triage("TRI00005", TriageReason.LEASE_EXPIRED, "contracts")

        entries = await coordinator.triage.list_open()

        assert [e.car_number for e in entries] == ["TRI00004", "TRI00005", "TRI00003"]


class TestResolve:
    async def test_shop_resolution_needs_reference(self, coordinator, make_car):
        await make_car("TRI00101")
        entry = await coordinator.enqueue_triage("TRI00101", TriageReason.MANUAL, "planner")
        entry_id = entry.id
        with pytest.raises(PrereqNotMet):
            await coordinator.resolve_triage(entry_id, TriageResolution.ASSIGNED_TO_SHOP, "planner")
        assert await coordinator.triage.get_active_for_car("TRI00101") is not None

    async def test_reference_must_exist(self, coordinator, make_car):
        await make_car("TRI00102")
        entry = await coordinator.enqueue_triage("TRI00102", TriageReason.MANUAL, "planner")
        entry_id = entry.id
        with pytest.raises(NotFound):
            await coordinator.resolve_triage(
                entry_id, TriageResolution.ASSIGNED_TO_CUSTOMER, "planner", resolution_reference_id="missing"
            )

    async def test_reference_must_match_car(self, coordinator, make_car):
        await make_car("TRI00103")
        await make_car("TRI00104")
        other = await coordinator.create_assignment(assignment_payload("TRI00104"), "planner")
        other_id = other.id
        entry = await coordinator.enqueue_triage("TRI00103", TriageReason.MANUAL, "planner")
        entry_id = entry.id
        with pytest.raises(PrereqNotMet):
            await coordinator.resolve_triage(
                entry_id, TriageResolution.ASSIGNED_TO_SHOP, "planner", resolution_reference_id=other_id
            )

    async def test_resolve_with_existing_assignment(self, coordinator, make_car):
        await make_car("TRI00105")
        assignment = await coordinator.create_assignment(assignment_payload("TRI00105"), "planner")
        entry = await coordinator.enqueue_triage("TRI00105", TriageReason.QUALIFICATION_DUE, "planner")

        entry = await coordinator.resolve_triage(
            entry.id,
            TriageResolution.ASSIGNED_TO_SHOP,
            "planner",
            resolution_reference_id=assignment.id,
            notes="Already planned",
        )

        assert entry.resolved_by == "planner"
        assert entry.resolved_at is not None
        assert "Already planned" in entry.notes

    async def test_dismiss_without_reference(self, coordinator, make_car):
        await make_car("TRI00106")
        entry = await coordinator.enqueue_triage("TRI00106", TriageReason.MARKET_CONDITIONS, "planner")
        entry = await coordinator.resolve_triage(entry.id, TriageResolution.DISMISSED, "planner")
        assert entry.resolution == TriageResolution.DISMISSED
        assert await coordinator.triage.get_active_for_car("TRI00106") is None

    async def test_cannot_resolve_twice(self, coordinator, make_car):
        await make_car("TRI00107")
        entry = await coordinator.enqueue_triage("TRI00107", TriageReason.MANUAL, "planner")
        entry_id = entry.id
        await coordinator.resolve_triage(entry_id, TriageResolution.RELEASED_TO_IDLE, "planner")
        with pytest.raises(InvalidTransition):
            await coordinator.resolve_triage(entry_id, TriageResolution.DISMISSED, "planner")
