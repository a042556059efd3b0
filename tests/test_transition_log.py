"""Tests for the transition audit trail written alongside every business event."""

import logging
from decimal import Decimal

import pytest

from railfleet.core.errors import DuplicateActiveAssignment, NotFound
from railfleet.models.assignment import AssignmentStatus
from railfleet.models.idle import IdleReason
from railfleet.models.triage import TriageReason
from railfleet.schemas.car import CarCreate
from railfleet.services.coordinator import TransitionCoordinator
from railfleet.services.transition_log import (
    LoggingAuditSink,
    TransitionJournal,
    TransitionLogService,
    TransitionLogSink,
)

from conftest import assignment_payload


class TestTransitionJournal:
    def test_drain_attaches_side_effects_to_first_record(self):
        journal = TransitionJournal()
        journal.record("car_assignment", "a-1", None, "Planned", actor_id="planner", entity_number="CAR1")
        journal.record("idle_period", "i-1", "open", "closed", entity_number="CAR1")
        journal.record("triage_queue", "t-1", "open", "assigned_to_shop", entity_number="CAR1")

        entries = journal.drain()

        assert [e.entity_type for e in entries] == ["car_assignment", "idle_period", "triage_queue"]
        assert entries[0].side_effects == [
            {"type": "closed", "entity_type": "idle_period", "entity_id": "i-1"},
            {"type": "assigned_to_shop", "entity_type": "triage_queue", "entity_id": "t-1"},
        ]
        assert journal.entries == ()

    def test_single_record_has_no_side_effects(self):
        journal = TransitionJournal()
        journal.record("car", "c-1", "onboarding", "in_fleet")
        assert journal.drain()[0].side_effects == []


class TestTransitionLogRows:
    @pytest.fixture
    def log_service(self, db):
        return TransitionLogService(db)

    async def test_event_with_cascade_writes_one_row_per_transition(self, coordinator, make_car, log_service):
        await make_car("AUD00001")
        await coordinator.open_idle_period("AUD00001", IdleReason.AWAITING_TRIAGE, "yard")
        await coordinator.enqueue_triage("AUD00001", TriageReason.BAD_ORDER, "inspector")

        assignment = await coordinator.create_assignment(assignment_payload("AUD00001"), "planner")

        rows = await log_service.history("car_assignment", assignment.id)
        assert len(rows) == 1
        row = rows[0]
        assert row.from_state is None
        assert row.to_state == "Planned"
        assert row.actor_id == "planner"
        assert row.entity_number == "AUD00001"
        assert [effect["entity_type"] for effect in row.side_effects] == ["idle_period", "triage_queue"]
        assert [effect["type"] for effect in row.side_effects] == ["closed", "assigned_to_shop"]

    async def test_history_is_oldest_first(self, coordinator, make_car, log_service):
        await make_car("AUD00002")
        assignment = await coordinator.create_assignment(assignment_payload("AUD00002"), "planner")
        await coordinator.advance_assignment(assignment.id, AssignmentStatus.SCHEDULED, "planner")
        await coordinator.advance_assignment(assignment.id, AssignmentStatus.ENROUTE, "shop-desk")

        rows = await log_service.history("car_assignment", assignment.id)

        assert [(r.from_state, r.to_state) for r in rows] == [
            (None, "Planned"),
            ("Planned", "Scheduled"),
            ("Scheduled", "Enroute"),
        ]
        assert [r.is_reversible for r in rows] == [False, True, False]

    async def test_failed_event_leaves_no_rows(self, coordinator, make_car, log_service):
        await make_car("AUD00003")
        await coordinator.create_assignment(assignment_payload("AUD00003"), "planner")
        before = len(await log_service.history_for_car("AUD00003"))

        with pytest.raises(DuplicateActiveAssignment):
            await coordinator.create_assignment(assignment_payload("AUD00003"), "planner")

        assert len(await log_service.history_for_car("AUD00003")) == before

    async def test_history_for_car_is_newest_first(self, coordinator, make_car, log_service):
        await make_car("AUD00004")
        await coordinator.set_ready_to_load("AUD00004", "yard-lead")
        await coordinator.enqueue_triage("AUD00004", TriageReason.MANUAL, "planner")

        rows = await log_service.history_for_car("AUD00004")
        assert [r.entity_type for r in rows] == ["triage_queue", "car", "car"]
        assert rows[1].notes == "ready_to_load=true"
        assert rows[1].actor_id == "yard-lead"

        rows = await log_service.history_for_car("AUD00004", limit=1)
        assert len(rows) == 1


    async def test_cost_update_is_logged(self, coordinator, make_car, log_service):
        await make_car("AUD00006")
        assignment = await coordinator.create_assignment(assignment_payload("AUD00006"), "planner")
        await coordinator.record_assignment_costs(assignment.id, actual_cost=Decimal("640.00"), actor_id="billing")

        rows = await log_service.history("car_assignment", assignment.id)

        assert len(rows) == 2
        assert (rows[1].from_state, rows[1].to_state) == ("Planned", "Planned")
        assert rows[1].actor_id == "billing"
        assert "actual=640.00" in rows[1].notes


class FailingAuditSink:
    async def record(self, entries):
        raise RuntimeError("audit store unavailable")


class TestEventRollback:
    async def test_unexpected_error_rolls_back(self, db, settings):
        coordinator = TransitionCoordinator(db, settings=settings, audit_sink=FailingAuditSink())

        with pytest.raises(RuntimeError):
            await coordinator.register_car(CarCreate(car_number="AUD00007"), "intake")

        assert coordinator.journal.entries == ()
        with pytest.raises(NotFound):
            await coordinator.cars.get_car("AUD00007")

        # The session is clean and usable for the next event
        coordinator.audit_sink = TransitionLogSink(db)
        car = await coordinator.register_car(CarCreate(car_number="AUD00007"), "intake")
        assert car.car_number == "AUD00007"


class TestLoggingAuditSink:
    async def test_logs_instead_of_writing_rows(self, db, settings, caplog):
        coordinator = TransitionCoordinator(db, settings=settings, audit_sink=LoggingAuditSink())

        with caplog.at_level(logging.INFO, logger="railfleet.services.transition_log"):
            car = await coordinator.register_car(
                CarCreate(car_number="AUD00005"), "intake"
            )

        assert any("AUD00005" in message and "onboarding" in message for message in caplog.messages)
        rows = await TransitionLogService(db).history("car", car.id)
        assert rows == []
