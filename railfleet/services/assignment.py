"""
Assignment ledger: the single source of truth for shop work.

Every planning path writes into car_assignments. A car has at most one
non-terminal assignment, enforced by the partial unique index
idx_one_active_assignment_per_car and checked under the car row lock.

Status sequence:
    Planned -> Scheduled -> Enroute -> Arrived -> InShop -> Complete
    Cancelled from any non-terminal status

Only assignments sourced from a migration may skip forward in the sequence.
Every UPDATE compares the row version (ORM version_id_col); a caller holding
a stale version gets ConcurrentModification and must re-read.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.core.errors import (
    ConcurrentModification,
    DuplicateActiveAssignment,
    InvalidTransition,
    NotFound,
    PrereqNotMet,
)
from railfleet.models.assignment import AssignmentSource, AssignmentStatus, CarAssignment
from railfleet.schemas.assignment import AssignmentCreate
from railfleet.services.state_machines import ensure_transition
from railfleet.services.transition_log import TransitionJournal, TransitionRecord

logger = logging.getLogger(__name__)

ENTITY_TYPE = "car_assignment"

ACTIVE_ASSIGNMENT_STATUSES = (
    AssignmentStatus.PLANNED,
    AssignmentStatus.SCHEDULED,
    AssignmentStatus.ENROUTE,
    AssignmentStatus.ARRIVED,
    AssignmentStatus.IN_SHOP,
)

STATUS_TIMESTAMPS = {
    AssignmentStatus.PLANNED: "planned_at",
    AssignmentStatus.SCHEDULED: "scheduled_at",
    AssignmentStatus.ENROUTE: "enroute_at",
    AssignmentStatus.ARRIVED: "arrived_at",
    AssignmentStatus.IN_SHOP: "in_shop_at",
    AssignmentStatus.COMPLETE: "completed_at",
    AssignmentStatus.CANCELLED: "cancelled_at",
}

# Steps that can be undone while the car has not moved
REVERSIBLE_TRANSITIONS = frozenset({
    (AssignmentStatus.PLANNED, AssignmentStatus.SCHEDULED),
})

PRIORITY_CRITICAL = 1
PRIORITY_HIGH = 2
PRIORITY_MEDIUM = 3
PRIORITY_ROUTINE = 4

QUALIFICATION_HIGH_DAYS = 30
QUALIFICATION_MEDIUM_DAYS = 90


def priority_for(
    source: AssignmentSource,
    is_safety: bool = False,
    qualification_due_date: Optional[date] = None,
    today: Optional[date] = None,
) -> int:
    """Priority from the triggering reason: 1 = critical ... 4 = routine."""
    if source == AssignmentSource.BAD_ORDER or is_safety:
        return PRIORITY_CRITICAL
    if qualification_due_date is not None:
        days_until_due = (qualification_due_date - (today or date.today())).days
        if days_until_due <= QUALIFICATION_HIGH_DAYS:
            return PRIORITY_HIGH
        if days_until_due <= QUALIFICATION_MEDIUM_DAYS:
            return PRIORITY_MEDIUM
    return PRIORITY_ROUTINE


class AssignmentService:
    def __init__(self, db: AsyncSession, journal: Optional[TransitionJournal] = None) -> None:
        self.db = db
        self.journal = journal or TransitionJournal()

    async def get(self, assignment_id: str, for_update: bool = False) -> CarAssignment:
        query = select(CarAssignment).where(CarAssignment.id == assignment_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        assignment = result.scalar_one_or_none()
        if not assignment:
            raise NotFound(f"Assignment {assignment_id} not found", {"assignment_id": assignment_id})
        return assignment

    async def get_active_for_car(self, car_number: str) -> Optional[CarAssignment]:
        result = await self.db.execute(
            select(CarAssignment).where(
                CarAssignment.car_number == car_number,
                CarAssignment.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def list_for_car(self, car_number: str) -> List[CarAssignment]:
        result = await self.db.execute(
            select(CarAssignment)
            .where(CarAssignment.car_number == car_number)
            .order_by(CarAssignment.created_at.desc())
        )
        return list(result.scalars().all())

    async def create(
        self,
        payload: AssignmentCreate,
        actor_id: Optional[str] = None,
        estimated_cost: Optional[Decimal] = None,
    ) -> CarAssignment:
        """Insert a Planned assignment. The caller holds the car row lock."""
        active = await self.get_active_for_car(payload.car_number)
        if active:
            raise DuplicateActiveAssignment(
                f"Car {payload.car_number} already has an active assignment",
                {
                    "car_number": payload.car_number,
                    "assignment_id": active.id,
                    "status": active.status.value,
                    "shop_code": active.shop_code,
                },
            )

        now = datetime.utcnow()
        assignment = CarAssignment(
            id=str(uuid.uuid4()),
            car_number=payload.car_number,
            shop_code=payload.shop_code,
            shop_name=payload.shop_name,
            target_month=payload.target_month,
            target_date=payload.target_date,
            status=AssignmentStatus.PLANNED,
            planned_at=now,
            priority=priority_for(payload.source, payload.is_safety, payload.qualification_due_date),
            is_expedited=False,
            estimated_cost=payload.estimated_cost if payload.estimated_cost is not None else estimated_cost,
            source=payload.source,
            source_reference_id=payload.source_reference_id,
            source_reference_type=payload.source_reference_type,
            original_shop_code=payload.shop_code,
            created_by=actor_id,
            updated_by=actor_id,
        )
        self.db.add(assignment)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateActiveAssignment(
                f"Car {payload.car_number} already has an active assignment",
                {"car_number": payload.car_number},
            ) from exc

        self.journal.record(ENTITY_TYPE, assignment.id, None, assignment.status.value,
                            actor_id=actor_id, entity_number=assignment.car_number,
                            notes=f"source={assignment.source.value} shop={assignment.shop_code}")
        return assignment

    async def advance_status(
        self,
        assignment_id: str,
        new_status: AssignmentStatus,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        if new_status == AssignmentStatus.CANCELLED:
            return await self.cancel(assignment_id, None, actor_id, expected_version)

        assignment = await self.get(assignment_id, for_update=True)
        self._check_version(assignment, expected_version)

        skip_forward = assignment.source == AssignmentSource.MIGRATION
        ensure_transition(ENTITY_TYPE, assignment.status, new_status, skip_forward=skip_forward)

        from_status = assignment.status
        assignment.status = new_status
        setattr(assignment, STATUS_TIMESTAMPS[new_status], datetime.utcnow())
        assignment.updated_by = actor_id
        await self.db.flush()

        self.journal.record(
            ENTITY_TYPE,
            assignment.id,
            from_status.value,
            new_status.value,
            actor_id=actor_id,
            reversible=(from_status, new_status) in REVERSIBLE_TRANSITIONS,
            entity_number=assignment.car_number,
        )
        return assignment

    async def revert(
        self,
        assignment_id: str,
        to_status: AssignmentStatus,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Tuple[CarAssignment, TransitionRecord]:
        """Step back to ``to_status``; the journal record is returned for linking."""
        assignment = await self.get(assignment_id, for_update=True)
        self._check_version(assignment, expected_version)
        from_status = assignment.status
        if (to_status, from_status) not in REVERSIBLE_TRANSITIONS:
            raise InvalidTransition(ENTITY_TYPE, from_status.value, to_status.value)

        assignment.status = to_status
        setattr(assignment, STATUS_TIMESTAMPS[from_status], None)
        assignment.updated_by = actor_id
        await self.db.flush()

        record = self.journal.record(ENTITY_TYPE, assignment.id, from_status.value, to_status.value,
                                     actor_id=actor_id, entity_number=assignment.car_number,
                                     notes=notes or "reverted")
        return assignment, record

    async def cancel(
        self,
        assignment_id: str,
        reason: Optional[str],
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        assignment = await self.get(assignment_id, for_update=True)
        self._check_version(assignment, expected_version)
        ensure_transition(ENTITY_TYPE, assignment.status, AssignmentStatus.CANCELLED)

        from_state = assignment.status.value
        assignment.status = AssignmentStatus.CANCELLED
        assignment.cancelled_at = datetime.utcnow()
        assignment.cancelled_by = actor_id
        assignment.cancellation_reason = reason
        assignment.updated_by = actor_id
        await self.db.flush()

        self.journal.record(ENTITY_TYPE, assignment.id, from_state, AssignmentStatus.CANCELLED.value,
                            actor_id=actor_id, entity_number=assignment.car_number, notes=reason)
        return assignment

    async def expedite(
        self,
        assignment_id: str,
        reason: str,
        actor_id: Optional[str] = None,
        priority: int = PRIORITY_CRITICAL,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        """Pull an assignment forward. Priority can only be tightened."""
        assignment = await self.get(assignment_id, for_update=True)
        self._check_version(assignment, expected_version)
        if assignment.is_terminal:
            raise InvalidTransition(
                ENTITY_TYPE,
                assignment.status.value,
                "expedited",
                f"Assignment {assignment.id} is {assignment.status.value} and cannot be expedited",
            )
        if priority > assignment.priority:
            raise PrereqNotMet(
                f"Expedite cannot loosen priority {assignment.priority} to {priority}",
                {"assignment_id": assignment.id, "priority": assignment.priority, "requested": priority},
            )

        now = datetime.utcnow()
        current_month = now.strftime("%Y-%m")
        if assignment.original_target_month is None:
            assignment.original_target_month = assignment.target_month
        assignment.target_month = current_month
        assignment.priority = priority
        assignment.is_expedited = True
        assignment.expedite_reason = reason
        assignment.expedited_at = now
        assignment.expedited_by = actor_id
        assignment.updated_by = actor_id
        await self.db.flush()

        self.journal.record(ENTITY_TYPE, assignment.id, assignment.status.value, assignment.status.value,
                            actor_id=actor_id, entity_number=assignment.car_number,
                            notes=f"expedited: {reason}")
        return assignment

    async def record_costs(
        self,
        assignment_id: str,
        estimated_cost: Optional[Decimal] = None,
        actual_cost: Optional[Decimal] = None,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        """Set either cost figure. cost_variance is derived on read."""
        assignment = await self.get(assignment_id, for_update=True)
        self._check_version(assignment, expected_version)
        if estimated_cost is None and actual_cost is None:
            return assignment

        if estimated_cost is not None:
            assignment.estimated_cost = estimated_cost
        if actual_cost is not None:
            assignment.actual_cost = actual_cost
        assignment.updated_by = actor_id
        await self.db.flush()

        self.journal.record(ENTITY_TYPE, assignment.id, assignment.status.value, assignment.status.value,
                            actor_id=actor_id, entity_number=assignment.car_number,
                            notes=f"costs: estimated={assignment.estimated_cost} actual={assignment.actual_cost}")
        return assignment

    @staticmethod
    def _check_version(assignment: CarAssignment, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != assignment.version:
            raise ConcurrentModification(
                f"Assignment {assignment.id} was modified by another request",
                {
                    "assignment_id": assignment.id,
                    "expected_version": expected_version,
                    "current_version": assignment.version,
                },
            )
