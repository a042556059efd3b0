"""
Audit collaborator for lifecycle transitions.

Component services stage a TransitionRecord on the shared TransitionJournal
for every status change they make. When a business event is about to commit,
the coordinator drains the journal into an AuditSink:

    TransitionLogSink  - writes state_transition_log rows in the same
                         transaction, so audit rows exist iff the change does
    LoggingAuditSink   - log-only, for deployments that ship audit elsewhere

The first record of an event is the primary transition; records staged after
it are attached to it as side effects.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.models.assignment import AssignmentStatus, CarAssignment
from railfleet.models.car import Car, ScrapRecord
from railfleet.models.lease import LeaseRider, MasterLease, RiderCar
from railfleet.models.release import CarRelease
from railfleet.models.transition_log import StateTransitionLog

logger = logging.getLogger(__name__)


@dataclass
class TransitionRecord:
    entity_type: str
    entity_id: str
    from_state: Optional[str]
    to_state: str
    actor_id: Optional[str] = None
    reversible: bool = False
    notes: Optional[str] = None
    entity_number: Optional[str] = None
    side_effects: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def as_side_effect(self) -> Dict[str, Any]:
        return {
            "type": self.to_state,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
        }


class TransitionJournal:
    """Per-event buffer of transitions staged by the component services."""

    def __init__(self) -> None:
        self._entries: List[TransitionRecord] = []

    def record(
        self,
        entity_type: str,
        entity_id: str,
        from_state: Optional[str],
        to_state: str,
        actor_id: Optional[str] = None,
        reversible: bool = False,
        notes: Optional[str] = None,
        entity_number: Optional[str] = None,
    ) -> TransitionRecord:
        entry = TransitionRecord(
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=from_state,
            to_state=to_state,
            actor_id=actor_id,
            reversible=reversible,
            notes=notes,
            entity_number=entity_number,
        )
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> Sequence[TransitionRecord]:
        return tuple(self._entries)

    def clear(self) -> None:
        self._entries = []

    def drain(self) -> List[TransitionRecord]:
        entries, self._entries = self._entries, []
        if len(entries) > 1:
            primary = entries[0]
            primary.side_effects = [entry.as_side_effect() for entry in entries[1:]]
        return entries


class AuditSink(Protocol):
    async def record(self, entries: Sequence[TransitionRecord]) -> None:
        ...


class TransitionLogSink:
    """Persist transitions into state_transition_log within the caller's transaction."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(self, entries: Sequence[TransitionRecord]) -> None:
        for entry in entries:
            self.db.add(
                StateTransitionLog(
                    id=entry.id,
                    timestamp=entry.timestamp,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    entity_number=entry.entity_number,
                    from_state=entry.from_state,
                    to_state=entry.to_state,
                    is_reversible=entry.reversible,
                    actor_id=entry.actor_id,
                    side_effects=entry.side_effects or None,
                    notes=entry.notes,
                )
            )


class LoggingAuditSink:
    async def record(self, entries: Sequence[TransitionRecord]) -> None:
        for entry in entries:
            logger.info(
                "[TransitionLog] %s %s (%s): %s -> %s by %s",
                entry.entity_type,
                entry.entity_id,
                entry.entity_number,
                entry.from_state,
                entry.to_state,
                entry.actor_id,
            )


@dataclass
class RevertEligibility:
    allowed: bool
    transition_id: Optional[str] = None
    previous_state: Optional[str] = None
    blockers: List[str] = field(default_factory=list)


# Where the current state of each logged entity lives
ENTITY_STATE_COLUMNS = {
    "car": (Car, "fleet_status"),
    "scrap_record": (ScrapRecord, "status"),
    "master_lease": (MasterLease, "status"),
    "lease_rider": (LeaseRider, "status"),
    "rider_car": (RiderCar, "status"),
    "car_assignment": (CarAssignment, "status"),
    "car_release": (CarRelease, "status"),
}


class TransitionLogService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def history(self, entity_type: str, entity_id: str) -> List[StateTransitionLog]:
        """Full transition history for an entity, oldest first."""
        result = await self.db.execute(
            select(StateTransitionLog)
            .where(
                StateTransitionLog.entity_type == entity_type,
                StateTransitionLog.entity_id == entity_id,
            )
            .order_by(StateTransitionLog.timestamp)
        )
        return list(result.scalars().all())

    async def history_for_car(self, car_number: str, limit: int = 100) -> List[StateTransitionLog]:
        result = await self.db.execute(
            select(StateTransitionLog)
            .where(StateTransitionLog.entity_number == car_number)
            .order_by(StateTransitionLog.timestamp.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def last_transition(self, entity_type: str, entity_id: str) -> Optional[StateTransitionLog]:
        """Most recent status change for an entity that has not been reversed.

        Rows that annotate an entity without moving it (expedite, cost
        updates) are skipped.
        """
        result = await self.db.execute(
            select(StateTransitionLog)
            .where(
                StateTransitionLog.entity_type == entity_type,
                StateTransitionLog.entity_id == entity_id,
                StateTransitionLog.reversed_at.is_(None),
                or_(
                    StateTransitionLog.from_state.is_(None),
                    StateTransitionLog.from_state != StateTransitionLog.to_state,
                ),
            )
            .order_by(StateTransitionLog.timestamp.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def can_revert(self, entity_type: str, entity_id: str) -> RevertEligibility:
        """Check whether the last transition of an entity can be undone.

        It must be flagged reversible, the entity must still be in the state
        that transition left it in, and no cascaded assignment may have moved
        past Planned.
        """
        last = await self.last_transition(entity_type, entity_id)
        if not last:
            return RevertEligibility(allowed=False, blockers=["No transition history found"])

        eligibility = RevertEligibility(allowed=False, transition_id=last.id, previous_state=last.from_state)
        if not last.is_reversible:
            eligibility.blockers.append("This transition is marked as irreversible")
            return eligibility

        current_state = await self._current_state(entity_type, entity_id)
        if current_state is not None and current_state != last.to_state:
            eligibility.blockers.append(
                f'Entity has moved to "{current_state}" since the transition to "{last.to_state}"'
            )

        for effect in last.side_effects or []:
            blocker = await self._side_effect_advanced(effect)
            if blocker:
                eligibility.blockers.append(blocker)

        eligibility.allowed = not eligibility.blockers
        return eligibility

    async def mark_reverted(self, transition_id: str, reversed_by: Optional[str], reversal_transition_id: str) -> None:
        entry = await self.db.get(StateTransitionLog, transition_id)
        entry.reversed_at = datetime.utcnow()
        entry.reversed_by = reversed_by
        entry.reversal_transition_id = reversal_transition_id
        await self.db.flush()

    async def _current_state(self, entity_type: str, entity_id: str) -> Optional[str]:
        lookup = ENTITY_STATE_COLUMNS.get(entity_type)
        if lookup is None:
            return None
        model, column = lookup
        instance = await self.db.get(model, entity_id)
        if instance is None:
            return None
        return getattr(instance, column).value

    async def _side_effect_advanced(self, effect: Dict[str, Any]) -> Optional[str]:
        if effect.get("entity_type") != "car_assignment":
            return None
        assignment = await self.db.get(CarAssignment, effect.get("entity_id"))
        if assignment and assignment.status != AssignmentStatus.PLANNED:
            return (
                f"Side-effect car assignment {assignment.id} has advanced to "
                f'"{assignment.status.value}" and cannot be automatically cleaned up'
            )
        return None
