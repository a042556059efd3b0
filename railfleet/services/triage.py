from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.core.errors import DuplicateActiveEntry, InvalidTransition, NotFound, PrereqNotMet
from railfleet.models.assignment import CarAssignment
from railfleet.models.car import ScrapRecord
from railfleet.models.lease import RiderCar
from railfleet.models.triage import TriageEntry, TriageReason, TriageResolution
from railfleet.services.transition_log import TransitionJournal

logger = logging.getLogger(__name__)

ENTITY_TYPE = "triage_queue"
OPEN_STATE = "open"

DEFAULT_PRIORITY: Dict[TriageReason, int] = {
    TriageReason.BAD_ORDER: 1,
    TriageReason.LEASE_EXPIRED: 2,
    TriageReason.QUALIFICATION_DUE: 2,
    TriageReason.LEASE_EXPIRING: 3,
    TriageReason.SCRAP_CANCELLED: 3,
    TriageReason.CUSTOMER_RETURN: 3,
    TriageReason.MANUAL: 3,
    TriageReason.MARKET_CONDITIONS: 3,
}

# Resolutions that must point at the record that consumed the entry
REFERENCE_MODELS = {
    TriageResolution.ASSIGNED_TO_SHOP: CarAssignment,
    TriageResolution.ASSIGNED_TO_CUSTOMER: RiderCar,
    TriageResolution.SCRAP_PROPOSED: ScrapRecord,
}
REQUIRED_REFERENCE = (TriageResolution.ASSIGNED_TO_SHOP, TriageResolution.ASSIGNED_TO_CUSTOMER)


class TriageService:
    """Cars waiting on a planner decision. At most one open entry per car."""

    def __init__(self, db: AsyncSession, journal: Optional[TransitionJournal] = None) -> None:
        self.db = db
        self.journal = journal or TransitionJournal()

    async def get(self, entry_id: str, for_update: bool = False) -> TriageEntry:
        query = select(TriageEntry).where(TriageEntry.id == entry_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFound(f"Triage entry {entry_id} not found", {"triage_entry_id": entry_id})
        return entry

    async def get_active_for_car(self, car_number: str) -> Optional[TriageEntry]:
        result = await self.db.execute(
            select(TriageEntry).where(
                TriageEntry.car_number == car_number,
                TriageEntry.resolved_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def list_open(self, limit: int = 100) -> List[TriageEntry]:
        """Open entries, most urgent first, then oldest first."""
        result = await self.db.execute(
            select(TriageEntry)
            .where(TriageEntry.resolved_at.is_(None))
            .order_by(TriageEntry.priority, TriageEntry.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def enqueue(
        self,
        car_number: str,
        reason: TriageReason,
        actor_id: Optional[str] = None,
        source_reference_id: Optional[str] = None,
        priority: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TriageEntry:
        # Reasons do not stack: a second finding for a queued car is rejected
        active = await self.get_active_for_car(car_number)
        if active:
            raise DuplicateActiveEntry(
                f"Car {car_number} is already in triage ({active.reason.value})",
                {"car_number": car_number, "triage_entry_id": active.id, "reason": active.reason.value},
            )

        entry = TriageEntry(
            id=str(uuid.uuid4()),
            car_number=car_number,
            reason=reason,
            source_reference_id=source_reference_id,
            priority=priority if priority is not None else DEFAULT_PRIORITY[reason],
            notes=notes,
            created_by=actor_id,
        )
        self.db.add(entry)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateActiveEntry(
                f"Car {car_number} is already in triage",
                {"car_number": car_number},
            ) from exc

        self.journal.record(ENTITY_TYPE, entry.id, None, OPEN_STATE, actor_id=actor_id,
                            entity_number=car_number, notes=reason.value)
        return entry

    async def enqueue_if_absent(
        self,
        car_number: str,
        reason: TriageReason,
        actor_id: Optional[str] = None,
        source_reference_id: Optional[str] = None,
    ) -> Optional[TriageEntry]:
        """Cascade helper: queue the car unless an entry is already open."""
        if await self.get_active_for_car(car_number):
            return None
        return await self.enqueue(car_number, reason, actor_id, source_reference_id=source_reference_id)

    async def resolve(
        self,
        entry_id: str,
        resolution: TriageResolution,
        actor_id: Optional[str] = None,
        resolution_reference_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TriageEntry:
        entry = await self.get(entry_id, for_update=True)
        if entry.resolved_at is not None:
            raise InvalidTransition(
                ENTITY_TYPE,
                entry.resolution.value if entry.resolution else "resolved",
                resolution.value,
                f"Triage entry {entry.id} is already resolved",
            )

        await self._validate_reference(entry, resolution, resolution_reference_id)

        entry.resolved_at = datetime.utcnow()
        entry.resolution = resolution
        entry.resolution_reference_id = resolution_reference_id
        entry.resolved_by = actor_id
        if notes:
            entry.notes = f"{entry.notes}\n{notes}" if entry.notes else notes
        await self.db.flush()

        self.journal.record(ENTITY_TYPE, entry.id, OPEN_STATE, resolution.value, actor_id=actor_id,
                            entity_number=entry.car_number, notes=resolution_reference_id)
        return entry

    async def resolve_open_for_car(
        self,
        car_number: str,
        resolution: TriageResolution,
        actor_id: Optional[str] = None,
        resolution_reference_id: Optional[str] = None,
    ) -> Optional[TriageEntry]:
        entry = await self.get_active_for_car(car_number)
        if not entry:
            return None
        return await self.resolve(entry.id, resolution, actor_id, resolution_reference_id)

    async def _validate_reference(
        self,
        entry: TriageEntry,
        resolution: TriageResolution,
        reference_id: Optional[str],
    ) -> None:
        if not reference_id:
            if resolution in REQUIRED_REFERENCE:
                raise PrereqNotMet(
                    f"Resolution {resolution.value} requires a reference to the created record",
                    {"triage_entry_id": entry.id, "resolution": resolution.value},
                )
            return

        model = REFERENCE_MODELS.get(resolution)
        if model is None:
            return

        referenced = await self.db.get(model, reference_id)
        if not referenced:
            raise NotFound(
                f"{model.__tablename__} {reference_id} not found",
                {"resolution": resolution.value, "resolution_reference_id": reference_id},
            )
        if referenced.car_number != entry.car_number:
            raise PrereqNotMet(
                f"{model.__tablename__} {reference_id} belongs to car {referenced.car_number}, "
                f"not {entry.car_number}",
                {"resolution_reference_id": reference_id, "car_number": entry.car_number},
            )
