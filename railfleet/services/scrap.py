from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.core.errors import DuplicateActiveScrap, NotFound
from railfleet.models.car import ScrapRecord, ScrapStatus
from railfleet.schemas.car import ScrapCreate
from railfleet.services.state_machines import ensure_transition
from railfleet.services.transition_log import TransitionJournal

logger = logging.getLogger(__name__)

ENTITY_TYPE = "scrap_record"

ACTIVE_SCRAP_STATUSES = (
    ScrapStatus.PROPOSED,
    ScrapStatus.UNDER_REVIEW,
    ScrapStatus.APPROVED,
    ScrapStatus.SCHEDULED,
    ScrapStatus.IN_PROGRESS,
)


class ScrapService:
    """Disposal workflow records. Completing one does not dispose the car."""

    def __init__(self, db: AsyncSession, journal: Optional[TransitionJournal] = None) -> None:
        self.db = db
        self.journal = journal or TransitionJournal()

    async def get(self, scrap_id: str, for_update: bool = False) -> ScrapRecord:
        query = select(ScrapRecord).where(ScrapRecord.id == scrap_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        scrap = result.scalar_one_or_none()
        if not scrap:
            raise NotFound(f"Scrap record {scrap_id} not found", {"scrap_record_id": scrap_id})
        return scrap

    async def get_active_for_car(self, car_number: str) -> Optional[ScrapRecord]:
        result = await self.db.execute(
            select(ScrapRecord).where(
                ScrapRecord.car_number == car_number,
                ScrapRecord.status.in_(ACTIVE_SCRAP_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def list_for_car(self, car_number: str) -> List[ScrapRecord]:
        result = await self.db.execute(
            select(ScrapRecord)
            .where(ScrapRecord.car_number == car_number)
            .order_by(ScrapRecord.created_at.desc())
        )
        return list(result.scalars().all())

    async def propose(self, car_number: str, payload: ScrapCreate, actor_id: Optional[str] = None) -> ScrapRecord:
        active = await self.get_active_for_car(car_number)
        if active:
            raise DuplicateActiveScrap(
                f"Car {car_number} already has an active scrap record",
                {"car_number": car_number, "scrap_record_id": active.id},
            )

        scrap = ScrapRecord(
            id=str(uuid.uuid4()),
            car_number=car_number,
            status=ScrapStatus.PROPOSED,
            reason=payload.reason,
            estimated_salvage_value=payload.estimated_salvage_value,
            facility_code=payload.facility_code,
            target_date=payload.target_date,
            proposed_by=actor_id,
        )
        self.db.add(scrap)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateActiveScrap(
                f"Car {car_number} already has an active scrap record",
                {"car_number": car_number},
            ) from exc

        self.journal.record(ENTITY_TYPE, scrap.id, None, scrap.status.value,
                            actor_id=actor_id, entity_number=car_number, notes=payload.reason)
        return scrap

    async def advance(
        self,
        scrap_id: str,
        to_status: ScrapStatus,
        actor_id: Optional[str] = None,
        actual_salvage_value: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> ScrapRecord:
        scrap = await self.get(scrap_id, for_update=True)
        ensure_transition(ENTITY_TYPE, scrap.status, to_status)

        from_state = scrap.status.value
        scrap.status = to_status
        now = datetime.utcnow()
        if to_status == ScrapStatus.COMPLETED:
            scrap.completed_at = now
            scrap.completed_by = actor_id
            if actual_salvage_value is not None:
                scrap.actual_salvage_value = actual_salvage_value
        elif to_status == ScrapStatus.CANCELLED:
            scrap.cancelled_at = now
            scrap.cancelled_by = actor_id
            scrap.cancellation_reason = reason
        await self.db.flush()

        self.journal.record(ENTITY_TYPE, scrap.id, from_state, to_status.value,
                            actor_id=actor_id, entity_number=scrap.car_number, notes=reason)
        return scrap

    async def cancel(self, scrap_id: str, reason: str, actor_id: Optional[str] = None) -> ScrapRecord:
        return await self.advance(scrap_id, ScrapStatus.CANCELLED, actor_id=actor_id, reason=reason)
