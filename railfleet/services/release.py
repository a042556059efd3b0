"""
Car release workflow: taking a rented car back from its rider.

    initiated -> approved -> executing -> completed
    initiated / approved -> cancelled

The release only tracks the hand-off. The coordinator moves the rider car
alongside it (on_rent -> releasing when execution starts, releasing ->
off_rent on completion) and finishes the linked shop visit. One non-terminal
release per car, enforced by idx_one_active_release_per_car.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.core.errors import DuplicateActiveRelease, NotFound
from railfleet.models.lease import RiderCar
from railfleet.models.release import CarRelease, ReleaseStatus, ReleaseType
from railfleet.services.state_machines import ensure_transition
from railfleet.services.transition_log import TransitionJournal

logger = logging.getLogger(__name__)

ENTITY_TYPE = "car_release"

ACTIVE_RELEASE_STATUSES = (
    ReleaseStatus.INITIATED,
    ReleaseStatus.APPROVED,
    ReleaseStatus.EXECUTING,
)


class ReleaseService:
    def __init__(self, db: AsyncSession, journal: Optional[TransitionJournal] = None) -> None:
        self.db = db
        self.journal = journal or TransitionJournal()

    async def get(self, release_id: str, for_update: bool = False) -> CarRelease:
        query = select(CarRelease).where(CarRelease.id == release_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        release = result.scalar_one_or_none()
        if not release:
            raise NotFound(f"Release {release_id} not found", {"release_id": release_id})
        return release

    async def get_active_for_car(self, car_number: str) -> Optional[CarRelease]:
        result = await self.db.execute(
            select(CarRelease).where(
                CarRelease.car_number == car_number,
                CarRelease.status.in_(ACTIVE_RELEASE_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def list_releases(
        self,
        car_number: Optional[str] = None,
        rider_id: Optional[str] = None,
        status: Optional[ReleaseStatus] = None,
        limit: int = 50,
    ) -> List[CarRelease]:
        query = select(CarRelease)
        if car_number:
            query = query.where(CarRelease.car_number == car_number)
        if rider_id:
            query = query.where(CarRelease.rider_id == rider_id)
        if status:
            query = query.where(CarRelease.status == status)
        result = await self.db.execute(query.order_by(CarRelease.created_at.desc()).limit(limit))
        return list(result.scalars().all())

    async def initiate(
        self,
        rider_car: RiderCar,
        release_type: ReleaseType,
        actor_id: Optional[str] = None,
        assignment_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CarRelease:
        """Open a release for a rider car. The caller has checked it is on rent."""
        active = await self.get_active_for_car(rider_car.car_number)
        if active:
            raise DuplicateActiveRelease(
                f"Car {rider_car.car_number} already has an active release ({active.status.value})",
                {"car_number": rider_car.car_number, "release_id": active.id},
            )

        release = CarRelease(
            id=str(uuid.uuid4()),
            car_number=rider_car.car_number,
            rider_car_id=rider_car.id,
            rider_id=rider_car.rider_id,
            assignment_id=assignment_id,
            release_type=release_type,
            status=ReleaseStatus.INITIATED,
            initiated_by=actor_id,
            notes=notes,
        )
        self.db.add(release)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateActiveRelease(
                f"Car {rider_car.car_number} already has an active release",
                {"car_number": rider_car.car_number},
            ) from exc

        self.journal.record(ENTITY_TYPE, release.id, None, release.status.value, actor_id=actor_id,
                            entity_number=release.car_number,
                            notes=f"release_type={release_type.value}")
        return release

    async def advance(
        self,
        release_id: str,
        to_status: ReleaseStatus,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> CarRelease:
        release = await self.get(release_id, for_update=True)
        ensure_transition(ENTITY_TYPE, release.status, to_status)

        from_status = release.status
        release.status = to_status
        now = datetime.utcnow()
        if to_status == ReleaseStatus.APPROVED:
            release.approved_by = actor_id
            release.approved_at = now
        elif to_status == ReleaseStatus.EXECUTING:
            release.executed_at = now
        elif to_status == ReleaseStatus.COMPLETED:
            release.completed_by = actor_id
            release.completed_at = now
        elif to_status == ReleaseStatus.CANCELLED:
            release.cancelled_by = actor_id
            release.cancelled_at = now
            release.cancellation_reason = reason
        if notes:
            release.notes = notes
        await self.db.flush()

        self.journal.record(
            ENTITY_TYPE,
            release.id,
            from_status.value,
            to_status.value,
            actor_id=actor_id,
            entity_number=release.car_number,
            notes=reason or notes,
        )
        return release
