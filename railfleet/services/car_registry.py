from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.core.errors import DuplicateKey, InvalidTransition, NotFound, PrereqNotMet
from railfleet.models.car import Car, FleetStatus, ScrapRecord, ScrapStatus
from railfleet.schemas.car import CarCreate
from railfleet.services.state_machines import ensure_transition
from railfleet.services.transition_log import TransitionJournal

logger = logging.getLogger(__name__)

ENTITY_TYPE = "car"


class CarRegistryService:
    """Fleet membership for every railcar. Cars are never deleted."""

    def __init__(self, db: AsyncSession, journal: Optional[TransitionJournal] = None) -> None:
        self.db = db
        self.journal = journal or TransitionJournal()

    async def get_car(self, car_number: str, for_update: bool = False) -> Car:
        query = select(Car).where(Car.car_number == car_number)
        if for_update:
            # Serializes business events against the same car
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        car = result.scalar_one_or_none()
        if not car:
            raise NotFound(f"Car {car_number} not found", {"car_number": car_number})
        return car

    async def register(self, payload: CarCreate, actor_id: Optional[str] = None) -> Car:
        if payload.fleet_status == FleetStatus.DISPOSED:
            raise InvalidTransition(ENTITY_TYPE, None, FleetStatus.DISPOSED.value,
                                    "A car cannot be registered as disposed")

        existing = await self.db.execute(select(Car.id).where(Car.car_number == payload.car_number))
        if existing.scalar_one_or_none():
            raise DuplicateKey(f"Car {payload.car_number} is already registered",
                               {"car_number": payload.car_number})

        car = Car(
            id=str(uuid.uuid4()),
            car_number=payload.car_number,
            car_mark=payload.car_mark,
            car_type=payload.car_type,
            owner_code=payload.owner_code,
            fleet_status=payload.fleet_status,
            acquisition_cost=payload.acquisition_cost,
            acquisition_date=payload.acquisition_date,
            book_value=payload.book_value,
            book_value_as_of=payload.book_value_as_of,
            ready_to_load=False,
        )
        self.db.add(car)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateKey(f"Car {payload.car_number} is already registered",
                               {"car_number": payload.car_number}) from exc

        self.journal.record(ENTITY_TYPE, car.id, None, car.fleet_status.value,
                            actor_id=actor_id, entity_number=car.car_number, notes="registered")
        return car

    async def activate(self, car_number: str, actor_id: Optional[str] = None) -> Car:
        car = await self.get_car(car_number, for_update=True)
        return await self._set_fleet_status(car, FleetStatus.IN_FLEET, actor_id)

    async def set_ready_to_load(self, car_number: str, actor_id: Optional[str], ready: bool = True) -> Car:
        car = await self.get_car(car_number, for_update=True)
        if car.fleet_status == FleetStatus.DISPOSED:
            raise PrereqNotMet(f"Car {car_number} is disposed", {"car_number": car_number})

        car.ready_to_load = ready
        car.ready_to_load_at = datetime.utcnow()
        car.ready_to_load_by = actor_id
        await self.db.flush()

        self.journal.record(ENTITY_TYPE, car.id, car.fleet_status.value, car.fleet_status.value,
                            actor_id=actor_id, entity_number=car.car_number,
                            notes=f"ready_to_load={str(ready).lower()}")
        return car

    async def dispose(self, car_number: str, scrap_record_id: str, actor_id: Optional[str] = None) -> Car:
        """Mark a car disposed against a completed scrap record.

        Only the fleet status changes here. Closing idle time and clearing
        triage is done by the coordinator in the same transaction.
        """
        car = await self.get_car(car_number, for_update=True)
        # Disposed is terminal, checked before the scrap record
        ensure_transition(ENTITY_TYPE, car.fleet_status, FleetStatus.DISPOSED)

        scrap = await self.db.get(ScrapRecord, scrap_record_id)
        if not scrap or scrap.car_number != car_number or scrap.status != ScrapStatus.COMPLETED:
            raise PrereqNotMet(
                f"Car {car_number} has no completed scrap record {scrap_record_id}",
                {"car_number": car_number, "scrap_record_id": scrap_record_id},
            )

        return await self._set_fleet_status(car, FleetStatus.DISPOSED, actor_id, scrap_record_id=scrap.id)

    async def _set_fleet_status(
        self,
        car: Car,
        target: FleetStatus,
        actor_id: Optional[str],
        scrap_record_id: Optional[str] = None,
    ) -> Car:
        ensure_transition(ENTITY_TYPE, car.fleet_status, target)

        from_state = car.fleet_status.value
        car.fleet_status = target
        if target == FleetStatus.DISPOSED:
            car.disposed_at = datetime.utcnow()
            car.disposed_by = actor_id
            car.disposal_scrap_id = scrap_record_id
            car.ready_to_load = False
        await self.db.flush()

        self.journal.record(ENTITY_TYPE, car.id, from_state, target.value,
                            actor_id=actor_id, entity_number=car.car_number)
        return car
