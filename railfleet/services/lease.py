"""
Lease hierarchy: Master Lease -> Lease Rider -> Rider Car.

Each level has its own status machine (see state_machines) and is also
checked against its parents:

- A rider car enters on_rent only while its rider AND master lease are Active.
- A rider expires or is superseded only when none of its cars are on_rent
  or releasing.
- A master lease is terminated only when no car under any of its riders is
  still in a non-terminal status.

Parent rows are locked FOR UPDATE while a child transition is guarded on
their status, so a concurrent parent transition cannot slip in between.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.core.errors import DuplicateActiveRiderCar, DuplicateKey, NotFound, PrereqNotMet
from railfleet.models.assignment import CarAssignment
from railfleet.models.car import Car, FleetStatus
from railfleet.models.lease import (
    LeaseRider,
    LeaseRiderStatus,
    MasterLease,
    MasterLeaseStatus,
    RiderCar,
    RiderCarStatus,
)
from railfleet.schemas.lease import LeaseRiderCreate, MasterLeaseCreate
from railfleet.services.state_machines import ensure_transition
from railfleet.services.transition_log import TransitionJournal

logger = logging.getLogger(__name__)

ACTIVE_RIDER_CAR_STATUSES = (
    RiderCarStatus.DECIDED,
    RiderCarStatus.PREP_REQUIRED,
    RiderCarStatus.ON_RENT,
    RiderCarStatus.RELEASING,
)

# Cars that are physically with the customer
RENTED_STATUSES = (RiderCarStatus.ON_RENT, RiderCarStatus.RELEASING)

RIDER_CAR_TIMESTAMPS = {
    RiderCarStatus.ON_RENT: "on_rent_at",
    RiderCarStatus.RELEASING: "releasing_at",
    RiderCarStatus.OFF_RENT: "off_rent_at",
    RiderCarStatus.CANCELLED: "cancelled_at",
}


class LeaseService:
    def __init__(self, db: AsyncSession, journal: Optional[TransitionJournal] = None) -> None:
        self.db = db
        self.journal = journal or TransitionJournal()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_master_lease(self, lease_id: str, for_update: bool = False) -> MasterLease:
        lease = await self._get(MasterLease, lease_id, for_update)
        if not lease:
            raise NotFound(f"Master lease {lease_id} not found", {"master_lease_id": lease_id})
        return lease

    async def get_lease_rider(self, rider_id: str, for_update: bool = False) -> LeaseRider:
        rider = await self._get(LeaseRider, rider_id, for_update)
        if not rider:
            raise NotFound(f"Lease rider {rider_id} not found", {"rider_id": rider_id})
        return rider

    async def get_rider_car(self, rider_car_id: str, for_update: bool = False) -> RiderCar:
        rider_car = await self._get(RiderCar, rider_car_id, for_update)
        if not rider_car:
            raise NotFound(f"Rider car {rider_car_id} not found", {"rider_car_id": rider_car_id})
        return rider_car

    async def get_active_rider_car_for_car(self, car_number: str) -> Optional[RiderCar]:
        result = await self.db.execute(
            select(RiderCar).where(
                RiderCar.car_number == car_number,
                RiderCar.status.in_(ACTIVE_RIDER_CAR_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def list_riders(self, master_lease_id: str) -> List[LeaseRider]:
        result = await self.db.execute(
            select(LeaseRider)
            .where(LeaseRider.master_lease_id == master_lease_id)
            .order_by(LeaseRider.rider_code)
        )
        return list(result.scalars().all())

    async def list_rider_cars(self, rider_id: str) -> List[RiderCar]:
        result = await self.db.execute(
            select(RiderCar).where(RiderCar.rider_id == rider_id).order_by(RiderCar.created_at)
        )
        return list(result.scalars().all())

    async def _get(self, model, entity_id: str, for_update: bool):
        query = select(model).where(model.id == entity_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_master_lease(self, payload: MasterLeaseCreate, actor_id: Optional[str] = None) -> MasterLease:
        existing = await self.db.execute(
            select(MasterLease.id).where(MasterLease.lease_code == payload.lease_code)
        )
        if existing.scalar_one_or_none():
            raise DuplicateKey(f"Master lease {payload.lease_code} already exists",
                               {"lease_code": payload.lease_code})

        lease = MasterLease(
            id=str(uuid.uuid4()),
            lease_code=payload.lease_code,
            customer_code=payload.customer_code,
            lease_name=payload.lease_name,
            start_date=payload.start_date,
            end_date=payload.end_date,
            status=MasterLeaseStatus.ACTIVE,
            notes=payload.notes,
        )
        self.db.add(lease)
        await self._flush_unique(f"Master lease {payload.lease_code} already exists")

        self.journal.record("master_lease", lease.id, None, lease.status.value,
                            actor_id=actor_id, notes=lease.lease_code)
        return lease

    async def create_lease_rider(self, payload: LeaseRiderCreate, actor_id: Optional[str] = None) -> LeaseRider:
        parent = await self.get_master_lease(payload.master_lease_id, for_update=True)
        if parent.status == MasterLeaseStatus.TERMINATED:
            raise PrereqNotMet(
                f"Master lease {parent.lease_code} is Terminated",
                {"master_lease_id": parent.id, "status": parent.status.value},
            )
        if payload.status == LeaseRiderStatus.SUPERSEDED:
            raise PrereqNotMet("A lease rider cannot be created Superseded", {"status": payload.status.value})
        if payload.status == LeaseRiderStatus.ACTIVE and parent.status != MasterLeaseStatus.ACTIVE:
            raise PrereqNotMet(
                f"Active rider requires an Active master lease; {parent.lease_code} is {parent.status.value}",
                {"master_lease_id": parent.id, "status": parent.status.value},
            )

        existing = await self.db.execute(select(LeaseRider.id).where(LeaseRider.rider_code == payload.rider_code))
        if existing.scalar_one_or_none():
            raise DuplicateKey(f"Lease rider {payload.rider_code} already exists",
                               {"rider_code": payload.rider_code})

        rider = LeaseRider(
            id=str(uuid.uuid4()),
            rider_code=payload.rider_code,
            master_lease_id=parent.id,
            rider_name=payload.rider_name,
            car_type=payload.car_type,
            car_count=payload.car_count,
            rate_per_car=payload.rate_per_car,
            effective_date=payload.effective_date,
            expiration_date=payload.expiration_date,
            status=payload.status,
        )
        self.db.add(rider)
        await self._flush_unique(f"Lease rider {payload.rider_code} already exists")

        self.journal.record("lease_rider", rider.id, None, rider.status.value,
                            actor_id=actor_id, notes=rider.rider_code)
        return rider

    async def decide_rider_car(self, rider_id: str, car: Car, actor_id: Optional[str] = None) -> RiderCar:
        """Commit a car to a rider line. The caller holds the car row lock."""
        if car.fleet_status != FleetStatus.IN_FLEET:
            raise PrereqNotMet(
                f"Car {car.car_number} is {car.fleet_status.value}, not in_fleet",
                {"car_number": car.car_number, "fleet_status": car.fleet_status.value},
            )

        rider = await self.get_lease_rider(rider_id, for_update=True)
        if rider.status != LeaseRiderStatus.ACTIVE:
            raise PrereqNotMet(
                f"Lease rider {rider.rider_code} is {rider.status.value}",
                {"rider_id": rider.id, "status": rider.status.value},
            )

        active = await self.get_active_rider_car_for_car(car.car_number)
        if active:
            raise DuplicateActiveRiderCar(
                f"Car {car.car_number} is already committed to a rider",
                {"car_number": car.car_number, "rider_car_id": active.id, "status": active.status.value},
            )

        now = datetime.utcnow()
        rider_car = RiderCar(
            id=str(uuid.uuid4()),
            rider_id=rider.id,
            car_number=car.car_number,
            status=RiderCarStatus.DECIDED,
            decided_at=now,
            decided_by=actor_id,
        )
        self.db.add(rider_car)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateActiveRiderCar(
                f"Car {car.car_number} is already committed to a rider",
                {"car_number": car.car_number},
            ) from exc

        self.journal.record("rider_car", rider_car.id, None, rider_car.status.value,
                            actor_id=actor_id, entity_number=car.car_number)
        return rider_car

    async def _flush_unique(self, message: str) -> None:
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateKey(message) from exc

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def transition_master_lease(
        self,
        lease_id: str,
        to_status: MasterLeaseStatus,
        actor_id: Optional[str] = None,
    ) -> MasterLease:
        lease = await self.get_master_lease(lease_id, for_update=True)
        ensure_transition("master_lease", lease.status, to_status)

        if to_status == MasterLeaseStatus.TERMINATED:
            open_cars = await self.db.execute(
                select(func.count(RiderCar.id))
                .join(LeaseRider, LeaseRider.id == RiderCar.rider_id)
                .where(
                    LeaseRider.master_lease_id == lease.id,
                    RiderCar.status.in_(ACTIVE_RIDER_CAR_STATUSES),
                )
            )
            count = open_cars.scalar_one()
            if count:
                raise PrereqNotMet(
                    f"Cannot terminate {lease.lease_code}: {count} car(s) still active on its riders",
                    {"master_lease_id": lease.id, "active_rider_cars": count},
                )

        from_state = lease.status.value
        lease.status = to_status
        await self.db.flush()

        self.journal.record("master_lease", lease.id, from_state, to_status.value,
                            actor_id=actor_id, notes=lease.lease_code)
        return lease

    async def transition_lease_rider(
        self,
        rider_id: str,
        to_status: LeaseRiderStatus,
        actor_id: Optional[str] = None,
    ) -> LeaseRider:
        rider = await self.get_lease_rider(rider_id, for_update=True)
        ensure_transition("lease_rider", rider.status, to_status)

        if to_status == LeaseRiderStatus.ACTIVE:
            parent = await self.get_master_lease(rider.master_lease_id, for_update=True)
            if parent.status != MasterLeaseStatus.ACTIVE:
                raise PrereqNotMet(
                    f"Cannot activate rider {rider.rider_code}: master lease {parent.lease_code} "
                    f"is {parent.status.value}",
                    {"rider_id": rider.id, "master_lease_status": parent.status.value},
                )
        else:
            rented = await self.db.execute(
                select(func.count(RiderCar.id)).where(
                    RiderCar.rider_id == rider.id,
                    RiderCar.status.in_(RENTED_STATUSES),
                )
            )
            count = rented.scalar_one()
            if count:
                raise PrereqNotMet(
                    f"Cannot move rider {rider.rider_code} to {to_status.value}: "
                    f"{count} car(s) on rent or releasing",
                    {"rider_id": rider.id, "rented_cars": count},
                )

        from_state = rider.status.value
        rider.status = to_status
        await self.db.flush()

        self.journal.record("lease_rider", rider.id, from_state, to_status.value,
                            actor_id=actor_id, notes=rider.rider_code)
        return rider

    async def transition_rider_car(
        self,
        rider_car_id: str,
        to_status: RiderCarStatus,
        actor_id: Optional[str] = None,
        assignment_id: Optional[str] = None,
    ) -> RiderCar:
        rider_car = await self.get_rider_car(rider_car_id, for_update=True)
        ensure_transition("rider_car", rider_car.status, to_status)

        if to_status == RiderCarStatus.PREP_REQUIRED:
            if not assignment_id:
                raise PrereqNotMet("prep_required needs the prep shop assignment",
                                   {"rider_car_id": rider_car.id})
            assignment = await self.db.get(CarAssignment, assignment_id)
            if not assignment:
                raise NotFound(f"Assignment {assignment_id} not found", {"assignment_id": assignment_id})
            if assignment.car_number != rider_car.car_number:
                raise PrereqNotMet(
                    f"Assignment {assignment_id} is for car {assignment.car_number}, "
                    f"not {rider_car.car_number}",
                    {"assignment_id": assignment_id, "car_number": rider_car.car_number},
                )
            rider_car.assignment_id = assignment.id

        if to_status == RiderCarStatus.ON_RENT:
            await self._ensure_parents_active(rider_car)

        from_state = rider_car.status.value
        rider_car.status = to_status
        stamp = RIDER_CAR_TIMESTAMPS.get(to_status)
        if stamp:
            setattr(rider_car, stamp, datetime.utcnow())
        await self.db.flush()

        self.journal.record("rider_car", rider_car.id, from_state, to_status.value,
                            actor_id=actor_id, entity_number=rider_car.car_number)
        return rider_car

    async def _ensure_parents_active(self, rider_car: RiderCar) -> None:
        rider = await self.get_lease_rider(rider_car.rider_id, for_update=True)
        lease = await self.get_master_lease(rider.master_lease_id, for_update=True)
        if rider.status != LeaseRiderStatus.ACTIVE or lease.status != MasterLeaseStatus.ACTIVE:
            raise PrereqNotMet(
                f"Car {rider_car.car_number} cannot go on rent: rider {rider.rider_code} is "
                f"{rider.status.value}, master lease {lease.lease_code} is {lease.status.value}",
                {
                    "rider_car_id": rider_car.id,
                    "rider_status": rider.status.value,
                    "master_lease_status": lease.status.value,
                },
            )
