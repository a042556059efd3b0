"""
Transition coordinator - the entry point callers use for every business event.

Each public method is one business event and one database transaction:

    1. lock the Car row (SELECT ... FOR UPDATE) before touching anything
       that belongs to the car
    2. run the component guards and mutations in order
    3. hand the staged transitions to the audit sink
    4. commit

Any guard failure rolls the whole event back, so a cascade never leaves a
partial state. Nothing here retries; a ConcurrentModification goes back to
the caller, who decides whether the intent still applies.

Cascades owned by this layer:
- dispose_car closes the open idle period and resolves open triage
- create_assignment closes the open idle period and consumes open triage
- put_on_rent closes the open idle period and leaves any shop assignment alone
  (a car can be on rent and separately mid-qualification)
- complete_shop_visit closes the open idle period according to
  settings.shop_completion_idle_policy, unless the same event puts the car on
  rent, in which case the on_rent step closes it
- return_rider_car queues the car for triage and optionally starts an idle
  period between leases
- cancel_scrap queues the car for triage again
- execute_release moves the rider car to releasing; complete_release takes it
  off rent, finishes the linked shop visit and runs the return cascade
- revert_assignment undoes Planned -> Scheduled and marks the logged
  transition reversed
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from railfleet.core.config import Settings, ShopCompletionIdlePolicy, get_settings
from railfleet.core.errors import ConcurrentModification, FleetStateError, PrereqNotMet, StorageError
from railfleet.models.assignment import AssignmentStatus, CarAssignment
from railfleet.models.car import Car, FleetStatus, ScrapRecord, ScrapStatus
from railfleet.models.idle import IdlePeriod, IdleReason, StorageRate
from railfleet.models.lease import (
    LeaseRider,
    LeaseRiderStatus,
    MasterLease,
    MasterLeaseStatus,
    RiderCar,
    RiderCarStatus,
)
from railfleet.models.release import CarRelease, ReleaseStatus
from railfleet.models.triage import TriageEntry, TriageReason, TriageResolution
from railfleet.schemas.assignment import AssignmentCreate
from railfleet.schemas.car import CarCreate, ScrapCreate
from railfleet.schemas.lease import LeaseRiderCreate, MasterLeaseCreate
from railfleet.schemas.release import ReleaseCreate
from railfleet.services.assignment import AssignmentService
from railfleet.services.car_registry import CarRegistryService
from railfleet.services.cost_estimator import CostEstimator, build_cost_estimator
from railfleet.services.idle_period import IdlePeriodService
from railfleet.services.lease import LeaseService
from railfleet.services.release import ReleaseService
from railfleet.services.scrap import ScrapService
from railfleet.services.transition_log import (
    AuditSink,
    TransitionJournal,
    TransitionLogService,
    TransitionLogSink,
)
from railfleet.services.triage import TriageService

logger = logging.getLogger(__name__)


class TransitionCoordinator:
    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        audit_sink: Optional[AuditSink] = None,
        cost_estimator: Optional[CostEstimator] = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.journal = TransitionJournal()
        self.audit_sink = audit_sink or TransitionLogSink(db)
        self.cost_estimator = cost_estimator or build_cost_estimator(
            self.settings.cost_estimator_url,
            timeout=self.settings.cost_estimator_timeout_seconds,
        )

        self.cars = CarRegistryService(db, self.journal)
        self.scrap = ScrapService(db, self.journal)
        self.leases = LeaseService(db, self.journal)
        self.assignments = AssignmentService(db, self.journal)
        self.triage = TriageService(db, self.journal)
        self.idle = IdlePeriodService(db, self.journal, rate_type=self.settings.idle_rate_type)
        self.releases = ReleaseService(db, self.journal)
        self.transitions = TransitionLogService(db)

    @asynccontextmanager
    async def _event(self, name: str, car_number: Optional[str] = None) -> AsyncIterator[None]:
        self.journal.clear()
        try:
            yield
            await self.audit_sink.record(self.journal.drain())
            await self.db.commit()
        except FleetStateError:
            await self.db.rollback()
            self.journal.clear()
            raise
        except StaleDataError as exc:
            await self.db.rollback()
            self.journal.clear()
            raise ConcurrentModification(
                f"{name}: record was modified by another request",
                {"event": name, "car_number": car_number},
            ) from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            self.journal.clear()
            logger.exception("[Fleet] %s failed for car %s", name, car_number)
            raise StorageError(f"{name} failed: storage error", {"event": name}) from exc
        except Exception:
            await self.db.rollback()
            self.journal.clear()
            logger.exception("[Fleet] %s failed for car %s", name, car_number)
            raise
        logger.info("[Fleet] %s committed for car %s", name, car_number)

    async def _lock_active_car(self, car_number: str) -> Car:
        car = await self.cars.get_car(car_number, for_update=True)
        if car.fleet_status == FleetStatus.DISPOSED:
            raise PrereqNotMet(f"Car {car_number} is disposed", {"car_number": car_number})
        return car

    # ------------------------------------------------------------------
    # Car registry
    # ------------------------------------------------------------------

    async def register_car(self, payload: CarCreate, actor_id: Optional[str] = None) -> Car:
        async with self._event("register_car", payload.car_number):
            car = await self.cars.register(payload, actor_id)
        return car

    async def activate_car(self, car_number: str, actor_id: Optional[str] = None) -> Car:
        async with self._event("activate_car", car_number):
            car = await self.cars.activate(car_number, actor_id)
        return car

    async def set_ready_to_load(self, car_number: str, actor_id: Optional[str], ready: bool = True) -> Car:
        async with self._event("set_ready_to_load", car_number):
            car = await self.cars.set_ready_to_load(car_number, actor_id, ready)
        return car

    async def dispose_car(self, car_number: str, scrap_record_id: str, actor_id: Optional[str] = None) -> Car:
        async with self._event("dispose_car", car_number):
            await self.cars.get_car(car_number, for_update=True)

            rider_car = await self.leases.get_active_rider_car_for_car(car_number)
            if rider_car:
                raise PrereqNotMet(
                    f"Car {car_number} is still committed to a rider ({rider_car.status.value})",
                    {"car_number": car_number, "rider_car_id": rider_car.id},
                )
            assignment = await self.assignments.get_active_for_car(car_number)
            if assignment:
                raise PrereqNotMet(
                    f"Car {car_number} has an active shop assignment ({assignment.status.value})",
                    {"car_number": car_number, "assignment_id": assignment.id},
                )

            car = await self.cars.dispose(car_number, scrap_record_id, actor_id)
            await self.idle.close_if_open(car_number, actor_id)
            await self.triage.resolve_open_for_car(
                car_number, TriageResolution.SCRAP_PROPOSED, actor_id, scrap_record_id
            )
        return car

    # ------------------------------------------------------------------
    # Scrap workflow
    # ------------------------------------------------------------------

    async def propose_scrap(self, car_number: str, payload: ScrapCreate, actor_id: Optional[str] = None) -> ScrapRecord:
        async with self._event("propose_scrap", car_number):
            await self._lock_active_car(car_number)

            entry = await self.triage.get_active_for_car(car_number)
            idle = await self.idle.get_open_period(car_number)
            if not entry and not idle:
                raise PrereqNotMet(
                    f"Car {car_number} must be in triage or idle to be proposed for scrap",
                    {"car_number": car_number},
                )
            assignment = await self.assignments.get_active_for_car(car_number)
            if assignment:
                raise PrereqNotMet(
                    f"Car {car_number} has an active shop assignment ({assignment.status.value})",
                    {"car_number": car_number, "assignment_id": assignment.id},
                )

            scrap = await self.scrap.propose(car_number, payload, actor_id)
            if entry:
                await self.triage.resolve(entry.id, TriageResolution.SCRAP_PROPOSED, actor_id, scrap.id)
        return scrap

    async def advance_scrap(
        self,
        scrap_id: str,
        to_status: ScrapStatus,
        actor_id: Optional[str] = None,
        actual_salvage_value: Optional[Decimal] = None,
    ) -> ScrapRecord:
        if to_status == ScrapStatus.CANCELLED:
            return await self.cancel_scrap(scrap_id, None, actor_id)

        scrap = await self.scrap.get(scrap_id)
        async with self._event("advance_scrap", scrap.car_number):
            await self.cars.get_car(scrap.car_number, for_update=True)
            scrap = await self.scrap.advance(scrap_id, to_status, actor_id, actual_salvage_value)
        return scrap

    async def cancel_scrap(self, scrap_id: str, reason: Optional[str], actor_id: Optional[str] = None) -> ScrapRecord:
        scrap = await self.scrap.get(scrap_id)
        async with self._event("cancel_scrap", scrap.car_number):
            await self.cars.get_car(scrap.car_number, for_update=True)
            scrap = await self.scrap.advance(scrap_id, ScrapStatus.CANCELLED, actor_id, reason=reason)
            await self.triage.enqueue_if_absent(
                scrap.car_number, TriageReason.SCRAP_CANCELLED, actor_id, source_reference_id=scrap.id
            )
        return scrap

    # ------------------------------------------------------------------
    # Lease hierarchy
    # ------------------------------------------------------------------

    async def create_master_lease(self, payload: MasterLeaseCreate, actor_id: Optional[str] = None) -> MasterLease:
        async with self._event("create_master_lease"):
            lease = await self.leases.create_master_lease(payload, actor_id)
        return lease

    async def transition_master_lease(
        self,
        lease_id: str,
        to_status: MasterLeaseStatus,
        actor_id: Optional[str] = None,
    ) -> MasterLease:
        async with self._event("transition_master_lease"):
            lease = await self.leases.transition_master_lease(lease_id, to_status, actor_id)
        return lease

    async def create_lease_rider(self, payload: LeaseRiderCreate, actor_id: Optional[str] = None) -> LeaseRider:
        async with self._event("create_lease_rider"):
            rider = await self.leases.create_lease_rider(payload, actor_id)
        return rider

    async def transition_lease_rider(
        self,
        rider_id: str,
        to_status: LeaseRiderStatus,
        actor_id: Optional[str] = None,
    ) -> LeaseRider:
        async with self._event("transition_lease_rider"):
            rider = await self.leases.transition_lease_rider(rider_id, to_status, actor_id)
        return rider

    async def decide_rider_car(
        self,
        rider_id: str,
        car_number: str,
        actor_id: Optional[str] = None,
        triage_entry_id: Optional[str] = None,
    ) -> RiderCar:
        async with self._event("decide_rider_car", car_number):
            car = await self._lock_active_car(car_number)
            rider_car = await self.leases.decide_rider_car(rider_id, car, actor_id)
            await self._consume_triage(
                car_number, TriageResolution.ASSIGNED_TO_CUSTOMER, actor_id, rider_car.id, triage_entry_id
            )
        return rider_car

    async def transition_rider_car(
        self,
        rider_car_id: str,
        to_status: RiderCarStatus,
        actor_id: Optional[str] = None,
        assignment_id: Optional[str] = None,
        location_code: Optional[str] = None,
    ) -> RiderCar:
        rider_car = await self.leases.get_rider_car(rider_car_id)
        async with self._event(f"rider_car_{to_status.value}", rider_car.car_number):
            await self.cars.get_car(rider_car.car_number, for_update=True)
            rider_car = await self.leases.transition_rider_car(rider_car_id, to_status, actor_id, assignment_id)

            if to_status == RiderCarStatus.ON_RENT:
                await self.idle.close_if_open(rider_car.car_number, actor_id)
            elif to_status == RiderCarStatus.OFF_RENT:
                await self._after_return(rider_car, actor_id, location_code)
        return rider_car

    async def put_on_rent(self, rider_car_id: str, actor_id: Optional[str] = None) -> RiderCar:
        return await self.transition_rider_car(rider_car_id, RiderCarStatus.ON_RENT, actor_id)

    async def release_rider_car(self, rider_car_id: str, actor_id: Optional[str] = None) -> RiderCar:
        return await self.transition_rider_car(rider_car_id, RiderCarStatus.RELEASING, actor_id)

    async def return_rider_car(
        self,
        rider_car_id: str,
        actor_id: Optional[str] = None,
        location_code: Optional[str] = None,
    ) -> RiderCar:
        return await self.transition_rider_car(
            rider_car_id, RiderCarStatus.OFF_RENT, actor_id, location_code=location_code
        )

    async def cancel_rider_car(self, rider_car_id: str, actor_id: Optional[str] = None) -> RiderCar:
        return await self.transition_rider_car(rider_car_id, RiderCarStatus.CANCELLED, actor_id)

    async def _after_return(self, rider_car: RiderCar, actor_id: Optional[str], location_code: Optional[str]) -> None:
        if self.settings.release_creates_triage:
            await self.triage.enqueue_if_absent(
                rider_car.car_number, TriageReason.CUSTOMER_RETURN, actor_id, source_reference_id=rider_car.id
            )
        if location_code and not await self.idle.get_open_period(rider_car.car_number):
            await self.idle.open_period(
                rider_car.car_number, IdleReason.BETWEEN_LEASES, actor_id, location_code=location_code
            )

    # ------------------------------------------------------------------
    # Car releases
    # ------------------------------------------------------------------

    async def initiate_release(self, payload: ReleaseCreate, actor_id: Optional[str] = None) -> CarRelease:
        car_number = payload.car_number
        async with self._event("initiate_release", car_number):
            await self._lock_active_car(car_number)

            rider_car = await self.leases.get_active_rider_car_for_car(car_number)
            if not rider_car or rider_car.status != RiderCarStatus.ON_RENT:
                raise PrereqNotMet(
                    f"Car {car_number} is not on rent",
                    {"car_number": car_number, "rider_car_status": rider_car.status.value if rider_car else None},
                )
            if payload.rider_id and rider_car.rider_id != payload.rider_id:
                raise PrereqNotMet(
                    f"Car {car_number} is on rider {rider_car.rider_id}, not {payload.rider_id}",
                    {"car_number": car_number, "rider_id": rider_car.rider_id},
                )
            if payload.assignment_id:
                assignment = await self.assignments.get(payload.assignment_id)
                if assignment.car_number != car_number:
                    raise PrereqNotMet(
                        f"Assignment {assignment.id} is for car {assignment.car_number}, not {car_number}",
                        {"assignment_id": assignment.id, "car_number": car_number},
                    )

            release = await self.releases.initiate(
                rider_car, payload.release_type, actor_id, payload.assignment_id, payload.notes
            )
        return release

    async def approve_release(
        self,
        release_id: str,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CarRelease:
        release = await self.releases.get(release_id)
        async with self._event("approve_release", release.car_number):
            await self.cars.get_car(release.car_number, for_update=True)
            release = await self.releases.advance(release_id, ReleaseStatus.APPROVED, actor_id, notes=notes)
        return release

    async def execute_release(self, release_id: str, actor_id: Optional[str] = None) -> CarRelease:
        release = await self.releases.get(release_id)
        async with self._event("execute_release", release.car_number):
            await self.cars.get_car(release.car_number, for_update=True)
            release = await self.releases.advance(release_id, ReleaseStatus.EXECUTING, actor_id)

            rider_car = await self.leases.get_rider_car(release.rider_car_id)
            if rider_car.status != RiderCarStatus.RELEASING:
                await self.leases.transition_rider_car(rider_car.id, RiderCarStatus.RELEASING, actor_id)
        return release

    async def complete_release(
        self,
        release_id: str,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
        location_code: Optional[str] = None,
    ) -> CarRelease:
        """Finish the release: rider car off rent, linked shop visit complete."""
        release = await self.releases.get(release_id)
        car_number = release.car_number
        async with self._event("complete_release", car_number):
            await self.cars.get_car(car_number, for_update=True)

            assignment = None
            if release.assignment_id:
                assignment = await self.assignments.get(release.assignment_id)
                if not assignment.is_terminal and assignment.status != AssignmentStatus.IN_SHOP:
                    raise PrereqNotMet(
                        f"Shop visit {assignment.id} is {assignment.status.value}; "
                        "it must reach the shop before the release completes",
                        {"release_id": release_id, "assignment_id": assignment.id},
                    )

            release = await self.releases.advance(release_id, ReleaseStatus.COMPLETED, actor_id, notes=notes)
            if assignment is not None and not assignment.is_terminal:
                await self.assignments.advance_status(assignment.id, AssignmentStatus.COMPLETE, actor_id)

            rider_car = await self.leases.get_rider_car(release.rider_car_id)
            if rider_car.status != RiderCarStatus.OFF_RENT:
                rider_car = await self.leases.transition_rider_car(rider_car.id, RiderCarStatus.OFF_RENT, actor_id)
                await self._after_return(rider_car, actor_id, location_code)
        return release

    async def cancel_release(self, release_id: str, reason: str, actor_id: Optional[str] = None) -> CarRelease:
        release = await self.releases.get(release_id)
        async with self._event("cancel_release", release.car_number):
            await self.cars.get_car(release.car_number, for_update=True)
            release = await self.releases.advance(release_id, ReleaseStatus.CANCELLED, actor_id, reason=reason)
        return release

    # ------------------------------------------------------------------
    # Assignment ledger
    # ------------------------------------------------------------------

    async def create_assignment(self, payload: AssignmentCreate, actor_id: Optional[str] = None) -> CarAssignment:
        estimated_cost = None
        if payload.estimated_cost is None:
            # Read-only collaborator call, made before the car row is locked
            estimated_cost = await self.cost_estimator.estimate(payload.car_number, payload.shop_code, payload.source)

        async with self._event("create_assignment", payload.car_number):
            await self._lock_active_car(payload.car_number)
            assignment = await self.assignments.create(payload, actor_id, estimated_cost=estimated_cost)
            await self.idle.close_if_open(payload.car_number, actor_id)
            await self._consume_triage(
                payload.car_number,
                TriageResolution.ASSIGNED_TO_SHOP,
                actor_id,
                assignment.id,
                payload.triage_entry_id,
            )
        return assignment

    async def advance_assignment(
        self,
        assignment_id: str,
        status: AssignmentStatus,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        if status == AssignmentStatus.COMPLETE:
            return await self.complete_shop_visit(assignment_id, actor_id, expected_version=expected_version)

        assignment = await self.assignments.get(assignment_id)
        async with self._event("advance_assignment", assignment.car_number):
            await self.cars.get_car(assignment.car_number, for_update=True)
            assignment = await self.assignments.advance_status(assignment_id, status, actor_id, expected_version)
        return assignment

    async def cancel_assignment(
        self,
        assignment_id: str,
        reason: str,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        assignment = await self.assignments.get(assignment_id)
        async with self._event("cancel_assignment", assignment.car_number):
            await self.cars.get_car(assignment.car_number, for_update=True)
            assignment = await self.assignments.cancel(assignment_id, reason, actor_id, expected_version)
        return assignment

    async def expedite_assignment(
        self,
        assignment_id: str,
        reason: str,
        actor_id: Optional[str] = None,
        priority: int = 1,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        assignment = await self.assignments.get(assignment_id)
        async with self._event("expedite_assignment", assignment.car_number):
            await self.cars.get_car(assignment.car_number, for_update=True)
            assignment = await self.assignments.expedite(
                assignment_id, reason, actor_id, priority=priority, expected_version=expected_version
            )
        return assignment

    async def record_assignment_costs(
        self,
        assignment_id: str,
        estimated_cost: Optional[Decimal] = None,
        actual_cost: Optional[Decimal] = None,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        assignment = await self.assignments.get(assignment_id)
        async with self._event("record_assignment_costs", assignment.car_number):
            await self.cars.get_car(assignment.car_number, for_update=True)
            assignment = await self.assignments.record_costs(
                assignment_id, estimated_cost, actual_cost, actor_id, expected_version
            )
        return assignment

    async def revert_assignment(
        self,
        assignment_id: str,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> CarAssignment:
        """Undo the assignment's last status change, if it was logged as reversible."""
        assignment = await self.assignments.get(assignment_id)
        async with self._event("revert_assignment", assignment.car_number):
            await self.cars.get_car(assignment.car_number, for_update=True)
            await self.assignments.get(assignment_id, for_update=True)

            eligibility = await self.transitions.can_revert("car_assignment", assignment_id)
            if not eligibility.allowed:
                raise PrereqNotMet(
                    f"Assignment {assignment_id} cannot be reverted: {'; '.join(eligibility.blockers)}",
                    {
                        "assignment_id": assignment_id,
                        "transition_id": eligibility.transition_id,
                        "blockers": eligibility.blockers,
                    },
                )

            assignment, record = await self.assignments.revert(
                assignment_id,
                AssignmentStatus(eligibility.previous_state),
                actor_id,
                expected_version=expected_version,
                notes=notes,
            )
            await self.transitions.mark_reverted(eligibility.transition_id, actor_id, record.id)
        return assignment

    async def complete_shop_visit(
        self,
        assignment_id: str,
        actor_id: Optional[str] = None,
        actual_cost: Optional[Decimal] = None,
        rider_car_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> CarAssignment:
        """Complete the shop visit, optionally handing the car straight to a customer."""
        assignment = await self.assignments.get(assignment_id)
        car_number = assignment.car_number
        async with self._event("complete_shop_visit", car_number):
            await self.cars.get_car(car_number, for_update=True)
            assignment = await self.assignments.advance_status(
                assignment_id, AssignmentStatus.COMPLETE, actor_id, expected_version
            )
            if actual_cost is not None:
                assignment = await self.assignments.record_costs(assignment_id, actual_cost=actual_cost,
                                                                 actor_id=actor_id)

            if rider_car_id:
                rider_car = await self.leases.get_rider_car(rider_car_id)
                if rider_car.car_number != car_number:
                    raise PrereqNotMet(
                        f"Rider car {rider_car_id} is for car {rider_car.car_number}, not {car_number}",
                        {"rider_car_id": rider_car_id, "car_number": car_number},
                    )
                await self.leases.transition_rider_car(rider_car_id, RiderCarStatus.ON_RENT, actor_id)
                # Idle time ends with the rent, not with the shop visit
                await self.idle.close_if_open(car_number, actor_id)
            elif self.settings.shop_completion_idle_policy == ShopCompletionIdlePolicy.CLOSE:
                await self.idle.close_if_open(car_number, actor_id)
        return assignment

    # ------------------------------------------------------------------
    # Triage queue
    # ------------------------------------------------------------------

    async def enqueue_triage(
        self,
        car_number: str,
        reason: TriageReason,
        actor_id: Optional[str] = None,
        source_reference_id: Optional[str] = None,
        priority: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TriageEntry:
        async with self._event("enqueue_triage", car_number):
            await self._lock_active_car(car_number)
            entry = await self.triage.enqueue(
                car_number, reason, actor_id, source_reference_id=source_reference_id, priority=priority, notes=notes
            )
        return entry

    async def resolve_triage(
        self,
        entry_id: str,
        resolution: TriageResolution,
        actor_id: Optional[str] = None,
        resolution_reference_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TriageEntry:
        entry = await self.triage.get(entry_id)
        async with self._event("resolve_triage", entry.car_number):
            await self.cars.get_car(entry.car_number, for_update=True)
            entry = await self.triage.resolve(entry_id, resolution, actor_id, resolution_reference_id, notes)
        return entry

    async def _consume_triage(
        self,
        car_number: str,
        resolution: TriageResolution,
        actor_id: Optional[str],
        reference_id: str,
        triage_entry_id: Optional[str],
    ) -> None:
        if triage_entry_id:
            await self.triage.resolve(triage_entry_id, resolution, actor_id, reference_id)
        else:
            await self.triage.resolve_open_for_car(car_number, resolution, actor_id, reference_id)

    # ------------------------------------------------------------------
    # Idle periods
    # ------------------------------------------------------------------

    async def open_idle_period(
        self,
        car_number: str,
        reason: IdleReason,
        actor_id: Optional[str] = None,
        location_code: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> IdlePeriod:
        async with self._event("open_idle_period", car_number):
            await self._lock_active_car(car_number)
            period = await self.idle.open_period(car_number, reason, actor_id, location_code, start_date)
        return period

    async def close_idle_period(
        self,
        car_number: str,
        actor_id: Optional[str] = None,
        end_date: Optional[date] = None,
    ) -> IdlePeriod:
        async with self._event("close_idle_period", car_number):
            await self.cars.get_car(car_number, for_update=True)
            period = await self.idle.close_period(car_number, actor_id, end_date)
        return period

    async def set_storage_rate(
        self,
        location_code: str,
        rate_per_day: Decimal,
        rate_type: Optional[str] = None,
        effective_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> StorageRate:
        async with self._event("set_storage_rate"):
            rate = await self.idle.set_storage_rate(location_code, rate_per_day, rate_type, effective_date, notes)
        return rate
