from typing import List, Optional

from fastapi import APIRouter, Depends, status

from railfleet.api import deps
from railfleet.schemas.lease import (
    LeaseRiderCreate,
    LeaseRiderResponse,
    LeaseRiderTransition,
    MasterLeaseCreate,
    MasterLeaseResponse,
    MasterLeaseTransition,
    RiderCarDecide,
    RiderCarResponse,
    RiderCarTransition,
)
from railfleet.services.coordinator import TransitionCoordinator

router = APIRouter()


@router.post("/master-leases", response_model=MasterLeaseResponse, status_code=status.HTTP_201_CREATED)
async def create_master_lease(
    payload: MasterLeaseCreate,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> MasterLeaseResponse:
    lease = await coordinator.create_master_lease(payload, actor_id)
    return MasterLeaseResponse.model_validate(lease)


@router.get("/master-leases/{lease_id}", response_model=MasterLeaseResponse)
async def get_master_lease(
    lease_id: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> MasterLeaseResponse:
    lease = await coordinator.leases.get_master_lease(lease_id)
    return MasterLeaseResponse.model_validate(lease)


@router.get("/master-leases/{lease_id}/riders", response_model=List[LeaseRiderResponse])
async def list_lease_riders(
    lease_id: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[LeaseRiderResponse]:
    riders = await coordinator.leases.list_riders(lease_id)
    return [LeaseRiderResponse.model_validate(rider) for rider in riders]


@router.post("/master-leases/{lease_id}/transition", response_model=MasterLeaseResponse)
async def transition_master_lease(
    lease_id: str,
    payload: MasterLeaseTransition,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> MasterLeaseResponse:
    lease = await coordinator.transition_master_lease(lease_id, payload.to_status, actor_id)
    return MasterLeaseResponse.model_validate(lease)


@router.post("/lease-riders", response_model=LeaseRiderResponse, status_code=status.HTTP_201_CREATED)
async def create_lease_rider(
    payload: LeaseRiderCreate,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> LeaseRiderResponse:
    rider = await coordinator.create_lease_rider(payload, actor_id)
    return LeaseRiderResponse.model_validate(rider)


@router.post("/lease-riders/{rider_id}/transition", response_model=LeaseRiderResponse)
async def transition_lease_rider(
    rider_id: str,
    payload: LeaseRiderTransition,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> LeaseRiderResponse:
    rider = await coordinator.transition_lease_rider(rider_id, payload.to_status, actor_id)
    return LeaseRiderResponse.model_validate(rider)


@router.get("/lease-riders/{rider_id}/cars", response_model=List[RiderCarResponse])
async def list_rider_cars(
    rider_id: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[RiderCarResponse]:
    rider_cars = await coordinator.leases.list_rider_cars(rider_id)
    return [RiderCarResponse.model_validate(rider_car) for rider_car in rider_cars]


@router.post(
    "/lease-riders/{rider_id}/cars",
    response_model=RiderCarResponse,
    status_code=status.HTTP_201_CREATED,
)
async def decide_rider_car(
    rider_id: str,
    payload: RiderCarDecide,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> RiderCarResponse:
    rider_car = await coordinator.decide_rider_car(rider_id, payload.car_number, actor_id, payload.triage_entry_id)
    return RiderCarResponse.model_validate(rider_car)


@router.post("/rider-cars/{rider_car_id}/transition", response_model=RiderCarResponse)
async def transition_rider_car(
    rider_car_id: str,
    payload: RiderCarTransition,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> RiderCarResponse:
    rider_car = await coordinator.transition_rider_car(
        rider_car_id,
        payload.to_status,
        actor_id,
        assignment_id=payload.assignment_id,
        location_code=payload.location_code,
    )
    return RiderCarResponse.model_validate(rider_car)
