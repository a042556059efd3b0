from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from railfleet.api import deps
from railfleet.models.release import ReleaseStatus
from railfleet.schemas.release import (
    ReleaseApprove,
    ReleaseCancel,
    ReleaseComplete,
    ReleaseCreate,
    ReleaseResponse,
)
from railfleet.services.coordinator import TransitionCoordinator

router = APIRouter()


@router.post("", response_model=ReleaseResponse, status_code=status.HTTP_201_CREATED)
async def initiate_release(
    payload: ReleaseCreate,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ReleaseResponse:
    release = await coordinator.initiate_release(payload, actor_id)
    return ReleaseResponse.model_validate(release)


@router.get("", response_model=List[ReleaseResponse])
async def list_releases(
    car_number: Optional[str] = None,
    rider_id: Optional[str] = None,
    release_status: Optional[ReleaseStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[ReleaseResponse]:
    releases = await coordinator.releases.list_releases(car_number, rider_id, release_status, limit)
    return [ReleaseResponse.model_validate(release) for release in releases]


@router.get("/{release_id}", response_model=ReleaseResponse)
async def get_release(
    release_id: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ReleaseResponse:
    release = await coordinator.releases.get(release_id)
    return ReleaseResponse.model_validate(release)


@router.post("/{release_id}/approve", response_model=ReleaseResponse)
async def approve_release(
    release_id: str,
    payload: ReleaseApprove,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ReleaseResponse:
    release = await coordinator.approve_release(release_id, actor_id, payload.notes)
    return ReleaseResponse.model_validate(release)


@router.post("/{release_id}/execute", response_model=ReleaseResponse)
async def execute_release(
    release_id: str,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ReleaseResponse:
    release = await coordinator.execute_release(release_id, actor_id)
    return ReleaseResponse.model_validate(release)


@router.post("/{release_id}/complete", response_model=ReleaseResponse)
async def complete_release(
    release_id: str,
    payload: ReleaseComplete,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ReleaseResponse:
    release = await coordinator.complete_release(release_id, actor_id, payload.notes, payload.location_code)
    return ReleaseResponse.model_validate(release)


@router.post("/{release_id}/cancel", response_model=ReleaseResponse)
async def cancel_release(
    release_id: str,
    payload: ReleaseCancel,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ReleaseResponse:
    release = await coordinator.cancel_release(release_id, payload.reason, actor_id)
    return ReleaseResponse.model_validate(release)
