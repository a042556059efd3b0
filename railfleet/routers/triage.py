from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from railfleet.api import deps
from railfleet.schemas.triage import TriageEnqueue, TriageEntryResponse, TriageResolve
from railfleet.services.coordinator import TransitionCoordinator

router = APIRouter()


@router.get("", response_model=List[TriageEntryResponse])
async def list_open_entries(
    limit: int = Query(100, ge=1, le=500),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[TriageEntryResponse]:
    entries = await coordinator.triage.list_open(limit)
    return [TriageEntryResponse.model_validate(entry) for entry in entries]


@router.post("", response_model=TriageEntryResponse, status_code=status.HTTP_201_CREATED)
async def enqueue(
    payload: TriageEnqueue,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> TriageEntryResponse:
    entry = await coordinator.enqueue_triage(
        payload.car_number,
        payload.reason,
        actor_id,
        source_reference_id=payload.source_reference_id,
        priority=payload.priority,
        notes=payload.notes,
    )
    return TriageEntryResponse.model_validate(entry)


@router.get("/{entry_id}", response_model=TriageEntryResponse)
async def get_entry(
    entry_id: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> TriageEntryResponse:
    entry = await coordinator.triage.get(entry_id)
    return TriageEntryResponse.model_validate(entry)


@router.post("/{entry_id}/resolve", response_model=TriageEntryResponse)
async def resolve(
    entry_id: str,
    payload: TriageResolve,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> TriageEntryResponse:
    entry = await coordinator.resolve_triage(
        entry_id,
        payload.resolution,
        actor_id,
        resolution_reference_id=payload.resolution_reference_id,
        notes=payload.notes,
    )
    return TriageEntryResponse.model_validate(entry)
