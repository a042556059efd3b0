from typing import List

from fastapi import APIRouter, Depends, Query

from railfleet.api import deps
from railfleet.schemas.transition_log import RevertEligibilityResponse, TransitionLogResponse
from railfleet.services.coordinator import TransitionCoordinator

router = APIRouter()


@router.get("/cars/{car_number}", response_model=List[TransitionLogResponse])
async def car_history(
    car_number: str,
    limit: int = Query(100, ge=1, le=1000),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[TransitionLogResponse]:
    entries = await coordinator.transitions.history_for_car(car_number, limit)
    return [TransitionLogResponse.model_validate(entry) for entry in entries]


@router.get("/{entity_type}/{entity_id}", response_model=List[TransitionLogResponse])
async def entity_history(
    entity_type: str,
    entity_id: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[TransitionLogResponse]:
    entries = await coordinator.transitions.history(entity_type, entity_id)
    return [TransitionLogResponse.model_validate(entry) for entry in entries]


@router.get("/{entity_type}/{entity_id}/revert-eligibility", response_model=RevertEligibilityResponse)
async def revert_eligibility(
    entity_type: str,
    entity_id: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> RevertEligibilityResponse:
    eligibility = await coordinator.transitions.can_revert(entity_type, entity_id)
    return RevertEligibilityResponse.model_validate(eligibility)
