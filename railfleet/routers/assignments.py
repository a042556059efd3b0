from typing import List, Optional

from fastapi import APIRouter, Depends, status

from railfleet.api import deps
from railfleet.schemas.assignment import (
    AssignmentAdvance,
    AssignmentCancel,
    AssignmentCosts,
    AssignmentCreate,
    AssignmentExpedite,
    AssignmentResponse,
    AssignmentRevert,
    ShopVisitComplete,
)
from railfleet.services.coordinator import TransitionCoordinator

router = APIRouter()


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    payload: AssignmentCreate,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> AssignmentResponse:
    assignment = await coordinator.create_assignment(payload, actor_id)
    return AssignmentResponse.model_validate(assignment)


@router.get("/car/{car_number}", response_model=List[AssignmentResponse])
async def list_assignments_for_car(
    car_number: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[AssignmentResponse]:
    assignments = await coordinator.assignments.list_for_car(car_number)
    return [AssignmentResponse.model_validate(assignment) for assignment in assignments]


@router.get("/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(
    assignment_id: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> AssignmentResponse:
    assignment = await coordinator.assignments.get(assignment_id)
    return AssignmentResponse.model_validate(assignment)


@router.post("/{assignment_id}/status", response_model=AssignmentResponse)
async def advance_assignment(
    assignment_id: str,
    payload: AssignmentAdvance,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> AssignmentResponse:
    assignment = await coordinator.advance_assignment(
        assignment_id, payload.status, actor_id, expected_version=payload.expected_version
    )
    return AssignmentResponse.model_validate(assignment)


@router.post("/{assignment_id}/cancel", response_model=AssignmentResponse)
async def cancel_assignment(
    assignment_id: str,
    payload: AssignmentCancel,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> AssignmentResponse:
    assignment = await coordinator.cancel_assignment(
        assignment_id, payload.reason, actor_id, expected_version=payload.expected_version
    )
    return AssignmentResponse.model_validate(assignment)


@router.post("/{assignment_id}/expedite", response_model=AssignmentResponse)
async def expedite_assignment(
    assignment_id: str,
    payload: AssignmentExpedite,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> AssignmentResponse:
    assignment = await coordinator.expedite_assignment(
        assignment_id,
        payload.reason,
        actor_id,
        priority=payload.priority,
        expected_version=payload.expected_version,
    )
    return AssignmentResponse.model_validate(assignment)


@router.put("/{assignment_id}/costs", response_model=AssignmentResponse)
async def record_assignment_costs(
    assignment_id: str,
    payload: AssignmentCosts,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> AssignmentResponse:
    assignment = await coordinator.record_assignment_costs(
        assignment_id,
        estimated_cost=payload.estimated_cost,
        actual_cost=payload.actual_cost,
        actor_id=actor_id,
        expected_version=payload.expected_version,
    )
    return AssignmentResponse.model_validate(assignment)


@router.post("/{assignment_id}/complete", response_model=AssignmentResponse)
async def complete_shop_visit(
    assignment_id: str,
    payload: ShopVisitComplete,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> AssignmentResponse:
    assignment = await coordinator.complete_shop_visit(
        assignment_id,
        actor_id,
        actual_cost=payload.actual_cost,
        rider_car_id=payload.rider_car_id,
        expected_version=payload.expected_version,
    )
    return AssignmentResponse.model_validate(assignment)


@router.post("/{assignment_id}/revert", response_model=AssignmentResponse)
async def revert_assignment(
    assignment_id: str,
    payload: AssignmentRevert,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> AssignmentResponse:
    assignment = await coordinator.revert_assignment(
        assignment_id, actor_id, expected_version=payload.expected_version, notes=payload.notes
    )
    return AssignmentResponse.model_validate(assignment)
