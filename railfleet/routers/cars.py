from typing import List, Optional

from fastapi import APIRouter, Depends, status

from railfleet.api import deps
from railfleet.schemas.car import (
    CarCreate,
    CarResponse,
    DisposeRequest,
    ReadyToLoadUpdate,
    ScrapAdvance,
    ScrapCancel,
    ScrapCreate,
    ScrapResponse,
)
from railfleet.services.coordinator import TransitionCoordinator

router = APIRouter()


@router.post("/cars", response_model=CarResponse, status_code=status.HTTP_201_CREATED)
async def register_car(
    payload: CarCreate,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> CarResponse:
    car = await coordinator.register_car(payload, actor_id)
    return CarResponse.model_validate(car)


@router.get("/cars/{car_number}", response_model=CarResponse)
async def get_car(
    car_number: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> CarResponse:
    car = await coordinator.cars.get_car(car_number)
    return CarResponse.model_validate(car)


@router.post("/cars/{car_number}/activate", response_model=CarResponse)
async def activate_car(
    car_number: str,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> CarResponse:
    car = await coordinator.activate_car(car_number, actor_id)
    return CarResponse.model_validate(car)


@router.put("/cars/{car_number}/ready-to-load", response_model=CarResponse)
async def set_ready_to_load(
    car_number: str,
    payload: ReadyToLoadUpdate,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> CarResponse:
    car = await coordinator.set_ready_to_load(car_number, actor_id, payload.ready)
    return CarResponse.model_validate(car)


@router.post("/cars/{car_number}/dispose", response_model=CarResponse)
async def dispose_car(
    car_number: str,
    payload: DisposeRequest,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> CarResponse:
    car = await coordinator.dispose_car(car_number, payload.scrap_record_id, actor_id)
    return CarResponse.model_validate(car)


@router.post("/cars/{car_number}/scrap", response_model=ScrapResponse, status_code=status.HTTP_201_CREATED)
async def propose_scrap(
    car_number: str,
    payload: ScrapCreate,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ScrapResponse:
    scrap = await coordinator.propose_scrap(car_number, payload, actor_id)
    return ScrapResponse.model_validate(scrap)


@router.get("/cars/{car_number}/scrap", response_model=List[ScrapResponse])
async def list_scrap_records(
    car_number: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[ScrapResponse]:
    records = await coordinator.scrap.list_for_car(car_number)
    return [ScrapResponse.model_validate(record) for record in records]


@router.post("/scrap-records/{scrap_id}/advance", response_model=ScrapResponse)
async def advance_scrap(
    scrap_id: str,
    payload: ScrapAdvance,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ScrapResponse:
    scrap = await coordinator.advance_scrap(scrap_id, payload.to_status, actor_id, payload.actual_salvage_value)
    return ScrapResponse.model_validate(scrap)


@router.post("/scrap-records/{scrap_id}/cancel", response_model=ScrapResponse)
async def cancel_scrap(
    scrap_id: str,
    payload: ScrapCancel,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> ScrapResponse:
    scrap = await coordinator.cancel_scrap(scrap_id, payload.reason, actor_id)
    return ScrapResponse.model_validate(scrap)
