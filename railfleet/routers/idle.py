from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from railfleet.api import deps
from railfleet.schemas.idle import (
    IdleCostSummary,
    IdlePeriodClose,
    IdlePeriodOpen,
    IdlePeriodResponse,
    StorageRateCreate,
    StorageRateResponse,
)
from railfleet.services.coordinator import TransitionCoordinator

router = APIRouter()


@router.post("/idle-periods", response_model=IdlePeriodResponse, status_code=status.HTTP_201_CREATED)
async def open_idle_period(
    payload: IdlePeriodOpen,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> IdlePeriodResponse:
    period = await coordinator.open_idle_period(
        payload.car_number,
        payload.reason,
        actor_id,
        location_code=payload.location_code,
        start_date=payload.start_date,
    )
    return IdlePeriodResponse.model_validate(period)


@router.post("/idle-periods/{car_number}/close", response_model=IdlePeriodResponse)
async def close_idle_period(
    car_number: str,
    payload: IdlePeriodClose,
    actor_id: Optional[str] = Depends(deps.get_actor_id),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> IdlePeriodResponse:
    period = await coordinator.close_idle_period(car_number, actor_id, payload.end_date)
    return IdlePeriodResponse.model_validate(period)


@router.get("/idle-periods/{car_number}", response_model=List[IdlePeriodResponse])
async def list_idle_periods(
    car_number: str,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> List[IdlePeriodResponse]:
    periods = await coordinator.idle.list_periods(car_number)
    return [IdlePeriodResponse.model_validate(period) for period in periods]


@router.get("/idle-periods/{car_number}/cost", response_model=IdleCostSummary)
async def idle_cost_summary(
    car_number: str,
    as_of: Optional[date] = Query(None),
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> IdleCostSummary:
    return await coordinator.idle.cost_summary(car_number, as_of)


@router.post("/storage-rates", response_model=StorageRateResponse, status_code=status.HTTP_201_CREATED)
async def set_storage_rate(
    payload: StorageRateCreate,
    coordinator: TransitionCoordinator = Depends(deps.get_coordinator),
) -> StorageRateResponse:
    rate = await coordinator.set_storage_rate(
        payload.location_code,
        payload.rate_per_day,
        rate_type=payload.rate_type,
        effective_date=payload.effective_date,
        notes=payload.notes,
    )
    return StorageRateResponse.model_validate(rate)
