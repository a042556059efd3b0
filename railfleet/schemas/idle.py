from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from railfleet.models.idle import IdleReason


class IdlePeriodOpen(BaseModel):
    car_number: str
    reason: IdleReason = IdleReason.UNKNOWN
    location_code: Optional[str] = None
    start_date: Optional[date] = None


class IdlePeriodClose(BaseModel):
    end_date: Optional[date] = None


class IdlePeriodResponse(BaseModel):
    id: str
    car_number: str
    start_date: date
    end_date: Optional[date]
    location_code: Optional[str]
    reason: IdleReason
    daily_rate: Optional[Decimal]
    rate_type: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class StorageRateCreate(BaseModel):
    location_code: str = Field(min_length=1, max_length=20)
    rate_type: str = "combined"
    rate_per_day: Decimal = Field(ge=0)
    effective_date: Optional[date] = None
    notes: Optional[str] = None


class StorageRateResponse(BaseModel):
    id: str
    location_code: str
    rate_type: str
    rate_per_day: Decimal
    effective_date: date
    superseded_date: Optional[date]

    model_config = {"from_attributes": True}


class IdlePeriodCost(BaseModel):
    id: str
    start_date: date
    end_date: Optional[date]
    days: int
    daily_rate: Optional[Decimal]
    cost: Decimal
    reason: IdleReason
    location_code: Optional[str]


class IdleCostSummary(BaseModel):
    car_number: str
    total_idle_days: int
    total_cost: Decimal
    periods: List[IdlePeriodCost]
