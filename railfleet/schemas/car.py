from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from railfleet.models.car import FleetStatus, ScrapStatus


class CarCreate(BaseModel):
    car_number: str = Field(min_length=1, max_length=20)
    car_mark: Optional[str] = None
    car_type: Optional[str] = None
    owner_code: Optional[str] = None
    fleet_status: FleetStatus = FleetStatus.ONBOARDING
    acquisition_cost: Optional[Decimal] = Field(default=None, ge=0)
    acquisition_date: Optional[date] = None
    book_value: Optional[Decimal] = Field(default=None, ge=0)
    book_value_as_of: Optional[date] = None


class CarResponse(BaseModel):
    id: str
    car_number: str
    car_mark: Optional[str]
    car_type: Optional[str]
    owner_code: Optional[str]
    fleet_status: FleetStatus
    acquisition_cost: Optional[Decimal]
    book_value: Optional[Decimal]
    ready_to_load: bool
    ready_to_load_at: Optional[datetime]
    ready_to_load_by: Optional[str]
    disposed_at: Optional[datetime]
    disposal_scrap_id: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class ReadyToLoadUpdate(BaseModel):
    ready: bool = True


class DisposeRequest(BaseModel):
    scrap_record_id: str


class ScrapCreate(BaseModel):
    reason: str = Field(min_length=1)
    estimated_salvage_value: Optional[Decimal] = Field(default=None, ge=0)
    facility_code: Optional[str] = None
    target_date: Optional[date] = None


class ScrapAdvance(BaseModel):
    to_status: ScrapStatus
    actual_salvage_value: Optional[Decimal] = Field(default=None, ge=0)


class ScrapCancel(BaseModel):
    reason: str = Field(min_length=1)


class ScrapResponse(BaseModel):
    id: str
    car_number: str
    status: ScrapStatus
    reason: str
    estimated_salvage_value: Optional[Decimal]
    actual_salvage_value: Optional[Decimal]
    facility_code: Optional[str]
    target_date: Optional[date]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
