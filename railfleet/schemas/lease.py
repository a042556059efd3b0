from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from railfleet.models.lease import LeaseRiderStatus, MasterLeaseStatus, RiderCarStatus


class MasterLeaseCreate(BaseModel):
    lease_code: str = Field(min_length=1, max_length=30)
    customer_code: str = Field(min_length=1, max_length=20)
    lease_name: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = None


class MasterLeaseResponse(BaseModel):
    id: str
    lease_code: str
    customer_code: str
    lease_name: Optional[str]
    start_date: date
    end_date: Optional[date]
    status: MasterLeaseStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class LeaseRiderCreate(BaseModel):
    rider_code: str = Field(min_length=1, max_length=30)
    master_lease_id: str
    rider_name: Optional[str] = None
    car_type: Optional[str] = None
    car_count: int = Field(default=0, ge=0)
    rate_per_car: Optional[Decimal] = Field(default=None, ge=0)
    effective_date: date
    expiration_date: Optional[date] = None
    status: LeaseRiderStatus = LeaseRiderStatus.ACTIVE


class LeaseRiderResponse(BaseModel):
    id: str
    rider_code: str
    master_lease_id: str
    rider_name: Optional[str]
    car_type: Optional[str]
    car_count: int
    rate_per_car: Optional[Decimal]
    effective_date: date
    expiration_date: Optional[date]
    status: LeaseRiderStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class MasterLeaseTransition(BaseModel):
    to_status: MasterLeaseStatus


class LeaseRiderTransition(BaseModel):
    to_status: LeaseRiderStatus


class RiderCarDecide(BaseModel):
    car_number: str
    triage_entry_id: Optional[str] = None


class RiderCarTransition(BaseModel):
    to_status: RiderCarStatus
    # Prep shop visit, required when moving to prep_required
    assignment_id: Optional[str] = None
    # Where a returned car sits idle (off_rent only)
    location_code: Optional[str] = None


class RiderCarResponse(BaseModel):
    id: str
    rider_id: str
    car_number: str
    status: RiderCarStatus
    assignment_id: Optional[str]
    decided_at: Optional[datetime]
    decided_by: Optional[str]
    on_rent_at: Optional[datetime]
    releasing_at: Optional[datetime]
    off_rent_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    model_config = {"from_attributes": True}
