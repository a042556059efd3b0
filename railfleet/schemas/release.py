from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from railfleet.models.release import ReleaseStatus, ReleaseType


class ReleaseCreate(BaseModel):
    car_number: str
    release_type: ReleaseType
    # Checked against the car's current rider when given
    rider_id: Optional[str] = None
    assignment_id: Optional[str] = None
    notes: Optional[str] = None


class ReleaseApprove(BaseModel):
    notes: Optional[str] = None


class ReleaseComplete(BaseModel):
    notes: Optional[str] = None
    # Where the returned car sits idle
    location_code: Optional[str] = None


class ReleaseCancel(BaseModel):
    reason: str = Field(min_length=1)


class ReleaseResponse(BaseModel):
    id: str
    car_number: str
    rider_car_id: str
    rider_id: str
    assignment_id: Optional[str]
    release_type: ReleaseType
    status: ReleaseStatus
    initiated_by: Optional[str]
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    executed_at: Optional[datetime]
    completed_by: Optional[str]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    notes: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
