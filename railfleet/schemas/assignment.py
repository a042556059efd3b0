from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from railfleet.models.assignment import AssignmentSource, AssignmentStatus


class AssignmentCreate(BaseModel):
    car_number: str
    shop_code: str = Field(min_length=1, max_length=20)
    shop_name: Optional[str] = None
    target_month: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")  # YYYY-MM
    target_date: Optional[date] = None
    source: AssignmentSource
    source_reference_id: Optional[str] = None
    source_reference_type: Optional[str] = None

    # Priority inputs: safety issues and qualification due dates
    is_safety: bool = False
    qualification_due_date: Optional[date] = None

    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    triage_entry_id: Optional[str] = None


class AssignmentAdvance(BaseModel):
    status: AssignmentStatus
    expected_version: Optional[int] = None


class AssignmentCancel(BaseModel):
    reason: str = Field(min_length=1)
    expected_version: Optional[int] = None


class AssignmentExpedite(BaseModel):
    reason: str = Field(min_length=1)
    priority: int = Field(default=1, ge=1, le=4)
    expected_version: Optional[int] = None


class AssignmentCosts(BaseModel):
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    actual_cost: Optional[Decimal] = Field(default=None, ge=0)
    expected_version: Optional[int] = None


class AssignmentRevert(BaseModel):
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class ShopVisitComplete(BaseModel):
    actual_cost: Optional[Decimal] = Field(default=None, ge=0)
    # Car goes straight to a customer in the same event
    rider_car_id: Optional[str] = None
    expected_version: Optional[int] = None


class AssignmentResponse(BaseModel):
    id: str
    car_number: str
    shop_code: str
    shop_name: Optional[str]
    target_month: str
    target_date: Optional[date]
    status: AssignmentStatus
    priority: int
    is_expedited: bool
    expedite_reason: Optional[str]
    estimated_cost: Optional[Decimal]
    actual_cost: Optional[Decimal]
    cost_variance: Optional[Decimal]
    source: AssignmentSource
    source_reference_id: Optional[str]
    source_reference_type: Optional[str]
    original_target_month: Optional[str]
    planned_at: Optional[datetime]
    scheduled_at: Optional[datetime]
    enroute_at: Optional[datetime]
    arrived_at: Optional[datetime]
    in_shop_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    version: int
    created_at: datetime

    model_config = {"from_attributes": True}
