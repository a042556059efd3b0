from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from railfleet.models.triage import TriageReason, TriageResolution


class TriageEnqueue(BaseModel):
    car_number: str
    reason: TriageReason
    source_reference_id: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=1, le=4)
    notes: Optional[str] = None


class TriageResolve(BaseModel):
    resolution: TriageResolution
    resolution_reference_id: Optional[str] = None
    notes: Optional[str] = None


class TriageEntryResponse(BaseModel):
    id: str
    car_number: str
    reason: TriageReason
    source_reference_id: Optional[str]
    priority: int
    notes: Optional[str]
    resolved_at: Optional[datetime]
    resolution: Optional[TriageResolution]
    resolution_reference_id: Optional[str]
    resolved_by: Optional[str]
    created_at: datetime
    created_by: Optional[str]

    model_config = {"from_attributes": True}
