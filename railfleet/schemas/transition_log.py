from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class TransitionLogResponse(BaseModel):
    id: str
    timestamp: datetime
    entity_type: str
    entity_id: str
    entity_number: Optional[str]
    from_state: Optional[str]
    to_state: str
    is_reversible: bool
    reversed_at: Optional[datetime] = None
    reversed_by: Optional[str] = None
    reversal_transition_id: Optional[str] = None
    actor_id: Optional[str]
    side_effects: Optional[List[Dict[str, Any]]]
    notes: Optional[str]

    model_config = {"from_attributes": True}


class RevertEligibilityResponse(BaseModel):
    allowed: bool
    transition_id: Optional[str] = None
    previous_state: Optional[str] = None
    blockers: List[str] = []

    model_config = {"from_attributes": True}
