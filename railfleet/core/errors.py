"""
Typed, recoverable errors raised by the fleet lifecycle services.

Nothing in this layer retries. A caller that receives ConcurrentModification
re-reads and decides whether the business intent still applies.
"""

from typing import Any, Dict, Optional


class FleetStateError(Exception):
    """Base class for every error the lifecycle core reports to callers."""

    code = "fleet_state_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidTransition(FleetStateError):
    """Attempted move is not in the entity's allowed transition table."""

    code = "invalid_transition"

    def __init__(self, entity_type: str, from_state: Optional[str], to_state: str, message: Optional[str] = None):
        self.entity_type = entity_type
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            message or f"Invalid {entity_type} transition: {from_state} -> {to_state}",
            {"entity_type": entity_type, "from_state": from_state, "to_state": to_state},
        )


class PrereqNotMet(FleetStateError):
    code = "prereq_not_met"


class DuplicateActiveAssignment(FleetStateError):
    code = "duplicate_active_assignment"


class DuplicateActiveEntry(FleetStateError):
    code = "duplicate_active_entry"


class DuplicateOpenPeriod(FleetStateError):
    code = "duplicate_open_period"


class DuplicateActiveRiderCar(FleetStateError):
    code = "duplicate_active_rider_car"


class DuplicateActiveScrap(FleetStateError):
    code = "duplicate_active_scrap"


class DuplicateActiveRelease(FleetStateError):
    code = "duplicate_active_release"


class ConcurrentModification(FleetStateError):
    """Caller supplied a stale optimistic-lock version."""

    code = "concurrent_modification"


class NotFound(FleetStateError):
    code = "not_found"


class NoOpenPeriod(NotFound):
    code = "no_open_period"


class StorageError(FleetStateError):
    """Unexpected failure from the relational store."""

    code = "storage_error"


class DuplicateKey(FleetStateError):
    """Natural key (car number, lease code, rider code) already registered."""

    code = "duplicate_key"
