"""
Transition tables for every lifecycle entity in the fleet core.

Each entity has a status enum and a table of allowed next states. Services
call ensure_transition() before every persisted status change, inside the
same transaction as the write.

    car fleet_status:  onboarding -> in_fleet -> disposed (terminal)
    scrap record:      proposed -> under_review -> approved -> scheduled
                       -> in_progress -> completed; cancel before in_progress
    master lease:      Active <-> Expired, either -> Terminated (terminal)
    lease rider:       Active <-> Expired, either -> Superseded (terminal)
    rider car:         decided -> prep_required -> on_rent -> releasing
                       -> off_rent; decided/prep_required -> cancelled
    car assignment:    Planned -> Scheduled -> Enroute -> Arrived -> InShop
                       -> Complete; any non-terminal -> Cancelled
    car release:       initiated -> approved -> executing -> completed;
                       cancel before executing
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from railfleet.core.errors import InvalidTransition
from railfleet.models.assignment import AssignmentStatus
from railfleet.models.car import FleetStatus, ScrapStatus
from railfleet.models.lease import LeaseRiderStatus, MasterLeaseStatus, RiderCarStatus
from railfleet.models.release import ReleaseStatus


FLEET_STATUS_TRANSITIONS: Dict[FleetStatus, FrozenSet[FleetStatus]] = {
    FleetStatus.ONBOARDING: frozenset({FleetStatus.IN_FLEET, FleetStatus.DISPOSED}),
    FleetStatus.IN_FLEET: frozenset({FleetStatus.DISPOSED}),
    FleetStatus.DISPOSED: frozenset(),
}

SCRAP_TRANSITIONS: Dict[ScrapStatus, FrozenSet[ScrapStatus]] = {
    ScrapStatus.PROPOSED: frozenset({ScrapStatus.UNDER_REVIEW, ScrapStatus.CANCELLED}),
    ScrapStatus.UNDER_REVIEW: frozenset({ScrapStatus.APPROVED, ScrapStatus.CANCELLED}),
    ScrapStatus.APPROVED: frozenset({ScrapStatus.SCHEDULED, ScrapStatus.CANCELLED}),
    ScrapStatus.SCHEDULED: frozenset({ScrapStatus.IN_PROGRESS, ScrapStatus.CANCELLED}),
    # Cutting has started: no way back
    ScrapStatus.IN_PROGRESS: frozenset({ScrapStatus.COMPLETED}),
    ScrapStatus.COMPLETED: frozenset(),
    ScrapStatus.CANCELLED: frozenset(),
}

MASTER_LEASE_TRANSITIONS: Dict[MasterLeaseStatus, FrozenSet[MasterLeaseStatus]] = {
    MasterLeaseStatus.ACTIVE: frozenset({MasterLeaseStatus.EXPIRED, MasterLeaseStatus.TERMINATED}),
    # Expired can be renewed or terminated
    MasterLeaseStatus.EXPIRED: frozenset({MasterLeaseStatus.ACTIVE, MasterLeaseStatus.TERMINATED}),
    MasterLeaseStatus.TERMINATED: frozenset(),
}

LEASE_RIDER_TRANSITIONS: Dict[LeaseRiderStatus, FrozenSet[LeaseRiderStatus]] = {
    LeaseRiderStatus.ACTIVE: frozenset({LeaseRiderStatus.EXPIRED, LeaseRiderStatus.SUPERSEDED}),
    # Expired can be extended or superseded
    LeaseRiderStatus.EXPIRED: frozenset({LeaseRiderStatus.ACTIVE, LeaseRiderStatus.SUPERSEDED}),
    LeaseRiderStatus.SUPERSEDED: frozenset(),
}

RIDER_CAR_TRANSITIONS: Dict[RiderCarStatus, FrozenSet[RiderCarStatus]] = {
    RiderCarStatus.DECIDED: frozenset(
        {RiderCarStatus.PREP_REQUIRED, RiderCarStatus.ON_RENT, RiderCarStatus.CANCELLED}
    ),
    RiderCarStatus.PREP_REQUIRED: frozenset({RiderCarStatus.ON_RENT, RiderCarStatus.CANCELLED}),
    RiderCarStatus.ON_RENT: frozenset({RiderCarStatus.RELEASING}),
    RiderCarStatus.RELEASING: frozenset({RiderCarStatus.OFF_RENT}),
    RiderCarStatus.OFF_RENT: frozenset(),
    RiderCarStatus.CANCELLED: frozenset(),
}

RELEASE_TRANSITIONS: Dict[ReleaseStatus, FrozenSet[ReleaseStatus]] = {
    ReleaseStatus.INITIATED: frozenset({ReleaseStatus.APPROVED, ReleaseStatus.CANCELLED}),
    ReleaseStatus.APPROVED: frozenset({ReleaseStatus.EXECUTING, ReleaseStatus.CANCELLED}),
    # The rider car is already releasing and cannot go back on rent
    ReleaseStatus.EXECUTING: frozenset({ReleaseStatus.COMPLETED}),
    ReleaseStatus.COMPLETED: frozenset(),
    ReleaseStatus.CANCELLED: frozenset(),
}

ASSIGNMENT_SEQUENCE = (
    AssignmentStatus.PLANNED,
    AssignmentStatus.SCHEDULED,
    AssignmentStatus.ENROUTE,
    AssignmentStatus.ARRIVED,
    AssignmentStatus.IN_SHOP,
    AssignmentStatus.COMPLETE,
)

ASSIGNMENT_TRANSITIONS: Dict[AssignmentStatus, FrozenSet[AssignmentStatus]] = {
    status: frozenset({next_status, AssignmentStatus.CANCELLED})
    for status, next_status in zip(ASSIGNMENT_SEQUENCE, ASSIGNMENT_SEQUENCE[1:])
}
ASSIGNMENT_TRANSITIONS[AssignmentStatus.COMPLETE] = frozenset()
ASSIGNMENT_TRANSITIONS[AssignmentStatus.CANCELLED] = frozenset()

_TABLES = {
    FleetStatus: FLEET_STATUS_TRANSITIONS,
    ScrapStatus: SCRAP_TRANSITIONS,
    MasterLeaseStatus: MASTER_LEASE_TRANSITIONS,
    LeaseRiderStatus: LEASE_RIDER_TRANSITIONS,
    RiderCarStatus: RIDER_CAR_TRANSITIONS,
    ReleaseStatus: RELEASE_TRANSITIONS,
    AssignmentStatus: ASSIGNMENT_TRANSITIONS,
}


def allowed_next_states(current: Enum, skip_forward: bool = False) -> FrozenSet[Enum]:
    """Return the states reachable from ``current`` in one transition.

    The table is picked by the enum type, since several status enums share
    string values ("Active" is both a lease and a rider status).

    ``skip_forward`` only applies to assignments: imported and migrated
    records may jump ahead in the shop sequence (never backwards).
    """
    table = _TABLES.get(type(current))
    if table is None:
        raise TypeError(f"No transition table for {type(current).__name__}")

    allowed = table[current]
    if skip_forward and isinstance(current, AssignmentStatus) and allowed:
        position = ASSIGNMENT_SEQUENCE.index(current)
        allowed = allowed | frozenset(ASSIGNMENT_SEQUENCE[position + 1:])
    return allowed


def is_terminal(current: Enum) -> bool:
    return not allowed_next_states(current)


def ensure_transition(
    entity_type: str,
    current: Optional[Enum],
    target: Enum,
    skip_forward: bool = False,
) -> None:
    """Raise InvalidTransition unless ``current -> target`` is allowed."""
    from_state = current.value if current is not None else None
    if current is None or target not in allowed_next_states(current, skip_forward=skip_forward):
        raise InvalidTransition(entity_type, from_state, target.value)
