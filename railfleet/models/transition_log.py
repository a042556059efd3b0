"""
State Transition Log Model.

Unified audit trail for every lifecycle transition in the fleet core:
- Car fleet status (dispose, activate)
- Lease hierarchy (master lease, rider, rider car)
- Shop assignments
- Triage entries and idle periods
- Scrap records

Rows are written in the same transaction as the transition they describe.
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, Text

from railfleet.models.base import Base


class StateTransitionLog(Base):
    __tablename__ = "state_transition_log"

    id = Column(String, primary_key=True)

    # When
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # What
    entity_type = Column(String(50), nullable=False)
    # Entity types:
    # - car, scrap_record
    # - master_lease, lease_rider, rider_car
    # - car_assignment
    # - triage_queue, idle_period
    entity_id = Column(String, nullable=False)
    entity_number = Column(String(100), nullable=True)  # Car number for display
    from_state = Column(String(50), nullable=True)  # Null on creation
    to_state = Column(String(50), nullable=False)
    is_reversible = Column(Boolean, nullable=False, default=False)

    # Set when a later transition undoes this one
    reversed_at = Column(DateTime, nullable=True)
    reversed_by = Column(String, nullable=True)
    reversal_transition_id = Column(String, nullable=True)

    # Who
    actor_id = Column(String, nullable=True, index=True)

    # Cascaded changes made by the same business event
    side_effects = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_stl_entity", "entity_type", "entity_id"),
    )
