import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text, text

from railfleet.models.base import Base


class TriageReason(str, enum.Enum):
    LEASE_EXPIRING = "lease_expiring"
    LEASE_EXPIRED = "lease_expired"
    SCRAP_CANCELLED = "scrap_cancelled"
    CUSTOMER_RETURN = "customer_return"
    BAD_ORDER = "bad_order"
    QUALIFICATION_DUE = "qualification_due"
    MANUAL = "manual"
    MARKET_CONDITIONS = "market_conditions"


class TriageResolution(str, enum.Enum):
    ASSIGNED_TO_SHOP = "assigned_to_shop"
    ASSIGNED_TO_CUSTOMER = "assigned_to_customer"
    RELEASED_TO_IDLE = "released_to_idle"
    SCRAP_PROPOSED = "scrap_proposed"
    DISMISSED = "dismissed"


class TriageEntry(Base):
    """A car waiting on a planner decision. resolved_at NULL = still in queue."""

    __tablename__ = "triage_queue"
    __table_args__ = (
        Index(
            "idx_triage_one_active",
            "car_number",
            unique=True,
            postgresql_where=text("resolved_at IS NULL"),
            sqlite_where=text("resolved_at IS NULL"),
        ),
        CheckConstraint("priority BETWEEN 1 AND 4", name="chk_triage_priority"),
    )

    id = Column(String, primary_key=True)
    car_number = Column(String(20), ForeignKey("cars.car_number"), nullable=False, index=True)

    reason = Column(
        Enum(TriageReason, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=30),
        nullable=False,
    )
    source_reference_id = Column(String, nullable=True)  # Lease, scrap, bad order, ...
    priority = Column(Integer, nullable=False, default=3)
    notes = Column(Text, nullable=True)

    resolved_at = Column(DateTime, nullable=True)
    resolution = Column(
        Enum(TriageResolution, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=30),
        nullable=True,
    )
    resolution_reference_id = Column(String, nullable=True)  # Assignment, rider car or scrap id
    resolved_by = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(String, nullable=True)
