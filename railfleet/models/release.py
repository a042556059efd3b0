"""Car releases: the hand-off that takes a rented car back from its rider."""
import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, String, Text, text

from railfleet.models.base import Base


class ReleaseType(str, enum.Enum):
    LEASE_EXPIRY = "lease_expiry"
    VOLUNTARY_RETURN = "voluntary_return"
    SHOP_COMPLETE = "shop_complete"
    CONTRACT_TRANSFER = "contract_transfer"
    DISPOSITION = "disposition"


class ReleaseStatus(str, enum.Enum):
    INITIATED = "initiated"    # Requested
    APPROVED = "approved"      # Signed off by a planner
    EXECUTING = "executing"    # Car physically moving back; rider car is releasing
    COMPLETED = "completed"    # Rider car off rent (terminal)
    CANCELLED = "cancelled"    # Abandoned before execution (terminal)


class CarRelease(Base):
    __tablename__ = "car_releases"
    __table_args__ = (
        Index(
            "idx_one_active_release_per_car",
            "car_number",
            unique=True,
            postgresql_where=text("status NOT IN ('completed', 'cancelled')"),
            sqlite_where=text("status NOT IN ('completed', 'cancelled')"),
        ),
    )

    id = Column(String, primary_key=True)
    car_number = Column(String(20), ForeignKey("cars.car_number"), nullable=False, index=True)
    rider_car_id = Column(String, ForeignKey("rider_cars.id"), nullable=False)
    rider_id = Column(String, ForeignKey("lease_riders.id"), nullable=False, index=True)
    # Shop visit that must finish with the release, if any
    assignment_id = Column(String, ForeignKey("car_assignments.id"), nullable=True)

    release_type = Column(
        Enum(ReleaseType, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=30),
        nullable=False,
    )
    status = Column(
        Enum(ReleaseStatus, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=20),
        nullable=False,
        default=ReleaseStatus.INITIATED,
        index=True,
    )

    initiated_by = Column(String, nullable=True)
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    executed_at = Column(DateTime, nullable=True)
    completed_by = Column(String, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
