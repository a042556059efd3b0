"""Fleet membership: the car registry and its disposal (scrap) records."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKey, Index, Numeric, String, Text, text

from railfleet.models.base import Base


class FleetStatus(str, enum.Enum):
    ONBOARDING = "onboarding"
    IN_FLEET = "in_fleet"
    DISPOSED = "disposed"


class ScrapStatus(str, enum.Enum):
    PROPOSED = "proposed"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Car(Base):
    __tablename__ = "cars"

    id = Column(String, primary_key=True)
    car_number = Column(String(20), nullable=False, unique=True, index=True)
    car_mark = Column(String(10), nullable=True)
    car_type = Column(String(50), nullable=True)
    owner_code = Column(String(20), nullable=True)

    fleet_status = Column(
        Enum(FleetStatus, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=20),
        nullable=False,
        default=FleetStatus.ONBOARDING,
        index=True,
    )

    # Financial snapshot
    acquisition_cost = Column(Numeric(14, 2), nullable=True)
    acquisition_date = Column(Date, nullable=True)
    book_value = Column(Numeric(14, 2), nullable=True)
    book_value_as_of = Column(Date, nullable=True)

    # Manual flag, always set by a person
    ready_to_load = Column(Boolean, nullable=False, default=False)
    ready_to_load_at = Column(DateTime, nullable=True)
    ready_to_load_by = Column(String, nullable=True)

    disposed_at = Column(DateTime, nullable=True)
    disposed_by = Column(String, nullable=True)
    disposal_scrap_id = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class ScrapRecord(Base):
    """Disposal workflow record. A car is disposed only against a completed one."""

    __tablename__ = "scrap_records"
    __table_args__ = (
        Index(
            "idx_one_active_scrap_per_car",
            "car_number",
            unique=True,
            postgresql_where=text("status NOT IN ('completed', 'cancelled')"),
            sqlite_where=text("status NOT IN ('completed', 'cancelled')"),
        ),
    )

    id = Column(String, primary_key=True)
    car_number = Column(String(20), ForeignKey("cars.car_number"), nullable=False, index=True)

    status = Column(
        Enum(ScrapStatus, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=20),
        nullable=False,
        default=ScrapStatus.PROPOSED,
    )
    reason = Column(Text, nullable=False)
    estimated_salvage_value = Column(Numeric(14, 2), nullable=True)
    actual_salvage_value = Column(Numeric(14, 2), nullable=True)
    facility_code = Column(String(20), nullable=True)
    target_date = Column(Date, nullable=True)

    proposed_by = Column(String, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
