"""Customer contract structure: Master Lease -> Lease Rider -> Rider Car."""

import enum
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, text

from railfleet.models.base import Base


class MasterLeaseStatus(str, enum.Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"
    TERMINATED = "Terminated"


class LeaseRiderStatus(str, enum.Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"
    SUPERSEDED = "Superseded"


class RiderCarStatus(str, enum.Enum):
    DECIDED = "decided"              # Committed to the rider, not yet on rent
    PREP_REQUIRED = "prep_required"  # Waiting on a shop visit
    ON_RENT = "on_rent"              # Billing active
    RELEASING = "releasing"          # Release initiated, car in transit back
    OFF_RENT = "off_rent"            # Returned (terminal)
    CANCELLED = "cancelled"          # Cancelled before going on rent (terminal)


class MasterLease(Base):
    __tablename__ = "master_leases"

    id = Column(String, primary_key=True)
    lease_code = Column(String(30), nullable=False, unique=True)
    customer_code = Column(String(20), nullable=False, index=True)
    lease_name = Column(String(200), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)

    status = Column(
        Enum(MasterLeaseStatus, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=20),
        nullable=False,
        default=MasterLeaseStatus.ACTIVE,
        index=True,
    )
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class LeaseRider(Base):
    __tablename__ = "lease_riders"

    id = Column(String, primary_key=True)
    rider_code = Column(String(30), nullable=False, unique=True)
    master_lease_id = Column(String, ForeignKey("master_leases.id"), nullable=False, index=True)
    rider_name = Column(String(200), nullable=True)
    car_type = Column(String(50), nullable=True)
    car_count = Column(Integer, nullable=False, default=0)
    rate_per_car = Column(Numeric(10, 2), nullable=True)
    effective_date = Column(Date, nullable=False)
    expiration_date = Column(Date, nullable=True)

    status = Column(
        Enum(LeaseRiderStatus, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=20),
        nullable=False,
        default=LeaseRiderStatus.ACTIVE,
        index=True,
    )

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class RiderCar(Base):
    __tablename__ = "rider_cars"
    __table_args__ = (
        # A car can only be on one non-terminal rider at a time
        Index(
            "idx_one_active_rider_per_car",
            "car_number",
            unique=True,
            postgresql_where=text("status NOT IN ('off_rent', 'cancelled')"),
            sqlite_where=text("status NOT IN ('off_rent', 'cancelled')"),
        ),
    )

    id = Column(String, primary_key=True)
    rider_id = Column(String, ForeignKey("lease_riders.id"), nullable=False, index=True)
    car_number = Column(String(20), ForeignKey("cars.car_number"), nullable=False, index=True)

    status = Column(
        Enum(RiderCarStatus, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=20),
        nullable=False,
        default=RiderCarStatus.DECIDED,
    )

    # Prep shop visit when status = prep_required
    assignment_id = Column(String, ForeignKey("car_assignments.id"), nullable=True)

    decided_at = Column(DateTime, nullable=True)
    decided_by = Column(String, nullable=True)
    on_rent_at = Column(DateTime, nullable=True)
    releasing_at = Column(DateTime, nullable=True)
    off_rent_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
