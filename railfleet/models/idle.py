import enum
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Index, Numeric, String, Text, text

from railfleet.models.base import Base


class IdleReason(str, enum.Enum):
    BETWEEN_LEASES = "between_leases"
    AWAITING_PREP = "awaiting_prep"
    AWAITING_TRIAGE = "awaiting_triage"
    MARKET_CONDITIONS = "market_conditions"
    HOLD = "hold"
    NEW_TO_FLEET = "new_to_fleet"
    UNKNOWN = "unknown"


class IdlePeriod(Base):
    __tablename__ = "idle_periods"
    __table_args__ = (
        Index(
            "idx_one_active_idle_per_car",
            "car_number",
            unique=True,
            postgresql_where=text("end_date IS NULL"),
            sqlite_where=text("end_date IS NULL"),
        ),
    )

    id = Column(String, primary_key=True)
    car_number = Column(String(20), ForeignKey("cars.car_number"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # NULL = still idle

    location_code = Column(String(20), nullable=True)
    reason = Column(
        Enum(IdleReason, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=30),
        nullable=False,
        default=IdleReason.UNKNOWN,
    )

    # Snapshot of storage_rates at period start; later rate changes never touch it
    daily_rate = Column(Numeric(10, 2), nullable=True)
    rate_type = Column(String(20), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class StorageRate(Base):
    __tablename__ = "storage_rates"
    __table_args__ = (
        Index(
            "idx_one_active_rate_per_loc_type",
            "location_code",
            "rate_type",
            unique=True,
            postgresql_where=text("superseded_date IS NULL"),
            sqlite_where=text("superseded_date IS NULL"),
        ),
    )

    id = Column(String, primary_key=True)
    location_code = Column(String(20), nullable=False, index=True)
    rate_type = Column(String(20), nullable=False)  # yard_fee, insurance, regulatory, combined
    rate_per_day = Column(Numeric(10, 2), nullable=False)
    effective_date = Column(Date, nullable=False)
    superseded_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
