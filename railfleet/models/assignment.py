"""
Car Assignment model - the single source of truth for shop work.

Every planning path (demand plan, service plan, bad order, quick shop,
imports) writes into car_assignments instead of keeping its own status.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.ext.hybrid import hybrid_property

from railfleet.models.base import Base


class AssignmentStatus(str, enum.Enum):
    PLANNED = "Planned"      # Assignment created, not yet scheduled
    SCHEDULED = "Scheduled"  # Confirmed with shop, date set
    ENROUTE = "Enroute"      # Car shipped to shop
    ARRIVED = "Arrived"      # Car at shop
    IN_SHOP = "InShop"       # Work in progress
    COMPLETE = "Complete"
    CANCELLED = "Cancelled"


class AssignmentSource(str, enum.Enum):
    DEMAND_PLAN = "demand_plan"
    SERVICE_PLAN = "service_plan"
    SCENARIO_EXPORT = "scenario_export"
    BAD_ORDER = "bad_order"
    QUICK_SHOP = "quick_shop"
    IMPORT = "import"
    MASTER_PLAN = "master_plan"
    MIGRATION = "migration"
    BRC_IMPORT = "brc_import"
    PROJECT_PLAN = "project_plan"


class CarAssignment(Base):
    __tablename__ = "car_assignments"
    __table_args__ = (
        # Only one active assignment per car, across all planning paths
        Index(
            "idx_one_active_assignment_per_car",
            "car_number",
            unique=True,
            postgresql_where=text("status NOT IN ('Complete', 'Cancelled')"),
            sqlite_where=text("status NOT IN ('Complete', 'Cancelled')"),
        ),
        CheckConstraint("priority BETWEEN 1 AND 4", name="chk_ca_priority"),
    )

    id = Column(String, primary_key=True)
    car_number = Column(String(20), ForeignKey("cars.car_number"), nullable=False, index=True)

    shop_code = Column(String(20), nullable=False, index=True)
    shop_name = Column(String(100), nullable=True)  # Display projection, not authoritative
    target_month = Column(String(7), nullable=False)  # YYYY-MM
    target_date = Column(Date, nullable=True)

    status = Column(
        Enum(AssignmentStatus, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=20),
        nullable=False,
        default=AssignmentStatus.PLANNED,
        index=True,
    )
    planned_at = Column(DateTime, nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    enroute_at = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)
    in_shop_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # 1 = critical (bad order, safety) ... 4 = low (routine)
    priority = Column(Integer, nullable=False, default=4)
    is_expedited = Column(Boolean, nullable=False, default=False)
    expedite_reason = Column(Text, nullable=True)
    expedited_at = Column(DateTime, nullable=True)
    expedited_by = Column(String, nullable=True)

    estimated_cost = Column(Numeric(12, 2), nullable=True)
    actual_cost = Column(Numeric(12, 2), nullable=True)

    source = Column(
        Enum(AssignmentSource, values_callable=lambda enum_class: [e.value for e in enum_class],
             native_enum=False, length=30),
        nullable=False,
        index=True,
    )
    source_reference_id = Column(String, nullable=True)
    source_reference_type = Column(String(30), nullable=True)

    original_shop_code = Column(String(20), nullable=True)
    original_target_month = Column(String(7), nullable=True)

    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by = Column(String, nullable=True)

    # Optimistic lock: every UPDATE is "... WHERE version = :old"
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def cost_variance(self):
        if self.actual_cost is None or self.estimated_cost is None:
            return None
        return self.actual_cost - self.estimated_cost

    @cost_variance.inplace.expression
    @classmethod
    def _cost_variance_expression(cls):
        return cls.actual_cost - cls.estimated_cost

    @property
    def is_terminal(self) -> bool:
        return self.status in (AssignmentStatus.COMPLETE, AssignmentStatus.CANCELLED)
