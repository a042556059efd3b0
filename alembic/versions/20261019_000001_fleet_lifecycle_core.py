"""Fleet lifecycle core tables

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 09:00:00

"""

from alembic import op
import sqlalchemy as sa


revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def _partial_unique(name: str, table: str, columns: list, predicate: str) -> None:
    op.create_index(
        name,
        table,
        columns,
        unique=True,
        postgresql_where=sa.text(predicate),
        sqlite_where=sa.text(predicate),
    )


def upgrade() -> None:
    op.create_table(
        "cars",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("car_number", sa.String(20), nullable=False),
        sa.Column("car_mark", sa.String(10), nullable=True),
        sa.Column("car_type", sa.String(50), nullable=True),
        sa.Column("owner_code", sa.String(20), nullable=True),
        sa.Column("fleet_status", sa.String(20), nullable=False),
        sa.Column("acquisition_cost", sa.Numeric(14, 2), nullable=True),
        sa.Column("acquisition_date", sa.Date(), nullable=True),
        sa.Column("book_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("book_value_as_of", sa.Date(), nullable=True),
        sa.Column("ready_to_load", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ready_to_load_at", sa.DateTime(), nullable=True),
        sa.Column("ready_to_load_by", sa.String(), nullable=True),
        sa.Column("disposed_at", sa.DateTime(), nullable=True),
        sa.Column("disposed_by", sa.String(), nullable=True),
        sa.Column("disposal_scrap_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cars_car_number", "cars", ["car_number"], unique=True)
    op.create_index("ix_cars_fleet_status", "cars", ["fleet_status"])

    op.create_table(
        "scrap_records",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("car_number", sa.String(20), sa.ForeignKey("cars.car_number"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("estimated_salvage_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("actual_salvage_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("facility_code", sa.String(20), nullable=True),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("proposed_by", sa.String(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_by", sa.String(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scrap_records_car_number", "scrap_records", ["car_number"])
    _partial_unique("idx_one_active_scrap_per_car", "scrap_records", ["car_number"],
                    "status NOT IN ('completed', 'cancelled')")

    op.create_table(
        "master_leases",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lease_code", sa.String(30), nullable=False, unique=True),
        sa.Column("customer_code", sa.String(20), nullable=False),
        sa.Column("lease_name", sa.String(200), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_master_leases_customer_code", "master_leases", ["customer_code"])
    op.create_index("ix_master_leases_status", "master_leases", ["status"])

    op.create_table(
        "lease_riders",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("rider_code", sa.String(30), nullable=False, unique=True),
        sa.Column("master_lease_id", sa.String(), sa.ForeignKey("master_leases.id"), nullable=False),
        sa.Column("rider_name", sa.String(200), nullable=True),
        sa.Column("car_type", sa.String(50), nullable=True),
        sa.Column("car_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rate_per_car", sa.Numeric(10, 2), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("expiration_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_lease_riders_master_lease_id", "lease_riders", ["master_lease_id"])
    op.create_index("ix_lease_riders_status", "lease_riders", ["status"])

    op.create_table(
        "car_assignments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("car_number", sa.String(20), sa.ForeignKey("cars.car_number"), nullable=False),
        sa.Column("shop_code", sa.String(20), nullable=False),
        sa.Column("shop_name", sa.String(100), nullable=True),
        sa.Column("target_month", sa.String(7), nullable=False),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("planned_at", sa.DateTime(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("enroute_at", sa.DateTime(), nullable=True),
        sa.Column("arrived_at", sa.DateTime(), nullable=True),
        sa.Column("in_shop_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("is_expedited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expedite_reason", sa.Text(), nullable=True),
        sa.Column("expedited_at", sa.DateTime(), nullable=True),
        sa.Column("expedited_by", sa.String(), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("actual_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("source_reference_id", sa.String(), nullable=True),
        sa.Column("source_reference_type", sa.String(30), nullable=True),
        sa.Column("original_shop_code", sa.String(20), nullable=True),
        sa.Column("original_target_month", sa.String(7), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_by", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("priority BETWEEN 1 AND 4", name="chk_ca_priority"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_car_assignments_car_number", "car_assignments", ["car_number"])
    op.create_index("ix_car_assignments_shop_code", "car_assignments", ["shop_code"])
    op.create_index("ix_car_assignments_status", "car_assignments", ["status"])
    op.create_index("ix_car_assignments_source", "car_assignments", ["source"])
    _partial_unique("idx_one_active_assignment_per_car", "car_assignments", ["car_number"],
                    "status NOT IN ('Complete', 'Cancelled')")

    op.create_table(
        "rider_cars",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("rider_id", sa.String(), sa.ForeignKey("lease_riders.id"), nullable=False),
        sa.Column("car_number", sa.String(20), sa.ForeignKey("cars.car_number"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("assignment_id", sa.String(), sa.ForeignKey("car_assignments.id"), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("decided_by", sa.String(), nullable=True),
        sa.Column("on_rent_at", sa.DateTime(), nullable=True),
        sa.Column("releasing_at", sa.DateTime(), nullable=True),
        sa.Column("off_rent_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rider_cars_rider_id", "rider_cars", ["rider_id"])
    op.create_index("ix_rider_cars_car_number", "rider_cars", ["car_number"])
    _partial_unique("idx_one_active_rider_per_car", "rider_cars", ["car_number"],
                    "status NOT IN ('off_rent', 'cancelled')")

    op.create_table(
        "car_releases",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("car_number", sa.String(20), sa.ForeignKey("cars.car_number"), nullable=False),
        sa.Column("rider_car_id", sa.String(), sa.ForeignKey("rider_cars.id"), nullable=False),
        sa.Column("rider_id", sa.String(), sa.ForeignKey("lease_riders.id"), nullable=False),
        sa.Column("assignment_id", sa.String(), sa.ForeignKey("car_assignments.id"), nullable=True),
        sa.Column("release_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("initiated_by", sa.String(), nullable=True),
        sa.Column("approved_by", sa.String(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("executed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_by", sa.String(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_car_releases_car_number", "car_releases", ["car_number"])
    op.create_index("ix_car_releases_rider_id", "car_releases", ["rider_id"])
    op.create_index("ix_car_releases_status", "car_releases", ["status"])
    _partial_unique("idx_one_active_release_per_car", "car_releases", ["car_number"],
                    "status NOT IN ('completed', 'cancelled')")

    op.create_table(
        "triage_queue",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("car_number", sa.String(20), sa.ForeignKey("cars.car_number"), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("source_reference_id", sa.String(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolution", sa.String(30), nullable=True),
        sa.Column("resolution_reference_id", sa.String(), nullable=True),
        sa.Column("resolved_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.CheckConstraint("priority BETWEEN 1 AND 4", name="chk_triage_priority"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_triage_queue_car_number", "triage_queue", ["car_number"])
    _partial_unique("idx_triage_one_active", "triage_queue", ["car_number"], "resolved_at IS NULL")

    op.create_table(
        "idle_periods",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("car_number", sa.String(20), sa.ForeignKey("cars.car_number"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("location_code", sa.String(20), nullable=True),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("daily_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("rate_type", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_idle_periods_car_number", "idle_periods", ["car_number"])
    _partial_unique("idx_one_active_idle_per_car", "idle_periods", ["car_number"], "end_date IS NULL")

    op.create_table(
        "storage_rates",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("location_code", sa.String(20), nullable=False),
        sa.Column("rate_type", sa.String(20), nullable=False),
        sa.Column("rate_per_day", sa.Numeric(10, 2), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("superseded_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_storage_rates_location_code", "storage_rates", ["location_code"])
    _partial_unique("idx_one_active_rate_per_loc_type", "storage_rates", ["location_code", "rate_type"],
                    "superseded_date IS NULL")

    op.create_table(
        "state_transition_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("entity_number", sa.String(100), nullable=True),
        sa.Column("from_state", sa.String(50), nullable=True),
        sa.Column("to_state", sa.String(50), nullable=False),
        sa.Column("is_reversible", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reversed_at", sa.DateTime(), nullable=True),
        sa.Column("reversed_by", sa.String(), nullable=True),
        sa.Column("reversal_transition_id", sa.String(), nullable=True),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("side_effects", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_state_transition_log_timestamp", "state_transition_log", ["timestamp"])
    op.create_index("ix_state_transition_log_actor_id", "state_transition_log", ["actor_id"])
    op.create_index("idx_stl_entity", "state_transition_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("state_transition_log")
    op.drop_table("storage_rates")
    op.drop_table("idle_periods")
    op.drop_table("triage_queue")
    op.drop_table("car_releases")
    op.drop_table("rider_cars")
    op.drop_table("car_assignments")
    op.drop_table("lease_riders")
    op.drop_table("master_leases")
    op.drop_table("scrap_records")
    op.drop_table("cars")
