"""init schema: users, building configs, maintenance requests and history

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "role_enum": ("CUSTOMER", "TECHNICIAN", "MAINTENANCE_ADMIN", "BASMA_ADMIN", "SUPER_ADMIN"),
    "priority_enum": ("LOW", "MEDIUM", "HIGH", "URGENT"),
    "request_status_enum": (
        "DRAFT", "SUBMITTED", "ASSIGNED", "IN_PROGRESS",
        "COMPLETED", "CLOSED", "REJECTED", "CUSTOMER_REJECTED",
    ),
    "confirmation_status_enum": ("PENDING", "CONFIRMED", "REJECTED", "OVERRIDDEN"),
    "assignment_type_enum": ("INITIAL_ASSIGNMENT", "REASSIGNMENT", "SELF_ASSIGNMENT", "UNASSIGNMENT"),
}


def _enum(name: str) -> postgresql.ENUM:
    # тип створюється окремо (ідемпотентно), тут лише посилання
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ---------- 1) ENUM типи (ідемпотентно) ----------
    for name, values in ENUMS.items():
        labels = ",".join(f"'{v}'" for v in values)
        op.execute(f"""
        DO $$
        BEGIN
            CREATE TYPE {name} AS ENUM ({labels});
        EXCEPTION WHEN duplicate_object THEN NULL;
        END$$;
        """)

    # ---------- 2) Таблиці ----------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", _enum("role_enum"), nullable=False, server_default="CUSTOMER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("name", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "building_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("building_name", sa.String(100), nullable=False),
        sa.Column("building_code", sa.String(10), nullable=False),
        sa.Column("current_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reset_year", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_building_configs_building_name", "building_configs", ["building_name"], unique=True)

    op.create_table(
        "maintenance_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("custom_identifier", sa.String(32), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("priority", _enum("priority_enum"), nullable=False, server_default="MEDIUM"),
        sa.Column("location", sa.String(100), nullable=False),
        sa.Column("building", sa.String(100), nullable=True),
        sa.Column("specific_location", sa.String(200), nullable=True),
        sa.Column("status", _enum("request_status_enum"), nullable=False, server_default="SUBMITTED"),
        sa.Column("requested_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assigned_to_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("actual_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("customer_confirmation_status", _enum("confirmation_status_enum"), nullable=True),
        sa.Column("customer_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_confirmation_comment", sa.Text(), nullable=True),
        sa.Column("customer_rejection_reason", sa.Text(), nullable=True),
        sa.Column("closed_without_confirmation", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("admin_override_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("custom_identifier", name="uq_maintenance_requests_custom_identifier"),
    )
    op.create_index("ix_maintenance_requests_requested_by_id", "maintenance_requests", ["requested_by_id"])
    op.create_index("ix_maintenance_requests_assigned_to_id", "maintenance_requests", ["assigned_to_id"])
    op.create_index("ix_maintenance_requests_status_priority", "maintenance_requests", ["status", "priority"])
    op.create_index(
        "ix_maintenance_requests_confirmation",
        "maintenance_requests",
        ["customer_confirmation_status", "completed_date"],
    )
    op.create_index("ix_maintenance_requests_building", "maintenance_requests", ["building"])

    op.create_table(
        "request_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "request_id", sa.Integer(),
            sa.ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("from_status", _enum("request_status_enum"), nullable=True),
        sa.Column("to_status", _enum("request_status_enum"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("changed_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_role", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_request_status_history_request_id", "request_status_history", ["request_id"])
    op.create_index(
        "ix_request_status_history_request_created",
        "request_status_history",
        ["request_id", "created_at"],
    )

    op.create_table(
        "request_assignment_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "request_id", sa.Integer(),
            sa.ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("assignment_type", _enum("assignment_type_enum"), nullable=False),
        sa.Column("from_technician_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("to_technician_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_request_assignment_history_request_id", "request_assignment_history", ["request_id"])


def downgrade() -> None:
    op.drop_table("request_assignment_history")
    op.drop_table("request_status_history")
    op.drop_table("maintenance_requests")
    op.drop_table("building_configs")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
