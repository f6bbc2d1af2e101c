"""Create bookings and notifications tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create bookings and notifications tables."""
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("requester_id", sa.String(100), nullable=False, index=True),
        sa.Column("requester_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("requester_department", sa.String(255), nullable=False, server_default=""),
        sa.Column("destination", sa.String(500), nullable=False),
        sa.Column("travel_time", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("reason", sa.Text, nullable=False),
        # Advisory cargo info
        sa.Column("cargo_type", sa.String(100), nullable=True),
        sa.Column("cargo_weight", sa.String(100), nullable=True),
        # Vehicle display join
        sa.Column("vehicle_id", sa.String(36), nullable=True),
        sa.Column("vehicle_name", sa.String(255), nullable=True),
        sa.Column("driver_info", sa.String(255), nullable=True),
        # Approval chain
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default="pending_viet",
            index=True,
        ),
        sa.Column("viet_approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("korea_approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("admin_approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("approver_viet_id", sa.String(100), nullable=True),
        sa.Column("approver_korea_id", sa.String(100), nullable=True),
        sa.Column("approved_by", sa.String(100), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(100), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_bookings_status_created_at",
        "bookings",
        ["status", "created_at"],
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=True, index=True),
        sa.Column("target_role", sa.String(50), nullable=True, index=True),
        sa.Column("booking_id", sa.String(36), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False, server_default=""),
        sa.Column("type", sa.String(20), nullable=False, server_default="info"),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "(user_id IS NULL) <> (target_role IS NULL)",
            name="ck_notifications_single_target",
        ),
    )


def downgrade() -> None:
    """Drop bookings and notifications tables."""
    op.drop_table("notifications")
    op.drop_index("ix_bookings_status_created_at", table_name="bookings")
    op.drop_table("bookings")
