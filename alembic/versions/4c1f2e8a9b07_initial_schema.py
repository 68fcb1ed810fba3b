"""initial_schema

Revision ID: 4c1f2e8a9b07
Revises:
Create Date: 2026-10-17 10:12:31.402113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1f2e8a9b07'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial tables: users, trips, notifications, messages, credit_logs, study_groups."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("role", sa.String(), nullable=False, server_default="both"),
        sa.Column("skills", sa.String(), nullable=False, server_default="[]"),
        sa.Column("accessibility_needs", sa.String(), nullable=False, server_default="[]"),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("password", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "trips",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("driver_id", sa.String(), nullable=False),
        sa.Column("driver_name", sa.String(), nullable=False, server_default=""),
        sa.Column("from_loc", sa.String(), nullable=False, server_default=""),
        sa.Column("to_loc", sa.String(), nullable=False, server_default=""),
        sa.Column("departure_time", sa.String(), nullable=False, server_default=""),
        sa.Column("seats_available", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("distance_km", sa.Float(), nullable=False, server_default="0"),
        sa.Column("co2_saved", sa.Float(), nullable=False, server_default="0"),
        sa.Column("tutoring_subject", sa.String(), nullable=True),
        sa.Column("assistance_offered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("special_equipment", sa.String(), nullable=False, server_default="[]"),
        sa.Column("passenger_ids", sa.String(), nullable=False, server_default="[]"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_trips_driver_id", "trips", ["driver_id"])
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("text", sa.String(), nullable=False, server_default=""),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("type", sa.String(), nullable=False, server_default="info"),
        sa.Column("timestamp", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_table(
        "messages",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("trip_id", sa.String(), nullable=False),
        sa.Column("sender_id", sa.String(), nullable=False),
        sa.Column("sender_name", sa.String(), nullable=False, server_default=""),
        sa.Column("text", sa.String(), nullable=False, server_default=""),
        sa.Column("timestamp", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_trip_id", "messages", ["trip_id"])
    op.create_table(
        "credit_logs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False, server_default=""),
        sa.Column("timestamp", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_credit_logs_user_id", "credit_logs", ["user_id"])
    op.create_table(
        "study_groups",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("train_number", sa.String(), nullable=False, server_default=""),
        sa.Column("train_line", sa.String(), nullable=False, server_default=""),
        sa.Column("departure_time", sa.String(), nullable=False, server_default=""),
        sa.Column("subject", sa.String(), nullable=False, server_default=""),
        sa.Column("from_loc", sa.String(), nullable=False, server_default=""),
        sa.Column("creator_id", sa.String(), nullable=False, server_default=""),
        sa.Column("members", sa.String(), nullable=False, server_default="[]"),
        sa.Column("max_members", sa.Integer(), nullable=False, server_default="4"),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Drop all initial tables."""
    op.drop_table("study_groups")
    op.drop_index("ix_credit_logs_user_id", table_name="credit_logs")
    op.drop_table("credit_logs")
    op.drop_index("ix_messages_trip_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_trips_driver_id", table_name="trips")
    op.drop_table("trips")
    op.drop_table("users")
