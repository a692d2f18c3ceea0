"""Initial schema: users, refresh_tokens, counselor profiles and availability, slots,
booking_sessions, booking_records.

Revision ID: 001_initial
Revises:
Create Date: 2025-06-02

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="student"),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("hashed_password", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("jti", sa.String(), nullable=False),
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_refresh_tokens_user_id"), "refresh_tokens", ["user_id"], unique=False)
    op.create_index(op.f("ix_refresh_tokens_jti"), "refresh_tokens", ["jti"], unique=True)
    op.create_index(op.f("ix_refresh_tokens_expires_at"), "refresh_tokens", ["expires_at"], unique=False)

    op.create_table(
        "counselor_profiles",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("initials", sa.String(), nullable=True),
        sa.Column("meeting_link", sa.String(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "counselor_availability",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("counselor_id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("times", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["counselor_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("counselor_id", "day", name="uq_counselor_availability_date"),
    )
    op.create_index(
        op.f("ix_counselor_availability_counselor_id"), "counselor_availability", ["counselor_id"], unique=False
    )

    op.create_table(
        "booking_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("student_email", sa.String(), nullable=False),
        sa.Column("student_username", sa.String(), nullable=False),
        sa.Column("emotions", sa.JSON(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="emotions_selected"),
        sa.Column("slot_id", sa.Integer(), nullable=True),
        sa.Column("slot_date", sa.Date(), nullable=True),
        sa.Column("slot_time", sa.String(), nullable=True),
        sa.Column("counselor_id", sa.Integer(), nullable=True),
        sa.Column("counselor_initials", sa.String(), nullable=True),
        sa.Column("counselor_username", sa.String(), nullable=True),
        sa.Column("counselor_email", sa.String(), nullable=True),
        sa.Column("session_timestamp", sa.DateTime(), nullable=True),
        sa.Column("meeting_link", sa.String(), nullable=True),
        sa.Column("razorpay_order_id", sa.String(), nullable=True),
        sa.Column("razorpay_order_amount", sa.Integer(), nullable=True),
        sa.Column("razorpay_order_created_by", sa.Integer(), nullable=True),
        sa.Column("razorpay_order_status", sa.String(), nullable=True),
        sa.Column("razorpay_payment_id", sa.String(), nullable=True),
        sa.Column("payment_verified_at", sa.DateTime(), nullable=True),
        sa.Column("reminder_scheduled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("reminder_task_id", sa.String(), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["counselor_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_booking_sessions_student_id"), "booking_sessions", ["student_id"], unique=False)
    op.create_index(op.f("ix_booking_sessions_status"), "booking_sessions", ["status"], unique=False)
    op.create_index(op.f("ix_booking_sessions_slot_id"), "booking_sessions", ["slot_id"], unique=False)
    op.create_index(op.f("ix_booking_sessions_counselor_id"), "booking_sessions", ["counselor_id"], unique=False)
    op.create_index(
        op.f("ix_booking_sessions_session_timestamp"), "booking_sessions", ["session_timestamp"], unique=False
    )
    op.create_index(
        op.f("ix_booking_sessions_razorpay_order_id"), "booking_sessions", ["razorpay_order_id"], unique=False
    )

    op.create_table(
        "slots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("counselor_id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("time", sa.String(), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("is_booked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("booked_by_session_id", sa.Integer(), nullable=True),
        sa.Column("counselor_initials", sa.String(), nullable=True),
        sa.Column("counselor_username", sa.String(), nullable=True),
        sa.Column("counselor_email", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["counselor_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["booked_by_session_id"], ["booking_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("counselor_id", "day", "time", name="uq_slots_counselor_date_time"),
        sa.CheckConstraint(
            "(is_booked AND booked_by_session_id IS NOT NULL) OR "
            "(NOT is_booked AND booked_by_session_id IS NULL)",
            name="ck_slots_booked_has_session",
        ),
    )
    op.create_index(op.f("ix_slots_counselor_id"), "slots", ["counselor_id"], unique=False)
    op.create_index(op.f("ix_slots_day"), "slots", ["day"], unique=False)
    op.create_index(op.f("ix_slots_starts_at"), "slots", ["starts_at"], unique=False)
    op.create_index(op.f("ix_slots_is_booked"), "slots", ["is_booked"], unique=False)

    op.create_table(
        "booking_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("counselor_id", sa.Integer(), nullable=True),
        sa.Column("counselor_name", sa.String(), nullable=False),
        sa.Column("date", sa.String(), nullable=False),
        sa.Column("time", sa.String(), nullable=False),
        sa.Column("session_timestamp", sa.DateTime(), nullable=True),
        sa.Column("meeting_link", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="upcoming"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["booking_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id"),
    )
    op.create_index(op.f("ix_booking_records_student_id"), "booking_records", ["student_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_booking_records_student_id"), table_name="booking_records")
    op.drop_table("booking_records")
    op.drop_index(op.f("ix_slots_is_booked"), table_name="slots")
    op.drop_index(op.f("ix_slots_starts_at"), table_name="slots")
    op.drop_index(op.f("ix_slots_day"), table_name="slots")
    op.drop_index(op.f("ix_slots_counselor_id"), table_name="slots")
    op.drop_table("slots")
    op.drop_index(op.f("ix_booking_sessions_razorpay_order_id"), table_name="booking_sessions")
    op.drop_index(op.f("ix_booking_sessions_session_timestamp"), table_name="booking_sessions")
    op.drop_index(op.f("ix_booking_sessions_counselor_id"), table_name="booking_sessions")
    op.drop_index(op.f("ix_booking_sessions_slot_id"), table_name="booking_sessions")
    op.drop_index(op.f("ix_booking_sessions_status"), table_name="booking_sessions")
    op.drop_index(op.f("ix_booking_sessions_student_id"), table_name="booking_sessions")
    op.drop_table("booking_sessions")
    op.drop_index(op.f("ix_counselor_availability_counselor_id"), table_name="counselor_availability")
    op.drop_table("counselor_availability")
    op.drop_table("counselor_profiles")
    op.drop_index(op.f("ix_refresh_tokens_expires_at"), table_name="refresh_tokens")
    op.drop_index(op.f("ix_refresh_tokens_jti"), table_name="refresh_tokens")
    op.drop_index(op.f("ix_refresh_tokens_user_id"), table_name="refresh_tokens")
    op.drop_table("refresh_tokens")
    op.drop_index(op.f("ix_users_role"), table_name="users")
    op.drop_index(op.f("ix_users_username"), table_name="users")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
