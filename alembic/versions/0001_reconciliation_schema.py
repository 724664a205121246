"""reconciliation schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("PATIENT", "ADMIN", name="user_role")
appointment_status = sa.Enum(
    "PENDING",
    "AWAITING_PAYMENT",
    "CONFIRMED",
    "COMPLETED",
    "CANCELLED",
    name="appointment_status",
)
payment_status = sa.Enum("PENDING", "COMPLETED", "CANCELLED", name="payment_status")
payment_method = sa.Enum("CARD", name="payment_method")
refund_source = sa.Enum("OPERATOR", "GATEWAY", "LOCAL", name="refund_source")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(200), nullable=True, unique=True),
        sa.Column("role", user_role, nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "doctors",
        sa.Column("doctor_id", sa.String(36), primary_key=True),
        sa.Column("doctor_code", sa.String(12), nullable=False, unique=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("specialty", sa.String(50), nullable=True),
        sa.Column("contact_info", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "family_members",
        sa.Column("member_id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("relation", sa.String(30), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_family_members_user_id", "family_members", ["user_id"])

    op.create_table(
        "appointments",
        sa.Column("appointment_id", sa.String(36), primary_key=True),
        sa.Column("requester_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column(
            "family_member_id",
            sa.String(36),
            sa.ForeignKey("family_members.member_id"),
            nullable=True,
        ),
        sa.Column("doctor_id", sa.String(36), sa.ForeignKey("doctors.doctor_id"), nullable=False),
        sa.Column("appointment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", appointment_status, nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("meeting_link", sa.String(500), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_appointments_requester_id", "appointments", ["requester_id"])
    op.create_index("ix_appointments_doctor_id", "appointments", ["doctor_id"])

    op.create_table(
        "payments",
        sa.Column("payment_id", sa.String(36), primary_key=True),
        sa.Column(
            "appointment_id",
            sa.String(36),
            sa.ForeignKey("appointments.appointment_id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("refunded_amount", sa.Integer(), nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("method", payment_method, nullable=False),
        sa.Column("transaction_key", sa.String(100), nullable=True, unique=True),
        sa.Column("auth_no", sa.String(50), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.CheckConstraint(
            "refunded_amount >= 0 AND refunded_amount <= amount",
            name="ck_payments_refund_bounds",
        ),
    )
    op.create_index("ix_payments_created_at", "payments", ["created_at"])

    op.create_table(
        "payment_refunds",
        sa.Column("refund_id", sa.String(36), primary_key=True),
        sa.Column("payment_id", sa.String(36), sa.ForeignKey("payments.payment_id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("gateway_key", sa.String(100), nullable=True),
        sa.Column("source", refund_source, nullable=False),
        sa.Column("reconciled", sa.Boolean(), nullable=False),
        sa.Column("reason", sa.String(500), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payment_refunds_payment_id", "payment_refunds", ["payment_id"])
    op.create_index("ix_payment_refunds_gateway_key", "payment_refunds", ["gateway_key"])

    op.create_table(
        "notifications",
        sa.Column("notification_id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("key", sa.String(100), nullable=True),
        sa.Column("params", sa.JSON(), nullable=True),
        sa.Column("link", sa.String(300), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("payment_refunds")
    op.drop_table("payments")
    op.drop_table("appointments")
    op.drop_table("family_members")
    op.drop_table("doctors")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (refund_source, payment_method, payment_status, appointment_status, user_role):
        enum.drop(bind, checkfirst=True)
