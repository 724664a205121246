# app/db/models/payment_table.py
from __future__ import annotations
from typing import TYPE_CHECKING, Optional
from enum import Enum
from sqlalchemy import (
    String,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
    Enum as sqlalchemy_Enum,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import datetime
from .db_base_model import DbBaseModel

if TYPE_CHECKING:
    from .appointment_table import Appointment


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CARD = "CARD"


class RefundSource(str, Enum):
    OPERATOR = "OPERATOR"  # cancel issued through this service
    GATEWAY = "GATEWAY"  # gateway cancel notification
    LOCAL = "LOCAL"  # ledger-only, no gateway transaction


class Payment(DbBaseModel):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "refunded_amount >= 0 AND refunded_amount <= amount",
            name="ck_payments_refund_bounds",
        ),
        # Payment listing is newest first
        Index("ix_payments_created_at", "created_at"),
    )

    payment_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=DbBaseModel.generate_uuid,
    )

    # 1:1 with appointments
    appointment_id: Mapped[str] = mapped_column(
        ForeignKey("appointments.appointment_id"),
        nullable=False,
        unique=True,
    )

    # Minor currency units; fixed at initiation
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    refunded_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[PaymentStatus] = mapped_column(
        sqlalchemy_Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    method: Mapped[PaymentMethod] = mapped_column(
        sqlalchemy_Enum(PaymentMethod, name="payment_method"),
        nullable=False,
        default=PaymentMethod.CARD,
    )

    # Gateway transaction id (DAOUTRX); needed for every later refund call
    transaction_key: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, unique=True
    )

    auth_no: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    appointment: Mapped["Appointment"] = relationship(
        "Appointment", back_populates="payment"
    )
    refunds: Mapped[list["PaymentRefund"]] = relationship(
        "PaymentRefund",
        back_populates="payment",
        order_by="PaymentRefund.created_at",
    )

    @property
    def refundable_amount(self) -> int:
        return self.amount - self.refunded_amount

    @property
    def is_fully_refunded(self) -> bool:
        return self.refunded_amount >= self.amount


class PaymentRefund(DbBaseModel):
    """One applied refund; the refund ledger for a payment."""

    __tablename__ = "payment_refunds"

    refund_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=DbBaseModel.generate_uuid,
    )

    payment_id: Mapped[str] = mapped_column(
        ForeignKey("payments.payment_id"),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    # Cancel transaction id, only when the gateway reports one distinct from
    # the charge key
    gateway_key: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, index=True
    )

    source: Mapped[RefundSource] = mapped_column(
        sqlalchemy_Enum(RefundSource, name="refund_source"),
        nullable=False,
    )

    # Both the operator call and the gateway notification have been seen
    reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    payment: Mapped["Payment"] = relationship("Payment", back_populates="refunds")


__all__ = ["Payment", "PaymentRefund", "PaymentStatus", "PaymentMethod", "RefundSource"]
