# app/db/models/appointment_table.py
from __future__ import annotations
from typing import TYPE_CHECKING, Optional
from decimal import Decimal
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, Numeric, Enum as sqlalchemy_Enum
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import datetime
from .db_base_model import DbBaseModel


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"  # Requested, provider has not priced it yet
    AWAITING_PAYMENT = "AWAITING_PAYMENT"  # Priced, waiting for the patient to pay
    CONFIRMED = "CONFIRMED"  # Paid
    COMPLETED = "COMPLETED"  # Consultation took place
    CANCELLED = "CANCELLED"  # Voided or fully refunded


if TYPE_CHECKING:
    from .user_table import User
    from .doctor_table import Doctor
    from .family_member_table import FamilyMember
    from .payment_table import Payment


class Appointment(DbBaseModel):
    __tablename__ = "appointments"

    appointment_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=DbBaseModel.generate_uuid,
    )

    requester_id: Mapped[str] = mapped_column(
        ForeignKey("users.user_id"),
        nullable=False,
        index=True,
    )

    family_member_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("family_members.member_id"),
        nullable=True,
    )

    doctor_id: Mapped[str] = mapped_column(
        ForeignKey("doctors.doctor_id"),
        nullable=False,
        index=True,
    )

    appointment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    status: Mapped[AppointmentStatus] = mapped_column(
        sqlalchemy_Enum(AppointmentStatus, name="appointment_status"),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )

    # Null only while PENDING
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    meeting_link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    requester: Mapped["User"] = relationship("User", back_populates="appointments")
    doctor: Mapped["Doctor"] = relationship("Doctor", back_populates="appointments")
    family_member: Mapped[Optional["FamilyMember"]] = relationship("FamilyMember")
    payment: Mapped[Optional["Payment"]] = relationship(
        "Payment", back_populates="appointment", uselist=False
    )

    @property
    def attendee_name(self) -> Optional[str]:
        """Name of whoever actually attends the consultation."""
        if self.family_member is not None:
            return self.family_member.name
        return self.requester.name if self.requester is not None else None


__all__ = ["Appointment", "AppointmentStatus"]
