# app/db/models/user_table.py
from __future__ import annotations
from typing import TYPE_CHECKING, Optional
from enum import Enum
from sqlalchemy import String, Enum as sqlalchemy_Enum
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .db_base_model import DbBaseModel

if TYPE_CHECKING:
    from .appointment_table import Appointment
    from .family_member_table import FamilyMember


class UserRole(str, Enum):
    PATIENT = "PATIENT"
    ADMIN = "ADMIN"  # operators receive payment notifications


class User(DbBaseModel):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=DbBaseModel.generate_uuid,
    )

    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    email: Mapped[Optional[str]] = mapped_column(
        String(200), nullable=True, unique=True
    )

    role: Mapped[UserRole] = mapped_column(
        sqlalchemy_Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.PATIENT,
    )

    appointments: Mapped[list["Appointment"]] = relationship(
        "Appointment", back_populates="requester"
    )
    family_members: Mapped[list["FamilyMember"]] = relationship(
        "FamilyMember", back_populates="user"
    )


__all__ = ["User", "UserRole"]
