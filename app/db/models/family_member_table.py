# app/db/models/family_member_table.py
from __future__ import annotations
from datetime import date
from typing import TYPE_CHECKING, Optional
from sqlalchemy import String, Date, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .db_base_model import DbBaseModel

if TYPE_CHECKING:
    from .user_table import User


class FamilyMember(DbBaseModel):
    """Person who actually attends a consultation booked by a user."""

    __tablename__ = "family_members"

    member_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=DbBaseModel.generate_uuid,
    )

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.user_id"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    relation: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="family_members")


__all__ = ["FamilyMember"]
