# app/db/models/notification_table.py
from typing import Any, Optional
from sqlalchemy import String, Text, Boolean, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from .db_base_model import DbBaseModel


class Notification(DbBaseModel):
    __tablename__ = "notifications"

    notification_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=DbBaseModel.generate_uuid,
    )

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.user_id"),
        nullable=False,
        index=True,
    )

    type: Mapped[str] = mapped_column(String(50), nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Translation key + params for the UI; message is the fallback
    key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    params: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    link: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


__all__ = ["Notification"]
