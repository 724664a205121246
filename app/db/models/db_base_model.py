# app/db/models/db_base_model.py
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import DateTime
from datetime import datetime, timezone
from uuid import uuid4


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class DbBaseModel(DeclarativeBase):
    __abstract__ = True  # prevents SQLAlchemy from creating a table for this base

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,  # always UTC
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,  # downstream cache invalidation relies on this moving forward
        nullable=False,
    )

    @staticmethod
    def generate_uuid():
        return str(uuid4())

    @staticmethod
    def generate_short_code():
        # 10 digit code derived from a UUIDv4
        return str(uuid4().int % 10**10).zfill(10)


__all__ = ["DbBaseModel", "utcnow"]
