# app/db/stores/sql_stores.py
"""
SQLAlchemy implementations of the store protocols.

Row locks (``for_update``) map to SELECT ... FOR UPDATE on PostgreSQL and
are ignored by SQLite. Locked reads also refresh objects already present in
the session identity map so re-validation sees committed state.
"""
from typing import Optional, Sequence
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from app.db.models import (
    Appointment,
    Doctor,
    FamilyMember,
    Notification,
    Payment,
    PaymentRefund,
    PaymentStatus,
    User,
    UserRole,
)


def _lock(query: Select, for_update: bool) -> Select:
    if for_update:
        return query.with_for_update().execution_options(populate_existing=True)
    return query


_APPOINTMENT_PARTIES = (
    selectinload(Appointment.requester),
    selectinload(Appointment.doctor),
    selectinload(Appointment.family_member),
)


class SqlAppointmentStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self, appointment_id: str, *, for_update: bool = False
    ) -> Optional[Appointment]:
        query = (
            select(Appointment)
            .where(Appointment.appointment_id == appointment_id)
            .options(*_APPOINTMENT_PARTIES, selectinload(Appointment.payment))
            .execution_options(logging_token="AppointmentStore.get")
        )
        result = await self.session.execute(_lock(query, for_update))
        return result.scalar_one_or_none()

    async def add(self, appointment: Appointment) -> Appointment:
        self.session.add(appointment)
        await self.session.flush()
        return appointment


class SqlPaymentStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _with_appointment(query: Select) -> Select:
        return query.options(
            selectinload(Payment.appointment).options(*_APPOINTMENT_PARTIES),
            selectinload(Payment.refunds),
        )

    async def get(
        self, payment_id: str, *, for_update: bool = False
    ) -> Optional[Payment]:
        query = self._with_appointment(
            select(Payment).where(Payment.payment_id == payment_id)
        ).execution_options(logging_token="PaymentStore.get")
        result = await self.session.execute(_lock(query, for_update))
        return result.scalar_one_or_none()

    async def get_by_appointment(
        self, appointment_id: str, *, for_update: bool = False
    ) -> Optional[Payment]:
        query = self._with_appointment(
            select(Payment).where(Payment.appointment_id == appointment_id)
        )
        result = await self.session.execute(_lock(query, for_update))
        return result.scalar_one_or_none()

    async def get_by_transaction_key(self, transaction_key: str) -> Optional[Payment]:
        query = self._with_appointment(
            select(Payment).where(Payment.transaction_key == transaction_key)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def add(self, payment: Payment) -> Payment:
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def list_page(
        self, *, offset: int, limit: int, status: Optional[PaymentStatus] = None
    ) -> tuple[Sequence[Payment], int]:
        query = self._with_appointment(select(Payment))
        count_query = select(func.count()).select_from(Payment)
        if status is not None:
            query = query.where(Payment.status == status)
            count_query = count_query.where(Payment.status == status)

        query = query.order_by(Payment.created_at.desc()).offset(offset).limit(limit)

        rows = (await self.session.execute(query)).scalars().all()
        total = (await self.session.execute(count_query)).scalar_one()
        return rows, total


class SqlRefundStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_gateway_key(self, gateway_key: str) -> Optional[PaymentRefund]:
        result = await self.session.execute(
            select(PaymentRefund)
            .where(PaymentRefund.gateway_key == gateway_key)
            .order_by(PaymentRefund.created_at)
        )
        return result.scalars().first()

    async def add(self, refund: PaymentRefund) -> PaymentRefund:
        self.session.add(refund)
        await self.session.flush()
        return refund


class SqlUserStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_family_member(self, member_id: str) -> Optional[FamilyMember]:
        return await self.session.get(FamilyMember, member_id)

    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        return await self.session.get(Doctor, doctor_id)

    async def list_operator_ids(self) -> list[str]:
        result = await self.session.execute(
            select(User.user_id).where(User.role == UserRole.ADMIN)
        )
        return list(result.scalars().all())


class SqlNotificationStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, notification: Notification) -> Notification:
        self.session.add(notification)
        await self.session.flush()
        return notification


__all__ = [
    "SqlAppointmentStore",
    "SqlPaymentStore",
    "SqlRefundStore",
    "SqlUserStore",
    "SqlNotificationStore",
]
