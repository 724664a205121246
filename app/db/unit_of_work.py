# app/db/unit_of_work.py
"""
Unit of work: one database transaction spanning every store.

All multi-record mutations (payment + appointment) happen inside a single
unit of work, so they commit together or not at all.

Usage:
    async with uow_factory() as uow:
        payment = await uow.payments.get(payment_id, for_update=True)
        payment.status = PaymentStatus.COMPLETED
        payment.appointment.status = AppointmentStatus.CONFIRMED
    # committed here; rolled back if the block raised
"""
from types import TracebackType
from typing import Callable, Optional, Protocol, Type
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from common import logger
from .stores import (
    AppointmentStore,
    PaymentStore,
    RefundStore,
    UserStore,
    NotificationStore,
    SqlAppointmentStore,
    SqlPaymentStore,
    SqlRefundStore,
    SqlUserStore,
    SqlNotificationStore,
)


class UnitOfWork(Protocol):
    appointments: AppointmentStore
    payments: PaymentStore
    refunds: RefundStore
    users: UserStore
    notifications: NotificationStore

    async def __aenter__(self) -> "UnitOfWork": ...

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]


class SqlUnitOfWork:
    """SQLAlchemy-backed unit of work; commit on clean exit, rollback otherwise."""

    session: AsyncSession

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def __aenter__(self) -> "SqlUnitOfWork":
        self.session = self._session_maker()
        self.appointments = SqlAppointmentStore(self.session)
        self.payments = SqlPaymentStore(self.session)
        self.refunds = SqlRefundStore(self.session)
        self.users = SqlUserStore(self.session)
        self.notifications = SqlNotificationStore(self.session)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        except Exception as e:
            await self.rollback()
            logger.error("Unit of work failed, rolled back", error=str(e))
            raise
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


__all__ = ["UnitOfWork", "UnitOfWorkFactory", "SqlUnitOfWork"]
