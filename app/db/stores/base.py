# app/db/stores/base.py
"""
Store interfaces the reconciliation engine depends on.

The engine never imports a concrete store; it receives a unit-of-work
factory whose stores satisfy these protocols.
"""
from typing import Optional, Protocol, Sequence
from app.db.models import (
    Appointment,
    Doctor,
    FamilyMember,
    Notification,
    Payment,
    PaymentRefund,
    PaymentStatus,
    User,
)


class AppointmentStore(Protocol):
    async def get(
        self, appointment_id: str, *, for_update: bool = False
    ) -> Optional[Appointment]: ...

    async def add(self, appointment: Appointment) -> Appointment: ...


class PaymentStore(Protocol):
    async def get(
        self, payment_id: str, *, for_update: bool = False
    ) -> Optional[Payment]: ...

    async def get_by_appointment(
        self, appointment_id: str, *, for_update: bool = False
    ) -> Optional[Payment]: ...

    async def get_by_transaction_key(self, transaction_key: str) -> Optional[Payment]: ...

    async def add(self, payment: Payment) -> Payment: ...

    async def list_page(
        self, *, offset: int, limit: int, status: Optional[PaymentStatus] = None
    ) -> tuple[Sequence[Payment], int]: ...


class RefundStore(Protocol):
    async def get_by_gateway_key(self, gateway_key: str) -> Optional[PaymentRefund]: ...

    async def add(self, refund: PaymentRefund) -> PaymentRefund: ...


class UserStore(Protocol):
    async def get(self, user_id: str) -> Optional[User]: ...

    async def get_family_member(self, member_id: str) -> Optional[FamilyMember]: ...

    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]: ...

    async def list_operator_ids(self) -> list[str]: ...


class NotificationStore(Protocol):
    async def add(self, notification: Notification) -> Notification: ...


__all__ = [
    "AppointmentStore",
    "PaymentStore",
    "RefundStore",
    "UserStore",
    "NotificationStore",
]
