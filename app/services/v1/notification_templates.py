# app/services/v1/notification_templates.py
"""
Notification content for each lifecycle event.

``message`` is the plain fallback text; ``key`` and ``params`` let the
frontend render a translated version.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Optional

PATIENT_APPOINTMENTS_LINK = "/myappointment"
ADMIN_PAYMENTS_LINK = "/admin/dashboard/payments"


class NotificationType(str, Enum):
    APPOINTMENT_CONFIRMED = "APPOINTMENT_CONFIRMED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    APPOINTMENT_CANCELLED = "APPOINTMENT_CANCELLED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    APPOINTMENT_COMPLETED = "APPOINTMENT_COMPLETED"


@dataclass(frozen=True)
class NotificationDraft:
    user_id: str
    type: str
    message: str
    key: Optional[str] = None
    params: Optional[dict[str, Any]] = None
    link: Optional[str] = None

    def as_kwargs(self) -> dict[str, Any]:
        return asdict(self)


def _won(amount: int) -> str:
    return f"{amount:,}"


def appointment_confirmed(user_id: str, doctor_name: str, attendee: str) -> NotificationDraft:
    return NotificationDraft(
        user_id=user_id,
        type=NotificationType.APPOINTMENT_CONFIRMED.value,
        message=f"Your appointment with Dr. {doctor_name} for {attendee} is confirmed.",
        key="Notifications.appointment_confirmed",
        params={"doctor": doctor_name, "attendee": attendee},
        link=PATIENT_APPOINTMENTS_LINK,
    )


def payment_received(
    operator_id: str, payer_name: str, amount: int, payment_id: str
) -> NotificationDraft:
    return NotificationDraft(
        user_id=operator_id,
        type=NotificationType.PAYMENT_RECEIVED.value,
        message=f"Payment of {_won(amount)} received from {payer_name}.",
        key="Notifications.payment_received",
        params={"payer": payer_name, "amount": amount, "payment_id": payment_id},
        link=ADMIN_PAYMENTS_LINK,
    )


def appointment_cancelled(user_id: str, doctor_name: str, refunded: int) -> NotificationDraft:
    if refunded:
        message = (
            f"Your appointment with Dr. {doctor_name} was cancelled and "
            f"{_won(refunded)} has been refunded."
        )
    else:
        message = f"Your appointment with Dr. {doctor_name} was cancelled."
    return NotificationDraft(
        user_id=user_id,
        type=NotificationType.APPOINTMENT_CANCELLED.value,
        message=message,
        key="Notifications.appointment_cancelled",
        params={"doctor": doctor_name, "refunded": refunded},
        link=PATIENT_APPOINTMENTS_LINK,
    )


def payment_partially_refunded(
    user_id: str, doctor_name: str, refunded: int, remaining: int
) -> NotificationDraft:
    return NotificationDraft(
        user_id=user_id,
        type=NotificationType.PAYMENT_REFUNDED.value,
        message=(
            f"{_won(refunded)} of your payment for Dr. {doctor_name} has been refunded. "
            f"Remaining paid amount: {_won(remaining)}."
        ),
        key="Notifications.payment_partially_refunded",
        params={"doctor": doctor_name, "refunded": refunded, "remaining": remaining},
        link=PATIENT_APPOINTMENTS_LINK,
    )


def appointment_completed(user_id: str, doctor_name: str) -> NotificationDraft:
    return NotificationDraft(
        user_id=user_id,
        type=NotificationType.APPOINTMENT_COMPLETED.value,
        message=f"Your consultation with Dr. {doctor_name} is complete.",
        key="Notifications.appointment_completed",
        params={"doctor": doctor_name},
        link=PATIENT_APPOINTMENTS_LINK,
    )


__all__ = [
    "NotificationType",
    "NotificationDraft",
    "appointment_confirmed",
    "payment_received",
    "appointment_cancelled",
    "payment_partially_refunded",
    "appointment_completed",
]
