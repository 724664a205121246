# app/services/v1/state_machine.py
"""
Allowed status transitions for appointments and payments.

Every status write in the engine goes through ``transition_*`` so an
illegal move raises InvalidStateError before anything is flushed.
"""
from app.db.models import Appointment, AppointmentStatus, Payment, PaymentStatus
from common import InvalidStateError

APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.AWAITING_PAYMENT, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.AWAITING_PAYMENT: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.CANCELLED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.CANCELLED}),
    PaymentStatus.CANCELLED: frozenset(),
}


def can_transition_appointment(
    current: AppointmentStatus, target: AppointmentStatus
) -> bool:
    return target in APPOINTMENT_TRANSITIONS[current]


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS[current]


def transition_appointment(appointment: Appointment, target: AppointmentStatus) -> None:
    """
    Raises:
        InvalidStateError: if ``target`` is not reachable from the current status
    """
    if not can_transition_appointment(appointment.status, target):
        raise InvalidStateError(
            f"Appointment {appointment.appointment_id} cannot move from "
            f"{appointment.status.value} to {target.value}"
        )
    appointment.status = target


def transition_payment(payment: Payment, target: PaymentStatus) -> None:
    """
    Raises:
        InvalidStateError: if ``target`` is not reachable from the current status
    """
    if not can_transition_payment(payment.status, target):
        raise InvalidStateError(
            f"Payment {payment.payment_id} cannot move from "
            f"{payment.status.value} to {target.value}"
        )
    payment.status = target


def check_payment_ledger(payment: Payment) -> None:
    """
    Verify the refund bookkeeping of a payment before it is committed.

    Raises:
        InvalidStateError: on a ledger inconsistency
    """
    if not 0 <= payment.refunded_amount <= payment.amount:
        raise InvalidStateError(
            f"Payment {payment.payment_id} refunded {payment.refunded_amount} "
            f"of {payment.amount}",
            code="LEDGER_INCONSISTENT",
        )
    fully_refunded = payment.refunded_amount == payment.amount
    if fully_refunded and payment.status != PaymentStatus.CANCELLED:
        raise InvalidStateError(
            f"Payment {payment.payment_id} fully refunded but {payment.status.value}",
            code="LEDGER_INCONSISTENT",
        )
    if payment.status == PaymentStatus.COMPLETED and payment.approved_at is None:
        raise InvalidStateError(
            f"Payment {payment.payment_id} completed without approval time",
            code="LEDGER_INCONSISTENT",
        )


__all__ = [
    "APPOINTMENT_TRANSITIONS",
    "PAYMENT_TRANSITIONS",
    "can_transition_appointment",
    "can_transition_payment",
    "transition_appointment",
    "transition_payment",
    "check_payment_ledger",
]
