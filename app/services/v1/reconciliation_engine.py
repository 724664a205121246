# app/services/v1/reconciliation_engine.py
"""
Appointment/payment reconciliation engine.

Keeps the appointment lifecycle and the payment lifecycle consistent while
confirmations and refunds arrive from several channels (client confirm call,
gateway callbacks, operator actions), possibly duplicated or concurrent.

Every operation follows the same shape:
    1. read + validate inside a unit of work
    2. slow external calls (gateway, meeting provider) outside any transaction
    3. a short write transaction that re-reads the rows under lock,
       re-validates and applies all changes atomically
    4. best-effort notifications after commit
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
from sqlalchemy.exc import IntegrityError
from app.db.models import (
    Appointment,
    AppointmentStatus,
    Payment,
    PaymentRefund,
    PaymentStatus,
    RefundSource,
    utcnow,
)
from app.db.schemas import (
    AppointmentCreate,
    CancelPaymentRequest,
    CancellationOutcome,
    CancellationResult,
    ConfirmationOutcome,
    ConfirmationResult,
    ConfirmPaymentRequest,
    Pagination,
    PaymentInitiation,
    PaymentPage,
    PaymentResponse,
    PaymentSignature,
)
from app.db.unit_of_work import UnitOfWorkFactory
from app.integrations import GatewayClient, MeetingProvisioner, Notifier
from common import (
    AlreadyPaidError,
    AppLogger,
    GatewayError,
    InvalidPriceError,
    InvalidRefundAmountError,
    InvalidStateError,
    NotFoundError,
    RefundAmountExceedsLimitError,
    get_app_logger,
)
from . import notification_templates as templates
from .notification_templates import NotificationDraft
from .side_effects import run_non_critical
from .state_machine import (
    can_transition_appointment,
    check_payment_ledger,
    transition_appointment,
    transition_payment,
)

logger = get_app_logger(__name__)

DEFAULT_PAGE_SIZE = 10


def to_minor_units(price: Decimal) -> int:
    """Round a decimal price to whole currency units (half-up)."""
    return int(price.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class _ConfirmationContext:
    appointment_id: str
    requester_id: str
    attendee: str
    doctor_name: str
    payer_name: str
    amount: int
    start: datetime
    meeting_link: Optional[str]


class ReconciliationEngine:
    """
    Usage:
        engine = ReconciliationEngine(
            db_manager.unit_of_work,
            gateway=KiwoomGatewayClient(config.gateway),
            meetings=GoogleMeetProvisioner(config.meeting),
            notifier=DbNotifier(db_manager.unit_of_work),
        )
        payment = await engine.initiate_payment(appointment_id)
        result = await engine.confirm_payment(payment.payment_id, request)
    """

    def __init__(
        self,
        unit_of_work: UnitOfWorkFactory,
        *,
        gateway: Optional[GatewayClient],
        meetings: MeetingProvisioner,
        notifier: Notifier,
        meeting_duration: timedelta = timedelta(minutes=30),
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._unit_of_work = unit_of_work
        self._gateway = gateway
        self._meetings = meetings
        self._notifier = notifier
        self._meeting_duration = meeting_duration
        self._page_size = page_size

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    async def create_appointment(self, request: AppointmentCreate) -> Appointment:
        async with self._unit_of_work() as uow:
            if await uow.users.get(request.requester_id) is None:
                raise NotFoundError("User", request.requester_id)
            if await uow.users.get_doctor(request.doctor_id) is None:
                raise NotFoundError("Doctor", request.doctor_id)
            if request.family_member_id:
                member = await uow.users.get_family_member(request.family_member_id)
                if member is None:
                    raise NotFoundError("FamilyMember", request.family_member_id)
                if member.user_id != request.requester_id:
                    raise InvalidStateError(
                        "Family member does not belong to the requester",
                        code="FAMILY_MEMBER_MISMATCH",
                    )

            appointment = Appointment(
                requester_id=request.requester_id,
                doctor_id=request.doctor_id,
                family_member_id=request.family_member_id,
                appointment_date=request.appointment_date,
                status=AppointmentStatus.PENDING,
            )
            if request.price is not None:
                self._apply_price(appointment, request.price)

            await uow.appointments.add(appointment)
            created = await uow.appointments.get(appointment.appointment_id, for_update=True)

        logger.info(
            "Appointment created",
            appointment_id=created.appointment_id,
            status=created.status.value,
        )
        return created

    async def get_appointment(self, appointment_id: str) -> Appointment:
        async with self._unit_of_work() as uow:
            appointment = await uow.appointments.get(appointment_id)
            if appointment is None:
                raise NotFoundError("Appointment", appointment_id)
            return appointment

    async def set_appointment_price(self, appointment_id: str, price: Decimal) -> Appointment:
        """
        Set or change the consultation price.

        A PENDING appointment moves to AWAITING_PAYMENT. The price can be
        changed again until a payment record exists for the appointment.
        """
        async with self._unit_of_work() as uow:
            appointment = await uow.appointments.get(appointment_id, for_update=True)
            if appointment is None:
                raise NotFoundError("Appointment", appointment_id)

            if appointment.status == AppointmentStatus.PENDING:
                self._apply_price(appointment, price)
            elif appointment.status == AppointmentStatus.AWAITING_PAYMENT:
                if appointment.payment is not None:
                    raise InvalidStateError(
                        "Price is locked once payment has been initiated",
                        code="PRICE_LOCKED",
                    )
                self._apply_price(appointment, price)
            else:
                raise InvalidStateError(
                    f"Cannot price an appointment in status {appointment.status.value}"
                )

        logger.info(
            "Appointment priced",
            appointment_id=appointment_id,
            price=str(appointment.price),
        )
        return appointment

    @staticmethod
    def _apply_price(appointment: Appointment, price: Decimal) -> None:
        if price <= 0 or to_minor_units(price) <= 0:
            raise InvalidPriceError()
        appointment.price = price
        if appointment.status == AppointmentStatus.PENDING:
            transition_appointment(appointment, AppointmentStatus.AWAITING_PAYMENT)

    async def complete_appointment(self, appointment_id: str) -> Appointment:
        async with self._unit_of_work() as uow:
            appointment = await uow.appointments.get(appointment_id, for_update=True)
            if appointment is None:
                raise NotFoundError("Appointment", appointment_id)
            transition_appointment(appointment, AppointmentStatus.COMPLETED)

        logger.info("Appointment completed", appointment_id=appointment_id)
        await self._dispatch(
            [templates.appointment_completed(appointment.requester_id, appointment.doctor.name)]
        )
        return appointment

    # ------------------------------------------------------------------
    # Payments: initiation
    # ------------------------------------------------------------------

    async def initiate_payment(self, appointment_id: str) -> PaymentInitiation:
        """
        Create (or reuse) the single PENDING payment for an appointment.

        Raises:
            NotFoundError: unknown appointment
            InvalidStateError: appointment terminal, or price not set
            AlreadyPaidError: the appointment's payment is COMPLETED
        """
        log = logger.bind(appointment_id=appointment_id)
        try:
            async with self._unit_of_work() as uow:
                appointment = await uow.appointments.get(appointment_id, for_update=True)
                if appointment is None:
                    raise NotFoundError("Appointment", appointment_id)

                payment = appointment.payment
                if payment is None:
                    amount = self._payable_amount(appointment)
                    payment = await uow.payments.add(
                        Payment(
                            appointment_id=appointment_id,
                            amount=amount,
                            status=PaymentStatus.PENDING,
                        )
                    )
                    log.info("Payment created", payment_id=payment.payment_id, amount=amount)
                return self._initiation_for(appointment, payment)
        except IntegrityError:
            # A concurrent initiation inserted the payment first
            log.info("Payment created concurrently, reusing it")
            async with self._unit_of_work() as uow:
                payment = await uow.payments.get_by_appointment(appointment_id)
                if payment is None:
                    raise
                return self._initiation_for(payment.appointment, payment)

    @staticmethod
    def _payable_amount(appointment: Appointment) -> int:
        if appointment.status in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED):
            raise InvalidStateError(
                f"Appointment {appointment.appointment_id} is {appointment.status.value}"
            )
        if appointment.price is None:
            raise InvalidStateError(
                f"Appointment {appointment.appointment_id} has no price set",
                code="PRICE_NOT_SET",
            )
        amount = to_minor_units(appointment.price)
        if amount <= 0:
            raise InvalidPriceError()
        return amount

    @staticmethod
    def _initiation_for(appointment: Appointment, payment: Payment) -> PaymentInitiation:
        if payment.status == PaymentStatus.COMPLETED:
            raise AlreadyPaidError(payment.payment_id)
        if payment.status == PaymentStatus.CANCELLED:
            raise InvalidStateError(f"Payment {payment.payment_id} was cancelled")

        requester = appointment.requester
        return PaymentInitiation(
            payment_id=payment.payment_id,
            amount=payment.amount,
            customer_name=requester.name if requester and requester.name else "Guest",
            customer_email=requester.email if requester else None,
            product_name=f"Medical Consultation: Dr. {appointment.doctor.name}",
        )

    async def request_payment_signature(self, payment_id: str, method: str) -> PaymentSignature:
        """Have the gateway sign the parameters the payment window is opened with."""
        async with self._unit_of_work() as uow:
            payment = await uow.payments.get(payment_id)
            if payment is None:
                raise NotFoundError("Payment", payment_id)
            if payment.status == PaymentStatus.COMPLETED:
                raise AlreadyPaidError(payment_id)
            if payment.status == PaymentStatus.CANCELLED:
                raise InvalidStateError(f"Payment {payment_id} was cancelled")
            amount = payment.amount

        signed = await self._require_gateway().request_hash(payment_id, amount, method)
        return PaymentSignature(payment_id=payment_id, amount=amount, signed_params=signed)

    # ------------------------------------------------------------------
    # Payments: confirmation
    # ------------------------------------------------------------------

    async def confirm_payment(
        self, payment_id: str, request: ConfirmPaymentRequest
    ) -> ConfirmationResult:
        """
        Apply a payment approval. Idempotent: repeated or concurrent calls
        converge on one COMPLETED payment and one CONFIRMED appointment,
        and only the call that performs the transition sends notifications.
        """
        log = logger.bind(payment_id=payment_id)

        async with self._unit_of_work() as uow:
            payment = await uow.payments.get(payment_id, for_update=True)
            if payment is None:
                raise NotFoundError("Payment", payment_id)

            if payment.status == PaymentStatus.COMPLETED:
                outcome = self._backfill_keys(payment, request)
                log.info("Payment already completed", outcome=outcome.value)
                return self._confirmation_result(payment, outcome)

            context = self._check_confirmable(payment)

        if request.claimed_amount != context.amount:
            # The stored amount stays authoritative
            log.warning(
                "Confirmed amount differs from stored amount",
                expected=context.amount,
                claimed=request.claimed_amount,
            )

        meeting_link = context.meeting_link
        if meeting_link is None:
            meeting_link = await run_non_critical(
                "meeting_provisioning",
                lambda: self._meetings.create_meeting(
                    context.appointment_id,
                    context.start,
                    context.start + self._meeting_duration,
                    f"Consultation: {context.attendee} with Dr. {context.doctor_name}",
                ),
                log=log,
            )

        async with self._unit_of_work() as uow:
            payment = await uow.payments.get(payment_id, for_update=True)
            if payment is None:
                raise NotFoundError("Payment", payment_id)

            if payment.status == PaymentStatus.COMPLETED:
                # Lost the race to a concurrent confirmation
                outcome = self._backfill_keys(payment, request)
                log.info("Payment confirmed concurrently", outcome=outcome.value)
                return self._confirmation_result(payment, outcome)

            self._check_confirmable(payment)
            appointment = payment.appointment

            transition_payment(payment, PaymentStatus.COMPLETED)
            payment.approved_at = utcnow()
            payment.transaction_key = request.transaction_key
            payment.auth_no = request.auth_no
            transition_appointment(appointment, AppointmentStatus.CONFIRMED)
            if meeting_link and not appointment.meeting_link:
                appointment.meeting_link = meeting_link
            check_payment_ledger(payment)

        log.info(
            "Payment confirmed",
            appointment_id=context.appointment_id,
            has_meeting_link=bool(appointment.meeting_link),
        )
        await self._notify_confirmation(context, payment_id)
        return self._confirmation_result(payment, ConfirmationOutcome.CONFIRMED)

    @staticmethod
    def _check_confirmable(payment: Payment) -> _ConfirmationContext:
        if payment.status == PaymentStatus.CANCELLED:
            raise InvalidStateError(f"Payment {payment.payment_id} was cancelled")

        appointment = payment.appointment
        if not can_transition_appointment(appointment.status, AppointmentStatus.CONFIRMED):
            raise InvalidStateError(
                f"Appointment {appointment.appointment_id} cannot be confirmed "
                f"from {appointment.status.value}"
            )

        requester = appointment.requester
        return _ConfirmationContext(
            appointment_id=appointment.appointment_id,
            requester_id=appointment.requester_id,
            attendee=appointment.attendee_name or "Patient",
            doctor_name=appointment.doctor.name,
            payer_name=requester.name if requester and requester.name else "Guest",
            amount=payment.amount,
            start=appointment.appointment_date,
            meeting_link=appointment.meeting_link,
        )

    @staticmethod
    def _backfill_keys(payment: Payment, request: ConfirmPaymentRequest) -> ConfirmationOutcome:
        """Fill in gateway identifiers a previous confirmation did not have."""
        updated = False
        if not payment.transaction_key and request.transaction_key:
            payment.transaction_key = request.transaction_key
            updated = True
        if not payment.auth_no and request.auth_no:
            payment.auth_no = request.auth_no
            updated = True
        if updated:
            return ConfirmationOutcome.KEYS_UPDATED
        return ConfirmationOutcome.ALREADY_COMPLETED

    @staticmethod
    def _confirmation_result(
        payment: Payment, outcome: ConfirmationOutcome
    ) -> ConfirmationResult:
        return ConfirmationResult(
            payment_id=payment.payment_id,
            appointment_id=payment.appointment_id,
            outcome=outcome,
            meeting_link=payment.appointment.meeting_link,
        )

    async def _notify_confirmation(self, context: _ConfirmationContext, payment_id: str) -> None:
        drafts = [
            templates.appointment_confirmed(
                context.requester_id, context.doctor_name, context.attendee
            )
        ]
        operator_ids = await run_non_critical("operator_lookup", self._operator_ids) or []
        drafts.extend(
            templates.payment_received(operator_id, context.payer_name, context.amount, payment_id)
            for operator_id in operator_ids
        )
        await self._dispatch(drafts)

    async def _operator_ids(self) -> list[str]:
        async with self._unit_of_work() as uow:
            return await uow.users.list_operator_ids()

    # ------------------------------------------------------------------
    # Payments: cancellation and refunds
    # ------------------------------------------------------------------

    async def cancel_payment(
        self, payment_id: str, request: CancelPaymentRequest
    ) -> CancellationResult:
        """
        Void a pending payment, or refund (part of) a completed one.

        Refunds go to the gateway first; local state changes only after
        the gateway accepted the cancellation.
        """
        log = logger.bind(payment_id=payment_id)

        async with self._unit_of_work() as uow:
            payment = await uow.payments.get(payment_id, for_update=True)
            if payment is None:
                raise NotFoundError("Payment", payment_id)

            if payment.status == PaymentStatus.PENDING:
                transition_payment(payment, PaymentStatus.CANCELLED)
                transition_appointment(payment.appointment, AppointmentStatus.CANCELLED)
                voided = True
            elif payment.status == PaymentStatus.COMPLETED:
                refundable = payment.refundable_amount
                amount = request.refund_amount if request.refund_amount is not None else refundable
                if amount > refundable:
                    raise RefundAmountExceedsLimitError(amount, refundable)
                if amount <= 0:
                    raise InvalidRefundAmountError(amount)
                transaction_key = payment.transaction_key
                # Gateway entries added after this snapshot may be the notification
                # for the cancel issued below
                known_refund_ids = frozenset(refund.refund_id for refund in payment.refunds)
                voided = False
            else:
                raise InvalidStateError(f"Payment {payment_id} is already cancelled")

        if voided:
            log.info("Pending payment voided", reason=request.reason)
            await self._dispatch(
                [
                    templates.appointment_cancelled(
                        payment.appointment.requester_id, payment.appointment.doctor.name, 0
                    )
                ]
            )
            return self._cancellation_result(payment, CancellationOutcome.VOIDED)

        if transaction_key is None:
            log.warning("No gateway transaction key, refunding in the local ledger only")
            return await self.process_refund_success(
                payment_id, None, amount, reason=request.reason, source=RefundSource.LOCAL
            )

        result = await self._require_gateway().cancel(transaction_key, amount, request.reason)
        if not result.success:
            log.error(
                "Gateway refused cancellation",
                amount=amount,
                gateway_code=result.code,
                error=result.error,
            )
            raise GatewayError(result.error or "Cancellation failed", gateway_code=result.code)

        try:
            return await self.process_refund_success(
                payment_id,
                result.transaction_key,
                amount,
                reason=request.reason,
                source=RefundSource.OPERATOR,
                known_refund_ids=known_refund_ids,
            )
        except Exception as e:
            # The gateway has refunded; its cancel callback can still reconcile
            log.critical(
                "Gateway refund succeeded but local ledger update failed",
                amount=amount,
                gateway_key=result.transaction_key,
                error=str(e),
            )
            raise

    async def process_refund_success(
        self,
        payment_id: str,
        gateway_key: Optional[str],
        refund_amount: Optional[int] = None,
        *,
        reason: Optional[str] = None,
        source: RefundSource = RefundSource.GATEWAY,
        known_refund_ids: Iterable[str] = (),
    ) -> CancellationResult:
        """
        Apply a refund the gateway has already executed.

        Shared by the operator cancel path (``source=OPERATOR``) and the
        gateway cancel notification (``source=GATEWAY``). A cancel issued here
        is usually reported twice, once by each path and in either order, so
        every refund is recorded once and its second report only marks the
        ledger entry as reconciled. Reports are paired by cancel id when the
        gateway sends one distinct from the charge key, otherwise by amount
        against entries of the other source still waiting for their
        counterpart. ``known_refund_ids`` lists entries that existed before
        the operator's gateway call; those never pair with it.

        Without ``refund_amount`` the refundable balance is refunded, but
        only while nothing has been refunded yet.
        """
        log = logger.bind(payment_id=payment_id, gateway_key=gateway_key, source=source.value)

        async with self._unit_of_work() as uow:
            payment = await uow.payments.get(payment_id, for_update=True)
            if payment is None:
                raise NotFoundError("Payment", payment_id)

            # Cancel notifications echo the charge key; it identifies the payment, not the refund
            cancel_key = gateway_key if gateway_key != payment.transaction_key else None

            if cancel_key:
                recorded = await uow.refunds.get_by_gateway_key(cancel_key)
                if recorded is not None:
                    if recorded.source != source:
                        recorded.reconciled = True
                    log.info("Duplicate refund notification ignored", refund_id=recorded.refund_id)
                    return self._cancellation_result(payment, CancellationOutcome.DUPLICATE_REFUND)

            counterpart = self._find_counterpart(
                payment.refunds, source, refund_amount, frozenset(known_refund_ids)
            )
            if counterpart is not None:
                counterpart.reconciled = True
                if cancel_key and counterpart.gateway_key is None:
                    counterpart.gateway_key = cancel_key
                log.info(
                    "Refund already recorded, reconciled",
                    refund_id=counterpart.refund_id,
                    amount=counterpart.amount,
                )
                return self._cancellation_result(payment, CancellationOutcome.RECONCILED)

            if payment.is_fully_refunded:
                log.info("Refund ignored, payment already fully refunded")
                return self._cancellation_result(payment, CancellationOutcome.ALREADY_REFUNDED)

            if payment.status != PaymentStatus.COMPLETED:
                raise InvalidStateError(
                    f"Payment {payment_id} is {payment.status.value}, only completed "
                    "payments can be refunded"
                )
            if refund_amount is None:
                if payment.refunded_amount > 0:
                    log.error(
                        "Refund without amount after partial refunds, needs manual reconciliation",
                        refunded_amount=payment.refunded_amount,
                        refundable_amount=payment.refundable_amount,
                    )
                    return self._cancellation_result(payment, CancellationOutcome.UNRECONCILED)
                refund_amount = payment.refundable_amount
            if refund_amount <= 0:
                raise InvalidRefundAmountError(refund_amount)

            applied = min(refund_amount, payment.refundable_amount)
            if applied < refund_amount:
                log.warning(
                    "Refund capped at refundable amount",
                    requested=refund_amount,
                    applied=applied,
                )

            payment.refunded_amount += applied
            await uow.refunds.add(
                PaymentRefund(
                    payment_id=payment_id,
                    amount=applied,
                    gateway_key=cancel_key,
                    source=source,
                    reconciled=source == RefundSource.LOCAL,
                    reason=reason,
                )
            )

            fully_refunded = payment.is_fully_refunded
            if fully_refunded:
                transition_payment(payment, PaymentStatus.CANCELLED)
                self._cancel_appointment_after_refund(payment.appointment, log)
            check_payment_ledger(payment)

        appointment = payment.appointment
        log.info(
            "Refund applied",
            applied=applied,
            refunded_amount=payment.refunded_amount,
            fully_refunded=fully_refunded,
        )

        if fully_refunded:
            draft = templates.appointment_cancelled(
                appointment.requester_id, appointment.doctor.name, payment.refunded_amount
            )
            outcome = CancellationOutcome.FULLY_REFUNDED
        else:
            draft = templates.payment_partially_refunded(
                appointment.requester_id,
                appointment.doctor.name,
                applied,
                payment.refundable_amount,
            )
            outcome = CancellationOutcome.PARTIALLY_REFUNDED
        await self._dispatch([draft])
        return self._cancellation_result(payment, outcome)

    @staticmethod
    def _cancel_appointment_after_refund(appointment: Appointment, log: AppLogger) -> None:
        if can_transition_appointment(appointment.status, AppointmentStatus.CANCELLED):
            transition_appointment(appointment, AppointmentStatus.CANCELLED)
        else:
            # e.g. a COMPLETED consultation refunded afterwards keeps its history
            log.warning(
                "Payment fully refunded, appointment status kept",
                appointment_id=appointment.appointment_id,
                appointment_status=appointment.status.value,
            )

    @staticmethod
    def _find_counterpart(
        refunds: Iterable[PaymentRefund],
        source: RefundSource,
        amount: Optional[int],
        known_refund_ids: frozenset[str],
    ) -> Optional[PaymentRefund]:
        """Oldest unreconciled entry reported by the other path for the same amount."""
        if source == RefundSource.GATEWAY:
            counterpart_source = RefundSource.OPERATOR
        elif source == RefundSource.OPERATOR:
            counterpart_source = RefundSource.GATEWAY
        else:
            return None

        for refund in refunds:
            if (
                refund.source == counterpart_source
                and not refund.reconciled
                and refund.refund_id not in known_refund_ids
                and (amount is None or refund.amount == amount)
            ):
                return refund
        return None

    @staticmethod
    def _cancellation_result(
        payment: Payment, outcome: CancellationOutcome
    ) -> CancellationResult:
        return CancellationResult(
            payment_id=payment.payment_id,
            outcome=outcome,
            payment_status=payment.status,
            amount=payment.amount,
            refunded_amount=payment.refunded_amount,
            refundable_amount=payment.refundable_amount,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_payment(self, payment_id: str) -> Payment:
        async with self._unit_of_work() as uow:
            payment = await uow.payments.get(payment_id)
            if payment is None:
                raise NotFoundError("Payment", payment_id)
            return payment

    async def list_payments(
        self, page: int = 1, status: Optional[PaymentStatus] = None
    ) -> PaymentPage:
        """Newest first, ``page_size`` per page."""
        page = max(page, 1)
        async with self._unit_of_work() as uow:
            rows, total = await uow.payments.list_page(
                offset=(page - 1) * self._page_size,
                limit=self._page_size,
                status=status,
            )

        return PaymentPage(
            data=[PaymentResponse.model_validate(row) for row in rows],
            pagination=Pagination(
                current=page,
                total=(total + self._page_size - 1) // self._page_size,
                total_records=total,
            ),
        )

    async def find_payment_id(
        self, order_no: Optional[str] = None, transaction_key: Optional[str] = None
    ) -> Optional[str]:
        """Resolve a gateway callback to a payment by order number, then transaction key."""
        async with self._unit_of_work() as uow:
            if order_no:
                payment = await uow.payments.get(order_no)
                if payment is not None:
                    return payment.payment_id
            if transaction_key:
                payment = await uow.payments.get_by_transaction_key(transaction_key)
                if payment is not None:
                    return payment.payment_id
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_gateway(self) -> GatewayClient:
        if self._gateway is None:
            raise GatewayError("Payment gateway is not configured")
        return self._gateway

    async def _dispatch(self, drafts: list[NotificationDraft]) -> None:
        for draft in drafts:
            await run_non_critical(
                "notification",
                lambda draft=draft: self._notifier.create(**draft.as_kwargs()),
            )


__all__ = ["ReconciliationEngine", "to_minor_units", "DEFAULT_PAGE_SIZE"]
