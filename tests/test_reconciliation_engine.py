from decimal import Decimal

import pytest

from app.db import SqlUnitOfWork
from app.db.models import AppointmentStatus, PaymentStatus
from app.db.schemas import ConfirmPaymentRequest, ConfirmationOutcome
from app.integrations import DbNotifier
from app.services.v1 import NotificationType, ReconciliationEngine, to_minor_units
from common import (
    AlreadyPaidError,
    InvalidPriceError,
    InvalidStateError,
    NotFoundError,
)
from conftest import FailingNotifier, FakeMeetings, appointment_request, count_notifications


def confirm_request(tx="TX123", amount=50000, auth="AUTH1") -> ConfirmPaymentRequest:
    return ConfirmPaymentRequest(transaction_key=tx, claimed_amount=amount, auth_no=auth)


async def paid_ready(engine, seed, price="50000"):
    appointment = await engine.create_appointment(appointment_request(seed, price))
    return await engine.initiate_payment(appointment.appointment_id)


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("50000")) == 50000
    assert to_minor_units(Decimal("45000.50")) == 45001
    assert to_minor_units(Decimal("45000.49")) == 45000


@pytest.mark.asyncio
async def test_unpriced_appointment_is_pending_until_priced(engine, seed):
    appointment = await engine.create_appointment(appointment_request(seed))
    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.price is None

    priced = await engine.set_appointment_price(appointment.appointment_id, Decimal("50000"))
    assert priced.status == AppointmentStatus.AWAITING_PAYMENT
    assert priced.price == Decimal("50000")


@pytest.mark.asyncio
async def test_create_with_price_goes_straight_to_awaiting_payment(engine, seed):
    appointment = await engine.create_appointment(appointment_request(seed, "30000"))
    assert appointment.status == AppointmentStatus.AWAITING_PAYMENT
    assert appointment.doctor.name == "Park"


@pytest.mark.asyncio
async def test_create_rejects_unknown_parties(engine, seed):
    with pytest.raises(NotFoundError):
        await engine.create_appointment(appointment_request(seed, requester_id="missing"))
    with pytest.raises(NotFoundError):
        await engine.create_appointment(appointment_request(seed, doctor_id="missing"))


@pytest.mark.asyncio
async def test_family_member_must_belong_to_requester(engine, seed):
    with pytest.raises(InvalidStateError):
        await engine.create_appointment(
            appointment_request(
                seed, requester_id=seed.other_patient_id, family_member_id=seed.member_id
            )
        )

    appointment = await engine.create_appointment(
        appointment_request(seed, family_member_id=seed.member_id)
    )
    assert appointment.attendee_name == "Kim Seoyeon"


@pytest.mark.asyncio
async def test_price_must_be_positive_after_rounding(engine, seed):
    appointment = await engine.create_appointment(appointment_request(seed))
    with pytest.raises(InvalidPriceError):
        await engine.set_appointment_price(appointment.appointment_id, Decimal("0.40"))

    unchanged = await engine.get_appointment(appointment.appointment_id)
    assert unchanged.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_price_locked_once_payment_exists(engine, seed):
    appointment = await engine.create_appointment(appointment_request(seed, "50000"))
    await engine.set_appointment_price(appointment.appointment_id, Decimal("40000"))
    await engine.initiate_payment(appointment.appointment_id)

    with pytest.raises(InvalidStateError):
        await engine.set_appointment_price(appointment.appointment_id, Decimal("10000"))


@pytest.mark.asyncio
async def test_initiate_payment_reuses_pending_payment(engine, seed):
    appointment = await engine.create_appointment(appointment_request(seed, "50000"))

    first = await engine.initiate_payment(appointment.appointment_id)
    second = await engine.initiate_payment(appointment.appointment_id)

    assert first.payment_id == second.payment_id
    assert first.amount == 50000
    assert first.customer_name == "Kim Minji"
    assert first.customer_email == "minji@example.com"
    assert "Park" in first.product_name


@pytest.mark.asyncio
async def test_initiate_payment_requires_price(engine, seed):
    appointment = await engine.create_appointment(appointment_request(seed))
    with pytest.raises(InvalidStateError) as exc_info:
        await engine.initiate_payment(appointment.appointment_id)
    assert exc_info.value.code == "PRICE_NOT_SET"

    with pytest.raises(NotFoundError):
        await engine.initiate_payment("missing")


@pytest.mark.asyncio
async def test_confirm_payment_confirms_both_records(engine, seed, db_manager, meetings):
    initiation = await paid_ready(engine, seed)

    result = await engine.confirm_payment(initiation.payment_id, confirm_request())

    assert result.outcome == ConfirmationOutcome.CONFIRMED
    assert result.meeting_link == meetings.link
    payment = await engine.get_payment(initiation.payment_id)
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.transaction_key == "TX123"
    assert payment.auth_no == "AUTH1"
    assert payment.approved_at is not None
    assert payment.appointment.status == AppointmentStatus.CONFIRMED
    assert payment.appointment.meeting_link == meetings.link

    _, start, end, _ = meetings.calls[0]
    assert (end - start).total_seconds() == 30 * 60

    assert await count_notifications(
        db_manager, seed.patient_id, NotificationType.APPOINTMENT_CONFIRMED.value
    ) == 1
    for operator_id in seed.operator_ids:
        assert await count_notifications(
            db_manager, operator_id, NotificationType.PAYMENT_RECEIVED.value
        ) == 1


@pytest.mark.asyncio
async def test_repeated_confirmation_changes_nothing(engine, seed, db_manager, meetings):
    initiation = await paid_ready(engine, seed)
    await engine.confirm_payment(initiation.payment_id, confirm_request())
    before = await count_notifications(db_manager)

    result = await engine.confirm_payment(initiation.payment_id, confirm_request())

    assert result.outcome == ConfirmationOutcome.ALREADY_COMPLETED
    assert await count_notifications(db_manager) == before
    assert len(meetings.calls) == 1


@pytest.mark.asyncio
async def test_repeated_confirmation_backfills_missing_keys(engine, seed):
    initiation = await paid_ready(engine, seed)
    await engine.confirm_payment(initiation.payment_id, confirm_request(tx="", auth=""))

    payment = await engine.get_payment(initiation.payment_id)
    assert payment.transaction_key is None
    assert payment.auth_no is None

    result = await engine.confirm_payment(initiation.payment_id, confirm_request())
    assert result.outcome == ConfirmationOutcome.KEYS_UPDATED

    payment = await engine.get_payment(initiation.payment_id)
    assert payment.transaction_key == "TX123"
    assert payment.auth_no == "AUTH1"

    # Existing keys are never overwritten
    await engine.confirm_payment(initiation.payment_id, confirm_request(tx="OTHER", auth="AUTH2"))
    payment = await engine.get_payment(initiation.payment_id)
    assert payment.transaction_key == "TX123"


@pytest.mark.asyncio
async def test_concurrent_confirmation_notifies_once(engine, seed, db_manager, meetings):
    initiation = await paid_ready(engine, seed)

    async def competing_confirmation():
        result = await engine.confirm_payment(initiation.payment_id, confirm_request())
        assert result.outcome == ConfirmationOutcome.CONFIRMED

    # The competing call lands while the first one is provisioning the meeting
    meetings.before_return = competing_confirmation

    result = await engine.confirm_payment(initiation.payment_id, confirm_request())

    assert result.outcome == ConfirmationOutcome.ALREADY_COMPLETED
    assert await count_notifications(
        db_manager, seed.patient_id, NotificationType.APPOINTMENT_CONFIRMED.value
    ) == 1
    payment = await engine.get_payment(initiation.payment_id)
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.appointment.status == AppointmentStatus.CONFIRMED


@pytest.mark.asyncio
async def test_amount_mismatch_does_not_block_confirmation(engine, seed):
    initiation = await paid_ready(engine, seed)

    result = await engine.confirm_payment(initiation.payment_id, confirm_request(amount=49000))

    assert result.outcome == ConfirmationOutcome.CONFIRMED
    payment = await engine.get_payment(initiation.payment_id)
    assert payment.amount == 50000


@pytest.mark.asyncio
async def test_meeting_failure_does_not_block_confirmation(db_manager, seed, gateway):
    engine = ReconciliationEngine(
        db_manager.unit_of_work,
        gateway=gateway,
        meetings=FakeMeetings(error=TimeoutError("calendar down")),
        notifier=DbNotifier(db_manager.unit_of_work),
    )
    initiation = await paid_ready(engine, seed)

    result = await engine.confirm_payment(initiation.payment_id, confirm_request())

    assert result.outcome == ConfirmationOutcome.CONFIRMED
    assert result.meeting_link is None
    payment = await engine.get_payment(initiation.payment_id)
    assert payment.appointment.status == AppointmentStatus.CONFIRMED


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_confirmation(db_manager, seed, gateway, meetings):
    notifier = FailingNotifier()
    engine = ReconciliationEngine(
        db_manager.unit_of_work, gateway=gateway, meetings=meetings, notifier=notifier
    )
    initiation = await paid_ready(engine, seed)

    result = await engine.confirm_payment(initiation.payment_id, confirm_request())

    assert result.outcome == ConfirmationOutcome.CONFIRMED
    # requester + both operators were attempted
    assert notifier.attempts == 3
    payment = await engine.get_payment(initiation.payment_id)
    assert payment.status == PaymentStatus.COMPLETED


class CommitFailingUnitOfWork(SqlUnitOfWork):
    """Fails any commit that carries pending changes."""

    async def commit(self) -> None:
        if self.session.dirty or self.session.new:
            raise ConnectionError("connection lost during commit")
        await super().commit()


@pytest.mark.asyncio
async def test_failed_commit_leaves_no_partial_confirmation(db_manager, seed, gateway, meetings):
    engine = ReconciliationEngine(
        db_manager.unit_of_work,
        gateway=gateway,
        meetings=meetings,
        notifier=DbNotifier(db_manager.unit_of_work),
    )
    initiation = await paid_ready(engine, seed)

    failing = ReconciliationEngine(
        lambda: CommitFailingUnitOfWork(db_manager.session_maker),
        gateway=gateway,
        meetings=meetings,
        notifier=DbNotifier(db_manager.unit_of_work),
    )
    with pytest.raises(ConnectionError):
        await failing.confirm_payment(initiation.payment_id, confirm_request())

    payment = await engine.get_payment(initiation.payment_id)
    assert payment.status == PaymentStatus.PENDING
    assert payment.transaction_key is None
    assert payment.appointment.status == AppointmentStatus.AWAITING_PAYMENT
    assert payment.appointment.meeting_link is None
    assert await count_notifications(db_manager) == 0


@pytest.mark.asyncio
async def test_confirmed_payment_cannot_be_initiated_again(engine, seed):
    initiation = await paid_ready(engine, seed)
    payment = await engine.get_payment(initiation.payment_id)
    await engine.confirm_payment(initiation.payment_id, confirm_request())

    with pytest.raises(AlreadyPaidError):
        await engine.initiate_payment(payment.appointment_id)
    with pytest.raises(AlreadyPaidError):
        await engine.request_payment_signature(initiation.payment_id, "CARD")


@pytest.mark.asyncio
async def test_confirm_unknown_payment(engine, seed):
    with pytest.raises(NotFoundError):
        await engine.confirm_payment("missing", confirm_request())


@pytest.mark.asyncio
async def test_request_payment_signature_uses_stored_amount(engine, seed, gateway):
    initiation = await paid_ready(engine, seed, price="45000.50")

    signature = await engine.request_payment_signature(initiation.payment_id, "CARD")

    assert signature.amount == 45001
    assert signature.signed_params["KIWOOM_ENC"] == "signed"
    assert gateway.hash_calls == [(initiation.payment_id, 45001, "CARD")]


@pytest.mark.asyncio
async def test_complete_appointment_only_after_confirmation(engine, seed, db_manager):
    initiation = await paid_ready(engine, seed)
    payment = await engine.get_payment(initiation.payment_id)

    with pytest.raises(InvalidStateError):
        await engine.complete_appointment(payment.appointment_id)

    await engine.confirm_payment(initiation.payment_id, confirm_request())
    completed = await engine.complete_appointment(payment.appointment_id)

    assert completed.status == AppointmentStatus.COMPLETED
    assert await count_notifications(
        db_manager, seed.patient_id, NotificationType.APPOINTMENT_COMPLETED.value
    ) == 1

    with pytest.raises(InvalidStateError):
        await engine.complete_appointment(payment.appointment_id)


@pytest.mark.asyncio
async def test_list_payments_newest_first_with_pagination(engine, seed):
    created = []
    for _ in range(12):
        initiation = await paid_ready(engine, seed, price="10000")
        created.append(initiation.payment_id)
    await engine.confirm_payment(created[0], confirm_request(tx="TX-FIRST"))

    first_page = await engine.list_payments(page=1)
    second_page = await engine.list_payments(page=2)

    assert first_page.pagination.total_records == 12
    assert first_page.pagination.total == 2
    assert len(first_page.data) == 10
    assert len(second_page.data) == 2
    assert first_page.data[0].payment_id == created[-1]
    assert second_page.data[-1].payment_id == created[0]

    completed = await engine.list_payments(status=PaymentStatus.COMPLETED)
    assert [p.payment_id for p in completed.data] == [created[0]]
