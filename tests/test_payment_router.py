from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from pydantic import SecretStr

from app.app_factory import create_app
from app.services.v1 import NotificationType
from common import AppConfig, EnvLogLevel, Environment, GatewayConfig, LoggingConfig
from conftest import count_notifications

API = "/api/v1"


def app_config() -> AppConfig:
    return AppConfig(
        app_title="Reconciliation API",
        app_version="1.0.0",
        environment=Environment.STAGING,
        logging=LoggingConfig(log_level=EnvLogLevel.INFO),
        gateway=GatewayConfig(merchant_id="CP0001", auth_key=SecretStr("secret-key")),
    )


@pytest_asyncio.fixture
async def client(engine, db_manager):
    app = create_app(app_config())
    app.state.engine = engine
    app.state.db_manager = db_manager
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def create_payment(client, seed, price="50000") -> str:
    resp = await client.post(
        f"{API}/appointments",
        json={
            "requester_id": seed.patient_id,
            "doctor_id": seed.doctor_id,
            "appointment_date": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
            "price": price,
        },
    )
    assert resp.status_code == 201
    assert resp.json()["status"] == "AWAITING_PAYMENT"

    resp = await client.post(
        f"{API}/payments", json={"appointment_id": resp.json()["appointment_id"]}
    )
    assert resp.status_code == 200
    return resp.json()["payment_id"]


def approval(payment_id: str, **overrides) -> dict:
    params = {
        "RES_CD": "0000",
        "ORDERNO": payment_id,
        "DAOUTRX": "DAOU-1",
        "AUTHNO": "A-77",
        "AMOUNT": "50000",
        "PAYMETHOD": "CARD",
    }
    params.update(overrides)
    return params


@pytest.mark.asyncio
async def test_approval_callback_confirms_payment_once(client, seed, db_manager):
    payment_id = await create_payment(client, seed)

    for _ in range(2):
        resp = await client.get(f"{API}/payments/callback", params=approval(payment_id))
        assert resp.status_code == 200
        assert resp.text == "OK"

    payment = (await client.get(f"{API}/payments/{payment_id}")).json()
    assert payment["status"] == "COMPLETED"
    assert payment["transaction_key"] == "DAOU-1"
    assert payment["auth_no"] == "A-77"
    assert await count_notifications(
        db_manager, seed.patient_id, NotificationType.APPOINTMENT_CONFIRMED.value
    ) == 1


@pytest.mark.asyncio
async def test_cancel_callback_applies_refund(client, seed):
    payment_id = await create_payment(client, seed)
    await client.post(f"{API}/payments/callback", json=approval(payment_id))

    form = {"PAYMETHOD": "CARD_CANCEL", "ORDERNO": payment_id, "DAOUTRX": "CX-9", "AMOUNT": "50000"}
    for _ in range(2):
        resp = await client.post(f"{API}/payments/callback", data=form)
        assert resp.text == "OK"

    payment = (await client.get(f"{API}/payments/{payment_id}")).json()
    assert payment["status"] == "CANCELLED"
    assert payment["refunded_amount"] == 50000


def cancellation(payment_id: str, **fields) -> dict:
    return {"PAYMETHOD": "CARD_CANCEL", "ORDERNO": payment_id, "DAOUTRX": "DAOU-1", **fields}


@pytest.mark.asyncio
async def test_successive_partial_cancel_callbacks_are_all_applied(client, seed):
    payment_id = await create_payment(client, seed)
    await client.post(f"{API}/payments/callback", json=approval(payment_id))

    for amount in ("20000", "30000"):
        resp = await client.post(
            f"{API}/payments/callback", data=cancellation(payment_id, AMOUNT=amount)
        )
        assert resp.text == "OK"

    payment = (await client.get(f"{API}/payments/{payment_id}")).json()
    assert payment["refunded_amount"] == 50000
    assert payment["status"] == "CANCELLED"


@pytest.mark.asyncio
async def test_cancel_callback_for_operator_refund_is_not_applied_twice(client, seed):
    payment_id = await create_payment(client, seed)
    await client.post(f"{API}/payments/callback", json=approval(payment_id))
    resp = await client.post(
        f"{API}/payments/{payment_id}/cancel", json={"reason": "test", "refund_amount": 20000}
    )
    assert resp.json()["outcome"] == "PARTIALLY_REFUNDED"

    resp = await client.post(f"{API}/payments/callback", data=cancellation(payment_id))
    assert resp.text == "OK"

    payment = (await client.get(f"{API}/payments/{payment_id}")).json()
    assert payment["refunded_amount"] == 20000
    assert payment["status"] == "COMPLETED"


@pytest.mark.asyncio
async def test_callback_for_unknown_payment_is_acknowledged(client, seed):
    resp = await client.get(f"{API}/payments/callback", params=approval("no-such-payment"))
    assert resp.status_code == 200
    assert resp.text == "OK"


@pytest.mark.asyncio
async def test_callback_from_unknown_ip_is_rejected(client, seed):
    payment_id = await create_payment(client, seed)

    resp = await client.get(
        f"{API}/payments/callback",
        params=approval(payment_id),
        headers={"x-forwarded-for": "203.0.113.7, 10.0.0.1"},
    )

    assert resp.status_code == 403
    payment = (await client.get(f"{API}/payments/{payment_id}")).json()
    assert payment["status"] == "PENDING"


@pytest.mark.asyncio
async def test_failed_payment_callback_changes_nothing(client, seed):
    payment_id = await create_payment(client, seed)

    resp = await client.get(
        f"{API}/payments/callback",
        params=approval(payment_id, RES_CD="5001", AUTHNO="", RES_MSG="한도초과"),
    )

    assert resp.text == "OK"
    payment = (await client.get(f"{API}/payments/{payment_id}")).json()
    assert payment["status"] == "PENDING"


@pytest.mark.asyncio
async def test_confirm_and_cancel_endpoints(client, seed, gateway):
    payment_id = await create_payment(client, seed)

    resp = await client.post(
        f"{API}/payments/{payment_id}/confirm",
        json={"transaction_key": "TX123", "claimed_amount": 50000, "auth_no": "AUTH1"},
    )
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "CONFIRMED"
    assert "X-Request-ID" in resp.headers
    assert "total;dur=" in resp.headers["Server-Timing"]

    resp = await client.post(
        f"{API}/payments/{payment_id}/cancel", json={"reason": "test", "refund_amount": 60000}
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "REFUND_AMOUNT_EXCEEDS_LIMIT"
    assert gateway.cancel_calls == []

    resp = await client.post(
        f"{API}/payments/{payment_id}/cancel", json={"reason": "test", "refund_amount": 20000}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["outcome"] == "PARTIALLY_REFUNDED"
    assert body["refundable_amount"] == 30000


@pytest.mark.asyncio
async def test_domain_errors_are_mapped(client, seed):
    resp = await client.get(f"{API}/payments/missing")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NOT_FOUND"

    payment_id = await create_payment(client, seed)
    await client.post(f"{API}/payments/{payment_id}/cancel", json={"reason": "void"})

    resp = await client.post(
        f"{API}/payments/{payment_id}/confirm",
        json={"transaction_key": "TX123", "claimed_amount": 50000},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "INVALID_STATE"


@pytest.mark.asyncio
async def test_list_payments_endpoint(client, seed):
    for _ in range(3):
        await create_payment(client, seed)

    resp = await client.get(f"{API}/payments", params={"page": 1, "status": "PENDING"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["pagination"] == {"current": 1, "total": 1, "total_records": 3}
    assert len(body["data"]) == 3


@pytest.mark.asyncio
async def test_price_and_complete_endpoints(client, seed):
    resp = await client.post(
        f"{API}/appointments",
        json={
            "requester_id": seed.patient_id,
            "doctor_id": seed.doctor_id,
            "appointment_date": "2026-11-02T09:00:00Z",
        },
    )
    appointment_id = resp.json()["appointment_id"]
    assert resp.json()["status"] == "PENDING"

    resp = await client.put(f"{API}/appointments/{appointment_id}/price", json={"price": "50000"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "AWAITING_PAYMENT"

    resp = await client.post(f"{API}/appointments/{appointment_id}/complete")
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "Healthy"
    assert body["database"]["healthy"] is True
