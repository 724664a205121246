import json

import httpx
import pytest
import respx
from pydantic import SecretStr

from app.integrations import KiwoomGatewayClient
from common import GatewayConfig, GatewayError

BASE = "https://apitest.kiwoompay.co.kr"
RETURN_URL = f"{BASE}/pay/cancel/final"


@pytest.fixture
def client() -> KiwoomGatewayClient:
    return KiwoomGatewayClient(
        GatewayConfig(merchant_id="CP0001", auth_key=SecretStr("secret-key"))
    )


def euc_kr(payload: dict) -> bytes:
    return json.dumps(payload, ensure_ascii=False).encode("euc-kr")


@pytest.mark.asyncio
async def test_cancel_two_step_success(client):
    with respx.mock(base_url=BASE) as m:
        ready = m.post("/pay/ready").respond(
            200, content=euc_kr({"TOKEN": "tok-1", "RETURNURL": RETURN_URL})
        )
        final = m.post("/pay/cancel/final").respond(
            200, content=euc_kr({"RESULTCODE": "0000", "DAOUTRX": "CX-1", "ERRORMESSAGE": ""})
        )

        result = await client.cancel("DAOU123", 20000, "환불 요청")

    assert result.success
    assert result.transaction_key == "CX-1"

    sent = json.loads(ready.calls[0].request.content.decode("euc-kr"))
    assert sent["TRXID"] == "DAOU123"
    assert sent["AMOUNT"] == "20000"
    assert sent["CANCELREQ"] == "Y"
    assert sent["CANCELREASON"] == "환불 요청"
    assert ready.calls[0].request.headers["Authorization"] == "secret-key"
    assert final.calls[0].request.headers["TOKEN"] == "tok-1"


@pytest.mark.asyncio
async def test_cancel_rejected_by_gateway(client):
    with respx.mock(base_url=BASE) as m:
        m.post("/pay/ready").respond(
            200, content=euc_kr({"TOKEN": "tok-1", "RETURNURL": RETURN_URL})
        )
        m.post("/pay/cancel/final").respond(
            200, content=euc_kr({"RESULTCODE": "3001", "ERRORMESSAGE": "이미 취소된 거래"})
        )

        result = await client.cancel("DAOU123", 20000, "test")

    assert not result.success
    assert result.code == "3001"
    assert result.error == "이미 취소된 거래"


@pytest.mark.asyncio
async def test_cancel_without_token_fails_without_final_call(client):
    with respx.mock(base_url=BASE, assert_all_called=False) as m:
        m.post("/pay/ready").respond(200, content=euc_kr({"RESULTCODE": "9999"}))
        final = m.post("/pay/cancel/final")

        result = await client.cancel("DAOU123", 20000, "test")

    assert not result.success
    assert not final.called


@pytest.mark.asyncio
async def test_cancel_transport_error_is_reported_not_raised(client):
    with respx.mock(base_url=BASE) as m:
        m.post("/pay/ready").mock(side_effect=httpx.ConnectTimeout("timed out"))

        result = await client.cancel("DAOU123", 20000, "test")

    assert not result.success
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_simulated_transaction_bypasses_gateway(client):
    with respx.mock(base_url=BASE, assert_all_called=False) as m:
        ready = m.post("/pay/ready")

        result = await client.cancel("TX_SIM_42", 20000, "test")

    assert result.success
    assert not ready.called


@pytest.mark.asyncio
async def test_request_hash(client):
    with respx.mock(base_url=BASE) as m:
        route = m.post("/pay/hash").respond(200, json={"KIWOOM_ENC": "enc-value"})

        params = await client.request_hash("pay-1", 50000, "CARD")

    assert params["KIWOOM_ENC"] == "enc-value"
    assert params["ORDERNO"] == "pay-1"
    assert params["CPID"] == "CP0001"
    assert json.loads(route.calls[0].request.content)["AMOUNT"] == "50000"


@pytest.mark.asyncio
async def test_request_hash_without_signature_raises(client):
    with respx.mock(base_url=BASE) as m:
        m.post("/pay/hash").respond(200, json={"RESULTCODE": "1001"})

        with pytest.raises(GatewayError):
            await client.request_hash("pay-1", 50000, "CARD")
