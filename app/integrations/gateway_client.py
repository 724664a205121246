# app/integrations/gateway_client.py
"""
Card payment gateway adapter (Kiwoom Pay).

The gateway's wire protocol (EUC-KR JSON, two-step ready/final cancel) is
fully contained here; the engine only sees ``request_hash`` and ``cancel``.
"""
from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
import httpx
from common import GatewayConfig, GatewayError, get_app_logger
from common.logger.logger_middleware import capture_timing

logger = get_app_logger(__name__)

SUCCESS_CODE = "0000"


@dataclass(frozen=True)
class GatewayCancelResult:
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None
    # Gateway id of the cancel transaction, when the gateway reports one
    transaction_key: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


class GatewayClient(Protocol):
    async def request_hash(self, order_id: str, amount: int, method: str) -> dict[str, str]: ...

    async def cancel(self, transaction_key: str, amount: int, reason: str) -> GatewayCancelResult: ...


class KiwoomGatewayClient:
    """
    Usage:
        gateway = KiwoomGatewayClient(config.gateway)
        params = await gateway.request_hash(payment_id, 50000, "CARD")
        result = await gateway.cancel("DAOU123", 20000, "patient request")
    """

    def __init__(self, config: GatewayConfig):
        self._config = config

    def _headers(self, **extra: str) -> dict[str, str]:
        return {
            "Content-Type": f"application/json;charset={self._config.encoding.upper()}",
            "Authorization": self._config.auth_key.get_secret_value(),
            **extra,
        }

    def _encode(self, payload: dict[str, str]) -> bytes:
        return json.dumps(payload, ensure_ascii=False).encode(self._config.encoding)

    def _decode(self, response: httpx.Response) -> dict[str, Any]:
        return json.loads(response.content.decode(self._config.encoding))

    def is_simulated(self, transaction_key: str) -> bool:
        return bool(self._config.simulated_prefix) and transaction_key.startswith(
            self._config.simulated_prefix
        )

    async def request_hash(self, order_id: str, amount: int, method: str) -> dict[str, str]:
        """
        Ask the gateway to sign the payment window parameters.

        Raises:
            GatewayError: on transport failure or a response without KIWOOM_ENC
        """
        params = {
            "CPID": self._config.merchant_id,
            "PAYMETHOD": method,
            "ORDERNO": order_id,
            "TYPE": "P",
            "AMOUNT": str(amount),
        }
        logger.info("Requesting gateway hash", order_id=order_id, amount=amount)

        try:
            with capture_timing("gateway"):
                async with httpx.AsyncClient(timeout=self._config.timeout) as client:
                    resp = await client.post(
                        self._config.hash_url,
                        json=params,
                        headers={"Authorization": self._config.auth_key.get_secret_value()},
                    )
                    resp.raise_for_status()
                    data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Gateway hash request failed", order_id=order_id, error=str(e))
            raise GatewayError(f"Hash request failed: {e}") from e

        encrypted = data.get("KIWOOM_ENC")
        if not encrypted:
            raise GatewayError("No KIWOOM_ENC in gateway response")

        return {**params, "KIWOOM_ENC": encrypted}

    async def cancel(self, transaction_key: str, amount: int, reason: str) -> GatewayCancelResult:
        """
        Cancel (refund) ``amount`` of a captured transaction.
        Never raises; failures come back as ``success=False``.
        """
        log = logger.bind(transaction_key=transaction_key, amount=amount)

        if self.is_simulated(transaction_key):
            log.info("Simulated transaction, bypassing gateway cancel")
            return GatewayCancelResult(success=True)

        payload = {
            "CPID": self._config.merchant_id,
            "PAYMETHOD": "CARD",
            "AMOUNT": str(amount),
            "CANCELREQ": "Y",
            "TRXID": transaction_key,
            "CANCELREASON": reason,
            "TAXFREEAMT": "0",
        }
        body = self._encode(payload)

        try:
            with capture_timing("gateway"):
                async with httpx.AsyncClient(timeout=self._config.timeout) as client:
                    ready = await client.post(
                        self._config.cancel_ready_url, content=body, headers=self._headers()
                    )
                    ready.raise_for_status()
                    ready_data = self._decode(ready)

                    token = ready_data.get("TOKEN")
                    return_url = ready_data.get("RETURNURL")
                    if not token or not return_url:
                        log.error("Gateway cancel ready step failed", response=ready_data)
                        return GatewayCancelResult(
                            success=False,
                            error="Failed to initialize cancellation",
                            raw=ready_data,
                        )

                    final = await client.post(
                        return_url, content=body, headers=self._headers(TOKEN=token)
                    )
                    final.raise_for_status()
                    final_data = self._decode(final)
        except (httpx.HTTPError, ValueError) as e:
            log.error("Gateway cancel request failed", error=str(e))
            return GatewayCancelResult(success=False, error=str(e))

        result_code = final_data.get("RESULTCODE")
        if result_code != SUCCESS_CODE:
            log.warning("Gateway rejected cancellation", result_code=result_code)
            return GatewayCancelResult(
                success=False,
                error=final_data.get("ERRORMESSAGE") or "Cancellation failed",
                code=result_code,
                raw=final_data,
            )

        log.info("Gateway cancellation accepted")
        return GatewayCancelResult(
            success=True,
            code=result_code,
            transaction_key=final_data.get("DAOUTRX") or None,
            raw=final_data,
        )


__all__ = ["GatewayClient", "GatewayCancelResult", "KiwoomGatewayClient", "SUCCESS_CODE"]
