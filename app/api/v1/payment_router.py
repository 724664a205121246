# app/api/v1/payment_router.py
from typing import Any, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import PlainTextResponse
from app.db.deps import get_app_config, get_engine
from app.db.models import PaymentStatus
from app.db.schemas import (
    CancelPaymentRequest,
    CancellationResult,
    ConfirmationResult,
    ConfirmPaymentRequest,
    InitiatePaymentRequest,
    PaymentInitiation,
    PaymentPage,
    PaymentResponse,
    PaymentSignature,
    PaymentSignatureRequest,
)
from app.services.v1 import ReconciliationEngine
from common import AppConfig, AppError, get_app_logger
from common.logger.logger_middleware import enable_perf_headers

logger = get_app_logger(__name__)

CALLBACK_ACK = "OK"
CARD_CANCEL = "CARD_CANCEL"
CANCEL_MESSAGE_MARKER = "취소"

payment_router = APIRouter(
    prefix="/payments",
    tags=["Payments"],
)


@payment_router.post(
    "",
    response_model=PaymentInitiation,
    status_code=status.HTTP_200_OK,
    summary="Initiate payment for an appointment",
    description="""
    Returns the single PENDING payment of the appointment, creating it on
    first call. The amount is fixed from the appointment price at creation.
    """,
    responses={
        404: {"description": "Appointment not found"},
        409: {"description": "Appointment not payable or already paid"},
    },
)
async def initiate_payment(
    body: InitiatePaymentRequest, engine: ReconciliationEngine = Depends(get_engine)
):
    return await engine.initiate_payment(body.appointment_id)


@payment_router.get(
    "",
    response_model=PaymentPage,
    status_code=status.HTTP_200_OK,
    summary="List payments, newest first",
)
async def list_payments(
    page: int = Query(1, ge=1),
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    engine: ReconciliationEngine = Depends(get_engine),
):
    return await engine.list_payments(page=page, status=payment_status)


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def _callback_params(request: Request) -> dict[str, Any]:
    if request.method == "GET":
        return dict(request.query_params)

    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        return await request.json()
    form = await request.form()
    return {key: value for key, value in form.items()}


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


@payment_router.api_route(
    "/callback",
    methods=["GET", "POST"],
    response_class=PlainTextResponse,
    summary="Gateway result notification",
    description="""
    Server-to-server notification from the card gateway, as query string,
    form or JSON. Approvals confirm the payment, CARD_CANCEL notifications
    apply a refund. Answers plain-text ``OK``; a 500 makes the gateway retry.
    """,
    responses={403: {"description": "Caller IP not allowed"}},
)
async def gateway_callback(
    request: Request,
    engine: ReconciliationEngine = Depends(get_engine),
    config: AppConfig = Depends(get_app_config),
):
    ip = _client_ip(request)
    allowed_ips = config.gateway.callback_ips if config.gateway else ("127.0.0.1", "::1")
    if ip not in allowed_ips and not config.environment.is_development:
        logger.warning("Unauthorized callback attempt", client_ip=ip)
        return PlainTextResponse("Unauthorized", status_code=status.HTTP_403_FORBIDDEN)

    data = await _callback_params(request)
    order_no = data.get("ORDERNO") or None
    daou_trx = data.get("DAOUTRX") or None
    auth_no = data.get("AUTHNO") or None
    pay_method = data.get("PAYMETHOD")
    res_msg = data.get("RES_MSG") or ""
    log = logger.bind(order_no=order_no, daou_trx=daou_trx, pay_method=pay_method)
    log.info("Gateway callback received", method=request.method, client_ip=ip)

    try:
        payment_id = await engine.find_payment_id(order_no, daou_trx)

        if pay_method == CARD_CANCEL or CANCEL_MESSAGE_MARKER in res_msg:
            if payment_id is None:
                log.error("Payment not found for cancellation callback")
                return CALLBACK_ACK
            try:
                result = await engine.process_refund_success(
                    payment_id,
                    daou_trx,
                    _to_int(data.get("AMOUNT")),
                    reason="Gateway cancellation",
                )
                log.info("Cancellation callback applied", outcome=result.outcome.value)
            except AppError as e:
                # Retrying cannot change the outcome
                log.warning("Cancellation callback rejected", error_code=e.code, message=e.message)
            return CALLBACK_ACK

        if data.get("RES_CD") == "0000" or (pay_method == "CARD" and auth_no):
            if payment_id is None:
                log.error("Payment not found for approval callback")
                return CALLBACK_ACK
            result = await engine.confirm_payment(
                payment_id,
                ConfirmPaymentRequest(
                    transaction_key=daou_trx,
                    claimed_amount=max(_to_int(data.get("AMOUNT")) or 0, 0),
                    auth_no=auth_no,
                ),
            )
            log.info("Approval callback applied", outcome=result.outcome.value)
            return CALLBACK_ACK

        log.warning("Payment failed at gateway", res_cd=data.get("RES_CD"), res_msg=res_msg)
        return CALLBACK_ACK

    except Exception as e:
        log.exception("Gateway callback processing failed", error=str(e))
        return PlainTextResponse("Internal Error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@payment_router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get payment details",
    responses={404: {"description": "Payment not found"}},
)
async def get_payment(payment_id: str, engine: ReconciliationEngine = Depends(get_engine)):
    return await engine.get_payment(payment_id)


@payment_router.post(
    "/{payment_id}/signature",
    response_model=PaymentSignature,
    status_code=status.HTTP_200_OK,
    summary="Sign payment window parameters with the gateway",
    responses={
        404: {"description": "Payment not found"},
        409: {"description": "Payment is not PENDING"},
        502: {"description": "Gateway unavailable"},
    },
    dependencies=[Depends(enable_perf_headers)],
)
async def request_payment_signature(
    payment_id: str,
    body: PaymentSignatureRequest,
    engine: ReconciliationEngine = Depends(get_engine),
):
    return await engine.request_payment_signature(payment_id, body.method.value)


@payment_router.post(
    "/{payment_id}/confirm",
    response_model=ConfirmationResult,
    status_code=status.HTTP_200_OK,
    summary="Confirm an approved payment",
    description="""
    Idempotent. Repeated calls on a COMPLETED payment only fill in missing
    gateway identifiers.
    """,
    responses={
        404: {"description": "Payment not found"},
        409: {"description": "Payment cancelled or appointment not confirmable"},
    },
    dependencies=[Depends(enable_perf_headers)],
)
async def confirm_payment(
    payment_id: str,
    body: ConfirmPaymentRequest,
    engine: ReconciliationEngine = Depends(get_engine),
):
    return await engine.confirm_payment(payment_id, body)


@payment_router.post(
    "/{payment_id}/cancel",
    response_model=CancellationResult,
    status_code=status.HTTP_200_OK,
    summary="Void a pending payment or refund a completed one",
    responses={
        404: {"description": "Payment not found"},
        409: {"description": "Payment already cancelled"},
        422: {"description": "Invalid refund amount"},
        502: {"description": "Gateway refused the cancellation"},
    },
    dependencies=[Depends(enable_perf_headers)],
)
async def cancel_payment(
    payment_id: str,
    body: CancelPaymentRequest,
    engine: ReconciliationEngine = Depends(get_engine),
):
    return await engine.cancel_payment(payment_id, body)


__all__ = ["payment_router"]
