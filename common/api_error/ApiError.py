# common/api_error/ApiError.py
from typing import Optional


class AppError(Exception):
    """Base error for all application-specific issues."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(self.message)


class NotFoundError(AppError):
    """Referenced appointment/payment does not exist."""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} {resource_id} not found",
            status_code=404,
            code="NOT_FOUND",
        )


class InvalidStateError(AppError):
    """Operation is meaningless for the record's current status."""

    def __init__(self, message: str, code: str = "INVALID_STATE"):
        super().__init__(message, status_code=409, code=code)


class AlreadyPaidError(InvalidStateError):
    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(
            f"Payment {payment_id} already completed", code="ALREADY_PAID"
        )


class InvalidPriceError(AppError):
    def __init__(self, message: str = "Price must be a positive amount"):
        super().__init__(message, status_code=422, code="INVALID_PRICE")


class InvalidRefundAmountError(AppError):
    def __init__(self, amount: int):
        self.amount = amount
        super().__init__(
            f"Refund amount must be positive, got {amount}",
            status_code=422,
            code="INVALID_REFUND_AMOUNT",
        )


class RefundAmountExceedsLimitError(AppError):
    def __init__(self, requested: int, refundable: int):
        self.requested = requested
        self.refundable = refundable
        super().__init__(
            f"Refund amount {requested} exceeds refundable amount {refundable}",
            status_code=422,
            code="REFUND_AMOUNT_EXCEEDS_LIMIT",
        )


class GatewayError(AppError):
    """
    The payment processor rejected or failed a cancel/refund call.
    Local state is left untouched when this is raised.
    """

    def __init__(self, message: str, gateway_code: Optional[str] = None):
        self.gateway_code = gateway_code
        super().__init__(message, status_code=502, code="GATEWAY_ERROR")


__all__ = [
    "AppError",
    "NotFoundError",
    "InvalidStateError",
    "AlreadyPaidError",
    "InvalidPriceError",
    "InvalidRefundAmountError",
    "RefundAmountExceedsLimitError",
    "GatewayError",
]
