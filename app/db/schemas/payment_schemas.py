# app/db/schemas/payment_schemas.py
"""
Typed request/response structs for every payment operation.
Validated at the HTTP boundary before the engine runs.
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from datetime import datetime
from enum import Enum
from typing import Optional
from ..models import PaymentStatus, PaymentMethod


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if not isinstance(value, str):
        return value
    value = value.strip()
    return value or None


class InitiatePaymentRequest(BaseModel):
    appointment_id: str = Field(..., min_length=1)


class PaymentInitiation(BaseModel):
    """What the payment window needs to render for the patient."""

    payment_id: str
    amount: int
    customer_name: str
    customer_email: Optional[str] = None
    product_name: str


class ConfirmPaymentRequest(BaseModel):
    transaction_key: Optional[str] = Field(None, max_length=100)
    claimed_amount: int = Field(..., ge=0)
    auth_no: Optional[str] = Field(None, max_length=50)

    @field_validator("transaction_key", "auth_no", mode="before")
    @classmethod
    def normalize_keys(cls, v: Optional[str]) -> Optional[str]:
        # Gateways send empty strings for missing fields
        return _blank_to_none(v)


class ConfirmationOutcome(str, Enum):
    CONFIRMED = "CONFIRMED"
    KEYS_UPDATED = "KEYS_UPDATED"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"


class ConfirmationResult(BaseModel):
    payment_id: str
    appointment_id: str
    outcome: ConfirmationOutcome
    meeting_link: Optional[str] = None


class CancelPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    refund_amount: Optional[int] = Field(
        None, description="Minor units; omit for a full refund"
    )


class CancellationOutcome(str, Enum):
    VOIDED = "VOIDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    FULLY_REFUNDED = "FULLY_REFUNDED"
    ALREADY_REFUNDED = "ALREADY_REFUNDED"
    DUPLICATE_REFUND = "DUPLICATE_REFUND"
    # Second report of a refund already in the ledger
    RECONCILED = "RECONCILED"
    # Amount could not be determined; left for manual reconciliation
    UNRECONCILED = "UNRECONCILED"


class CancellationResult(BaseModel):
    payment_id: str
    outcome: CancellationOutcome
    payment_status: PaymentStatus
    amount: int
    refunded_amount: int
    refundable_amount: int


class PaymentSignatureRequest(BaseModel):
    method: PaymentMethod = PaymentMethod.CARD


class PaymentSignature(BaseModel):
    payment_id: str
    amount: int
    signed_params: dict[str, str]


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_id: str
    appointment_id: str
    amount: int
    refunded_amount: int
    status: PaymentStatus
    method: PaymentMethod
    transaction_key: Optional[str] = None
    auth_no: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    current: int
    total: int
    total_records: int


class PaymentPage(BaseModel):
    data: list[PaymentResponse]
    pagination: Pagination


__all__ = [
    "InitiatePaymentRequest",
    "PaymentInitiation",
    "ConfirmPaymentRequest",
    "ConfirmationOutcome",
    "ConfirmationResult",
    "CancelPaymentRequest",
    "CancellationOutcome",
    "CancellationResult",
    "PaymentSignatureRequest",
    "PaymentSignature",
    "PaymentResponse",
    "Pagination",
    "PaymentPage",
]
