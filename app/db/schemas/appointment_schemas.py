# app/db/schemas/appointment_schemas.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal
from typing import Optional
from ..models import AppointmentStatus
from .doctor_schema import DoctorSummary


class AppointmentCreate(BaseModel):
    requester_id: str = Field(..., min_length=1, description="Booking user")
    doctor_id: str = Field(..., min_length=1)
    appointment_date: datetime = Field(..., description="Scheduled start (UTC)")
    family_member_id: Optional[str] = Field(
        None, description="Family member who attends instead of the requester"
    )
    price: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)


class AppointmentPriceUpdate(BaseModel):
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    appointment_id: str
    requester_id: str
    family_member_id: Optional[str] = None
    doctor_id: str
    appointment_date: datetime
    status: AppointmentStatus
    price: Optional[Decimal] = None
    meeting_link: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    doctor: Optional[DoctorSummary] = None


__all__ = ["AppointmentCreate", "AppointmentPriceUpdate", "AppointmentResponse"]
