# app/api/v1/appointment_router.py
from fastapi import APIRouter, Depends, status
from app.db.deps import get_engine
from app.db.schemas import AppointmentCreate, AppointmentPriceUpdate, AppointmentResponse
from app.services.v1 import ReconciliationEngine

appointment_router = APIRouter(
    prefix="/appointments",
    tags=["Appointments"],
)


@appointment_router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
    description="""
    Creates a PENDING appointment. When a price is supplied the appointment
    moves straight to AWAITING_PAYMENT.
    """,
    responses={
        404: {"description": "Requester, doctor or family member not found"},
        409: {"description": "Family member belongs to another user"},
    },
)
async def create_appointment(
    body: AppointmentCreate, engine: ReconciliationEngine = Depends(get_engine)
):
    return await engine.create_appointment(body)


@appointment_router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment details",
    responses={404: {"description": "Appointment not found"}},
)
async def get_appointment(
    appointment_id: str, engine: ReconciliationEngine = Depends(get_engine)
):
    return await engine.get_appointment(appointment_id)


@appointment_router.put(
    "/{appointment_id}/price",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Set the consultation price",
    description="""
    Prices a PENDING appointment (moving it to AWAITING_PAYMENT) or changes
    the price of an AWAITING_PAYMENT appointment with no payment yet.
    """,
    responses={
        404: {"description": "Appointment not found"},
        409: {"description": "Appointment cannot be priced in its current status"},
        422: {"description": "Price is not positive"},
    },
)
async def set_appointment_price(
    appointment_id: str,
    body: AppointmentPriceUpdate,
    engine: ReconciliationEngine = Depends(get_engine),
):
    return await engine.set_appointment_price(appointment_id, body.price)


@appointment_router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark a confirmed consultation as completed",
    responses={
        404: {"description": "Appointment not found"},
        409: {"description": "Appointment is not CONFIRMED"},
    },
)
async def complete_appointment(
    appointment_id: str, engine: ReconciliationEngine = Depends(get_engine)
):
    return await engine.complete_appointment(appointment_id)


__all__ = ["appointment_router"]
