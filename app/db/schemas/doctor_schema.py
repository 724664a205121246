# app/db/schemas/doctor_schema.py
from pydantic import BaseModel, ConfigDict
from typing import Optional


class DoctorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    doctor_id: str
    name: str
    specialty: Optional[str] = None


__all__ = ["DoctorSummary"]
