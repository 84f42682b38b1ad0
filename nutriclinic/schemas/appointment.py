from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.validators import validate_time
from ..models.appointment import AppointmentStatus, AppointmentType, Modality

def _check_time(value: str) -> str:
    if not validate_time(value):
        raise ValueError("Time must use the HH:MM format")
    return value

class SlotAvailability(BaseModel):
    time: str
    available: bool

class AvailabilityResponse(BaseModel):
    nutritionist_id: str
    date: date
    day_of_week: int
    slots: List[SlotAvailability]

class SlotTemplateCreate(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: str

    @field_validator("start_time")
    @classmethod
    def time_format(cls, value: str) -> str:
        return _check_time(value)

class SlotTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    nutritionist_id: str
    day_of_week: int
    start_time: str
    is_active: bool

class AttachmentRef(BaseModel):
    name: str
    path: str

class AppointmentCreate(BaseModel):
    nutritionist_id: str
    date: date
    start_time: str
    type: AppointmentType
    modality: Modality
    notes: Optional[str] = Field(None, max_length=2000)
    attachments: List[AttachmentRef] = []

    @field_validator("start_time")
    @classmethod
    def time_format(cls, value: str) -> str:
        return _check_time(value)

class AppointmentFileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    file_name: str
    file_path: str
    uploaded_by: str

class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    nutritionist_id: str
    date: date
    start_time: str
    end_time: str
    type: AppointmentType
    modality: Modality
    status: AppointmentStatus
    price: float
    notes: Optional[str] = None
    files: List[AppointmentFileResponse] = []
    created_at: Optional[datetime] = None

class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
