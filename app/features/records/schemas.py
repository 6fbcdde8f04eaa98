# Patient Records Feature - Schemas

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field
from app.features.patients.models import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    NoteType,
    ReviewType,
)


class NoteCreate(BaseModel):
    """Schema for adding a note to a patient."""
    content: str = Field(..., min_length=1, description="Note content")
    type: NoteType = Field(default=NoteType.GENERAL, description="Note category")

    class Config:
        json_schema_extra = {
            "example": {
                "content": "Patient reports improved breathing overnight.",
                "type": "nursing",
            }
        }


class AppointmentCreate(BaseModel):
    """
    Schema for scheduling an appointment.

    doctor_id / doctor_name default to the acting user.
    """
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    scheduled_date: datetime
    duration: int = Field(30, gt=0, le=24 * 60, description="Duration in minutes")
    type: AppointmentType = AppointmentType.CONSULTATION
    doctor_id: Optional[str] = None
    doctor_name: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    """Schema for changing an appointment's status."""
    status: AppointmentStatus


class BiopsyResultCreate(BaseModel):
    """Schema for recording a biopsy result, performed by the acting user."""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    result: str = Field(..., min_length=1)
    performed_date: datetime


class ReviewCreate(BaseModel):
    """Schema for adding an imaging review. Image attachments are not stored."""
    type: ReviewType
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    text_content: Optional[str] = None


class AppointmentWithPatient(Appointment):
    """Appointment flattened out of its patient document."""
    patient_name: str


class AppointmentListResponse(BaseModel):
    """Schema for a list of appointments across patients."""
    appointments: List[AppointmentWithPatient]
    total: int
