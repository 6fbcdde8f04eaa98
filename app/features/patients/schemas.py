# Patient Management Feature - Schemas

from typing import Optional, List, Literal
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from app.features.patients.models import (
    Appointment,
    BiopsyResult,
    EmergencyContact,
    Gender,
    PatientNote,
    PatientReview,
    PatientStatus,
    ProcedureStatus,
)


# ============== Emergency Contact ==============

class EmergencyContactInput(BaseModel):
    """Emergency contact as entered on the form. All fields or none."""
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


# ============== Create Patient ==============

class CreatePatientRequest(BaseModel):
    """Request schema for registering a patient."""
    name: str = Field(..., min_length=1, max_length=100)
    age: int = Field(..., ge=0, le=150)
    gender: Gender
    phone: str = Field(..., max_length=20)
    email: Optional[EmailStr] = None
    address: str = Field("", max_length=500)
    religion: Optional[str] = None
    tribe: Optional[str] = None
    occupation: Optional[str] = None
    emergency_contact: Optional[EmergencyContactInput] = None

    admission_type: Literal["inpatient", "outpatient"] = "inpatient"
    status: PatientStatus = PatientStatus.ADMITTED
    ward_id: Optional[str] = None
    bed_number: Optional[str] = None
    admission_date: Optional[datetime] = None

    diagnosis: str = ""
    procedure: Optional[str] = None
    procedure_status: Optional[ProcedureStatus] = None

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Amina Bello",
                "age": 42,
                "gender": "female",
                "phone": "+2348000000000",
                "address": "12 Marina Road",
                "status": "admitted",
                "ward_id": "66f1c2a9e4b0a1b2c3d4e5f6",
                "bed_number": "A-04",
                "diagnosis": "Community-acquired pneumonia",
            }
        }


# ============== Update Patient ==============

class UpdatePatientRequest(BaseModel):
    """
    Partial update. Only fields present in the request change; an explicit
    null clears the field.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    age: Optional[int] = Field(None, ge=0, le=150)
    gender: Optional[Gender] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, max_length=500)
    religion: Optional[str] = None
    tribe: Optional[str] = None
    occupation: Optional[str] = None
    emergency_contact: Optional[EmergencyContactInput] = None

    status: Optional[PatientStatus] = None
    ward_id: Optional[str] = None
    bed_number: Optional[str] = None
    admission_date: Optional[datetime] = None

    diagnosis: Optional[str] = None
    procedure: Optional[str] = None
    procedure_status: Optional[ProcedureStatus] = None

    consultant_id: Optional[str] = None
    consultant_name: Optional[str] = None


# ============== Mark Done ==============

class ConsultantRef(BaseModel):
    """Consultant a doctor hands a finished case to."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class MarkDoneRequest(BaseModel):
    """Request schema for marking a patient's case as done."""
    consultant: Optional[ConsultantRef] = None


# ============== Patient Response ==============

class PatientResponse(BaseModel):
    """Response schema for patient data."""
    id: str
    name: str
    age: int
    gender: Gender
    phone: str
    email: Optional[str] = None
    address: str
    religion: Optional[str] = None
    tribe: Optional[str] = None
    occupation: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None
    admission_type: Optional[str] = None
    status: PatientStatus
    ward_id: Optional[str] = None
    bed_number: Optional[str] = None
    admission_date: datetime
    discharge_date: Optional[datetime] = None
    diagnosis: str
    procedure: Optional[str] = None
    procedure_status: Optional[ProcedureStatus] = None
    procedure_date: Optional[datetime] = None
    doctor_id: Optional[str] = None
    doctor_name: Optional[str] = None
    consultant_id: Optional[str] = None
    consultant_name: Optional[str] = None
    notes: List[PatientNote] = []
    appointments: List[Appointment] = []
    biopsy_results: List[BiopsyResult] = []
    reviews: List[PatientReview] = []
    created_at: datetime
    updated_at: datetime


class PatientListResponse(BaseModel):
    """Response schema for list of patients."""
    patients: List[PatientResponse]
    total: int


class CreatePatientResponse(BaseModel):
    """Response schema for newly created patient."""
    id: str
    message: str = "Patient created successfully"


# ============== Message Response ==============

class MessageResponse(BaseModel):
    """Generic message response."""
    message: str
