# Patient Management Feature - Models

from enum import Enum
from typing import Optional, List
from pydantic import Field, field_validator
from app.shared.models import (
    EmbeddedModel,
    OptionalTimestamp,
    StoredModel,
    Timestamp,
    TimestampMixin,
    utcnow,
)


PATIENT_COLLECTION = "patients"
PATIENT_INDEXES = [
    [("created_at", -1)],
    [("ward_id", 1), ("status", 1)],
]


class PatientStatus(str, Enum):
    """Only ADMITTED counts against a ward's occupied beds."""
    ADMITTED = "admitted"
    DISCHARGED = "discharged"
    IN_TREATMENT = "in-treatment"
    CRITICAL = "critical"
    STABLE = "stable"
    REVIEW = "review"
    PROCEDURE = "procedure"
    DONE = "done"


class ProcedureStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    COMPLETED = "completed"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class NoteType(str, Enum):
    GENERAL = "general"
    MEDICAL = "medical"
    NURSING = "nursing"
    ADMINISTRATIVE = "administrative"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class AppointmentType(str, Enum):
    CONSULTATION = "consultation"
    PROCEDURE = "procedure"
    FOLLOW_UP = "follow-up"
    SURGERY = "surgery"
    THERAPY = "therapy"


class ReviewType(str, Enum):
    CT_IMAGES = "ct_images"
    MRI_IMAGES = "mri_images"
    ULTRASOUND_IMAGES = "ultrasound_images"
    XRAY_IMAGES = "xray_images"
    OTHER = "other"


class EmergencyContact(EmbeddedModel):
    name: str
    phone: str
    relationship: str


class PatientNote(EmbeddedModel):
    """Clinical note embedded in a patient document."""
    id: str
    content: str
    type: NoteType = NoteType.GENERAL
    created_by: str
    created_by_name: str
    created_at: Timestamp = Field(default_factory=utcnow)


class Appointment(EmbeddedModel):
    """Appointment embedded in a patient document."""
    id: str
    patient_id: str
    doctor_id: str
    doctor_name: str
    title: str
    description: Optional[str] = None
    scheduled_date: Timestamp
    duration: int = 30  # minutes
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    type: AppointmentType = AppointmentType.CONSULTATION
    created_by: str
    created_at: Timestamp = Field(default_factory=utcnow)


class BiopsyResult(EmbeddedModel):
    """Biopsy result embedded in a patient document."""
    id: str
    title: str
    description: Optional[str] = None
    result: str
    performed_by: str
    performed_by_name: str
    performed_date: Timestamp
    created_at: Timestamp = Field(default_factory=utcnow)


class PatientReview(EmbeddedModel):
    """Imaging review embedded in a patient document. Text only."""
    id: str
    type: ReviewType = ReviewType.OTHER
    title: str
    description: Optional[str] = None
    text_content: Optional[str] = None
    created_by: str
    created_by_name: str
    created_at: Timestamp = Field(default_factory=utcnow)


class Patient(StoredModel, TimestampMixin):
    """Patient document model."""

    # Personal information
    name: str
    age: int = Field(0, ge=0)
    gender: Gender = Gender.OTHER
    phone: str = ""
    email: Optional[str] = None
    address: str = ""
    religion: Optional[str] = None
    tribe: Optional[str] = None
    occupation: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None

    # Admission
    admission_type: Optional[str] = None  # inpatient, outpatient
    status: PatientStatus = PatientStatus.STABLE
    ward_id: Optional[str] = None
    bed_number: Optional[str] = None
    admission_date: Timestamp = Field(default_factory=utcnow)
    discharge_date: OptionalTimestamp = None

    # Clinical
    diagnosis: str = ""
    procedure: Optional[str] = None
    procedure_status: Optional[ProcedureStatus] = None
    procedure_date: OptionalTimestamp = None

    # Care team
    doctor_id: Optional[str] = None
    doctor_name: Optional[str] = None
    consultant_id: Optional[str] = None
    consultant_name: Optional[str] = None

    # Append-only embedded collections, in insertion order
    notes: List[PatientNote] = Field(default_factory=list)
    appointments: List[Appointment] = Field(default_factory=list)
    biopsy_results: List[BiopsyResult] = Field(default_factory=list)
    reviews: List[PatientReview] = Field(default_factory=list)

    @field_validator("notes", "appointments", "biopsy_results", "reviews", mode="before")
    @classmethod
    def _missing_as_empty(cls, value):
        return value or []

    @property
    def occupies_bed(self) -> bool:
        """Whether this patient counts against their ward's occupied beds."""
        return bool(self.ward_id) and self.status == PatientStatus.ADMITTED
