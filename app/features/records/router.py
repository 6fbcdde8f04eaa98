# Patient Records Feature - Router

from fastapi import APIRouter, Depends, Query, status
from app.features.auth.dependencies import get_current_actor
from app.features.auth.models import Actor
from app.features.patients.models import Appointment, BiopsyResult, PatientNote, PatientReview
from app.features.patients.schemas import MessageResponse
from app.features.records.schemas import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentStatusUpdate,
    BiopsyResultCreate,
    NoteCreate,
    ReviewCreate,
)
from app.features.records.service import RecordService


router = APIRouter(tags=["Patient Records"])


# ==================== Notes ====================

@router.post("/patients/{patient_id}/notes", response_model=PatientNote, status_code=status.HTTP_201_CREATED)
async def add_note(
    patient_id: str,
    note_data: NoteCreate,
    actor: Actor = Depends(get_current_actor)
):
    """
    Add a note to a patient.

    - **content**: Note content
    - **type**: general, medical, nursing or administrative
    """
    return await RecordService.add_note(patient_id, note_data, actor)


# ==================== Appointments ====================

@router.post(
    "/patients/{patient_id}/appointments",
    response_model=Appointment,
    status_code=status.HTTP_201_CREATED,
)
async def schedule_appointment(
    patient_id: str,
    appointment_data: AppointmentCreate,
    actor: Actor = Depends(get_current_actor)
):
    """Schedule an appointment for a patient."""
    return await RecordService.schedule_appointment(patient_id, appointment_data, actor)


@router.patch("/patients/{patient_id}/appointments/{appointment_id}", response_model=MessageResponse)
async def update_appointment_status(
    patient_id: str,
    appointment_id: str,
    update_data: AppointmentStatusUpdate,
    actor: Actor = Depends(get_current_actor)
):
    """Change an appointment's status (scheduled, completed, cancelled, no-show)."""
    await RecordService.update_appointment_status(
        patient_id, appointment_id, update_data.status, actor
    )
    return MessageResponse(message=f"Appointment marked as {update_data.status.value}")


@router.delete("/patients/{patient_id}/appointments/{appointment_id}", response_model=MessageResponse)
async def delete_appointment(
    patient_id: str,
    appointment_id: str,
    actor: Actor = Depends(get_current_actor)
):
    """Delete an appointment."""
    await RecordService.delete_appointment(patient_id, appointment_id, actor)
    return MessageResponse(message="Appointment deleted successfully")


@router.get("/appointments", response_model=AppointmentListResponse)
async def list_appointments(
    mine: bool = Query(False, description="Only appointments created by the acting user"),
    upcoming: bool = Query(False, description="Only future scheduled appointments"),
    actor: Actor = Depends(get_current_actor)
):
    """List appointments across all patients, soonest first."""
    appointments = await RecordService.list_appointments(
        created_by=actor.id if mine else None,
        upcoming_only=upcoming,
    )
    return AppointmentListResponse(appointments=appointments, total=len(appointments))


# ==================== Biopsy Results ====================

@router.post(
    "/patients/{patient_id}/biopsy-results",
    response_model=BiopsyResult,
    status_code=status.HTTP_201_CREATED,
)
async def add_biopsy_result(
    patient_id: str,
    result_data: BiopsyResultCreate,
    actor: Actor = Depends(get_current_actor)
):
    """Record a biopsy result performed by the acting user."""
    return await RecordService.add_biopsy_result(patient_id, result_data, actor)


# ==================== Reviews ====================

@router.post("/patients/{patient_id}/reviews", response_model=PatientReview, status_code=status.HTTP_201_CREATED)
async def add_review(
    patient_id: str,
    review_data: ReviewCreate,
    actor: Actor = Depends(get_current_actor)
):
    """Add an imaging review. Only text content is stored."""
    return await RecordService.add_review(patient_id, review_data, actor)
