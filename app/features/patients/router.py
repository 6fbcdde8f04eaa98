# Patient Management Feature - Router

from fastapi import APIRouter, Depends, status
from typing import Optional
from app.features.auth.dependencies import get_current_actor, get_optional_actor
from app.features.auth.models import Actor
from app.features.patients.schemas import (
    CreatePatientRequest,
    UpdatePatientRequest,
    MarkDoneRequest,
    PatientResponse,
    PatientListResponse,
    CreatePatientResponse,
    MessageResponse,
)
from app.features.patients.occupancy import OccupancyManager
from app.features.patients.service import PatientService
from app.shared.exceptions import NotFoundError


router = APIRouter(prefix="/patients", tags=["Patients"])


async def _load_patient(patient_id: str) -> PatientResponse:
    patient = await PatientService.get_patient(patient_id)
    if patient is None:
        raise NotFoundError(f"Patient {patient_id} not found")
    return PatientService.patient_to_response(patient)


@router.post("", response_model=CreatePatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    request: CreatePatientRequest,
    actor: Optional[Actor] = Depends(get_optional_actor)
):
    """
    Register a patient.

    An admitted inpatient takes a bed in the given ward; the request fails
    with 409 when the ward is full.
    """
    patient_id = await OccupancyManager.create_patient(request, actor)
    return CreatePatientResponse(id=patient_id)


@router.get("", response_model=PatientListResponse)
async def list_patients():
    """List all patients, newest first."""
    patients = await PatientService.list_patients()
    return PatientListResponse(
        patients=[PatientService.patient_to_response(p) for p in patients],
        total=len(patients)
    )


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(patient_id: str):
    """Get a single patient with notes, appointments, biopsy results and reviews."""
    return await _load_patient(patient_id)


@router.patch("/{patient_id}", response_model=PatientResponse)
async def update_patient(patient_id: str, request: UpdatePatientRequest):
    """
    Partially update a patient.

    Moving an admitted patient to a full ward, or admitting into one, fails
    with 409 and changes nothing.
    """
    await OccupancyManager.update_patient(patient_id, request)
    return await _load_patient(patient_id)


@router.post("/{patient_id}/done", response_model=PatientResponse)
async def mark_patient_done(
    patient_id: str,
    request: MarkDoneRequest,
    actor: Actor = Depends(get_current_actor)
):
    """
    Mark a patient's case as done.

    Doctors must name the consultant taking the case; consultants are
    assigned automatically.
    """
    await OccupancyManager.mark_done(patient_id, actor, request.consultant)
    return await _load_patient(patient_id)


@router.delete("/{patient_id}", response_model=MessageResponse)
async def delete_patient(patient_id: str):
    """Permanently delete a patient, releasing their bed if they hold one."""
    await OccupancyManager.delete_patient(patient_id)
    return MessageResponse(message=f"Patient {patient_id} has been permanently deleted")
