# Patient Records Feature - Service

import uuid
from typing import Any, Dict, List, Optional
from app.database import get_store
from app.features.auth.models import Actor
from app.features.patients.models import (
    Appointment,
    AppointmentStatus,
    BiopsyResult,
    Patient,
    PatientNote,
    PatientReview,
    PATIENT_COLLECTION,
)
from app.features.patients.service import PatientService
from app.features.records.schemas import (
    AppointmentCreate,
    AppointmentWithPatient,
    BiopsyResultCreate,
    NoteCreate,
    ReviewCreate,
)
from app.core.logging import logger
from app.shared.exceptions import NotFoundError
from app.shared.models import utcnow
from app.store import Transaction


def new_record_id() -> str:
    """Id for a record embedded in a patient document."""
    return uuid.uuid4().hex


class RecordService:
    """
    Notes, appointments, biopsy results and reviews embedded in patients.

    New records are pushed onto their array with a single atomic append, so
    two records added at the same time both land. Changing or removing an
    appointment rewrites the whole array inside a transaction, which retries
    if anything else touched the patient meanwhile.
    """

    @staticmethod
    async def _append(patient_id: str, field: str, record) -> None:
        added = await get_store().append(
            PATIENT_COLLECTION,
            patient_id,
            field,
            record.model_dump(mode="python"),
            {"updated_at": utcnow()},
        )
        if not added:
            raise NotFoundError(f"Patient {patient_id} not found")

    @staticmethod
    async def add_note(patient_id: str, note_data: NoteCreate, actor: Actor) -> PatientNote:
        """
        Append a note to a patient.

        Args:
            patient_id: Patient ID
            note_data: Note content and type
            actor: Author of the note

        Returns:
            The stored note
        """
        note = PatientNote(
            id=new_record_id(),
            content=note_data.content,
            type=note_data.type,
            created_by=actor.id,
            created_by_name=actor.name,
            created_at=utcnow(),
        )
        await RecordService._append(patient_id, "notes", note)

        logger.info(f"Added {note.type} note {note.id} to patient {patient_id} by {actor.name}")
        return note

    @staticmethod
    async def schedule_appointment(
        patient_id: str,
        appointment_data: AppointmentCreate,
        actor: Actor
    ) -> Appointment:
        """Append an appointment to a patient, with the actor as doctor unless one is named."""
        appointment = Appointment(
            id=new_record_id(),
            patient_id=patient_id,
            doctor_id=appointment_data.doctor_id or actor.id,
            doctor_name=appointment_data.doctor_name or actor.name,
            title=appointment_data.title,
            description=appointment_data.description,
            scheduled_date=appointment_data.scheduled_date,
            duration=appointment_data.duration,
            status=AppointmentStatus.SCHEDULED,
            type=appointment_data.type,
            created_by=actor.id,
            created_at=utcnow(),
        )
        await RecordService._append(patient_id, "appointments", appointment)

        logger.info(
            f"Scheduled appointment {appointment.id} for patient {patient_id} "
            f"on {appointment.scheduled_date.isoformat()} by {actor.name}"
        )
        return appointment

    @staticmethod
    async def add_biopsy_result(
        patient_id: str,
        result_data: BiopsyResultCreate,
        actor: Actor
    ) -> BiopsyResult:
        """Append a biopsy result performed by the actor."""
        result = BiopsyResult(
            id=new_record_id(),
            title=result_data.title,
            description=result_data.description,
            result=result_data.result,
            performed_by=actor.id,
            performed_by_name=actor.name,
            performed_date=result_data.performed_date,
            created_at=utcnow(),
        )
        await RecordService._append(patient_id, "biopsy_results", result)

        logger.info(f"Added biopsy result {result.id} to patient {patient_id} by {actor.name}")
        return result

    @staticmethod
    async def add_review(patient_id: str, review_data: ReviewCreate, actor: Actor) -> PatientReview:
        """Append a text-only imaging review."""
        review = PatientReview(
            id=new_record_id(),
            type=review_data.type,
            title=review_data.title.strip(),
            description=(review_data.description or "").strip() or None,
            text_content=(review_data.text_content or "").strip() or None,
            created_by=actor.id,
            created_by_name=actor.name,
            created_at=utcnow(),
        )
        await RecordService._append(patient_id, "reviews", review)

        logger.info(f"Added {review.type} review {review.id} to patient {patient_id} by {actor.name}")
        return review

    @staticmethod
    async def _rewrite_appointments(patient_id: str, appointment_id: str, transform, description: str) -> None:
        async def apply(tx: Transaction) -> None:
            document = await tx.get(PATIENT_COLLECTION, patient_id)
            if document is None:
                raise NotFoundError(f"Patient {patient_id} not found")

            appointments: List[Dict[str, Any]] = document.get("appointments") or []
            if not any(item.get("id") == appointment_id for item in appointments):
                raise NotFoundError(f"Appointment {appointment_id} not found")

            tx.update(PATIENT_COLLECTION, patient_id, {
                "appointments": transform(appointments),
                "updated_at": utcnow(),
            })

        await get_store().run_transaction(apply, description=description)

    @staticmethod
    async def update_appointment_status(
        patient_id: str,
        appointment_id: str,
        status: AppointmentStatus,
        actor: Actor,
    ) -> None:
        """Change one appointment's status."""
        status_value = AppointmentStatus(status).value

        def transform(appointments):
            return [
                {**item, "status": status_value} if item.get("id") == appointment_id else item
                for item in appointments
            ]

        await RecordService._rewrite_appointments(
            patient_id,
            appointment_id,
            transform,
            description=f"status change of appointment {appointment_id}",
        )
        logger.info(
            f"Appointment {appointment_id} of patient {patient_id} is now {status_value} by {actor.name}"
        )

    @staticmethod
    async def delete_appointment(patient_id: str, appointment_id: str, actor: Actor) -> None:
        """Remove one appointment from a patient."""
        await RecordService._rewrite_appointments(
            patient_id,
            appointment_id,
            lambda appointments: [item for item in appointments if item.get("id") != appointment_id],
            description=f"deletion of appointment {appointment_id}",
        )
        logger.info(f"Deleted appointment {appointment_id} of patient {patient_id} by {actor.name}")

    @staticmethod
    async def list_appointments(
        created_by: Optional[str] = None,
        upcoming_only: bool = False,
    ) -> List[AppointmentWithPatient]:
        """
        Flatten appointments across all patients, soonest first.

        Args:
            created_by: Only appointments created by this user
            upcoming_only: Only scheduled appointments in the future
        """
        now = utcnow()
        patients: List[Patient] = await PatientService.list_patients()

        appointments = []
        for patient in patients:
            for appointment in patient.appointments:
                if created_by and appointment.created_by != created_by:
                    continue
                if upcoming_only and (
                    appointment.status != AppointmentStatus.SCHEDULED
                    or appointment.scheduled_date < now
                ):
                    continue
                appointments.append(AppointmentWithPatient(
                    **appointment.model_dump(),
                    patient_name=patient.name,
                ))

        appointments.sort(key=lambda a: a.scheduled_date)
        return appointments
