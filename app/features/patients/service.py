# Patient Management Feature - Service

from typing import Any, Callable, List, Optional
from app.database import get_store
from app.features.patients.models import Patient, PATIENT_COLLECTION
from app.features.patients.schemas import PatientResponse
from app.core.logging import logger
from app.store.subscriptions import Subscription


class PatientService:
    """
    Read side of the patient store.

    Every mutation of a patient record goes through OccupancyManager or the
    sub-record appenders; nothing here writes.
    """

    @staticmethod
    async def get_patient(patient_id: str) -> Optional[Patient]:
        """Get a patient by id, or None when it does not exist."""
        try:
            document = await get_store().get(PATIENT_COLLECTION, patient_id)
        except Exception as e:
            logger.error(f"Error getting patient {patient_id}: {e}")
            raise
        return Patient.from_document(document) if document else None

    @staticmethod
    async def list_patients() -> List[Patient]:
        """List all patients, newest first."""
        try:
            documents = await get_store().list(PATIENT_COLLECTION, order_by="created_at", descending=True)
        except Exception as e:
            logger.error(f"Error getting patients: {e}")
            raise
        return [Patient.from_document(document) for document in documents]

    @staticmethod
    async def subscribe_patients(callback: Callable[[List[Patient]], Any]) -> Subscription:
        """
        Push the full patient list, newest first, on start and after every change.

        Call close() on the returned subscription to stop it.
        """
        subscription = Subscription(get_store(), PATIENT_COLLECTION, PatientService.list_patients, callback)
        return await subscription.start()

    @staticmethod
    def patient_to_response(patient: Patient) -> PatientResponse:
        """Convert Patient model to response schema."""
        return PatientResponse.model_validate(patient.model_dump())
