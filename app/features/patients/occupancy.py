# Patient Management Feature - Occupancy Manager

from enum import Enum
from typing import Any, Dict, Optional
from fastapi import HTTPException
from app.database import get_store
from app.features.auth.models import Actor, UserRole
from app.features.patients.models import (
    Patient,
    PatientStatus,
    ProcedureStatus,
    PATIENT_COLLECTION,
)
from app.features.patients.schemas import (
    ConsultantRef,
    CreatePatientRequest,
    EmergencyContactInput,
    UpdatePatientRequest,
)
from app.features.wards.models import Ward, WARD_COLLECTION
from app.core.logging import logger
from app.shared.exceptions import CapacityError, NotFoundError, ValidationError
from app.shared.models import utcnow
from app.store import Transaction


# Fields that an explicit null in an update leaves untouched instead of clearing
REQUIRED_FIELDS = {"name", "age", "gender", "phone", "address", "diagnosis", "status", "admission_date"}


def resolve_emergency_contact(contact: Optional[EmergencyContactInput]) -> Optional[Dict[str, str]]:
    """Return the contact as stored, None when left empty, or reject a partial one."""
    if contact is None:
        return None

    values = {
        "name": (contact.name or "").strip(),
        "phone": (contact.phone or "").strip(),
        "relationship": (contact.relationship or "").strip(),
    }
    if all(values.values()):
        return values
    if not any(values.values()):
        return None
    raise ValidationError("Please fill in all emergency contact fields or leave them all empty.")


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class OccupancyManager:
    """
    Creates, updates and deletes patients while keeping ward occupancy exact.

    For every ward, occupied_beds equals the number of patients with that
    ward_id whose status is admitted. Each operation reads the patient and
    the affected wards, then writes all of them in one optimistic
    transaction: a concurrent change to any of those documents makes the
    commit fail and the whole operation run again against fresh state, so
    the capacity check and the counter change are never split.
    """

    @staticmethod
    async def _get_ward(tx: Transaction, ward_id: str) -> Optional[Ward]:
        document = await tx.get(WARD_COLLECTION, ward_id)
        return Ward.from_document(document) if document else None

    @staticmethod
    async def _require_ward(tx: Transaction, ward_id: str) -> Ward:
        ward = await OccupancyManager._get_ward(tx, ward_id)
        if ward is None:
            raise NotFoundError(f"Ward {ward_id} not found")
        return ward

    @staticmethod
    def _check_capacity(ward: Ward) -> None:
        if ward.occupied_beds + 1 > ward.total_beds:
            raise CapacityError(
                ward_name=ward.name,
                occupied_beds=ward.occupied_beds,
                total_beds=ward.total_beds,
                ward_id=ward.id,
            )

    @staticmethod
    def _release_bed(tx: Transaction, ward: Ward) -> None:
        # Floor at zero tolerates counts that drifted before we got here
        tx.update(WARD_COLLECTION, ward.id, {"occupied_beds": max(0, ward.occupied_beds - 1)})

    @staticmethod
    def _take_bed(tx: Transaction, ward: Ward) -> None:
        tx.update(WARD_COLLECTION, ward.id, {"occupied_beds": ward.occupied_beds + 1})

    # ============== Create ==============

    @staticmethod
    async def create_patient(request: CreatePatientRequest, actor: Optional[Actor] = None) -> str:
        """
        Register a patient and return its id.

        An admitted patient with a ward takes a bed in the same transaction
        that inserts the patient.

        Raises:
            ValidationError: If the emergency contact is partially filled
            NotFoundError: If the ward does not exist
            CapacityError: If the ward has no free bed
        """
        emergency_contact = resolve_emergency_contact(request.emergency_contact)
        now = utcnow()

        inpatient = request.admission_type == "inpatient"
        procedure = request.procedure or None
        procedure_status = (request.procedure_status or ProcedureStatus.PENDING) if procedure else None

        patient = Patient(
            id="",
            name=request.name,
            age=request.age,
            gender=request.gender,
            phone=request.phone,
            email=request.email,
            address=request.address,
            religion=request.religion or None,
            tribe=request.tribe or None,
            occupation=request.occupation or None,
            emergency_contact=emergency_contact,
            admission_type=request.admission_type,
            status=request.status,
            ward_id=(request.ward_id or None) if inpatient else None,
            bed_number=(request.bed_number or None) if inpatient else None,
            admission_date=request.admission_date or now,
            discharge_date=now if request.status == PatientStatus.DISCHARGED else None,
            diagnosis=request.diagnosis,
            procedure=procedure,
            procedure_status=procedure_status,
            procedure_date=now if procedure_status == ProcedureStatus.COMPLETED else None,
            doctor_id=actor.id if actor else None,
            doctor_name=actor.name if actor else None,
            notes=[],
            appointments=[],
            biopsy_results=[],
            reviews=[],
            created_at=now,
            updated_at=now,
        )
        document = patient.to_document()
        store = get_store()

        try:
            if not patient.occupies_bed:
                patient_id = await store.insert(PATIENT_COLLECTION, document)
                logger.info(f"Created patient {patient_id} ({patient.status}, no bed taken)")
                return patient_id

            async def admit(tx: Transaction) -> str:
                ward = await OccupancyManager._require_ward(tx, patient.ward_id)
                OccupancyManager._check_capacity(ward)
                OccupancyManager._take_bed(tx, ward)
                return tx.insert(PATIENT_COLLECTION, document)

            patient_id = await store.run_transaction(
                admit, description=f"admission to ward {patient.ward_id}"
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating patient: {type(e).__name__}: {e}")
            raise

        logger.info(f"Created patient {patient_id} admitted to ward {patient.ward_id}")
        return patient_id

    # ============== Update ==============

    @staticmethod
    def _derive_fields(current: Patient, changes: Dict[str, Any], now) -> Dict[str, Any]:
        """Apply the procedure and discharge bookkeeping rules to a partial update."""
        updates = dict(changes)

        if "procedure" in changes:
            if changes["procedure"] and not current.procedure:
                updates["procedure_status"] = ProcedureStatus.PENDING.value
            elif not changes["procedure"] and current.procedure:
                updates["procedure"] = None
                updates["procedure_status"] = None
                updates["procedure_date"] = None

        if (
            updates.get("procedure_status") == ProcedureStatus.COMPLETED
            and current.procedure_status != ProcedureStatus.COMPLETED
        ):
            updates["procedure_date"] = now

        if "status" in changes:
            if changes["status"] == PatientStatus.DISCHARGED and current.status != PatientStatus.DISCHARGED:
                updates["discharge_date"] = now
            elif changes["status"] != PatientStatus.DISCHARGED and current.status == PatientStatus.DISCHARGED:
                updates["discharge_date"] = None

        updates["updated_at"] = now
        return updates

    @staticmethod
    async def update_patient(patient_id: str, request: UpdatePatientRequest) -> None:
        """
        Apply a partial update to a patient.

        When the patient stops or starts counting against a ward (ward
        change, status change to or from admitted) the old ward releases a
        bed and the new ward takes one. If the new ward is full nothing is
        written at all, including the release.

        Raises:
            ValidationError: If the emergency contact is partially filled
            NotFoundError: If the patient or the new ward does not exist
            CapacityError: If the new ward has no free bed
        """
        changes = {
            field: _plain(value)
            for field, value in request.model_dump(exclude_unset=True).items()
            if not (field in REQUIRED_FIELDS and value is None)
        }
        if "emergency_contact" in changes:
            changes["emergency_contact"] = resolve_emergency_contact(request.emergency_contact)
        if "ward_id" in changes and not changes["ward_id"]:
            changes["ward_id"] = None

        async def apply(tx: Transaction) -> Dict[str, Any]:
            document = await tx.get(PATIENT_COLLECTION, patient_id)
            if document is None:
                raise NotFoundError(f"Patient {patient_id} not found")

            current = Patient.from_document(document)
            updates = OccupancyManager._derive_fields(current, changes, utcnow())

            new_status = updates.get("status", current.status)
            new_ward_id = updates["ward_id"] if "ward_id" in updates else current.ward_id

            counted_in = current.ward_id if current.occupies_bed else None
            counts_in = new_ward_id if new_ward_id and new_status == PatientStatus.ADMITTED else None

            if counted_in != counts_in:
                old_ward = await OccupancyManager._get_ward(tx, counted_in) if counted_in else None
                new_ward = await OccupancyManager._require_ward(tx, counts_in) if counts_in else None

                if new_ward is not None:
                    OccupancyManager._check_capacity(new_ward)
                # A ward deleted out from under the patient has nothing to release
                if old_ward is not None:
                    OccupancyManager._release_bed(tx, old_ward)
                if new_ward is not None:
                    OccupancyManager._take_bed(tx, new_ward)

            tx.update(PATIENT_COLLECTION, patient_id, updates)
            return {"from": counted_in, "to": counts_in}

        try:
            moved = await get_store().run_transaction(apply, description=f"update of patient {patient_id}")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating patient {patient_id}: {type(e).__name__}: {e}")
            raise

        if moved["from"] != moved["to"]:
            logger.info(f"Updated patient {patient_id}; bed moved from ward {moved['from']} to ward {moved['to']}")
        else:
            logger.info(f"Updated patient {patient_id}: {sorted(changes)}")

    # ============== Delete ==============

    @staticmethod
    async def delete_patient(patient_id: str) -> None:
        """
        Delete a patient, releasing their bed if they were admitted to a ward.

        Raises:
            NotFoundError: If the patient does not exist
        """
        async def apply(tx: Transaction) -> Optional[str]:
            document = await tx.get(PATIENT_COLLECTION, patient_id)
            if document is None:
                raise NotFoundError(f"Patient {patient_id} not found")

            patient = Patient.from_document(document)
            ward = await OccupancyManager._get_ward(tx, patient.ward_id) if patient.occupies_bed else None
            if ward is not None:
                OccupancyManager._release_bed(tx, ward)

            tx.delete(PATIENT_COLLECTION, patient_id)
            return ward.id if ward else None

        try:
            released = await get_store().run_transaction(apply, description=f"deletion of patient {patient_id}")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting patient {patient_id}: {type(e).__name__}: {e}")
            raise

        if released:
            logger.info(f"Deleted patient {patient_id} and released a bed in ward {released}")
        else:
            logger.info(f"Deleted patient {patient_id}")

    # ============== Mark Done ==============

    @staticmethod
    async def mark_done(
        patient_id: str,
        actor: Actor,
        consultant: Optional[ConsultantRef] = None,
    ) -> None:
        """
        Close a patient's case.

        A doctor hands the case to a consultant, a consultant takes it
        themselves, and other roles only change the status.

        Raises:
            ValidationError: If a doctor does not name a consultant
        """
        fields: Dict[str, Any] = {"status": PatientStatus.DONE}

        if actor.role == UserRole.DOCTOR:
            if consultant is None:
                raise ValidationError("Please select a consultant")
            fields["consultant_id"] = consultant.id
            fields["consultant_name"] = consultant.name
        elif actor.role == UserRole.CONSULTANT:
            fields["consultant_id"] = actor.id
            fields["consultant_name"] = actor.name

        await OccupancyManager.update_patient(patient_id, UpdatePatientRequest(**fields))
        logger.info(f"Patient {patient_id} marked as done by {actor.role.value} {actor.id}")
