# Ward Management Feature - Service

from typing import Any, Callable, List, Optional
from app.database import get_store
from app.features.wards.models import Ward, WARD_COLLECTION
from app.features.wards.schemas import CreateWardRequest, UpdateWardRequest, WardResponse
from app.features.patients.models import PATIENT_COLLECTION, PatientStatus
from app.core.logging import logger
from app.shared.exceptions import ConflictError, NotFoundError, ValidationError
from app.shared.models import utcnow
from app.store import Transaction
from app.store.subscriptions import Subscription


class WardService:
    """
    Service class for ward records.

    Wards are plain records here. Their occupied_beds counter is only ever
    written by the occupancy manager, inside the same transaction as the
    patient change that moves it.
    """

    @staticmethod
    async def create_ward(request: CreateWardRequest) -> str:
        """Create a ward with no occupied beds and return its id."""
        ward_data = request.model_dump(mode="python")
        ward_data["ward_type"] = request.ward_type.value
        ward_data["occupied_beds"] = 0
        ward_data["created_at"] = utcnow()

        try:
            ward_id = await get_store().insert(WARD_COLLECTION, ward_data)
        except Exception as e:
            logger.error(f"Error creating ward {request.name}: {e}")
            raise

        logger.info(f"Created ward {ward_id} ({request.name}, {request.total_beds} beds)")
        return ward_id

    @staticmethod
    async def get_ward(ward_id: str) -> Optional[Ward]:
        """Get a ward by id, or None when it does not exist."""
        document = await get_store().get(WARD_COLLECTION, ward_id)
        return Ward.from_document(document) if document else None

    @staticmethod
    async def list_wards() -> List[Ward]:
        """List all wards ordered by name."""
        try:
            documents = await get_store().list(WARD_COLLECTION, order_by="name")
        except Exception as e:
            logger.error(f"Error getting wards: {e}")
            raise
        return [Ward.from_document(document) for document in documents]

    @staticmethod
    async def update_ward(ward_id: str, request: UpdateWardRequest) -> None:
        """
        Edit a ward's descriptive fields or capacity.

        Capacity changes are checked against the current occupancy inside a
        transaction, so a concurrent admission cannot slip under a shrinking
        ward.
        """
        updates = request.model_dump(exclude_unset=True, mode="json")
        updates = {field: value for field, value in updates.items() if value is not None}
        if not updates:
            if await WardService.get_ward(ward_id) is None:
                raise NotFoundError(f"Ward {ward_id} not found")
            return

        async def apply(tx: Transaction) -> None:
            document = await tx.get(WARD_COLLECTION, ward_id)
            if document is None:
                raise NotFoundError(f"Ward {ward_id} not found")

            ward = Ward.from_document(document)
            total_beds = updates.get("total_beds")
            if total_beds is not None and total_beds < ward.occupied_beds:
                raise ValidationError(
                    f"{ward.name} has {ward.occupied_beds} occupied beds; "
                    f"total beds cannot be reduced to {total_beds}"
                )

            tx.update(WARD_COLLECTION, ward_id, updates)

        await get_store().run_transaction(apply, description=f"update of ward {ward_id}")
        logger.info(f"Updated ward {ward_id}: {sorted(updates)}")

    @staticmethod
    async def delete_ward(ward_id: str) -> None:
        """
        Delete a ward that has no admitted patients.

        Raises:
            NotFoundError: If the ward does not exist
            ConflictError: If admitted patients still reference the ward
        """
        async def apply(tx: Transaction) -> None:
            # Any admission into this ward rewrites the ward document, which
            # invalidates this read and forces the check to run again
            document = await tx.get(WARD_COLLECTION, ward_id)
            if document is None:
                raise NotFoundError(f"Ward {ward_id} not found")

            admitted = await get_store().find(
                PATIENT_COLLECTION,
                ward_id=ward_id,
                status=PatientStatus.ADMITTED.value,
            )
            if admitted:
                raise ConflictError(
                    f"Cannot delete {document.get('name', ward_id)}: "
                    f"{len(admitted)} admitted patient(s) are still assigned to it"
                )

            tx.delete(WARD_COLLECTION, ward_id)

        await get_store().run_transaction(apply, description=f"deletion of ward {ward_id}")
        logger.info(f"Deleted ward {ward_id}")

    @staticmethod
    async def subscribe_wards(callback: Callable[[List[Ward]], Any]) -> Subscription:
        """Push the full ward list (ordered by name) on start and after every change."""
        subscription = Subscription(get_store(), WARD_COLLECTION, WardService.list_wards, callback)
        return await subscription.start()

    @staticmethod
    def ward_to_response(ward: Ward) -> WardResponse:
        """Convert Ward model to response schema."""
        return WardResponse(
            id=ward.id,
            name=ward.name,
            department=ward.department,
            ward_type=ward.ward_type,
            total_beds=ward.total_beds,
            occupied_beds=ward.occupied_beds,
            available_beds=ward.available_beds,
            created_at=ward.created_at,
        )
