# Ward Management Feature - Router

from fastapi import APIRouter, status
from app.features.wards.schemas import (
    CreateWardRequest,
    UpdateWardRequest,
    WardResponse,
    WardListResponse,
    CreateWardResponse,
)
from app.features.wards.service import WardService
from app.features.patients.schemas import MessageResponse
from app.shared.exceptions import NotFoundError


router = APIRouter(prefix="/wards", tags=["Wards"])


@router.post("", response_model=CreateWardResponse, status_code=status.HTTP_201_CREATED)
async def create_ward(request: CreateWardRequest):
    """Create a ward. Occupancy starts at zero."""
    ward_id = await WardService.create_ward(request)
    return CreateWardResponse(id=ward_id)


@router.get("", response_model=WardListResponse)
async def list_wards():
    """List all wards ordered by name."""
    wards = await WardService.list_wards()
    return WardListResponse(
        wards=[WardService.ward_to_response(w) for w in wards],
        total=len(wards)
    )


@router.get("/{ward_id}", response_model=WardResponse)
async def get_ward(ward_id: str):
    """Get a single ward."""
    ward = await WardService.get_ward(ward_id)
    if ward is None:
        raise NotFoundError(f"Ward {ward_id} not found")
    return WardService.ward_to_response(ward)


@router.patch("/{ward_id}", response_model=WardResponse)
async def update_ward(ward_id: str, request: UpdateWardRequest):
    """
    Edit a ward's name, department, type or capacity.

    Capacity cannot drop below the beds currently occupied.
    """
    await WardService.update_ward(ward_id, request)
    return await get_ward(ward_id)


@router.delete("/{ward_id}", response_model=MessageResponse)
async def delete_ward(ward_id: str):
    """Delete a ward. Fails with 409 while admitted patients are assigned to it."""
    await WardService.delete_ward(ward_id)
    return MessageResponse(message=f"Ward {ward_id} deleted")
