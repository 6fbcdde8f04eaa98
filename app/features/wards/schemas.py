# Ward Management Feature - Schemas

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field
from app.features.wards.models import WardType


# ============== Create Ward ==============

class CreateWardRequest(BaseModel):
    """Request schema for creating a ward. Occupancy always starts at zero."""
    name: str = Field(..., min_length=1, max_length=100)
    department: str = Field(..., min_length=1, max_length=100)
    ward_type: WardType = WardType.GENERAL
    total_beds: int = Field(..., ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Ward A",
                "department": "Internal Medicine",
                "ward_type": "general",
                "total_beds": 20,
            }
        }


# ============== Update Ward ==============

class UpdateWardRequest(BaseModel):
    """Request schema for editing a ward. Occupancy is not editable."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    department: Optional[str] = Field(None, min_length=1, max_length=100)
    ward_type: Optional[WardType] = None
    total_beds: Optional[int] = Field(None, ge=0)


# ============== Ward Response ==============

class WardResponse(BaseModel):
    """Response schema for ward data."""
    id: str
    name: str
    department: str
    ward_type: WardType
    total_beds: int
    occupied_beds: int
    available_beds: int
    created_at: datetime


class WardListResponse(BaseModel):
    """Response schema for list of wards."""
    wards: List[WardResponse]
    total: int


class CreateWardResponse(BaseModel):
    """Response schema for newly created ward."""
    id: str
    message: str = "Ward created successfully"
