# Ward Management Feature - Models

from enum import Enum
from pydantic import Field
from app.shared.models import StoredModel, Timestamp, utcnow


WARD_COLLECTION = "wards"
WARD_INDEXES = [
    [("name", 1)],
]


class WardType(str, Enum):
    GENERAL = "general"
    ICU = "icu"
    EMERGENCY = "emergency"
    SURGERY = "surgery"
    MATERNITY = "maternity"
    PEDIATRIC = "pediatric"


class Ward(StoredModel):
    """
    Ward document model.

    occupied_beds is maintained by the occupancy manager and mirrors the
    number of admitted patients assigned to the ward.
    """

    name: str
    department: str
    ward_type: WardType = WardType.GENERAL
    total_beds: int = Field(0, ge=0)
    occupied_beds: int = 0
    created_at: Timestamp = Field(default_factory=utcnow)

    @property
    def available_beds(self) -> int:
        return max(0, self.total_beds - self.occupied_beds)
