# Dashboard Feature - Schemas

from typing import List
from datetime import datetime
from pydantic import BaseModel
from app.features.patients.schemas import PatientResponse
from app.features.wards.schemas import WardResponse


# ============== Dashboard Statistics ==============

class DashboardStatsResponse(BaseModel):
    """Response schema for dashboard statistics."""
    total_patients: int = 0
    admitted_patients: int = 0
    discharged_patients: int = 0
    critical_patients: int = 0
    total_wards: int = 0
    total_beds: int = 0
    occupied_beds: int = 0
    occupancy_rate: float = 0.0
    admissions_today: int = 0
    discharges_today: int = 0
    procedures_pending: int = 0
    procedures_reviewed: int = 0
    procedures_completed: int = 0
    procedures_completed_this_week: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "total_patients": 128,
                "admitted_patients": 41,
                "discharged_patients": 80,
                "critical_patients": 3,
                "total_wards": 6,
                "total_beds": 60,
                "occupied_beds": 41,
                "occupancy_rate": 68.33,
                "admissions_today": 4,
                "discharges_today": 2,
                "procedures_pending": 9,
                "procedures_reviewed": 5,
                "procedures_completed": 30,
                "procedures_completed_this_week": 6,
            }
        }


# ============== Procedure Analytics ==============

class WeeklyCompletion(BaseModel):
    """Procedure completion for patients admitted in one week."""
    week: str
    week_start: datetime
    completed: int
    total: int
    rate: float


class ProceduresByStatus(BaseModel):
    pending: int = 0
    reviewed: int = 0
    completed: int = 0


class ProcedureAnalyticsResponse(BaseModel):
    """Response schema for procedure analytics."""
    weekly_completion_rate: List[WeeklyCompletion]
    current_waiting_list: int
    average_wait_time: int  # days from admission to completion
    procedures_by_status: ProceduresByStatus


# ============== Admissions Trend ==============

class DailyMovement(BaseModel):
    """Admissions and discharges on one day."""
    date: str
    day_start: datetime
    admissions: int
    discharges: int


class AdmissionTrendResponse(BaseModel):
    days: List[DailyMovement]


# ============== Export ==============

class DateRange(BaseModel):
    start: datetime
    end: datetime


class ExportDataResponse(BaseModel):
    """Everything the export collaborator serializes for a date range."""
    export_date: datetime
    date_range: DateRange
    patients: List[PatientResponse]
    wards: List[WardResponse]
    stats: DashboardStatsResponse
    procedure_analytics: ProcedureAnalyticsResponse
