# Dashboard Feature - Router

from datetime import datetime
from fastapi import APIRouter, Query
from app.features.dashboard.schemas import (
    AdmissionTrendResponse,
    DashboardStatsResponse,
    ExportDataResponse,
    ProcedureAnalyticsResponse,
)
from app.features.dashboard.service import DashboardService
from app.shared.exceptions import ValidationError


router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats():
    """
    Get hospital-wide dashboard statistics.

    Returns:
    - Patient counts by status
    - Ward and bed totals with occupancy rate
    - Admissions and discharges today
    - Procedure counts by status
    """
    return await DashboardService.get_dashboard_stats()


@router.get("/procedures", response_model=ProcedureAnalyticsResponse)
async def get_procedure_analytics():
    """Get weekly procedure completion, waiting list and average wait time."""
    return await DashboardService.get_procedure_analytics()


@router.get("/admissions", response_model=AdmissionTrendResponse)
async def get_admission_trend(
    days: int = Query(30, ge=1, le=365, description="Number of days to report")
):
    """Get admissions and discharges per day."""
    return await DashboardService.get_admission_trend(days)


@router.get("/export", response_model=ExportDataResponse)
async def get_export_data(
    start: datetime = Query(..., description="Start of the admission date range"),
    end: datetime = Query(..., description="End of the admission date range"),
):
    """Get patients, wards, statistics and analytics for an export."""
    if end < start:
        raise ValidationError("The end of the date range must not precede its start")
    return await DashboardService.get_export_data(start, end)
