# Dashboard Feature - Service

import asyncio
import math
from typing import List, Optional
from datetime import datetime, timedelta

from app.features.dashboard.schemas import (
    AdmissionTrendResponse,
    DailyMovement,
    DashboardStatsResponse,
    DateRange,
    ExportDataResponse,
    ProcedureAnalyticsResponse,
    ProceduresByStatus,
    WeeklyCompletion,
)
from app.features.patients.models import Patient, PatientStatus, ProcedureStatus
from app.features.patients.service import PatientService
from app.features.wards.models import Ward
from app.features.wards.service import WardService
from app.core.logging import logger
from app.shared.models import normalize_datetime, utcnow


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(moment: datetime) -> datetime:
    """Midnight of the Sunday that starts the week containing moment."""
    days_since_sunday = (moment.weekday() + 1) % 7
    return start_of_day(moment) - timedelta(days=days_since_sunday)


def _procedure_state(patient: Patient) -> str:
    # A procedure with no recorded status is still waiting
    return patient.procedure_status or ProcedureStatus.PENDING.value


def compute_dashboard_stats(
    patients: List[Patient],
    wards: List[Ward],
    now: Optional[datetime] = None
) -> DashboardStatsResponse:
    """Aggregate dashboard statistics from full patient and ward scans."""
    now = now or utcnow()
    today = start_of_day(now)
    week_start = start_of_week(now)

    with_procedures = [p for p in patients if p.procedure]
    total_beds = sum(w.total_beds for w in wards)
    occupied_beds = sum(w.occupied_beds for w in wards)

    return DashboardStatsResponse(
        total_patients=len(patients),
        admitted_patients=sum(1 for p in patients if p.status == PatientStatus.ADMITTED),
        discharged_patients=sum(1 for p in patients if p.status == PatientStatus.DISCHARGED),
        critical_patients=sum(1 for p in patients if p.status == PatientStatus.CRITICAL),
        total_wards=len(wards),
        total_beds=total_beds,
        occupied_beds=occupied_beds,
        occupancy_rate=(occupied_beds / total_beds * 100) if total_beds > 0 else 0.0,
        admissions_today=sum(1 for p in patients if p.admission_date >= today),
        discharges_today=sum(1 for p in patients if p.discharge_date and p.discharge_date >= today),
        procedures_pending=sum(1 for p in with_procedures if _procedure_state(p) == ProcedureStatus.PENDING),
        procedures_reviewed=sum(1 for p in with_procedures if _procedure_state(p) == ProcedureStatus.REVIEWED),
        procedures_completed=sum(1 for p in with_procedures if _procedure_state(p) == ProcedureStatus.COMPLETED),
        procedures_completed_this_week=sum(
            1 for p in with_procedures
            if _procedure_state(p) == ProcedureStatus.COMPLETED
            and p.procedure_date
            and p.procedure_date >= week_start
        ),
    )


def compute_procedure_analytics(
    patients: List[Patient],
    now: Optional[datetime] = None,
    weeks: int = 8
) -> ProcedureAnalyticsResponse:
    """
    Procedure throughput over the last weeks.

    Weekly buckets group patients by admission date and run oldest first,
    ending with the current week.
    """
    now = now or utcnow()
    current_week = start_of_week(now)
    with_procedures = [p for p in patients if p.procedure]

    weekly = []
    for weeks_back in range(weeks - 1, -1, -1):
        week_start = current_week - timedelta(weeks=weeks_back)
        week_end = week_start + timedelta(days=7)
        admitted = [p for p in with_procedures if week_start <= p.admission_date < week_end]
        completed = sum(1 for p in admitted if _procedure_state(p) == ProcedureStatus.COMPLETED)
        weekly.append(WeeklyCompletion(
            week=f"{week_start:%b} {week_start.day}",
            week_start=week_start,
            completed=completed,
            total=len(admitted),
            rate=(completed / len(admitted) * 100) if admitted else 0.0,
        ))

    by_status = ProceduresByStatus(
        pending=sum(1 for p in with_procedures if _procedure_state(p) == ProcedureStatus.PENDING),
        reviewed=sum(1 for p in with_procedures if _procedure_state(p) == ProcedureStatus.REVIEWED),
        completed=sum(1 for p in with_procedures if _procedure_state(p) == ProcedureStatus.COMPLETED),
    )

    finished = [
        p for p in with_procedures
        if _procedure_state(p) == ProcedureStatus.COMPLETED and p.procedure_date
    ]
    wait_days = [
        math.floor((p.procedure_date - p.admission_date).total_seconds() / 86400)
        for p in finished
    ]
    average_wait = math.floor(sum(wait_days) / len(wait_days) + 0.5) if wait_days else 0

    return ProcedureAnalyticsResponse(
        weekly_completion_rate=weekly,
        current_waiting_list=by_status.pending + by_status.reviewed,
        average_wait_time=average_wait,
        procedures_by_status=by_status,
    )


def compute_admission_trend(
    patients: List[Patient],
    days: int = 30,
    now: Optional[datetime] = None
) -> AdmissionTrendResponse:
    """Admissions and discharges per day, oldest day first, ending today."""
    today = start_of_day(now or utcnow())

    movements = []
    for days_back in range(days - 1, -1, -1):
        day_start = today - timedelta(days=days_back)
        day_end = day_start + timedelta(days=1)
        movements.append(DailyMovement(
            date=f"{day_start:%b} {day_start.day}",
            day_start=day_start,
            admissions=sum(1 for p in patients if day_start <= p.admission_date < day_end),
            discharges=sum(
                1 for p in patients
                if p.discharge_date and day_start <= p.discharge_date < day_end
            ),
        ))

    return AdmissionTrendResponse(days=movements)


class DashboardService:
    """Read-only projections over the patient and ward collections."""

    @staticmethod
    async def _scan():
        try:
            return await asyncio.gather(PatientService.list_patients(), WardService.list_wards())
        except Exception as e:
            logger.error(f"Error scanning patients and wards for dashboard: {e}")
            raise

    @staticmethod
    async def get_dashboard_stats() -> DashboardStatsResponse:
        """
        Get hospital-wide dashboard statistics.

        Returns:
            DashboardStatsResponse with aggregated statistics
        """
        patients, wards = await DashboardService._scan()
        return compute_dashboard_stats(patients, wards)

    @staticmethod
    async def get_procedure_analytics() -> ProcedureAnalyticsResponse:
        """Get procedure completion analytics."""
        patients = await PatientService.list_patients()
        return compute_procedure_analytics(patients)

    @staticmethod
    async def get_admission_trend(days: int = 30) -> AdmissionTrendResponse:
        """Get per-day admissions and discharges for the last days."""
        patients = await PatientService.list_patients()
        return compute_admission_trend(patients, days)

    @staticmethod
    async def get_export_data(start: datetime, end: datetime) -> ExportDataResponse:
        """
        Collect the data the export collaborator needs for a date range.

        Patients are those admitted within the range; statistics and
        analytics are computed over the same patients and all wards.
        """
        start, end = normalize_datetime(start), normalize_datetime(end)
        patients, wards = await DashboardService._scan()
        in_range = [p for p in patients if start <= p.admission_date <= end]

        logger.info(f"Prepared export of {len(in_range)} patients between {start:%Y-%m-%d} and {end:%Y-%m-%d}")

        return ExportDataResponse(
            export_date=utcnow(),
            date_range=DateRange(start=start, end=end),
            patients=[PatientService.patient_to_response(p) for p in in_range],
            wards=[WardService.ward_to_response(w) for w in wards],
            stats=compute_dashboard_stats(in_range, wards),
            procedure_analytics=compute_procedure_analytics(in_range),
        )
