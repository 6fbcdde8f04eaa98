"""Dashboard statistics, analytics and export projections."""

from datetime import datetime, timedelta

from app.features.dashboard.service import (
    DashboardService,
    compute_admission_trend,
    compute_dashboard_stats,
    compute_procedure_analytics,
    start_of_week,
)
from app.features.patients.models import Patient
from app.features.wards.models import Ward


NOW = datetime(2024, 5, 15, 10, 30)  # a Wednesday


def patient(**fields) -> Patient:
    fields.setdefault("id", f"p-{len(fields)}")
    fields.setdefault("name", "Patient")
    fields.setdefault("admission_date", NOW - timedelta(days=3))
    return Patient(**fields)


def test_empty_collections_give_zeroes():
    stats = compute_dashboard_stats([], [], now=NOW)
    assert stats.total_patients == 0
    assert stats.occupancy_rate == 0.0

    analytics = compute_procedure_analytics([], now=NOW)
    assert len(analytics.weekly_completion_rate) == 8
    assert all(week.rate == 0.0 for week in analytics.weekly_completion_rate)
    assert analytics.average_wait_time == 0
    assert analytics.current_waiting_list == 0

    trend = compute_admission_trend([], days=7, now=NOW)
    assert len(trend.days) == 7
    assert trend.days[-1].day_start == datetime(2024, 5, 15)


def test_week_starts_on_sunday():
    assert start_of_week(NOW) == datetime(2024, 5, 12)
    assert start_of_week(datetime(2024, 5, 12, 23, 59)) == datetime(2024, 5, 12)


def test_dashboard_stats_counts():
    wards = [
        Ward(id="w1", name="A", department="Med", total_beds=10, occupied_beds=4),
        Ward(id="w2", name="B", department="Surg", total_beds=10, occupied_beds=1),
    ]
    patients = [
        patient(id="1", status="admitted", admission_date=NOW - timedelta(hours=1)),
        patient(id="2", status="discharged", discharge_date=NOW - timedelta(hours=2)),
        patient(id="3", status="critical"),
        patient(id="4", status="stable", procedure="Biopsy"),
        patient(id="5", status="stable", procedure="Scan", procedure_status="reviewed"),
        patient(id="6", status="stable", procedure="Surgery", procedure_status="completed",
                procedure_date=NOW - timedelta(days=1)),
        patient(id="7", status="stable", procedure="Old", procedure_status="completed",
                procedure_date=NOW - timedelta(days=10)),
    ]

    stats = compute_dashboard_stats(patients, wards, now=NOW)

    assert stats.total_patients == 7
    assert stats.admitted_patients == 1
    assert stats.discharged_patients == 1
    assert stats.critical_patients == 1
    assert stats.total_beds == 20
    assert stats.occupied_beds == 5
    assert stats.occupancy_rate == 25.0
    assert stats.admissions_today == 1
    assert stats.discharges_today == 1
    assert stats.procedures_pending == 1
    assert stats.procedures_reviewed == 1
    assert stats.procedures_completed == 2
    assert stats.procedures_completed_this_week == 1


def test_procedure_analytics_rates_and_wait_time():
    this_week = datetime(2024, 5, 13, 9)
    patients = [
        patient(id="1", procedure="A", procedure_status="completed",
                admission_date=this_week, procedure_date=this_week + timedelta(days=2)),
        patient(id="2", procedure="B", procedure_status="completed",
                admission_date=this_week, procedure_date=this_week + timedelta(days=3, hours=12)),
        patient(id="3", procedure="C", admission_date=this_week),
        patient(id="4", procedure="D", procedure_status="reviewed", admission_date=this_week),
        patient(id="5", admission_date=this_week),
    ]

    analytics = compute_procedure_analytics(patients, now=NOW)

    current = analytics.weekly_completion_rate[-1]
    assert current.week == "May 12"
    assert current.total == 4
    assert current.completed == 2
    assert current.rate == 50.0
    assert analytics.current_waiting_list == 2
    # floor(2 days) and floor(3.5 days) average 2.5, rounded half up
    assert analytics.average_wait_time == 3
    assert analytics.procedures_by_status.completed == 2


def test_admission_trend_buckets_by_day():
    patients = [
        patient(id="1", admission_date=NOW - timedelta(hours=2)),
        patient(id="2", admission_date=NOW - timedelta(days=1)),
        patient(id="3", admission_date=NOW - timedelta(days=20), discharge_date=NOW - timedelta(hours=1)),
    ]

    trend = compute_admission_trend(patients, days=3, now=NOW)

    assert [(d.date, d.admissions, d.discharges) for d in trend.days] == [
        ("May 13", 0, 0),
        ("May 14", 1, 0),
        ("May 15", 1, 1),
    ]


async def test_export_filters_patients_by_admission_date(store):
    await store.seed("wards", {"name": "A", "department": "Med", "total_beds": 4, "occupied_beds": 1})
    await store.seed("patients", {"name": "Inside", "status": "admitted", "admission_date": "2024-05-02T08:00:00Z"})
    await store.seed("patients", {"name": "Epoch", "status": "stable", "admission_date": {"seconds": 1714896000}})
    await store.seed("patients", {"name": "Outside", "status": "stable", "admission_date": "2024-06-01T00:00:00"})

    export = await DashboardService.get_export_data(datetime(2024, 5, 1), datetime(2024, 5, 31))

    assert sorted(p.name for p in export.patients) == ["Epoch", "Inside"]
    assert len(export.wards) == 1
    assert export.stats.total_patients == 2
    assert export.stats.occupied_beds == 1


async def test_stats_over_store(store):
    stats = await DashboardService.get_dashboard_stats()
    assert stats.total_wards == 0
