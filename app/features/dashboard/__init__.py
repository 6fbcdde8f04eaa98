# Dashboard Feature

from app.features.dashboard.service import DashboardService

__all__ = ["DashboardService"]
