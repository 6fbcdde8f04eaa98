# Patient Records Feature

from app.features.records.service import RecordService

__all__ = ["RecordService"]
