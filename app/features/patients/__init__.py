# Patient Management Feature

from app.features.patients.models import Patient, PatientStatus, ProcedureStatus

__all__ = ["Patient", "PatientStatus", "ProcedureStatus"]
