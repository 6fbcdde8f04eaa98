# Ward Management Feature

from app.features.wards.models import Ward, WardType

__all__ = ["Ward", "WardType"]
