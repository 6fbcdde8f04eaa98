"""Health check endpoints."""

from fastapi import APIRouter
from app.config import settings
from app.database import Database

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "store": settings.STORE_BACKEND,
    }


@router.get("/ready")
async def readiness_check():
    """Readiness check for Kubernetes/Docker."""
    return {"status": "ready" if Database.store is not None else "starting"}
