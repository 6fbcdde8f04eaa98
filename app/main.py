from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from app.config import settings
from app.database import Database
from app.routers.health import router as health_router
from app.features.wards.router import router as wards_router
from app.features.patients.router import router as patients_router
from app.features.records.router import router as records_router
from app.features.dashboard.router import router as dashboard_router
from app.features.realtime.socket import socket_app, start_broadcasts, stop_broadcasts
from app.core.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI application."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    await Database.connect_db()

    # Feed Socket.IO rooms from live store subscriptions
    await start_broadcasts()

    logger.info("Application started successfully")

    yield

    # Shutdown
    logger.info("Shutting down...")
    stop_broadcasts()
    await Database.close_db()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Hospital ward occupancy and patient records API",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router)
app.include_router(wards_router, prefix=settings.API_V1_PREFIX)
app.include_router(patients_router, prefix=settings.API_V1_PREFIX)
app.include_router(records_router, prefix=settings.API_V1_PREFIX)
app.include_router(dashboard_router, prefix=settings.API_V1_PREFIX)

# Mount Socket.IO application
app.mount("/socket.io", socket_app)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "socket.io": "/socket.io",
    }
