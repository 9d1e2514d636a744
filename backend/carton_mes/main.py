"""FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import settings
from .problem_details import install_problem_details_handler
from .routers import job_step_machines
from .schemas import CurrentShiftResponse
from .services.machine_state import now_utc
from .services.shift_calendar import default_shift_calendar

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create app
app = FastAPI(
    title="Carton MES Workflow Engine",
    version="1.0.0",
    description="Step completion and multi-machine workflow API for corrugated box production"
)

# Production safety checks
if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")
if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "change-me-in-production":
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")

# CORS
cors_methods = ["GET", "POST", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)

install_problem_details_handler(app)

# Include routers
app.include_router(job_step_machines.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": "1.0.0",
    }


@app.get("/api/v1/system/current-shift", response_model=CurrentShiftResponse)
def get_current_shift():
    """Current shift according to the configured shift calendar."""
    calendar = default_shift_calendar()
    now = now_utc()
    return CurrentShiftResponse(at=now, shift=calendar.shift_for(now), schedule=calendar.describe())


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Carton MES Workflow Engine API",
        "version": "1.0.0",
        "docs": "/docs"
    }
