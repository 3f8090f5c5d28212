import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
# This is needed for relationships between models in different files
from . import (
    models,  # noqa: F401
    models_inventory,  # noqa: F401
    models_notification,  # noqa: F401
    models_visit,  # noqa: F401
)
from .database import Base, engine
from .domain.accounts.router import router as accounts_router
from .domain.appointments.router import router as appointments_router
from .domain.backups.router import router as backups_router
from .domain.catalog.router import router as catalog_router
from .domain.clinic_calendar.router import router as clinic_calendar_router
from .domain.dentists.router import router as dentists_router
from .domain.feedback.router import router as feedback_router
from .domain.inventory.router import router as inventory_router
from .domain.notifications.router import inbox_router
from .domain.notifications.router import router as notifications_router
from .domain.patients.router import router as patients_router
from .domain.receipts.router import router as receipts_router
from .domain.refunds.router import router as refunds_router
from .domain.reports.router import router as reports_router
from .domain.visits.router import router as visits_router
from .security_headers import SecurityHeadersMiddleware
from .shared.errors import (
    FieldValidationError,
    errors_from_request_validation,
    field_validation_exception_handler,
    first_message,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)

SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")

    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    try:
        from .rate_limiter import get_redis_client

        get_redis_client()
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed - Rate limiting will count in memory only: {e}")

    yield

    logger.info("Application shutting down...")


app = FastAPI(title="Kreative Dental Clinic API", version="1.0.0", lifespan=lifespan)

app.add_exception_handler(FieldValidationError, field_validation_exception_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header; everything else becomes
    a field-keyed {message, errors} body
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={"detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."},
            )

    errors = errors_from_request_validation(exc)
    logger.warning(f"Validation error for {request.url.path}: {errors}")
    return JSONResponse(status_code=422, content={"message": first_message(errors), "errors": errors})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Routes
app.include_router(accounts_router)
app.include_router(clinic_calendar_router)
app.include_router(dentists_router)
app.include_router(catalog_router)
app.include_router(patients_router)
app.include_router(appointments_router)
app.include_router(visits_router)
app.include_router(receipts_router)
app.include_router(refunds_router)
app.include_router(notifications_router)
app.include_router(inbox_router)
app.include_router(feedback_router)
app.include_router(reports_router)
app.include_router(inventory_router)
app.include_router(backups_router)


@app.get("/")
def root():
    return {"message": "Kreative Dental Clinic API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    try:
        from .rate_limiter import get_redis_client

        redis_client = get_redis_client()
        redis_client.ping()
        return {"status": "healthy", "redis": {"connected": True}}
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
