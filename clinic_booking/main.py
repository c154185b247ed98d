"""
Clinic Booking API

FastAPI application entry point that ties all components together.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinic_booking.api.routes import admin, bookings, doctors, health
from clinic_booking.config import settings
from clinic_booking.core.admin import AdminOperationError
from clinic_booking.core.booking.errors import (
    BookingError,
    BookingValidationError,
    DuplicateAppointment,
    InvalidReference,
    SlotNoLongerAvailable,
    TransientStoreError,
)
from clinic_booking.infra.table_store import (
    PermissionDenied,
    RecordNotFound,
    StoreError,
    StoreUnavailable,
)
from clinic_booking.services import build_services, close_services


def setup_logging() -> None:
    """Configure logging based on environment."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


logger = logging.getLogger(__name__)

BOOKING_ERROR_STATUS = {
    BookingValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SlotNoLongerAvailable: status.HTTP_409_CONFLICT,
    DuplicateAppointment: status.HTTP_409_CONFLICT,
    InvalidReference: status.HTTP_400_BAD_REQUEST,
    TransientStoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # === STARTUP ===
    setup_logging()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")

    health.set_start_time()

    services = await build_services(settings)
    app.state.services = services

    if services.reconciler is not None:
        services.reconciler.start()

    if not settings.emailjs_configured:
        logger.warning("EmailJS not configured - admin notifications disabled")

    logger.info(f"Application ready at http://{settings.host}:{settings.port}")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down application...")
    await close_services(services)
    logger.info("Shutdown complete")


app = FastAPI(
    title="Clinic Booking API",
    description="""
    Doctor listing, appointment booking and clinic administration.

    ## Booking
    Slots are claimed with a conditional update, so two patients can
    never book the same slot. A 409 response means the slot was taken;
    refresh the slot list and pick another.

    ## Admin
    Admin endpoints require a bearer token from the hosted auth service
    belonging to a user listed in `admin_users`.
    """,
    version="1.0.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "detail": exc.errors(),
        },
    )


@app.exception_handler(BookingError)
async def booking_exception_handler(
    request: Request,
    exc: BookingError,
) -> JSONResponse:
    """Turn booking failures into actionable error bodies."""
    status_code = BOOKING_ERROR_STATUS.get(
        type(exc),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.error_code,
            "detail": exc.message,
        },
    )


@app.exception_handler(RecordNotFound)
async def not_found_exception_handler(
    request: Request,
    exc: RecordNotFound,
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "Not found", "detail": exc.message},
    )


@app.exception_handler(AdminOperationError)
async def admin_operation_exception_handler(
    request: Request,
    exc: AdminOperationError,
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": "Conflict", "detail": str(exc)},
    )


@app.exception_handler(StoreError)
async def store_exception_handler(
    request: Request,
    exc: StoreError,
) -> JSONResponse:
    """Store errors that escaped a route (admin writes, mostly)."""
    if isinstance(exc, PermissionDenied):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, StoreUnavailable):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": "Data store error", "detail": exc.message},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    detail = str(exc) if settings.is_development else "Internal server error"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": detail,
        },
    )


@app.middleware("http")
async def request_timing_middleware(request: Request, call_next):
    """Log request duration in debug mode."""
    start_time = time.time()

    try:
        return await call_next(request)
    finally:
        if settings.debug:
            duration = time.time() - start_time
            logger.debug(
                f"{request.method} {request.url.path} "
                f"completed in {duration:.3f}s"
            )


# Health check routes (no auth required)
app.include_router(health.router)
app.include_router(doctors.router)
app.include_router(bookings.router)
app.include_router(admin.router)


@app.get("/", tags=["Root"])
async def root() -> dict:
    """
    Root endpoint.

    Returns basic API information.
    """
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "environment": settings.app_env,
        "docs": "/docs" if settings.is_development else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clinic_booking.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
