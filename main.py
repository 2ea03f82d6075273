from fastapi import FastAPI, Request, status, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from contextlib import asynccontextmanager
import logging
import traceback
import uvicorn

from config import settings
from odontia.api.endpoints import invoices, payments, treatment_plans, appointments, admin
from odontia.core.exceptions import OdontiaError
from odontia.core.logging import setup_logging
from odontia.core.middleware import RequestLoggingMiddleware

logger = logging.getLogger(__name__)


def get_cors_origins():
    """CORS origins from the comma separated BACKEND_CORS_ORIGINS setting"""
    return [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    setup_logging(settings.LOG_LEVEL)
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting up ({settings.ENVIRONMENT})")
    if not settings.ENFORCE_APPOINTMENT_OVERLAP:
        logger.info("Appointment overlap enforcement is disabled, double bookings are only logged")
    yield
    logger.info(f"{settings.APP_NAME} shutting down")


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Dental clinic billing, treatment planning and scheduling API",
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Configure CORS FIRST so headers are present even on errors
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1):\d+" if settings.ENVIRONMENT == "development" else None,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Authorization", "X-Request-Id"],
)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(OdontiaError)
async def odontia_exception_handler(request: Request, exc: OdontiaError):
    """Business-rule failures raised by the services"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": type(exc).__name__},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    headers = exc.headers if getattr(exc, "headers", None) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Pydantic error contexts may carry exception objects
    errors = jsonable_encoder(exc.errors(), custom_encoder={Exception: str})
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)

    # In development, include traceback
    if settings.ENVIRONMENT == "development":
        traceback_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": str(exc),
                "type": type(exc).__name__,
                "traceback": "".join(traceback_lines).split("\n"),
            },
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# API Version 1 - all endpoints under /api/v1
# Routers declare static paths (/invoices/stats, /appointments/calendar) before /{id}
app.include_router(invoices.router, prefix=settings.API_V1_PREFIX)
app.include_router(payments.router, prefix=settings.API_V1_PREFIX)
app.include_router(treatment_plans.router, prefix=settings.API_V1_PREFIX)
app.include_router(appointments.router, prefix=settings.API_V1_PREFIX)
app.include_router(admin.router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/api/health")
async def health_check():
    """Detailed health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
