"""FastAPI application entry point."""
import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from pulse.cache import RedisCache
from pulse.config import settings
from pulse.database import AsyncSessionLocal
from pulse.exceptions import InstanceNotFoundError, MessagingAPIError
from pulse.integrations.uazapi_client import UazapiClient
from pulse.middleware.logging import LoggingMiddleware, get_request_id, setup_logging
from pulse.middleware.metrics import MetricsMiddleware
from pulse.schemas.error import ErrorCode, ErrorDetail, ErrorResponse
from pulse.services.whatsapp_connection import InstanceTokenCache, WhatsAppConnectionService

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    logger.info("application_starting", env=settings.app_env)
    cache = RedisCache()
    app.state.cache = cache
    app.state.whatsapp_service = WhatsAppConnectionService(
        client=UazapiClient(),
        token_cache=InstanceTokenCache(cache),
        session_factory=AsyncSessionLocal,
    )
    yield
    # Shutdown
    logger.info("application_shutting_down")
    await app.state.whatsapp_service.shutdown()
    await cache.close()


# Create FastAPI application
app = FastAPI(
    title="Pulse Backend",
    description="Asaas payment webhooks and WhatsApp instance connection",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add metrics and request context middleware
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: list[ErrorDetail] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        request_id=get_request_id(request),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


# Exception handlers with structured error responses
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors with structured response.

    Returns 422 with detailed field-level validation errors.
    """
    details = [
        ErrorDetail(
            code=ErrorCode.VALIDATION_ERROR,
            message=error["msg"],
            field=".".join(str(loc) for loc in error["loc"]),
            value=error.get("input"),
        )
        for error in exc.errors()
    ]

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        error_count=len(details),
    )

    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        details,
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors.

    Returns 503 Service Unavailable for database connection issues.
    """
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    error_message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)

    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DatabaseError",
        "A database error occurred",
        [ErrorDetail(code=ErrorCode.DATABASE_ERROR, message=error_message)],
        headers={"Retry-After": "30"},
    )


@app.exception_handler(MessagingAPIError)
async def messaging_exception_handler(request: Request, exc: MessagingAPIError) -> JSONResponse:
    """
    Handle uazapi errors.

    Returns 502 Bad Gateway; the upstream status is kept in the details.
    """
    logger.error(
        "messaging_api_error",
        path=request.url.path,
        method=request.method,
        upstream_status=exc.status_code,
        error_message=exc.message,
    )

    return _error_response(
        request,
        status.HTTP_502_BAD_GATEWAY,
        "MessagingAPIError",
        exc.message,
        [
            ErrorDetail(
                code=ErrorCode.MESSAGING_API_ERROR,
                message=exc.message,
                value=exc.status_code,
            )
        ],
    )


@app.exception_handler(InstanceNotFoundError)
async def instance_not_found_handler(request: Request, exc: InstanceNotFoundError) -> JSONResponse:
    return _error_response(
        request,
        status.HTTP_404_NOT_FOUND,
        "NotFound",
        str(exc),
        [ErrorDetail(code=ErrorCode.INSTANCE_NOT_FOUND, message=str(exc))],
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs full stack trace for debugging but returns safe error message to client.
    """
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        stack_trace=traceback.format_exc(),
    )

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
        [
            ErrorDetail(
                code=ErrorCode.INTERNAL_ERROR,
                message=str(exc) if settings.debug else "Internal server error",
            )
        ],
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Pulse Backend",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


# Include routers
from pulse.api.v1 import health, whatsapp
from pulse.api.webhooks import asaas

app.include_router(health.router, tags=["Health"])
app.include_router(whatsapp.router, prefix="/v1", tags=["WhatsApp"])
app.include_router(asaas.router, tags=["Webhooks"])
