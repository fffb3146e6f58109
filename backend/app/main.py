"""GrameenLink Backend API - FastAPI application."""

from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from grameenlink.marketplace.applications import (
    AlreadySelectedError,
    ApplicationServiceError,
    DuplicateApplicationError,
    ForbiddenError,
    IllegalTransitionError,
    NotFoundError,
)

from .config import get_settings
from .database import get_service
from .logging_config import get_logger, setup_logging
from .rate_limit import limiter
from .routes import applications_router, jobs_router, workers_router

API_PREFIX = "/api/v1"

settings = get_settings()
setup_logging(settings.log_level)
logger = get_logger("grameenlink.api")

# Most specific first
_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (DuplicateApplicationError, status.HTTP_409_CONFLICT),
    (AlreadySelectedError, status.HTTP_409_CONFLICT),
    (IllegalTransitionError, status.HTTP_409_CONFLICT),
)


def status_for_error(error: ApplicationServiceError) -> int:
    """HTTP status for a service error."""
    for error_cls, code in _ERROR_STATUS:
        if isinstance(error, error_cls):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(
        f"Starting GrameenLink API (debug={settings.debug}, "
        f"storage={'supabase' if settings.uses_supabase else 'memory'})"
    )
    yield
    logger.info("Shutting down GrameenLink API")


app = FastAPI(
    title="GrameenLink API",
    description="Job application lifecycle and worker trust scoring",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)


@app.exception_handler(ApplicationServiceError)
async def service_error_handler(request: Request, exc: ApplicationServiceError):
    code = status_for_error(exc)
    logger.warning(f"{request.method} {request.url.path} -> {code} {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    error = HTTPStatus(exc.status_code).phrase.replace(" ", "")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": error},
        headers=getattr(exc, "headers", None),
    )


# Include routers
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(applications_router, prefix=API_PREFIX)
app.include_router(workers_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "grameenlink-api",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Health check that exercises the application store."""
    storage_status = "ok"
    try:
        get_service(settings).storage.list_jobs(limit=1)
    except Exception as e:
        storage_status = f"error: {str(e)[:50]}"

    return {
        "status": "healthy" if storage_status == "ok" else "degraded",
        "storage": "supabase" if settings.uses_supabase else "memory",
        "storage_status": storage_status,
    }
