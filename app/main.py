"""
Main FastAPI application for the Freelance Marketplace API
"""

import logging
import warnings
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings, validate_required_for_production
from app.core.exceptions import AppError
from app.core.middleware import (
    add_cors_middleware,
    add_file_size_middleware,
    add_request_logging_middleware,
    add_security_middleware,
)
from app.core.time import utcnow
from app.database import close_database, engine, init_database
from app.schemas.upload import HealthCheck
from app.services.oauth_providers import ProviderRegistry, get_provider_registry

# Import API routers
from app.api import auth, invites, oauth, upload

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Suppress bcrypt warnings
warnings.filterwarnings("ignore", message=".*bcrypt version.*", category=UserWarning)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan management.

    Args:
        app: FastAPI application instance
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    for problem in validate_required_for_production():
        logger.warning(f"Configuration: {problem}")

    # Initialize database
    try:
        await init_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")

    try:
        await close_database()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during database shutdown: {e}")

    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Account linking, OAuth login and role selection for the freelance marketplace",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)


def jsonable_errors(exc: RequestValidationError) -> list:
    # Error contexts may hold exception instances
    return [
        {key: value for key, value in error.items() if key in ("loc", "msg", "type")}
        for error in exc.errors()
    ]


# Add custom exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Custom handler for request validation errors (422).
    Logs the validation errors for debugging.
    """
    logger.warning(f"Request validation failed for {request.method} {request.url.path}")
    logger.warning(f"Validation errors: {exc.errors()}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request validation failed",
            "error": "invalid_request",
            "errors": jsonable_errors(exc)
        }
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Custom handler for HTTP exceptions, including application errors.
    Logs authentication and other HTTP errors.
    """
    if exc.status_code == 401:
        logger.warning(f"Authentication failed for {request.method} {request.url.path}: {exc.detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP {exc.status_code} error for {request.method} {request.url.path}: {exc.detail}")

    error_code = exc.error_code if isinstance(exc, AppError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "detail": exc.detail,
            "error": error_code
        },
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Last-resort handler: the error is logged, never returned to the client.
    """
    logger.error(f"Unhandled error for {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "error": "server_error"
        }
    )


# Add middleware
add_cors_middleware(app)
add_security_middleware(app)
add_request_logging_middleware(app)
add_file_size_middleware(app)

# Include API routes
app.include_router(
    oauth.router,
    prefix="/api/v1/oauth",
    tags=["OAuth 2.0"]
)
app.include_router(
    auth.router,
    prefix="/api/v1/auth",
    tags=["auth"]
)
app.include_router(
    invites.router,
    prefix="/api/v1/admin/invites",
    tags=["admin invites"]
)
app.include_router(
    upload.router,
    prefix="/api/v1/upload",
    tags=["upload"]
)


@app.get("/")
async def root() -> dict:
    """
    Root endpoint with API information.

    Returns:
        dict: Basic API information
    """
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.version,
        "docs": "/docs",
        "status": "operational"
    }


@app.get("/api/v1/health", response_model=HealthCheck)
async def health_check(registry: ProviderRegistry = Depends(get_provider_registry)) -> HealthCheck:
    """
    Health check endpoint.

    Returns:
        HealthCheck: Application health status
    """
    # Check database connection
    database_connected = True
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database_connected = False

    return HealthCheck(
        status="healthy" if database_connected else "unhealthy",
        timestamp=utcnow(),
        version=settings.version,
        database_connected=database_connected,
        providers=[provider.name for provider in registry.available()]
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info"
    )
