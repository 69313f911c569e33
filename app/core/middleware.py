"""
HTTP middleware: CORS, trusted hosts, request logging with request IDs,
and the upload size guard
"""

import logging
import time
from uuid import uuid4

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import get_settings

settings = get_settings()

request_logger = logging.getLogger("app.middleware")

REQUEST_ID_HEADER = "X-Request-ID"


def add_cors_middleware(app: FastAPI) -> None:
    """
    Allow the frontend and admin panel origins to call the API with credentials.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, "Retry-After"],
        max_age=600,
    )


def add_security_middleware(app: FastAPI) -> None:
    """
    Reject requests for hosts other than ALLOWED_HOSTS (any host in debug mode).

    Args:
        app: FastAPI application instance
    """
    allowed_hosts = ["*"] if settings.debug else settings.allowed_hosts
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        duration = time.perf_counter() - started
        request_logger.info(
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} "
            f"in {duration * 1000:.1f}ms"
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{duration:.4f}"
        return response


def add_request_logging_middleware(app: FastAPI) -> None:
    """
    Add request logging middleware.

    Query strings are left out of the log: OAuth callbacks carry codes in them.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(RequestLoggingMiddleware)


class FileSizeMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Oversized uploads are refused from the declared length, before the body is read
        if request.method == "POST" and request.url.path.startswith("/api/v1/upload"):
            declared = request.headers.get("content-length")
            # Multipart framing adds a little on top of the file itself
            limit = settings.max_file_size_mb * 1024 * 1024 + 64 * 1024

            if declared and declared.isdigit() and int(declared) > limit:
                request_logger.warning(f"Refused upload of {declared} bytes to {request.url.path}")
                return JSONResponse(
                    status_code=413,
                    content={
                        "success": False,
                        "message": f"File too large. Maximum size: {settings.max_file_size_mb}MB",
                        "error": "invalid_argument"
                    }
                )

        return await call_next(request)


def add_file_size_middleware(app: FastAPI) -> None:
    """
    Guard the upload routes against bodies larger than MAX_FILE_SIZE_MB.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(FileSizeMiddleware)
