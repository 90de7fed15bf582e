"""FastAPI application for the Site Auditor REST API.

This module configures the FastAPI application with middleware, error
handling and the audit dispatch route.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from site_auditor import __version__
from site_auditor.api.routes import audit_router
from site_auditor.api.schemas import ErrorResponse, HealthResponse
from site_auditor.audit.errors import AuditError
from site_auditor.audit.queue.semaphore import get_browser_semaphore, get_model_semaphore


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

APP_VERSION = __version__
APP_TITLE = "Site Auditor API"
APP_DESCRIPTION = """
Site Auditor captures live websites or uploaded screenshots and runs a panel of
AI analysis experts over them (strategy, UX, product, visual design and
accessibility, or a head-to-head competitor comparison).

Streaming operations answer with newline-delimited JSON frames of type
`status`, `data`, `error` and `complete`.
"""

# Status codes for engine errors that escape a route
ERROR_STATUS_CODES = {
    "audit_not_found": 404,
    "acquisition_exhausted": 422,
}

app_start_time = datetime.now(timezone.utc)


def _error_response(request: Request, status_code: int, error: str, message: str, details=None) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            details=details,
            request_id=request_id,
        ).model_dump(mode='json')
    )


def _validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic validation errors to ``{field, message, type}`` entries."""
    return [
        {
            # First location element is always "body"
            "field": ".".join(str(part) for part in error["loc"][1:]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


async def request_context_middleware(request: Request, call_next):
    """Tag each request with an ID and log its outcome."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    started = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"{request.method} {request.url.path} raised {type(e).__name__}: {e}",
            extra={"request_id": request_id},
            exc_info=True
        )
        raise

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms}ms",
        extra={"request_id": request_id, "status_code": response.status_code, "duration_ms": elapsed_ms}
    )
    return response


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(title=APP_TITLE, description=APP_DESCRIPTION, version=APP_VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.middleware("http")(request_context_middleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(request, exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            422,
            "validation_error",
            "Request validation failed",
            details={"validation_errors": _validation_errors(exc)},
        )

    @app.exception_handler(AuditError)
    async def audit_exception_handler(request: Request, exc: AuditError):
        """Map engine errors that escape a route onto error responses."""
        status_code = ERROR_STATUS_CODES.get(exc.error_code, 500)
        logger.error(f"{exc.error_code} while handling {request.url.path}: {exc.message}")
        return _error_response(request, status_code, exc.error_code, exc.message, details=exc.details or None)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled {type(exc).__name__} in {request.url.path}")
        return _error_response(request, 500, "internal_server_error", "An unexpected error occurred")

    @app.get("/health", response_model=HealthResponse, tags=["System"], summary="Ticket pool health")
    async def health_check():
        """Report uptime and the state of the model and browser ticket pools."""
        return HealthResponse(
            status="healthy",
            version=APP_VERSION,
            pools={
                "model": get_model_semaphore().get_stats(),
                "browser": get_browser_semaphore().get_stats(),
            },
            uptime_seconds=(datetime.now(timezone.utc) - app_start_time).total_seconds()
        )

    @app.get("/", include_in_schema=False)
    async def root():
        return {"message": APP_TITLE, "version": APP_VERSION, "documentation": "/docs"}

    app.include_router(audit_router, prefix="/api")

    return app


app = create_app()
