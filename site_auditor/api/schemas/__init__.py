"""API schemas for the Site Auditor REST API."""

# Request schemas
from .requests import (
    AuditInputPayload,
    AuditRequest,
    RequestMode,
    ScreenshotPayload,
    STREAMING_MODES,
)

# Response schemas
from .responses import (
    CaptureResponse,
    ErrorResponse,
    FinalizeResponse,
    HealthResponse,
    PerformanceResponse,
    StoredAuditResponse,
)

__all__ = [
    # Request schemas
    "AuditInputPayload",
    "AuditRequest",
    "RequestMode",
    "ScreenshotPayload",
    "STREAMING_MODES",

    # Response schemas
    "CaptureResponse",
    "ErrorResponse",
    "FinalizeResponse",
    "HealthResponse",
    "PerformanceResponse",
    "StoredAuditResponse",
]
