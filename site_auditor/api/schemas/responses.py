"""API response schemas for the Site Auditor REST API."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from site_auditor.audit.models.capture import AccessibilityHeuristics, RuleEngineResults, Screenshot


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CaptureResponse(BaseModel):
    """Evidence captured by ``scrape-single-page``."""

    screenshot: Screenshot
    text: str = ""
    animation_hints: Optional[List[str]] = None
    accessibility_heuristics: Optional[AccessibilityHeuristics] = None
    rule_results: Optional[RuleEngineResults] = None


class PerformanceResponse(BaseModel):
    """Result of ``scrape-performance``; exactly one of the fields is set."""

    performance_data: Optional[Dict[str, str]] = None
    error: Optional[str] = None


class FinalizeResponse(BaseModel):
    """Identifiers of a finalized audit."""

    model_config = ConfigDict(populate_by_name=True)

    audit_id: str = Field(..., alias="auditId")
    screenshot_url: Optional[str] = Field(default=None, alias="screenshotUrl")


class StoredAuditResponse(BaseModel):
    """A finalized audit fetched by ID."""

    model_config = ConfigDict(populate_by_name=True)

    report: Dict[str, Any]
    url: str
    screenshot_url: Optional[str] = Field(default=None, alias="screenshotUrl")


class ErrorResponse(BaseModel):
    """Standard error response schema.

    This schema provides consistent error information across all
    API endpoints, including error codes, messages, and debugging details.
    """

    error: str = Field(
        ...,
        description="Error code or type"
    )

    message: str = Field(
        ...,
        description="Human-readable error message"
    )

    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details for debugging"
    )

    request_id: Optional[str] = Field(
        default=None,
        description="Unique request identifier for tracking"
    )

    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the error occurred"
    )


class HealthResponse(BaseModel):
    """Health check response with concurrency pool statistics."""

    status: Literal['healthy', 'degraded', 'unhealthy'] = Field(
        ...,
        description="Overall system health status"
    )

    version: str = Field(
        ...,
        description="API version"
    )

    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="Health check timestamp"
    )

    pools: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Statistics of the process-wide model and browser ticket pools"
    )

    uptime_seconds: float = Field(
        ...,
        description="Seconds since the API started"
    )
