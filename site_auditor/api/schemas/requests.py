"""API request schemas for the Site Auditor REST API.

All audit operations go through one endpoint; the ``mode`` field selects the
operation and the remaining fields carry that operation's payload. Field
names are snake_case, and the camelCase spellings used by browser clients
are accepted as aliases.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from site_auditor.audit.models.capture import (
    AccessibilityHeuristics,
    AuditInput,
    InputKind,
    InputRole,
    Screenshot,
)
from site_auditor.audit.models.report import AuditMode, ExpertKey


class RequestMode(str, Enum):
    """Operations dispatched by ``POST /api/audit``."""
    SCRAPE_SINGLE_PAGE = "scrape-single-page"
    SCRAPE_PERFORMANCE = "scrape-performance"
    ANALYZE_STRATEGY = "analyze-strategy"
    ANALYZE_UX = "analyze-ux"
    ANALYZE_PRODUCT = "analyze-product"
    ANALYZE_VISUAL = "analyze-visual"
    ANALYZE_ACCESSIBILITY = "analyze-accessibility"
    ANALYZE_COMPETITOR = "analyze-competitor"
    CONTEXTUAL_RANK = "contextual-rank"
    FINALIZE = "finalize"
    GET_AUDIT = "get-audit"
    RUN_AUDIT = "run-audit"

    @property
    def expert_key(self) -> Optional[ExpertKey]:
        """Expert analysed by an ``analyze-*`` mode."""
        if not self.value.startswith("analyze-"):
            return None
        return ExpertKey(self.value[len("analyze-"):])

    @property
    def is_streaming(self) -> bool:
        return self.expert_key is not None or self == RequestMode.RUN_AUDIT


STREAMING_MODES = [mode for mode in RequestMode if mode.is_streaming]


class CamelModel(BaseModel):
    """Base model accepting both snake_case and camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScreenshotPayload(CamelModel):
    """Screenshot as exchanged with clients."""

    path: str = Field(default="upload")
    data: Optional[str] = Field(default=None, description="Base64 encoded image bytes")
    is_mobile: bool = False
    url: Optional[str] = None

    def to_screenshot(self) -> Screenshot:
        return Screenshot(path=self.path, data=self.data, is_mobile=self.is_mobile, url=self.url)


class AuditInputPayload(CamelModel):
    """One audit input as submitted by a client; uploads carry base64 images."""

    kind: InputKind = Field(..., alias="type")
    url: Optional[str] = None
    file_base64: Optional[str] = Field(default=None, alias="file")
    files_base64: List[str] = Field(default_factory=list, alias="files")
    role: Optional[InputRole] = None

    def to_audit_input(self) -> AuditInput:
        """Convert into an AuditInput.

        Uploads stay base64 encoded; they are decoded per file during
        acquisition.

        Raises:
            ValueError: If the input is incomplete or its URL is invalid
        """
        return AuditInput(
            kind=self.kind,
            url=self.url,
            file_bytes=self.file_base64 or None,
            files=list(self.files_base64),
            role=self.role,
        )


class AuditRequest(CamelModel):
    """Request body of ``POST /api/audit``.

    ``mode`` is kept as a plain string so that unknown modes can be
    rejected with a 400 rather than a validation error.
    """

    mode: str = Field(..., description="Operation to run", examples=["run-audit"])

    # scrape-single-page / scrape-performance / analyze-*
    url: Optional[str] = Field(default=None, examples=["https://example.com"])
    is_mobile: bool = False
    is_first_page: bool = False

    # analyze-*
    screenshot_base64: Optional[str] = None
    mobile_screenshot_base64: Optional[str] = None
    screenshot_mime_type: str = "image/jpeg"
    live_text: str = ""
    performance_data: Optional[Dict[str, str]] = None
    performance_analysis_error: Optional[str] = None
    animation_data: Optional[List[str]] = None
    accessibility_data: Optional[AccessibilityHeuristics] = None
    axe_violations: Optional[List[Dict[str, Any]]] = None

    # analyze-competitor
    primary_url: Optional[str] = None
    primary_screenshot_base64: Optional[str] = None
    primary_live_text: str = ""
    competitor_url: Optional[str] = None
    competitor_screenshot_base64: Optional[str] = None
    competitor_live_text: str = ""

    # contextual-rank / finalize
    report: Optional[Dict[str, Any]] = None
    screenshots: List[ScreenshotPayload] = Field(default_factory=list)

    # get-audit
    audit_id: Optional[str] = None

    # run-audit
    inputs: List[AuditInputPayload] = Field(default_factory=list)
    audit_mode: AuditMode = AuditMode.STANDARD

    @field_validator('audit_id')
    @classmethod
    def validate_audit_id(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    def request_mode(self) -> RequestMode:
        """Parsed mode.

        Raises:
            ValueError: If the mode is not supported
        """
        return RequestMode(self.mode)
