"""Pydantic models for audit inputs and captured page evidence.

This module defines the data models produced by acquisition: the inputs a
caller submits, the screenshots and page text captured by the evidence
capture worker, and the heuristic and rule-engine accessibility signals
gathered on the first desktop pass.
"""

import base64
import binascii
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator


def decode_base64(value: str) -> bytes:
    """Decode a base64 payload, tolerating a ``data:`` URL prefix.

    Raises:
        ValueError: If the payload is not valid base64
    """
    if value.startswith("data:") and "," in value:
        value = value.split(",", 1)[1]
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e


class InputKind(str, Enum):
    """Kinds of audit input."""
    URL = "url"
    UPLOAD = "upload"


class InputRole(str, Enum):
    """Role of an input within a competitor audit."""
    PRIMARY = "primary"
    COMPETITOR = "competitor"


class AuditInput(BaseModel):
    """A single thing to audit: a live URL or uploaded image bytes.

    Inputs are transient; they are consumed once by acquisition and are
    never persisted themselves.
    """

    kind: InputKind = Field(
        ...,
        description="Whether this input is a URL to capture or an uploaded image"
    )
    url: Optional[str] = Field(
        default=None,
        description="URL to capture (url inputs)"
    )
    file_bytes: Optional[Union[str, bytes]] = Field(
        default=None,
        description="A single uploaded image, as raw bytes or base64 text"
    )
    files: List[Union[str, bytes]] = Field(
        default_factory=list,
        description="Several uploaded images, as raw bytes or base64 text"
    )
    role: Optional[InputRole] = Field(
        default=None,
        description="Primary or competitor (competitor audits only)"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if v is None:
            return v
        parsed = urlparse(v)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f"Invalid URL: {v}")
        return v

    @model_validator(mode='after')
    def validate_payload(self):
        if self.kind == InputKind.URL and not self.url:
            raise ValueError("url inputs require a url")
        if self.kind == InputKind.UPLOAD and not self.upload_payloads:
            raise ValueError("upload inputs require file bytes")
        return self

    @property
    def upload_payloads(self) -> List[Union[str, bytes]]:
        """All uploaded images carried by this input, in order.

        Base64 payloads stay undecoded until acquisition so one bad file only
        skips that file.
        """
        if self.files:
            return list(self.files)
        if self.file_bytes:
            return [self.file_bytes]
        return []

    @property
    def label(self) -> str:
        """Human readable label used in status messages."""
        return self.url if self.kind == InputKind.URL else "uploaded image"


class Screenshot(BaseModel):
    """Captured or uploaded page image.

    ``data`` holds base64 image bytes in memory until finalize replaces it
    with a durable ``url``.
    """

    path: str = Field(..., description="URL path of the captured page, or 'upload'")
    data: Optional[str] = Field(default=None, description="Base64 encoded image bytes")
    is_mobile: bool = Field(default=False, description="Captured with the mobile device profile")
    url: Optional[str] = Field(default=None, description="Durable URL once persisted")

    @classmethod
    def from_bytes(cls, image: bytes, path: str, is_mobile: bool = False) -> "Screenshot":
        """Build a screenshot from raw image bytes."""
        return cls(
            path=path,
            data=base64.b64encode(image).decode('ascii'),
            is_mobile=is_mobile
        )

    @classmethod
    def from_upload(cls, payload: Union[str, bytes], path: str) -> "Screenshot":
        """Build a screenshot from an uploaded image.

        Raises:
            ValueError: If a base64 payload cannot be decoded
        """
        if isinstance(payload, str):
            payload = decode_base64(payload)
        if not payload:
            raise ValueError("Uploaded image is empty")
        return cls.from_bytes(payload, path=path)

    def image_bytes(self) -> bytes:
        """Decode the in-memory image payload."""
        if self.data is None:
            raise ValueError("Screenshot has no in-memory image data")
        return base64.b64decode(self.data)


class AccessibilityHeuristics(BaseModel):
    """Cheap DOM accessibility signals gathered on the first desktop pass."""

    images_missing_alt: int = Field(default=0, ge=0)
    inputs_missing_labels: int = Field(default=0, ge=0)
    has_semantic_elements: bool = False
    has_aria_attributes: bool = False


class RuleEngineResults(BaseModel):
    """Automated accessibility rule engine output, partitioned by outcome."""

    violations: List[Dict[str, Any]] = Field(default_factory=list)
    passes: List[Dict[str, Any]] = Field(default_factory=list)
    incomplete: List[Dict[str, Any]] = Field(default_factory=list)
    inapplicable: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.violations or self.passes or self.incomplete or self.inapplicable)


class CapturedEvidence(BaseModel):
    """Evidence captured for one (input, device class) pair."""

    screenshot: Screenshot
    text: str = Field(default="", description="Visible page text")
    animation_hints: Optional[List[str]] = Field(
        default=None,
        description="Selectors of elements with CSS animation or transition (first desktop pass)"
    )
    accessibility_heuristics: Optional[AccessibilityHeuristics] = None
    rule_results: Optional[RuleEngineResults] = None

    @property
    def is_mobile(self) -> bool:
        return self.screenshot.is_mobile
