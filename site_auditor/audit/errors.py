"""Audit engine exceptions for Site Auditor.

This module defines the error taxonomy used across acquisition, analysis and
persistence, with error codes that the API layer maps onto HTTP responses and
stream error frames.
"""

from typing import Optional


class AuditError(Exception):
    """Base audit engine error."""

    def __init__(
        self,
        message: str = "Audit failed",
        error_code: str = "audit_failed",
        details: Optional[dict] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class AcquisitionError(AuditError):
    """Raised when evidence for a single input could not be acquired."""

    def __init__(
        self,
        message: str = "Evidence acquisition failed",
        url: Optional[str] = None,
        attempts: Optional[int] = None
    ):
        details = {}
        if url:
            details["url"] = url
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(
            message=message,
            error_code="acquisition_failed",
            details=details
        )
        self.url = url
        self.attempts = attempts


class FatalAcquisitionError(AuditError):
    """Raised when no input at all could be acquired for an audit."""

    def __init__(self, message: str = "Failed to acquire data from any source."):
        super().__init__(message=message, error_code="acquisition_exhausted")


class GenerationError(AuditError):
    """Raised when an analysis model call fails or returns nothing usable."""

    def __init__(
        self,
        message: str = "Analysis model call failed",
        operation: Optional[str] = None
    ):
        super().__init__(
            message=message,
            error_code="generation_failed",
            details={"operation": operation} if operation else {}
        )


class ResponseParseError(AuditError):
    """Raised when model output cannot be recovered as JSON.

    The offending raw text is kept on the exception for diagnosis.
    """

    def __init__(self, raw_text: str, reason: Optional[str] = None):
        reason = reason or "invalid JSON"
        message = (
            f"The AI model returned a response that could not be parsed as JSON ({reason}). "
            f"Raw output: \n---\n{raw_text.strip()}\n---"
        )
        super().__init__(
            message=message,
            error_code="response_parse_failed",
            details={"reason": reason}
        )
        self.raw_text = raw_text
        self.reason = reason


class PersistenceError(AuditError):
    """Raised when finalizing an audit into durable storage fails."""

    def __init__(self, message: str = "Finalization failed", audit_id: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="persistence_failed",
            details={"audit_id": audit_id} if audit_id else {}
        )
        self.audit_id = audit_id


class AuditNotFoundError(AuditError):
    """Raised when a persisted audit cannot be found."""

    def __init__(self, audit_id: str):
        super().__init__(
            message=f"Audit '{audit_id}' not found",
            error_code="audit_not_found",
            details={"audit_id": audit_id}
        )
        self.audit_id = audit_id


class SemaphoreError(AuditError):
    """Raised on misuse of a semaphore ticket (foreign or double release)."""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="semaphore_misuse")
