"""Audit engine package for Site Auditor.

This package provides evidence capture, structured model analysis and the
pipeline coordinator that streams per-expert progress to callers.
"""

from .errors import (
    AuditError,
    AcquisitionError,
    FatalAcquisitionError,
    GenerationError,
    ResponseParseError,
    PersistenceError,
    AuditNotFoundError,
)
from .models.capture import AuditInput, InputKind, InputRole, CapturedEvidence, Screenshot
from .models.report import AuditReport, ExpertKey, AuditMode

__all__ = [
    # Errors
    'AuditError',
    'AcquisitionError',
    'FatalAcquisitionError',
    'GenerationError',
    'ResponseParseError',
    'PersistenceError',
    'AuditNotFoundError',

    # Models
    'AuditInput',
    'InputKind',
    'InputRole',
    'CapturedEvidence',
    'Screenshot',
    'AuditReport',
    'ExpertKey',
    'AuditMode',
]

__version__ = "1.0.0"
