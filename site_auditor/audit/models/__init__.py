"""Data models for audit inputs, evidence, reports and stream frames."""

from .capture import (
    InputKind,
    InputRole,
    AuditInput,
    Screenshot,
    AccessibilityHeuristics,
    RuleEngineResults,
    CapturedEvidence,
)
from .report import (
    AuditMode,
    ExpertKey,
    STANDARD_EXPERTS,
    CONTEXTUAL_ISSUES_KEY,
    AuditReport,
    ReportFrozenError,
    StatusFrame,
    DataFrame,
    ErrorFrame,
    CompleteFrame,
    StreamFrame,
)

__all__ = [
    'InputKind',
    'InputRole',
    'AuditInput',
    'Screenshot',
    'AccessibilityHeuristics',
    'RuleEngineResults',
    'CapturedEvidence',
    'AuditMode',
    'ExpertKey',
    'STANDARD_EXPERTS',
    'CONTEXTUAL_ISSUES_KEY',
    'AuditReport',
    'ReportFrozenError',
    'StatusFrame',
    'DataFrame',
    'ErrorFrame',
    'CompleteFrame',
    'StreamFrame',
]
