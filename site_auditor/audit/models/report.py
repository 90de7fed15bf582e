"""Report and stream frame models for audit analysis.

This module defines the closed set of analysis experts, the incrementally
built audit report, and the tagged frames written to a caller's stream.
"""

import copy
from enum import Enum
from typing import Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class AuditMode(str, Enum):
    """Audit flavours supported by the pipeline."""
    STANDARD = "standard"
    COMPETITOR = "competitor"


class ExpertKey(str, Enum):
    """Analysis dimensions. Exactly one result may exist per key per audit."""
    STRATEGY = "strategy"
    UX = "ux"
    PRODUCT = "product"
    VISUAL = "visual"
    ACCESSIBILITY = "accessibility"
    COMPETITOR = "competitor"

    @property
    def label(self) -> str:
        """Display label used in status messages."""
        return _EXPERT_LABELS[self]

    @property
    def short_name(self) -> str:
        return self.label.split(' ')[0]


_EXPERT_LABELS = {
    ExpertKey.STRATEGY: "Strategy Audit expert",
    ExpertKey.UX: "UX Audit expert",
    ExpertKey.PRODUCT: "Product Audit expert",
    ExpertKey.VISUAL: "Visual Audit expert",
    ExpertKey.ACCESSIBILITY: "Accessibility Audit expert",
    ExpertKey.COMPETITOR: "Competitor Analysis expert",
}

STANDARD_EXPERTS: List[ExpertKey] = [
    ExpertKey.STRATEGY,
    ExpertKey.UX,
    ExpertKey.PRODUCT,
    ExpertKey.VISUAL,
    ExpertKey.ACCESSIBILITY,
]

CONTEXTUAL_ISSUES_KEY = "Top5ContextualIssues"


class ReportFrozenError(RuntimeError):
    """Raised when mutating a report after it has been frozen."""


class AuditReport:
    """Mapping of expert key to schema-shaped result.

    Results are immutable once set; a second result for the same key is
    rejected. ``freeze()`` is called before persistence so the stored
    document matches what was streamed.
    """

    def __init__(self):
        self._results: Dict[ExpertKey, Dict[str, Any]] = {}
        self._contextual_issues: Optional[List[Dict[str, Any]]] = None
        self._frozen = False

    def set_result(self, key: ExpertKey, result: Dict[str, Any]) -> None:
        if self._frozen:
            raise ReportFrozenError("Report is frozen")
        key = ExpertKey(key)
        if key in self._results:
            raise ValueError(f"Result for {key.value} already recorded")
        self._results[key] = copy.deepcopy(result)

    def get(self, key: ExpertKey) -> Optional[Dict[str, Any]]:
        result = self._results.get(ExpertKey(key))
        return copy.deepcopy(result) if result is not None else None

    def set_contextual_issues(self, issues: List[Dict[str, Any]]) -> None:
        if self._frozen:
            raise ReportFrozenError("Report is frozen")
        self._contextual_issues = copy.deepcopy(issues)

    @property
    def contextual_issues(self) -> Optional[List[Dict[str, Any]]]:
        return copy.deepcopy(self._contextual_issues)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def keys(self) -> List[ExpertKey]:
        return list(self._results.keys())

    def __contains__(self, key: object) -> bool:
        try:
            return ExpertKey(key) in self._results
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[ExpertKey]:
        return iter(list(self._results.keys()))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain JSON-compatible document."""
        document: Dict[str, Any] = {
            key.value: copy.deepcopy(result) for key, result in self._results.items()
        }
        if self._contextual_issues is not None:
            document[CONTEXTUAL_ISSUES_KEY] = copy.deepcopy(self._contextual_issues)
        return document

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "AuditReport":
        """Rebuild a report from a serialized document, ignoring unknown keys."""
        report = cls()
        for raw_key, value in (document or {}).items():
            if raw_key == CONTEXTUAL_ISSUES_KEY:
                report.set_contextual_issues(value or [])
                continue
            try:
                key = ExpertKey(raw_key)
            except ValueError:
                continue
            if isinstance(value, dict):
                report.set_result(key, value)
        return report


class StatusFrame(BaseModel):
    """Progress message, optionally scoped to a section."""
    type: Literal["status"] = "status"
    message: str
    key: Optional[str] = None


class DataFrame(BaseModel):
    """A finished section result."""
    type: Literal["data"] = "data"
    key: str
    payload: Any


class ErrorFrame(BaseModel):
    """A failed section or a failed audit (``key`` is None for the latter)."""
    type: Literal["error"] = "error"
    key: Optional[str] = None
    message: str


class CompleteFrame(BaseModel):
    """Terminal frame for a successful audit."""
    type: Literal["complete"] = "complete"
    payload: Dict[str, Any] = Field(default_factory=dict)


StreamFrame = Union[StatusFrame, DataFrame, ErrorFrame, CompleteFrame]
