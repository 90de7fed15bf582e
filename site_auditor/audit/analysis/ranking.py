"""Contextual re-ranking of the experts' critical issues."""

import logging
from typing import Any, Dict, List, Mapping, Optional

from . import prompts, schemas
from .experts import EXPERTS
from .gateway import AnalysisGateway
from ..models.report import AuditReport, ExpertKey

logger = logging.getLogger(__name__)

IMPACT_ORDER = {"High": 3, "Medium": 2, "Low": 1}
TOP_N = 5


def _result_for(report: Any, key: ExpertKey) -> Optional[Dict[str, Any]]:
    if isinstance(report, AuditReport):
        return report.get(key)
    if isinstance(report, Mapping):
        # Accept both expert keys and their display labels.
        return report.get(key.value) or report.get(key.label)
    return None


def collect_critical_issues(report: Any) -> List[Dict[str, Any]]:
    """Gather each expert's top issues, tagged with their source."""
    issues: List[Dict[str, Any]] = []
    for key, spec in EXPERTS.items():
        if not spec.issues_field:
            continue
        result = _result_for(report, key) or {}
        for issue in result.get(spec.issues_field) or []:
            if isinstance(issue, dict):
                issues.append({**issue, "source": spec.source_label})
    return issues


def _score(issue: Dict[str, Any]) -> float:
    try:
        return float(issue.get("Score"))
    except (TypeError, ValueError):
        return float("inf")


def fallback_rank(issues: List[Dict[str, Any]], limit: int = TOP_N) -> List[Dict[str, Any]]:
    """Impact level descending, then score ascending; first ``limit``."""
    ordered = sorted(
        issues,
        key=lambda issue: (-IMPACT_ORDER.get(issue.get("ImpactLevel"), 0), _score(issue))
    )
    return ordered[:limit]


class ContextualRanker:
    """Selects the most strategically critical issues of an audit."""

    def __init__(self, gateway: AnalysisGateway):
        self.gateway = gateway

    async def rank(self, report: Any) -> List[Dict[str, Any]]:
        """Rank issues against the strategy result.

        Falls back to deterministic ordering when no strategy result exists
        or no issues were reported.

        Raises:
            GenerationError: If the re-rank call fails
            ResponseParseError: If its response cannot be recovered
        """
        issues = collect_critical_issues(report)
        strategy = _result_for(report, ExpertKey.STRATEGY)

        if not strategy or not issues:
            logger.info(f"Using fallback ranking for {len(issues)} issues")
            return fallback_rank(issues)

        ranked = await self.gateway.generate(
            prompts.RERANK_INSTRUCTION,
            prompts.rerank_content(strategy, issues),
            schemas.ranked_issues_schema(),
            name="Contextual Rank",
        )
        if isinstance(ranked, dict):
            # Some responses wrap the list in an object.
            ranked = next((value for value in ranked.values() if isinstance(value, list)), [])
        if not isinstance(ranked, list):
            ranked = []
        ranked = [issue for issue in ranked if isinstance(issue, dict)][:TOP_N]
        logger.info(f"Contextual ranking selected {len(ranked)} issues")
        return ranked
