"""Structured-output analysis: gateway, experts, ranking and performance lookup."""

from .json_recovery import recover_json, strip_code_fence
from .gateway import (
    AnalysisGateway,
    GeminiModelClient,
    ModelClient,
    ModelImage,
    ModelRequest,
    ModelResponse,
    get_gateway,
    reset_gateway,
)
from .experts import (
    EXPERTS,
    ExpertInputs,
    ExpertSpec,
    CompetitorSide,
    run_expert,
    run_competitor_analysis,
)
from .ranking import ContextualRanker, collect_critical_issues, fallback_rank
from .performance import PerformanceClient, PerformanceResult

__all__ = [
    'recover_json',
    'strip_code_fence',
    'AnalysisGateway',
    'GeminiModelClient',
    'ModelClient',
    'ModelImage',
    'ModelRequest',
    'ModelResponse',
    'get_gateway',
    'reset_gateway',
    'EXPERTS',
    'ExpertInputs',
    'ExpertSpec',
    'CompetitorSide',
    'run_expert',
    'run_competitor_analysis',
    'ContextualRanker',
    'collect_critical_issues',
    'fallback_rank',
    'PerformanceClient',
    'PerformanceResult',
]
