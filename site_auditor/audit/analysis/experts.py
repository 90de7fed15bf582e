"""Analysis expert registry and request assembly.

Each expert is described by an ExpertSpec: its key, response schema, system
instruction builder, and, for issue-reporting experts, the field holding its
self-reported top issues and the source label used when re-ranking them.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from . import prompts, schemas
from .gateway import AnalysisGateway, ModelImage
from .performance import PerformanceResult
from ..errors import GenerationError
from ..models.capture import AccessibilityHeuristics
from ..models.report import ExpertKey
from ...config import get_settings

logger = logging.getLogger(__name__)


class ExpertInputs(BaseModel):
    """Evidence handed to one expert analysis."""

    url: str
    text: str = ""
    screenshot: Optional[str] = Field(default=None, description="Base64 desktop screenshot")
    mobile_screenshot: Optional[str] = Field(default=None, description="Base64 mobile screenshot")
    mime_type: str = "image/jpeg"
    performance: Optional[PerformanceResult] = None
    animation_hints: Optional[List[str]] = None
    heuristics: Optional[AccessibilityHeuristics] = None
    rule_violations: Optional[List[Dict[str, Any]]] = None

    @property
    def mobile_captured(self) -> bool:
        return bool(self.mobile_screenshot)

    @property
    def multi_page(self) -> bool:
        return prompts.is_multi_page(self.text)

    def images(self) -> List[ModelImage]:
        return [
            ModelImage(data=data, mime_type=self.mime_type)
            for data in (self.screenshot, self.mobile_screenshot)
            if data
        ]


class ExpertSpec:
    """Static description of one analysis expert."""

    def __init__(
        self,
        key: ExpertKey,
        schema: Callable[[], Dict[str, Any]],
        instruction: Callable[[ExpertInputs], str],
        issues_field: Optional[str] = None,
        source_label: Optional[str] = None,
        uses_site_context: bool = True,
        appends_rule_violations: bool = False
    ):
        self.key = key
        self.schema = schema
        self.instruction = instruction
        self.issues_field = issues_field
        self.source_label = source_label
        self.uses_site_context = uses_site_context
        self.appends_rule_violations = appends_rule_violations

    @property
    def label(self) -> str:
        return self.key.label

    def build_content(self, inputs: ExpertInputs) -> str:
        """Text part of the request."""
        if not self.uses_site_context:
            return inputs.text

        performance = inputs.performance
        context = prompts.build_context_prompt(
            inputs.url,
            performance_metrics=performance.metrics if performance else None,
            performance_error=performance.error if performance else None,
            animation_hints=inputs.animation_hints,
            heuristics=inputs.heuristics,
            multi_page=inputs.multi_page,
        )
        if self.appends_rule_violations and inputs.rule_violations is not None:
            context = prompts.append_rule_violations(context, inputs.rule_violations)
        return prompts.with_page_text(context, inputs.text)


EXPERTS: Dict[ExpertKey, ExpertSpec] = {
    ExpertKey.STRATEGY: ExpertSpec(
        ExpertKey.STRATEGY,
        schema=schemas.strategy_schema,
        instruction=lambda inputs: prompts.strategy_instruction(),
        uses_site_context=False,
    ),
    ExpertKey.UX: ExpertSpec(
        ExpertKey.UX,
        schema=schemas.ux_schema,
        instruction=lambda inputs: prompts.ux_instruction(inputs.mobile_captured, inputs.multi_page),
        issues_field="Top5CriticalUXIssues",
        source_label="UX Audit",
    ),
    ExpertKey.PRODUCT: ExpertSpec(
        ExpertKey.PRODUCT,
        schema=schemas.product_schema,
        instruction=lambda inputs: prompts.product_instruction(inputs.multi_page),
        issues_field="Top5CriticalProductIssues",
        source_label="Product Audit",
    ),
    ExpertKey.VISUAL: ExpertSpec(
        ExpertKey.VISUAL,
        schema=schemas.visual_schema,
        instruction=lambda inputs: prompts.visual_instruction(inputs.mobile_captured, inputs.multi_page),
        issues_field="Top5CriticalVisualIssues",
        source_label="Visual Design",
    ),
    ExpertKey.ACCESSIBILITY: ExpertSpec(
        ExpertKey.ACCESSIBILITY,
        schema=schemas.accessibility_schema,
        instruction=lambda inputs: prompts.accessibility_instruction(inputs.multi_page),
        issues_field="Top5CriticalAccessibilityIssues",
        source_label="Accessibility Audit",
        appends_rule_violations=True,
    ),
}


def _require_object(value: Any, label: str) -> Dict[str, Any]:
    if not isinstance(value, dict) or not value:
        raise GenerationError(
            "The AI model returned an empty or invalid response for this audit section.",
            operation=label
        )
    return value


async def run_expert(gateway: AnalysisGateway, key: ExpertKey, inputs: ExpertInputs) -> Dict[str, Any]:
    """Run one expert analysis through the gateway.

    Raises:
        GenerationError: If the call failed or returned no object
        ResponseParseError: If the response could not be recovered as JSON
    """
    spec = EXPERTS[ExpertKey(key)]
    logger.info(f"Running {spec.label} for {inputs.url}")
    result = await gateway.generate(
        spec.instruction(inputs),
        spec.build_content(inputs),
        spec.schema(),
        images=inputs.images(),
        name=spec.label,
    )
    return _require_object(result, spec.label)


class CompetitorSide(BaseModel):
    """Evidence for one side of a competitor comparison."""

    url: str
    text: str = ""
    screenshot: Optional[str] = None


async def run_competitor_analysis(
    gateway: AnalysisGateway,
    primary: CompetitorSide,
    competitor: CompetitorSide,
    mime_type: str = "image/jpeg",
    content_limit: Optional[int] = None
) -> Dict[str, Any]:
    """Compare two sites with two parallel calls over disjoint schema partitions.

    The strategic and tactical halves are requested separately to keep each
    response within reliable size limits, then merged into one object.
    """
    if content_limit is None:
        content_limit = get_settings().model.competitor_content_limit

    instruction = prompts.competitor_instruction()
    content = prompts.competitor_content(
        primary.url, primary.text, competitor.url, competitor.text, limit=content_limit
    )
    images = [
        ModelImage(data=data, mime_type=mime_type)
        for data in (primary.screenshot, competitor.screenshot)
        if data
    ]
    label = ExpertKey.COMPETITOR.label

    logger.info(f"Starting competitor analysis: {primary.url} vs {competitor.url}")
    strategic, tactical = await asyncio.gather(
        gateway.generate(
            instruction + prompts.STRATEGIC_FOCUS,
            content,
            schemas.competitor_strategic_schema(),
            images=images,
            name=f"{label} (strategic)",
        ),
        gateway.generate(
            instruction + prompts.TACTICAL_FOCUS,
            content,
            schemas.competitor_tactical_schema(),
            images=images,
            name=f"{label} (tactical)",
        ),
    )

    merged: Dict[str, Any] = {}
    merged.update(_require_object(strategic, label))
    merged.update(_require_object(tactical, label))
    return merged
