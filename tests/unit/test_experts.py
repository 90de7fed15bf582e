"""Unit tests for expert request assembly and competitor analysis."""

import pytest

from fakes import FakeModelClient, sample_from_schema, schema_fields
from site_auditor.audit.analysis import prompts, schemas
from site_auditor.audit.analysis.experts import (
    EXPERTS,
    CompetitorSide,
    ExpertInputs,
    run_competitor_analysis,
    run_expert,
)
from site_auditor.audit.analysis.performance import PerformanceResult
from site_auditor.audit.errors import GenerationError
from site_auditor.audit.models.capture import AccessibilityHeuristics
from site_auditor.audit.models.report import STANDARD_EXPERTS, ExpertKey


def make_inputs(**overrides):
    values = dict(
        url="https://example.com",
        text=prompts.content_block("https://example.com", "Hello world"),
        screenshot="/9j/desktop",
        mobile_screenshot="/9j/mobile",
        performance=PerformanceResult(metrics={"lcp": "1.2 s"}),
        animation_hints=["div.hero"],
        heuristics=AccessibilityHeuristics(images_missing_alt=3),
        rule_violations=[{"id": "color-contrast"}],
    )
    values.update(overrides)
    return ExpertInputs(**values)


class TestPrompts:
    """Tests for prompt helpers."""

    def test_multi_page_detection(self):
        single = prompts.content_block("https://a.com", "one")
        double = single + prompts.content_block("https://a.com/about", "two")

        assert prompts.is_multi_page(single)
        assert prompts.is_multi_page("--- START CONTENT FROM https://a.com ---")
        assert not prompts.is_multi_page("plain text")
        assert double.count(prompts.CONTENT_MARKER) == 2

    def test_context_mentions_performance_error(self):
        context = prompts.build_context_prompt("https://a.com", performance_error="quota exceeded")

        assert "could not be retrieved" in context
        assert "quota exceeded" in context

    def test_context_lists_metrics_and_heuristics(self):
        context = prompts.build_context_prompt(
            "https://a.com",
            performance_metrics={"lcp": "2.5 s"},
            animation_hints=[],
            heuristics=AccessibilityHeuristics(inputs_missing_labels=2, has_semantic_elements=True),
        )

        assert "Largest Contentful Paint: 2.5 s" in context
        assert "Cumulative Layout Shift: N/A" in context
        assert "No significant CSS animations" in context
        assert "Form inputs without corresponding labels: 2" in context

    def test_competitor_content_truncates(self):
        content = prompts.competitor_content("https://a.com", "x" * 50, "https://b.com", "y" * 50, limit=10)

        assert "x" * 10 + "..." in content
        assert "x" * 11 not in content


class TestExpertRegistry:
    """Tests for the expert registry."""

    def test_every_standard_expert_registered(self):
        assert set(STANDARD_EXPERTS) == set(EXPERTS)

    def test_strategy_receives_raw_text(self):
        inputs = make_inputs()

        assert EXPERTS[ExpertKey.STRATEGY].build_content(inputs) == inputs.text

    def test_accessibility_appends_rule_violations(self):
        content = EXPERTS[ExpertKey.ACCESSIBILITY].build_content(make_inputs())

        assert "Axe-Core" in content
        assert "color-contrast" in content

    def test_ux_content_has_context_and_text(self):
        content = EXPERTS[ExpertKey.UX].build_content(make_inputs())

        assert "Website URL: https://example.com" in content
        assert "div.hero" in content
        assert "Hello world" in content
        assert "Axe-Core" not in content

    def test_images_desktop_then_mobile(self):
        images = make_inputs().images()

        assert [image.data for image in images] == ["/9j/desktop", "/9j/mobile"]
        assert make_inputs(mobile_screenshot=None).images()[0].data == "/9j/desktop"


class TestRunExpert:
    """Tests for run_expert."""

    @pytest.mark.asyncio
    async def test_returns_schema_shaped_result(self, make_gateway):
        client = FakeModelClient()

        result = await run_expert(make_gateway(client), ExpertKey.UX, make_inputs())

        assert result == sample_from_schema(schemas.ux_schema())
        assert len(client.requests[0].images) == 2

    @pytest.mark.asyncio
    async def test_non_object_result_raises(self, make_gateway):
        client = FakeModelClient(lambda request: [])

        with pytest.raises(GenerationError):
            await run_expert(make_gateway(client), ExpertKey.VISUAL, make_inputs())


class TestCompetitorAnalysis:
    """Tests for run_competitor_analysis."""

    @pytest.mark.asyncio
    async def test_merges_disjoint_partitions(self, make_gateway):
        client = FakeModelClient()
        primary = CompetitorSide(url="https://a.com", text="primary", screenshot="/9j/a")
        competitor = CompetitorSide(url="https://b.com", text="competitor", screenshot="/9j/b")

        result = await run_competitor_analysis(make_gateway(client), primary, competitor, content_limit=100)

        assert len(client.requests) == 2
        requested = [set(schema_fields(request)) for request in client.requests]
        assert set(schemas.STRATEGIC_COMPETITOR_FIELDS) in requested
        assert set(schemas.TACTICAL_COMPETITOR_FIELDS) in requested
        assert set(result) == set(schemas.STRATEGIC_COMPETITOR_FIELDS) | set(schemas.TACTICAL_COMPETITOR_FIELDS)
        assert all(len(request.images) == 2 for request in client.requests)

    @pytest.mark.asyncio
    async def test_either_half_failing_fails_the_section(self, make_gateway):
        def responder(request):
            if "UXComparison" in schema_fields(request):
                raise ValueError("invalid argument")
            return sample_from_schema(request.response_schema)

        primary = CompetitorSide(url="https://a.com")
        competitor = CompetitorSide(url="https://b.com")

        with pytest.raises(GenerationError):
            await run_competitor_analysis(make_gateway(FakeModelClient(responder)), primary, competitor)
