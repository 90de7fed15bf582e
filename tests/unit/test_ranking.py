"""Unit tests for contextual issue ranking."""

import pytest

from fakes import RANKED_ISSUES, FakeModelClient
from site_auditor.audit.analysis.ranking import (
    ContextualRanker,
    collect_critical_issues,
    fallback_rank,
)
from site_auditor.audit.errors import GenerationError
from site_auditor.audit.models.report import AuditReport, ExpertKey


def issue(name, impact, score):
    return {"Issue": name, "ImpactLevel": impact, "Score": score}


def build_report(with_strategy=True):
    report = AuditReport()
    if with_strategy:
        report.set_result(ExpertKey.STRATEGY, {"TargetAudience": {"Primary": "Small businesses"}})
    report.set_result(ExpertKey.UX, {"Top5CriticalUXIssues": [issue("Low9", "Low", 9), issue("High3", "High", 3)]})
    report.set_result(ExpertKey.VISUAL, {"Top5CriticalVisualIssues": [issue("Medium5", "Medium", 5)]})
    report.set_result(ExpertKey.ACCESSIBILITY, {"Top5CriticalAccessibilityIssues": [issue("High1", "High", 1)]})
    return report


class TestFallbackRank:
    """Tests for the deterministic fallback ordering."""

    def test_orders_by_impact_then_score(self):
        issues = [issue("Low9", "Low", 9), issue("High3", "High", 3), issue("Medium5", "Medium", 5), issue("High1", "High", 1)]

        ranked = fallback_rank(issues)

        assert [item["Issue"] for item in ranked] == ["High1", "High3", "Medium5", "Low9"]

    def test_limits_to_five(self):
        issues = [issue(f"Issue{n}", "High", n) for n in range(8)]

        assert len(fallback_rank(issues)) == 5

    def test_unknown_impact_and_score_sort_last(self):
        issues = [issue("Odd", "Unknown", None), issue("Low2", "Low", 2)]

        assert [item["Issue"] for item in fallback_rank(issues)] == ["Low2", "Odd"]


class TestCollectCriticalIssues:
    """Tests for collect_critical_issues."""

    def test_tags_issues_with_source(self):
        issues = collect_critical_issues(build_report())

        sources = {item["Issue"]: item["source"] for item in issues}
        assert sources == {
            "Low9": "UX Audit",
            "High3": "UX Audit",
            "Medium5": "Visual Design",
            "High1": "Accessibility Audit",
        }

    def test_accepts_serialized_report(self):
        issues = collect_critical_issues(build_report().to_dict())

        assert len(issues) == 4

    def test_ignores_missing_sections(self):
        assert collect_critical_issues(AuditReport()) == []


class TestContextualRanker:
    """Tests for ContextualRanker."""

    @pytest.mark.asyncio
    async def test_falls_back_without_strategy(self, make_gateway):
        client = FakeModelClient()
        ranker = ContextualRanker(make_gateway(client))

        ranked = await ranker.rank(build_report(with_strategy=False))

        assert [item["Issue"] for item in ranked] == ["High1", "High3", "Medium5", "Low9"]
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_uses_model_with_strategy(self, make_gateway):
        client = FakeModelClient()
        ranker = ContextualRanker(make_gateway(client))

        ranked = await ranker.rank(build_report())

        assert ranked == RANKED_ISSUES
        assert len(client.requests) == 1
        request = client.requests[0]
        assert request.response_schema["type"] == "ARRAY"
        assert "Small businesses" in request.content
        assert "High1" in request.content

    @pytest.mark.asyncio
    async def test_unwraps_object_response_and_caps_length(self, make_gateway):
        many = [issue(f"Issue{n}", "High", n) for n in range(7)]
        client = FakeModelClient(lambda request: {"issues": many})

        ranked = await ContextualRanker(make_gateway(client)).rank(build_report())

        assert len(ranked) == 5
        assert ranked[0]["Issue"] == "Issue0"

    @pytest.mark.asyncio
    async def test_model_failure_propagates(self, make_gateway):
        def responder(request):
            raise ValueError("invalid argument")

        ranker = ContextualRanker(make_gateway(FakeModelClient(responder)))

        with pytest.raises(GenerationError):
            await ranker.rank(build_report())
