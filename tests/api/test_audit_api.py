"""API tests for the audit dispatch endpoint."""

import json

import pytest
from fastapi.testclient import TestClient

from fakes import FakeCaptureWorker, FakeModelClient, schema_fields
from site_auditor.api.main import create_app
from site_auditor.api.services.audit_service import AuditService, get_audit_service
from site_auditor.audit.analysis.performance import PerformanceResult
from site_auditor.audit.analysis.schemas import STRATEGIC_COMPETITOR_FIELDS, TACTICAL_COMPETITOR_FIELDS


class FakePerformanceClient:
    def __init__(self, result=None):
        self.result = result or PerformanceResult(metrics={"lcp": "1.0 s"})
        self.urls = []

    async def fetch(self, url):
        self.urls.append(url)
        return self.result


@pytest.fixture
def model_client():
    return FakeModelClient()


@pytest.fixture
def capture_worker():
    return FakeCaptureWorker(failing=["https://down.example.com"])


@pytest.fixture
def audit_service(capture_worker, model_client, make_gateway, finalize_service):
    return AuditService(
        capture_worker=capture_worker,
        gateway=make_gateway(model_client),
        performance_client=FakePerformanceClient(),
        finalize_service=finalize_service,
    )


@pytest.fixture
def client(audit_service):
    app = create_app()
    app.dependency_overrides[get_audit_service] = lambda: audit_service
    with TestClient(app) as test_client:
        yield test_client


def post(client, body):
    return client.post("/api/audit", json=body)


def ndjson(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


class TestDispatchErrors:
    """Tests for request validation and error responses."""

    def test_invalid_mode(self, client):
        response = post(client, {"mode": "analyze-everything"})

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Invalid mode specified."
        assert body["request_id"] == response.headers["X-Request-ID"]

    def test_missing_mode_is_validation_error(self, client):
        response = post(client, {"url": "https://example.com"})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_get_audit_requires_id(self, client):
        response = post(client, {"mode": "get-audit"})

        assert response.status_code == 400
        assert response.json()["message"] == "auditId is required."

    def test_get_audit_not_found(self, client):
        response = post(client, {"mode": "get-audit", "auditId": "does-not-exist"})

        assert response.status_code == 404
        assert response.json()["message"] == "Audit not found."

    def test_scrape_requires_url(self, client):
        response = post(client, {"mode": "scrape-single-page"})

        assert response.status_code == 400
        assert response.json()["message"] == "url is required."


class TestScrapeModes:
    """Tests for capture and performance modes."""

    def test_scrape_single_page(self, client, capture_worker):
        response = post(client, {"mode": "scrape-single-page", "url": "https://example.com", "isFirstPage": True})

        assert response.status_code == 200
        body = response.json()
        assert body["text"] == "Welcome to https://example.com"
        assert body["screenshot"]["data"].startswith("/9j/")
        assert body["accessibility_heuristics"]["images_missing_alt"] == 2
        assert capture_worker.calls == [{"url": "https://example.com", "is_mobile": False, "is_first_page": True}]

    def test_scrape_failure(self, client):
        response = post(client, {"mode": "scrape-single-page", "url": "https://down.example.com"})

        assert response.status_code == 500
        assert response.json()["message"].startswith("Scraping failed: ")

    def test_scrape_performance(self, client):
        response = post(client, {"mode": "scrape-performance", "url": "https://example.com"})

        assert response.status_code == 200
        assert response.json() == {"performance_data": {"lcp": "1.0 s"}, "error": None}


class TestAnalyzeModes:
    """Tests for streaming analysis modes."""

    def test_analyze_ux_streams_frames(self, client, model_client, jpeg_base64):
        response = post(client, {
            "mode": "analyze-ux",
            "url": "https://example.com",
            "screenshotBase64": jpeg_base64,
            "liveText": "Hello",
            "performanceData": {"lcp": "2.0 s"},
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        frames = ndjson(response)
        assert [frame["type"] for frame in frames] == ["status", "data", "status"]
        assert frames[1]["key"] == "ux"
        assert "Top5CriticalUXIssues" in frames[1]["payload"]
        request = model_client.requests[0]
        assert "Largest Contentful Paint: 2.0 s" in request.content
        assert len(request.images) == 1

    def test_analyze_failure_streams_error_frame(self, client, model_client):
        def responder(request):
            raise ValueError("invalid argument")

        model_client.responder = responder

        response = post(client, {"mode": "analyze-product", "url": "https://example.com"})

        assert response.status_code == 200
        frames = ndjson(response)
        errors = [frame for frame in frames if frame["type"] == "error"]
        assert len(errors) == 1
        assert errors[0]["message"].startswith("Error in Product Audit expert:")
        assert not any(frame["type"] == "data" for frame in frames)

    def test_analyze_competitor(self, client, model_client):
        response = post(client, {
            "mode": "analyze-competitor",
            "primaryUrl": "https://a.example.com",
            "primaryLiveText": "A",
            "competitorUrl": "https://b.example.com",
            "competitorLiveText": "B",
        })

        frames = ndjson(response)
        data = [frame for frame in frames if frame["type"] == "data"]
        assert len(data) == 1
        assert data[0]["key"] == "competitor"
        assert set(data[0]["payload"]) == set(STRATEGIC_COMPETITOR_FIELDS) | set(TACTICAL_COMPETITOR_FIELDS)
        assert sorted(len(schema_fields(request)) for request in model_client.requests) == sorted(
            [len(STRATEGIC_COMPETITOR_FIELDS), len(TACTICAL_COMPETITOR_FIELDS)]
        )


class TestReportModes:
    """Tests for ranking, finalize and retrieval."""

    def test_contextual_rank_without_strategy_uses_fallback(self, client, model_client):
        report = {
            "ux": {"Top5CriticalUXIssues": [
                {"Issue": "Low", "ImpactLevel": "Low", "Score": 9},
                {"Issue": "High", "ImpactLevel": "High", "Score": 2},
            ]},
        }

        response = post(client, {"mode": "contextual-rank", "report": report})

        assert response.status_code == 200
        assert [issue["Issue"] for issue in response.json()] == ["High", "Low"]
        assert model_client.requests == []

    def test_contextual_rank_failure(self, client, model_client):
        def responder(request):
            raise ValueError("invalid argument")

        model_client.responder = responder
        report = {
            "strategy": {"TargetAudience": {"Primary": "Developers"}},
            "ux": {"Top5CriticalUXIssues": [{"Issue": "x", "ImpactLevel": "High", "Score": 1}]},
        }

        response = post(client, {"mode": "contextual-rank", "report": report})

        assert response.status_code == 500
        assert response.json()["message"].startswith("Contextual ranking failed: ")

    def test_finalize_then_get_audit(self, client, jpeg_base64):
        report = {"ux": {"Top5CriticalUXIssues": []}}
        response = post(client, {
            "mode": "finalize",
            "url": "https://example.com",
            "report": report,
            "screenshots": [
                {"path": "/", "data": jpeg_base64, "isMobile": False},
                {"path": "/", "data": jpeg_base64, "isMobile": True},
            ],
        })

        assert response.status_code == 200
        saved = response.json()
        audit_id = saved["auditId"]
        assert saved["screenshotUrl"] == f"https://cdn.example.com/public/{audit_id}/0-desktop.jpeg"

        fetched = post(client, {"mode": "get-audit", "auditId": audit_id})

        assert fetched.status_code == 200
        body = fetched.json()
        assert body["url"] == "https://example.com"
        assert body["screenshotUrl"] == saved["screenshotUrl"]
        assert body["report"]["ux"] == report["ux"]
        assert len(body["report"]["screenshots"]) == 2


class TestRunAudit:
    """Tests for full pipeline runs over the API."""

    def test_run_audit_streams_to_completion(self, client, jpeg_base64):
        response = post(client, {
            "mode": "run-audit",
            "inputs": [
                {"type": "url", "url": "https://example.com"},
                {"type": "upload", "file": jpeg_base64},
            ],
        })

        assert response.status_code == 200
        frames = ndjson(response)
        data_keys = [frame["key"] for frame in frames if frame["type"] == "data"]
        assert set(data_keys) == {"strategy", "ux", "product", "visual", "accessibility", "Top5ContextualIssues"}
        assert frames[-1]["type"] == "complete"
        audit_id = frames[-1]["payload"]["auditId"]

        fetched = post(client, {"mode": "get-audit", "auditId": audit_id})
        assert fetched.status_code == 200

    def test_run_audit_requires_inputs(self, client):
        response = post(client, {"mode": "run-audit"})

        assert response.status_code == 400
        assert response.json()["message"] == "inputs is required."

    def test_run_audit_skips_bad_upload(self, client, jpeg_base64):
        response = post(client, {
            "mode": "run-audit",
            "inputs": [
                {"type": "upload", "file": jpeg_base64},
                {"type": "upload", "file": "not base64!!"},
            ],
        })

        assert response.status_code == 200
        frames = ndjson(response)
        assert "Failed to process an uploaded image." in [
            frame["message"] for frame in frames if frame["type"] == "status"
        ]
        assert frames[-1]["type"] == "complete"
        assert frames[-1]["payload"]["auditId"]

    def test_run_audit_with_only_bad_uploads(self, client):
        response = post(client, {"mode": "run-audit", "inputs": [{"type": "upload", "file": "not base64!!"}]})

        assert response.status_code == 200
        frames = ndjson(response)
        assert frames[-1] == {"type": "error", "message": "Failed to acquire data from any source."}

    def test_run_audit_rejects_invalid_url(self, client):
        response = post(client, {"mode": "run-audit", "inputs": [{"type": "url", "url": "ftp://example.com"}]})

        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid input: ")

    def test_run_audit_with_nothing_acquired(self, client):
        response = post(client, {"mode": "run-audit", "inputs": [{"type": "url", "url": "https://down.example.com"}]})

        frames = ndjson(response)
        assert frames[-1]["type"] == "error"
        assert not any(frame["type"] == "complete" for frame in frames)


class TestSystemEndpoints:
    """Tests for health and root endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert set(body["pools"]) == {"model", "browser"}
        assert body["pools"]["model"]["max_concurrent"] == 10

    def test_root(self, client):
        assert client.get("/").json()["documentation"] == "/docs"
