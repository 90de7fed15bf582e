"""Shared test fixtures and configuration for Site Auditor tests."""

import base64

import pytest

from fakes import JPEG_BYTES, FakeCaptureWorker, FakeModelClient, no_sleep_policy
from site_auditor.api.services.audit_service import reset_audit_service
from site_auditor.audit.analysis.gateway import AnalysisGateway, ModelClient, reset_gateway
from site_auditor.audit.queue.semaphore import BoundedSemaphore, reset_semaphores
from site_auditor.config import reset_config
from site_auditor.persistence.repositories import InMemoryReportRepository
from site_auditor.persistence.service import FinalizeService
from site_auditor.persistence.storage import LocalArtifactStore

ENV_VARS = (
    "GEMINI_API_KEY",
    "API_KEY",
    "PAGESPEED_API_KEY",
    "BROWSER_ENDPOINT",
    "SITE_AUDITOR_STORAGE_BACKEND",
    "SITE_AUDITOR_DATABASE_URL",
    "SITE_AUDITOR_ARTIFACTS_PATH",
    "SITE_AUDITOR_PUBLIC_BASE_URL",
)


def _reset_globals():
    reset_config()
    reset_semaphores()
    reset_gateway()
    reset_audit_service()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Run every test against the test environment with fresh process-wide pools."""
    monkeypatch.setenv("SITE_AUDITOR_ENV", "test")
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    _reset_globals()
    yield
    _reset_globals()


@pytest.fixture
def fake_model_client():
    return FakeModelClient()


@pytest.fixture
def make_gateway():
    """Factory for gateways over a fake client with instant retries."""
    def factory(client: ModelClient, max_attempts: int = 2) -> AnalysisGateway:
        return AnalysisGateway(
            client,
            semaphore=BoundedSemaphore(10, name="test-model"),
            retry_policy=no_sleep_policy(max_attempts),
        )
    return factory


@pytest.fixture
def fake_capture_worker():
    return FakeCaptureWorker()


@pytest.fixture
def report_repository():
    return InMemoryReportRepository()


@pytest.fixture
def artifact_store(tmp_path):
    return LocalArtifactStore(str(tmp_path / "artifacts"), public_base_url="https://cdn.example.com")


@pytest.fixture
def finalize_service(report_repository, artifact_store):
    return FinalizeService(report_repository, artifact_store)


@pytest.fixture
def jpeg_base64():
    return base64.b64encode(JPEG_BYTES).decode("ascii")


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
