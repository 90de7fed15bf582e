"""Unit tests for audit input, evidence and report models."""

import pytest
from pydantic import ValidationError

from fakes import JPEG_BYTES, PNG_BYTES
from site_auditor.audit.models.capture import AuditInput, InputKind, Screenshot, decode_base64
from site_auditor.audit.models.report import (
    CONTEXTUAL_ISSUES_KEY,
    AuditReport,
    ExpertKey,
    ReportFrozenError,
)
from site_auditor.audit.pipeline.coordinator import image_mime_type


class TestAuditInput:
    """Tests for AuditInput."""

    def test_url_input(self):
        audit_input = AuditInput(kind=InputKind.URL, url="https://example.com")

        assert audit_input.label == "https://example.com"
        assert audit_input.upload_payloads == []

    def test_invalid_url_rejected(self):
        with pytest.raises(ValidationError):
            AuditInput(kind=InputKind.URL, url="ftp://example.com")

    def test_url_input_requires_url(self):
        with pytest.raises(ValidationError):
            AuditInput(kind=InputKind.URL)

    def test_upload_requires_bytes(self):
        with pytest.raises(ValidationError):
            AuditInput(kind=InputKind.UPLOAD)

    def test_upload_payloads(self):
        single = AuditInput(kind=InputKind.UPLOAD, file_bytes=JPEG_BYTES)
        several = AuditInput(kind=InputKind.UPLOAD, files=[JPEG_BYTES, PNG_BYTES])

        assert single.upload_payloads == [JPEG_BYTES]
        assert several.upload_payloads == [JPEG_BYTES, PNG_BYTES]
        assert single.label == "uploaded image"


class TestDecodeBase64:
    """Tests for decode_base64."""

    def test_data_url(self, jpeg_base64):
        assert decode_base64(f"data:image/jpeg;base64,{jpeg_base64}").startswith(b"\xff\xd8")

    def test_invalid(self):
        with pytest.raises(ValueError):
            decode_base64("%%%")


class TestScreenshot:
    """Tests for Screenshot."""

    def test_from_bytes(self):
        shot = Screenshot.from_bytes(JPEG_BYTES, path="/pricing", is_mobile=True)

        assert shot.image_bytes() == JPEG_BYTES
        assert shot.data.startswith("/9j/")
        assert image_mime_type(shot.data) == "image/jpeg"
        assert image_mime_type(Screenshot.from_bytes(PNG_BYTES, path="upload").data) == "image/png"

    def test_from_upload_decodes_base64(self, jpeg_base64):
        shot = Screenshot.from_upload(f"data:image/jpeg;base64,{jpeg_base64}", path="upload")

        assert shot.image_bytes() == JPEG_BYTES
        assert shot.data == jpeg_base64

    def test_from_upload_accepts_raw_bytes(self):
        assert Screenshot.from_upload(PNG_BYTES, path="upload").image_bytes() == PNG_BYTES

    def test_from_upload_rejects_bad_payload(self):
        with pytest.raises(ValueError):
            Screenshot.from_upload("not base64!!", path="upload")
        with pytest.raises(ValueError):
            Screenshot.from_upload(b"", path="upload")

    def test_without_data(self):
        with pytest.raises(ValueError):
            Screenshot(path="/").image_bytes()

    def test_unknown_mime_defaults_to_jpeg(self):
        assert image_mime_type("AAAA") == "image/jpeg"
        assert image_mime_type(None) == "image/jpeg"


class TestAuditReport:
    """Tests for AuditReport."""

    def test_one_result_per_key(self):
        report = AuditReport()
        report.set_result(ExpertKey.UX, {"Score": 1})

        with pytest.raises(ValueError):
            report.set_result(ExpertKey.UX, {"Score": 2})
        assert report.get(ExpertKey.UX) == {"Score": 1}

    def test_results_are_copied(self):
        report = AuditReport()
        result = {"Score": 1}
        report.set_result("ux", result)
        result["Score"] = 5

        assert report.get("ux") == {"Score": 1}

    def test_frozen_report_rejects_changes(self):
        report = AuditReport()
        report.freeze()

        with pytest.raises(ReportFrozenError):
            report.set_result(ExpertKey.UX, {"Score": 1})
        with pytest.raises(ReportFrozenError):
            report.set_contextual_issues([])

    def test_dict_round_trip(self):
        report = AuditReport()
        report.set_result(ExpertKey.STRATEGY, {"Purpose": "sell"})
        report.set_contextual_issues([{"Issue": "x"}])

        document = report.to_dict()
        restored = AuditReport.from_dict({**document, "screenshots": []})

        assert document == {"strategy": {"Purpose": "sell"}, CONTEXTUAL_ISSUES_KEY: [{"Issue": "x"}]}
        assert restored.to_dict() == document
        assert ExpertKey.STRATEGY in restored
        assert "unknown" not in restored
        assert len(restored) == 1

    def test_expert_labels(self):
        assert ExpertKey.VISUAL.label == "Visual Audit expert"
        assert ExpertKey.COMPETITOR.label == "Competitor Analysis expert"
