"""Audit dispatch route for the Site Auditor API.

A single endpoint accepts every audit operation, selected by the ``mode``
field of the request body. Streaming modes answer with NDJSON frames;
the others answer with one JSON document.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from site_auditor.api.schemas import (
    AuditRequest,
    CaptureResponse,
    ErrorResponse,
    FinalizeResponse,
    PerformanceResponse,
    RequestMode,
    StoredAuditResponse,
)
from site_auditor.api.services import AuditService, get_audit_service
from site_auditor.audit.analysis.experts import CompetitorSide, ExpertInputs
from site_auditor.audit.analysis.performance import PerformanceResult
from site_auditor.audit.errors import AcquisitionError, AuditError, AuditNotFoundError, PersistenceError
from site_auditor.audit.pipeline.streaming import error_message

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"

router = APIRouter(
    prefix="/audit",
    tags=["Audit"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        404: {"model": ErrorResponse, "description": "Audit Not Found"},
        422: {"model": ErrorResponse, "description": "Validation Error"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    }
)


def _require(value: Any, name: str) -> Any:
    if value is None or value == "":
        raise HTTPException(status_code=400, detail=f"{name} is required.")
    return value


def _stream(lines) -> StreamingResponse:
    return StreamingResponse(lines, media_type=NDJSON_MEDIA_TYPE)


def _expert_inputs(body: AuditRequest) -> ExpertInputs:
    performance = None
    if body.performance_data is not None or body.performance_analysis_error:
        performance = PerformanceResult(metrics=body.performance_data, error=body.performance_analysis_error)
    return ExpertInputs(
        url=_require(body.url, "url"),
        text=body.live_text,
        screenshot=body.screenshot_base64,
        mobile_screenshot=body.mobile_screenshot_base64,
        mime_type=body.screenshot_mime_type,
        performance=performance,
        animation_hints=body.animation_data,
        heuristics=body.accessibility_data,
        rule_violations=body.axe_violations,
    )


@router.post(
    "",
    summary="Run an audit operation",
    description="""
    Dispatch one audit operation selected by `mode`:

    * `scrape-single-page`: capture screenshot, text and accessibility signals of one page
    * `scrape-performance`: look up lab performance metrics of one page
    * `analyze-strategy|ux|product|visual|accessibility`: run one expert (NDJSON stream)
    * `analyze-competitor`: compare a primary and a competitor site (NDJSON stream)
    * `contextual-rank`: pick the five most strategically critical issues of a report
    * `finalize`: persist a report and its screenshots
    * `get-audit`: fetch a finalized audit by ID
    * `run-audit`: run the whole pipeline for a list of inputs (NDJSON stream)
    """,
    response_model=None,
    responses={
        200: {"description": "JSON document, or NDJSON frames for streaming modes"},
    }
)
async def dispatch_audit(
    body: AuditRequest,
    http_request: Request,
    audit_service: AuditService = Depends(get_audit_service)
):
    """Dispatch an audit operation by mode."""
    request_id = getattr(http_request.state, "request_id", None)

    try:
        mode = body.request_mode()
    except ValueError:
        logger.warning(f"Invalid mode '{body.mode}'", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail="Invalid mode specified.")

    logger.info(f"Dispatching audit mode {mode.value}", extra={"request_id": request_id})

    if mode == RequestMode.SCRAPE_SINGLE_PAGE:
        url = _require(body.url, "url")
        try:
            evidence = await audit_service.capture(url, is_mobile=body.is_mobile, is_first_page=body.is_first_page)
        except AcquisitionError as e:
            raise HTTPException(status_code=500, detail=f"Scraping failed: {e.message}")
        return CaptureResponse(**evidence.model_dump())

    if mode == RequestMode.SCRAPE_PERFORMANCE:
        result = await audit_service.performance(_require(body.url, "url"))
        return PerformanceResponse(performance_data=result.metrics, error=result.error)

    if mode.expert_key is not None and mode != RequestMode.ANALYZE_COMPETITOR:
        return _stream(audit_service.analyze(mode.expert_key, _expert_inputs(body)))

    if mode == RequestMode.ANALYZE_COMPETITOR:
        primary = CompetitorSide(
            url=_require(body.primary_url, "primaryUrl"),
            text=body.primary_live_text,
            screenshot=body.primary_screenshot_base64,
        )
        competitor = CompetitorSide(
            url=_require(body.competitor_url, "competitorUrl"),
            text=body.competitor_live_text,
            screenshot=body.competitor_screenshot_base64,
        )
        return _stream(audit_service.analyze_competitor(primary, competitor, mime_type=body.screenshot_mime_type))

    if mode == RequestMode.CONTEXTUAL_RANK:
        report = _require(body.report, "report")
        try:
            return await audit_service.contextual_rank(report)
        except AuditError as e:
            raise HTTPException(status_code=500, detail=f"Contextual ranking failed: {error_message(e)}")

    if mode == RequestMode.FINALIZE:
        report = _require(body.report, "report")
        url = _require(body.url, "url")
        screenshots = [payload.to_screenshot() for payload in body.screenshots]
        try:
            saved = await audit_service.finalize(report, screenshots, url)
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=f"Finalization failed: {e.message}")
        return FinalizeResponse(**saved)

    if mode == RequestMode.GET_AUDIT:
        audit_id = _require(body.audit_id, "auditId")
        try:
            stored = await audit_service.get_audit(audit_id)
        except AuditNotFoundError:
            raise HTTPException(status_code=404, detail="Audit not found.")
        return StoredAuditResponse(**stored)

    # run-audit
    if not body.inputs:
        raise HTTPException(status_code=400, detail="inputs is required.")
    try:
        inputs = [payload.to_audit_input() for payload in body.inputs]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid input: {e}")
    return _stream(audit_service.run_audit(inputs, mode=body.audit_mode))
