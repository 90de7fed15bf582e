"""Audit pipeline coordinator.

Runs one audit end to end: sequential evidence acquisition, concurrent
expert analysis under a per-audit limiter, contextual re-ranking and
finalization. Progress is written to a FrameStream as the audit moves
through its states.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..analysis import prompts
from ..analysis.experts import CompetitorSide, ExpertInputs, run_competitor_analysis, run_expert
from ..analysis.gateway import AnalysisGateway, get_gateway
from ..analysis.performance import PerformanceClient, PerformanceResult
from ..analysis.ranking import ContextualRanker
from ..capture.engine import EvidenceCaptureWorker
from ..errors import AcquisitionError, FatalAcquisitionError, PersistenceError
from ..models.capture import (
    AccessibilityHeuristics,
    AuditInput,
    CapturedEvidence,
    InputKind,
    InputRole,
    RuleEngineResults,
    Screenshot,
)
from ..models.report import CONTEXTUAL_ISSUES_KEY, STANDARD_EXPERTS, AuditMode, AuditReport, ExpertKey
from ..queue.semaphore import create_section_limiter
from .streaming import FrameStream, error_message, run_section
from ...config import AuditSettings, get_settings

logger = logging.getLogger(__name__)

MANUAL_INPUT_LABEL = "Manual Input"
UPLOAD_PATH = "upload"

# Leading bytes of base64-encoded image formats.
_BASE64_SIGNATURES = [
    ("iVBORw0KGgo", "image/png"),
    ("/9j/", "image/jpeg"),
    ("R0lGOD", "image/gif"),
    ("UklGR", "image/webp"),
]


def image_mime_type(data: Optional[str], default: str = "image/jpeg") -> str:
    """Guess the MIME type of a base64 image payload."""
    for signature, mime_type in _BASE64_SIGNATURES:
        if data and data.startswith(signature):
            return mime_type
    return default


class PipelineState(str, Enum):
    """Lifecycle of one audit."""
    ACQUIRING = "acquiring"
    ANALYZING = "analyzing"
    RERANKING = "reranking"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class AuditContext:
    """Per-audit state threaded through every stage.

    First-desktop-pass signals (animation hints, heuristics and rule engine
    results) live here so concurrent audits never share them.
    """

    def __init__(self, inputs: List[AuditInput], mode: AuditMode = AuditMode.STANDARD):
        self.inputs = inputs
        self.mode = AuditMode(mode)
        self.state = PipelineState.ACQUIRING
        self.report = AuditReport()
        self.screenshots: List[Screenshot] = []
        self.text = ""
        self.acquired = 0
        self.animation_hints: Optional[List[str]] = None
        self.heuristics: Optional[AccessibilityHeuristics] = None
        self.rule_results: Optional[RuleEngineResults] = None
        self.performance: Optional[PerformanceResult] = None
        self.audit_id: Optional[str] = None
        self.screenshot_url: Optional[str] = None
        self.error: Optional[str] = None
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None

    @property
    def primary_url(self) -> str:
        first = self.inputs[0] if self.inputs else None
        if first is not None and first.kind == InputKind.URL:
            return first.url
        return MANUAL_INPUT_LABEL

    def add_evidence(self, evidence: CapturedEvidence, source_url: str) -> None:
        self.screenshots.append(evidence.screenshot)
        self.acquired += 1
        if evidence.is_mobile:
            return
        self.text += prompts.content_block(source_url, evidence.text)
        if evidence.animation_hints is not None:
            self.animation_hints = evidence.animation_hints
        if evidence.accessibility_heuristics is not None:
            self.heuristics = evidence.accessibility_heuristics
        if evidence.rule_results is not None:
            self.rule_results = evidence.rule_results

    def add_upload(self, screenshot: Screenshot) -> None:
        self.screenshots.append(screenshot)
        self.acquired += 1

    def primary_screenshot(self) -> Optional[Screenshot]:
        desktop = [shot for shot in self.screenshots if not shot.is_mobile]
        if desktop:
            return desktop[0]
        return self.screenshots[0] if self.screenshots else None

    def mobile_screenshot(self) -> Optional[Screenshot]:
        return next((shot for shot in self.screenshots if shot.is_mobile), None)

    def expert_inputs(self) -> ExpertInputs:
        primary = self.primary_screenshot()
        mobile = self.mobile_screenshot()
        return ExpertInputs(
            url=self.primary_url,
            text=self.text,
            screenshot=primary.data if primary else None,
            mobile_screenshot=mobile.data if mobile else None,
            mime_type=image_mime_type(primary.data if primary else None),
            performance=self.performance,
            animation_hints=self.animation_hints,
            heuristics=self.heuristics,
            rule_violations=self.rule_results.violations if self.rule_results else None,
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "state": self.state.value,
            "acquired": self.acquired,
            "sections": [key.value for key in self.report.keys()],
            "audit_id": self.audit_id,
            "error": self.error,
        }


class AuditPipeline:
    """Coordinates acquisition, analysis, ranking and finalization."""

    def __init__(
        self,
        capture_worker: Optional[EvidenceCaptureWorker] = None,
        gateway: Optional[AnalysisGateway] = None,
        performance_client: Optional[PerformanceClient] = None,
        finalize_service: Optional[Any] = None,
        ranker: Optional[ContextualRanker] = None,
        settings: Optional[AuditSettings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """Initialize pipeline.

        Args:
            capture_worker: Evidence capture worker
            gateway: Analysis call gateway
            performance_client: PageSpeed client; None disables the lookup
                unless enabled in settings
            finalize_service: Persistence collaborator exposing ``finalize``
            ranker: Contextual ranker (built on the gateway when omitted)
            settings: Audit settings (active settings when omitted)
            sleep: Awaitable taking seconds, used for the competitor pause
        """
        self.settings = settings or get_settings()
        self.capture_worker = capture_worker or EvidenceCaptureWorker()
        self.gateway = gateway or get_gateway()
        if performance_client is None and self.settings.performance.enabled:
            performance_client = PerformanceClient.from_settings(self.settings)
        self.performance_client = performance_client
        if finalize_service is None:
            # Imported lazily to keep the audit package free of storage imports.
            from ...persistence.service import FinalizeService
            finalize_service = FinalizeService.from_config()
        self.finalize_service = finalize_service
        self.ranker = ranker or ContextualRanker(self.gateway)
        self._sleep = sleep

    async def run(
        self,
        inputs: List[AuditInput],
        mode: AuditMode = AuditMode.STANDARD,
        stream: Optional[FrameStream] = None
    ) -> AuditContext:
        """Run one audit, writing frames to ``stream`` and closing it at the end.

        Hard failures (no input acquired, persistence failure) produce an
        error frame and no completion frame; they are not raised.

        Returns:
            The finished audit context
        """
        stream = stream or FrameStream()
        context = AuditContext(inputs, mode)
        logger.info(f"Starting {context.mode.value} audit of {len(inputs)} input(s)")

        try:
            if context.mode == AuditMode.COMPETITOR:
                await self._run_competitor(context, stream)
            else:
                await self._run_standard(context, stream)

            await self._finalize(context, stream)
        except (FatalAcquisitionError, PersistenceError) as e:
            self._fail(context, stream, e)
        except asyncio.CancelledError:
            context.state = PipelineState.FAILED
            logger.warning("Audit cancelled")
            raise
        except Exception as e:
            logger.exception("Audit failed unexpectedly")
            self._fail(context, stream, e)
        finally:
            context.finished_at = datetime.now(timezone.utc)
            stream.close()

        logger.info(f"Audit finished: {context.summary()}")
        return context

    def _fail(self, context: AuditContext, stream: FrameStream, error: Exception) -> None:
        context.error = error_message(error)
        logger.error(f"Audit failed in {context.state.value}: {context.error}")
        context.state = PipelineState.FAILED
        stream.error(context.error)

    # Acquisition

    async def _capture(
        self,
        context: AuditContext,
        stream: FrameStream,
        url: str,
        is_mobile: bool,
        is_first_page: bool
    ) -> bool:
        device = "mobile" if is_mobile else "desktop"
        try:
            evidence = await self.capture_worker.capture(url, is_mobile=is_mobile, is_first_page=is_first_page)
        except AcquisitionError as e:
            logger.warning(f"Skipping {device} capture of {url}: {e}")
            stream.status(f"Failed to scrape {url} ({device}). Skipping.")
            return False
        context.add_evidence(evidence, url)
        return True

    def _acquire_upload(self, context: AuditContext, stream: FrameStream, audit_input: AuditInput) -> int:
        acquired = 0
        for payload in audit_input.upload_payloads:
            try:
                screenshot = Screenshot.from_upload(payload, path=UPLOAD_PATH)
            except ValueError as e:
                logger.warning(f"Skipping uploaded image: {e}")
                stream.status("Failed to process an uploaded image.")
                continue
            context.add_upload(screenshot)
            acquired += 1
        return acquired

    async def _acquire_all(self, context: AuditContext, stream: FrameStream) -> None:
        stream.status("Processing inputs...")
        total = len(context.inputs)
        for index, audit_input in enumerate(context.inputs):
            is_first = index == 0
            if audit_input.kind == InputKind.URL:
                stream.status(f"Scraping URL {index + 1}/{total}: {audit_input.url}")
                await self._capture(context, stream, audit_input.url, is_mobile=False, is_first_page=is_first)
                if is_first:
                    await self._capture(context, stream, audit_input.url, is_mobile=True, is_first_page=False)
            else:
                stream.status("Processing uploaded image(s)...")
                self._acquire_upload(context, stream, audit_input)

        if context.acquired == 0:
            raise FatalAcquisitionError()

    async def _lookup_performance(self, context: AuditContext) -> Optional[PerformanceResult]:
        first = context.inputs[0] if context.inputs else None
        if self.performance_client is None or first is None or first.kind != InputKind.URL:
            return None
        return await self.performance_client.fetch(first.url)

    # Standard mode

    async def _run_standard(self, context: AuditContext, stream: FrameStream) -> None:
        performance_task = asyncio.create_task(self._lookup_performance(context))
        try:
            await self._acquire_all(context, stream)
        except BaseException:
            performance_task.cancel()
            raise
        context.performance = await performance_task
        if context.performance is not None and context.performance.error:
            stream.status(f"Performance metrics unavailable: {context.performance.error}")

        context.state = PipelineState.ANALYZING
        stream.status("Data acquired. Beginning AI analysis...")
        await self._analyze(context, stream)

        context.state = PipelineState.RERANKING
        await self._rerank(context, stream)

    async def _analyze(self, context: AuditContext, stream: FrameStream) -> None:
        inputs = context.expert_inputs()
        limiter = create_section_limiter()

        def section(key: ExpertKey) -> Callable[[], Awaitable[Dict[str, Any]]]:
            return lambda: run_expert(self.gateway, key, inputs)

        results = await asyncio.gather(*[
            run_section(stream, key, section(key), limiter=limiter)
            for key in STANDARD_EXPERTS
        ])
        for key, result in zip(STANDARD_EXPERTS, results):
            if result is not None:
                context.report.set_result(key, result)

    async def _rerank(self, context: AuditContext, stream: FrameStream) -> None:
        stream.status("Analyzing issues for strategic impact...")
        try:
            issues = await self.ranker.rank(context.report)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Contextual ranking failed, omitting contextual issues: {e}")
            stream.status("Contextual ranking skipped due to error.")
            return
        context.report.set_contextual_issues(issues)
        stream.data(CONTEXTUAL_ISSUES_KEY, issues)

    # Competitor mode

    def _competitor_pair(self, inputs: List[AuditInput]) -> List[AuditInput]:
        primary = next((item for item in inputs if item.role == InputRole.PRIMARY), None)
        competitor = next((item for item in inputs if item.role == InputRole.COMPETITOR), None)
        if primary is None or competitor is None:
            if len(inputs) < 2:
                raise FatalAcquisitionError("Competitor analysis requires 2 inputs.")
            primary, competitor = inputs[0], inputs[1]
        return [primary, competitor]

    async def _acquire_side(
        self, audit_input: AuditInput, label: str, stream: FrameStream
    ) -> Tuple[CompetitorSide, Screenshot]:
        stream.status(f"Processing {label}...")
        if audit_input.kind == InputKind.UPLOAD:
            screenshot = Screenshot.from_upload(audit_input.upload_payloads[0], path=UPLOAD_PATH)
            return CompetitorSide(url=MANUAL_INPUT_LABEL, screenshot=screenshot.data), screenshot

        stream.status(f"Scraping {label}: {audit_input.url}...")
        evidence = await self.capture_worker.capture(audit_input.url, is_mobile=False, is_first_page=False)
        side = CompetitorSide(url=audit_input.url, text=evidence.text, screenshot=evidence.screenshot.data)
        return side, evidence.screenshot

    async def _run_competitor(self, context: AuditContext, stream: FrameStream) -> None:
        stream.status("Scraping Primary and Competitor sites...")
        primary_input, competitor_input = self._competitor_pair(context.inputs)
        context.inputs = [primary_input, competitor_input]

        # Sides are acquired strictly one after the other.
        try:
            primary, primary_shot = await self._acquire_side(primary_input, "Primary Site", stream)
            await self._sleep(self.settings.concurrency.competitor_acquisition_pause_ms / 1000)
            competitor, competitor_shot = await self._acquire_side(competitor_input, "Competitor Site", stream)
        except (AcquisitionError, ValueError) as e:
            raise FatalAcquisitionError(f"Data acquisition failed: {error_message(e)}") from e

        context.add_upload(primary_shot)
        context.add_upload(competitor_shot)
        context.text = prompts.content_block(primary.url, primary.text) + prompts.content_block(
            competitor.url, competitor.text
        )

        context.state = PipelineState.ANALYZING
        stream.status("Input data acquired. Beginning comparative analysis...")
        result = await run_section(
            stream,
            ExpertKey.COMPETITOR,
            lambda: run_competitor_analysis(
                self.gateway,
                primary,
                competitor,
                mime_type=image_mime_type(primary.screenshot),
                content_limit=self.settings.model.competitor_content_limit,
            ),
        )
        if result is not None:
            context.report.set_result(ExpertKey.COMPETITOR, result)

    # Finalization

    async def _finalize(self, context: AuditContext, stream: FrameStream) -> None:
        context.state = PipelineState.FINALIZING
        context.report.freeze()
        stream.status("All analyses complete. Finalizing report...")

        document = context.report.to_dict()
        saved = await self.finalize_service.finalize(document, context.screenshots, context.primary_url)

        context.audit_id = saved["auditId"]
        context.screenshot_url = saved.get("screenshotUrl")
        context.state = PipelineState.DONE
        stream.complete({
            "auditId": context.audit_id,
            "screenshotUrl": context.screenshot_url,
            "report": document,
        })
