"""Audit service layer for the Site Auditor API.

This module maps each request mode onto the audit engine: evidence capture,
performance lookup, single-expert analysis, competitor comparison,
contextual ranking, finalization, retrieval and full pipeline runs.
Streaming operations run as background tasks writing to a FrameStream;
callers consume the stream as NDJSON lines.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

from site_auditor.audit.analysis.experts import CompetitorSide, ExpertInputs, run_competitor_analysis, run_expert
from site_auditor.audit.analysis.gateway import AnalysisGateway, get_gateway
from site_auditor.audit.analysis.performance import PerformanceClient, PerformanceResult
from site_auditor.audit.analysis.ranking import ContextualRanker
from site_auditor.audit.capture.engine import EvidenceCaptureWorker
from site_auditor.audit.models.capture import AuditInput, CapturedEvidence, Screenshot
from site_auditor.audit.models.report import AuditMode, ExpertKey
from site_auditor.audit.pipeline.coordinator import AuditPipeline
from site_auditor.audit.pipeline.streaming import FrameStream, run_section
from site_auditor.config import get_settings
from site_auditor.persistence.service import FinalizeService

logger = logging.getLogger(__name__)


class AuditService:
    """Service layer for audit operations.

    Collaborators are created on first use so that tests and alternative
    deployments can inject their own.
    """

    def __init__(
        self,
        capture_worker: Optional[EvidenceCaptureWorker] = None,
        gateway: Optional[AnalysisGateway] = None,
        performance_client: Optional[PerformanceClient] = None,
        finalize_service: Optional[FinalizeService] = None
    ):
        self._capture_worker = capture_worker
        self._gateway = gateway
        self._performance_client = performance_client
        self._finalize_service = finalize_service
        self._tasks: Set[asyncio.Task] = set()

    @property
    def capture_worker(self) -> EvidenceCaptureWorker:
        if self._capture_worker is None:
            self._capture_worker = EvidenceCaptureWorker()
        return self._capture_worker

    @property
    def gateway(self) -> AnalysisGateway:
        if self._gateway is None:
            self._gateway = get_gateway()
        return self._gateway

    @property
    def performance_client(self) -> PerformanceClient:
        if self._performance_client is None:
            self._performance_client = PerformanceClient.from_settings()
        return self._performance_client

    @property
    def finalize_service(self) -> FinalizeService:
        if self._finalize_service is None:
            self._finalize_service = FinalizeService.from_config()
        return self._finalize_service

    # Non-streaming operations

    async def capture(self, url: str, is_mobile: bool = False, is_first_page: bool = False) -> CapturedEvidence:
        """Capture evidence for one page.

        Raises:
            AcquisitionError: If every capture attempt failed
        """
        return await self.capture_worker.capture(url, is_mobile=is_mobile, is_first_page=is_first_page)

    async def performance(self, url: str) -> PerformanceResult:
        return await self.performance_client.fetch(url)

    async def contextual_rank(self, report: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Select the five most strategically critical issues of a report.

        Raises:
            GenerationError: If the ranking call fails
            ResponseParseError: If its response cannot be recovered
        """
        return await ContextualRanker(self.gateway).rank(report)

    async def finalize(self, report: Dict[str, Any], screenshots: List[Screenshot], url: str) -> Dict[str, Any]:
        """Persist a report.

        Raises:
            PersistenceError: If storing screenshots or the record fails
        """
        return await self.finalize_service.finalize(report, screenshots, url)

    async def get_audit(self, audit_id: str) -> Dict[str, Any]:
        """Load a finalized audit.

        Raises:
            AuditNotFoundError: If no audit has this ID
        """
        return await self.finalize_service.fetch(audit_id)

    # Streaming operations

    def _start(self, producer: Callable[[FrameStream], Awaitable[Any]]) -> FrameStream:
        """Run ``producer`` in the background and return the stream it writes."""
        stream = FrameStream()

        async def run() -> None:
            try:
                await producer(stream)
            except Exception as e:
                logger.error(f"Stream producer failed: {e}", exc_info=True)
            finally:
                stream.close()

        # Work continues even if the client stops reading the stream.
        task = asyncio.create_task(run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return stream

    def analyze(self, key: ExpertKey, inputs: ExpertInputs) -> AsyncIterator[str]:
        """Stream one expert analysis as NDJSON."""
        key = ExpertKey(key)

        async def produce(stream: FrameStream) -> None:
            await run_section(stream, key, lambda: run_expert(self.gateway, key, inputs))

        return self._start(produce).ndjson()

    def analyze_competitor(
        self,
        primary: CompetitorSide,
        competitor: CompetitorSide,
        mime_type: str = "image/jpeg"
    ) -> AsyncIterator[str]:
        """Stream a competitor comparison as NDJSON."""
        content_limit = get_settings().model.competitor_content_limit

        async def produce(stream: FrameStream) -> None:
            await run_section(
                stream,
                ExpertKey.COMPETITOR,
                lambda: run_competitor_analysis(
                    self.gateway, primary, competitor, mime_type=mime_type, content_limit=content_limit
                ),
            )

        return self._start(produce).ndjson()

    def run_audit(self, inputs: List[AuditInput], mode: AuditMode = AuditMode.STANDARD) -> AsyncIterator[str]:
        """Stream a full audit run as NDJSON."""
        pipeline = AuditPipeline(
            capture_worker=self.capture_worker,
            gateway=self.gateway,
            performance_client=self._performance_client,
            finalize_service=self.finalize_service,
        )

        async def produce(stream: FrameStream) -> None:
            # The pipeline closes the stream itself.
            await pipeline.run(inputs, mode=mode, stream=stream)

        return self._start(produce).ndjson()

    async def drain(self) -> None:
        """Wait for all background streams to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


_audit_service_instance: Optional[AuditService] = None


def get_audit_service() -> AuditService:
    """Dependency providing the shared audit service instance."""
    global _audit_service_instance
    if _audit_service_instance is None:
        _audit_service_instance = AuditService()
    return _audit_service_instance


def reset_audit_service() -> None:
    global _audit_service_instance
    _audit_service_instance = None
