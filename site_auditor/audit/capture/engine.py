"""Evidence capture worker coordinating browser sessions and page capture.

This module provides the EvidenceCaptureWorker that acquires a browser
ticket, runs page capture attempts with a small fixed backoff, and
guarantees that pages, browsers and tickets are released on every path.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .accessibility import AccessibilityRuleRunner
from .browser_factory import BrowserConfig, BrowserFactory, device_for
from .page_session import EvidencePageSession, PageSessionConfig
from ..errors import AcquisitionError
from ..models.capture import CapturedEvidence
from ..queue.semaphore import BoundedSemaphore, get_browser_semaphore
from ...config import get_settings

logger = logging.getLogger(__name__)


class CaptureWorkerConfig:
    """Configuration for the evidence capture worker."""

    def __init__(
        self,
        browser_config: Optional[BrowserConfig] = None,
        page_config: Optional[PageSessionConfig] = None,
        retries: int = 2,
        retry_delay_ms: int = 2000,
        rule_engine_script_url: Optional[str] = None,
        rule_engine_settle_ms: int = 2000
    ):
        """Initialize capture worker configuration.

        Args:
            browser_config: Browser factory configuration
            page_config: Page capture configuration
            retries: Extra attempts after the first failure
            retry_delay_ms: Fixed pause between attempts
            rule_engine_script_url: Location of the accessibility rule engine bundle
            rule_engine_settle_ms: Pause before running the rule engine
        """
        self.browser_config = browser_config or BrowserConfig()
        self.page_config = page_config or PageSessionConfig()
        self.retries = retries
        self.retry_delay_ms = retry_delay_ms
        self.rule_engine_script_url = rule_engine_script_url
        self.rule_engine_settle_ms = rule_engine_settle_ms

    @classmethod
    def from_settings(cls, settings=None) -> "CaptureWorkerConfig":
        """Build from the active audit settings."""
        settings = settings or get_settings()
        browser = settings.browser
        return cls(
            browser_config=BrowserConfig.from_settings(browser, remote_endpoint=settings.browser_endpoint),
            page_config=PageSessionConfig.from_settings(browser),
            retries=browser.capture_retries,
            retry_delay_ms=browser.capture_retry_delay_ms,
            rule_engine_script_url=browser.rule_engine_script_url,
            rule_engine_settle_ms=browser.rule_engine_settle_ms,
        )


class EvidenceCaptureWorker:
    """Produces one CapturedEvidence per (url, device class)."""

    def __init__(
        self,
        config: Optional[CaptureWorkerConfig] = None,
        semaphore: Optional[BoundedSemaphore] = None,
        browser_factory: Optional[BrowserFactory] = None,
        rule_runner: Optional[AccessibilityRuleRunner] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """Initialize capture worker.

        Args:
            config: Worker configuration (from settings when omitted)
            semaphore: Browser ticket pool (process-wide pool when omitted)
            browser_factory: Factory producing browser sessions
            rule_runner: Accessibility rule engine runner
            sleep: Awaitable taking seconds, used between attempts
        """
        self.config = config or CaptureWorkerConfig.from_settings()
        self._semaphore = semaphore
        self.browser_factory = browser_factory or BrowserFactory(self.config.browser_config)
        if rule_runner is None:
            rule_runner = AccessibilityRuleRunner(settle_ms=self.config.rule_engine_settle_ms)
            if self.config.rule_engine_script_url:
                rule_runner.script_url = self.config.rule_engine_script_url
        self.rule_runner = rule_runner
        self._sleep = sleep

        self._stats = {
            "captures_succeeded": 0,
            "captures_failed": 0,
            "attempts": 0,
        }

    @property
    def semaphore(self) -> BoundedSemaphore:
        if self._semaphore is None:
            self._semaphore = get_browser_semaphore()
        return self._semaphore

    async def capture(self, url: str, is_mobile: bool = False, is_first_page: bool = False) -> CapturedEvidence:
        """Capture evidence for ``url`` on one device class.

        Args:
            url: Page to capture
            is_mobile: Use the mobile device profile
            is_first_page: First input of the audit (enables heuristics on desktop)

        Returns:
            Captured evidence

        Raises:
            AcquisitionError: If every attempt failed
        """
        ticket = await self.semaphore.acquire()
        try:
            return await self._capture_with_retry(url, is_mobile, is_first_page)
        finally:
            self.semaphore.release(ticket)

    async def _capture_with_retry(self, url: str, is_mobile: bool, is_first_page: bool) -> CapturedEvidence:
        last_error: Optional[BaseException] = None
        total_attempts = self.config.retries + 1

        for attempt in range(1, total_attempts + 1):
            self._stats["attempts"] += 1
            try:
                logger.info(f"Capture attempt {attempt}/{total_attempts}: {url} (mobile={is_mobile})")
                evidence = await self._capture_single_attempt(url, is_mobile, is_first_page)
                self._stats["captures_succeeded"] += 1
                return evidence
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"Capture attempt {attempt} failed for {url}: {e}")
                if attempt < total_attempts:
                    await self._sleep(self.config.retry_delay_ms / 1000.0)

        self._stats["captures_failed"] += 1
        logger.error(f"All capture attempts failed for {url}: {last_error}")
        raise AcquisitionError(
            message=f"Capture failed for {url}: {last_error}",
            url=url,
            attempts=total_attempts
        ) from last_error

    async def _capture_single_attempt(self, url: str, is_mobile: bool, is_first_page: bool) -> CapturedEvidence:
        device = device_for(is_mobile)
        async with self.browser_factory.session() as browser_session:
            async with browser_session.page(device) as page:
                page_session = EvidencePageSession(
                    page,
                    device,
                    config=self.config.page_config,
                    rule_runner=self.rule_runner
                )
                return await page_session.capture(url, is_first_page=is_first_page)

    def get_stats(self) -> Dict[str, Any]:
        return dict(self._stats)
