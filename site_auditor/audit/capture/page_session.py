"""Page session that turns one live page into captured evidence.

This module drives an already opened Playwright page through navigation,
layout normalization, the scroll-trigger pass, full-page capture and text
and heuristic extraction.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from .accessibility import AccessibilityRuleRunner
from .browser_factory import DeviceProfile
from ..models.capture import (
    AccessibilityHeuristics,
    CapturedEvidence,
    Screenshot,
)

logger = logging.getLogger(__name__)


class WaitStrategy:
    """Load states used while navigating."""
    DOMCONTENTLOADED = "domcontentloaded"
    NETWORKIDLE = "networkidle"


NORMALIZE_LAYOUT_JS = """
() => {
    document.querySelectorAll('*').forEach((el) => {
        const style = window.getComputedStyle(el);
        if (style.position === 'fixed' || style.position === 'sticky') {
            el.style.position = 'static';
        }
    });
    window.scrollTo(0, 0);
}
"""

SCROLL_PASS_JS = """
({ distance, intervalMs, maxScrolls }) => new Promise((resolve) => {
    if (maxScrolls <= 0) {
        resolve(0);
        return;
    }
    let totalHeight = 0;
    let scrolls = 0;
    const timer = setInterval(() => {
        const scrollHeight = document.body.scrollHeight;
        window.scrollBy(0, distance);
        totalHeight += distance;
        scrolls++;
        if (totalHeight >= scrollHeight || scrolls >= maxScrolls) {
            clearInterval(timer);
            resolve(scrolls);
        }
    }, intervalMs);
})
"""

EXTRACT_PAGE_DATA_JS = """
(withHeuristics) => {
    const text = document.body ? document.body.innerText : '';
    if (!withHeuristics) {
        return { text, animationHints: null, heuristics: null };
    }
    const describe = (el) => {
        let selector = el.tagName.toLowerCase();
        if (el.id) selector += `#${el.id}`;
        if (el.className && typeof el.className === 'string') {
            const classes = el.className.split(' ').filter((c) => c);
            if (classes.length) selector += `.${classes.join('.')}`;
        }
        return selector;
    };
    const animationHints = Array.from(document.querySelectorAll('*')).filter((el) => {
        const style = window.getComputedStyle(el);
        const transition = style.getPropertyValue('transition-property');
        return style.getPropertyValue('animation-name') !== 'none'
            || (transition !== 'all' && transition !== '');
    }).slice(0, MAX_HINTS).map(describe);

    const unlabelledWithoutId = Array.from(document.querySelectorAll('input:not([id]), textarea:not([id])'))
        .filter((el) => !el.closest('label')).length;
    const unlabelledWithId = Array.from(document.querySelectorAll('input[id], textarea[id]'))
        .filter((el) => !document.querySelector(`label[for="${CSS.escape(el.id)}"]`)).length;

    return {
        text,
        animationHints,
        heuristics: {
            images_missing_alt: document.querySelectorAll('img:not([alt])').length,
            inputs_missing_labels: unlabelledWithoutId + unlabelledWithId,
            has_semantic_elements: !!document.querySelector('main, nav, header, footer, article, section, aside'),
            has_aria_attributes: !!document.querySelector('[role], [aria-label], [aria-labelledby], [aria-describedby]'),
        },
    };
}
"""

MAX_ANIMATION_HINTS = 20


class PageSessionConfig:
    """Configuration for one evidence capture on a page."""

    def __init__(
        self,
        navigation_timeout_ms: int = 300000,
        network_idle_best_effort: bool = True,
        network_idle_timeout_ms: int = 5000,
        scroll_step_px: int = 250,
        scroll_interval_ms: int = 500,
        max_scrolls: int = 40,
        screenshot_quality: int = 50,
        rule_engine_enabled: bool = True
    ):
        """Initialize page session configuration.

        Args:
            navigation_timeout_ms: Timeout for the initial navigation
            network_idle_best_effort: Wait briefly for network quiescence after load
            network_idle_timeout_ms: Upper bound for that wait
            scroll_step_px: Distance of each scroll step
            scroll_interval_ms: Delay between scroll steps
            max_scrolls: Iteration cap for the scroll pass
            screenshot_quality: JPEG quality of the full-page capture
            rule_engine_enabled: Run the accessibility rule engine on first desktop pass
        """
        self.navigation_timeout_ms = navigation_timeout_ms
        self.network_idle_best_effort = network_idle_best_effort
        self.network_idle_timeout_ms = network_idle_timeout_ms
        self.scroll_step_px = scroll_step_px
        self.scroll_interval_ms = scroll_interval_ms
        self.max_scrolls = max_scrolls
        self.screenshot_quality = screenshot_quality
        self.rule_engine_enabled = rule_engine_enabled

    @classmethod
    def from_settings(cls, settings) -> "PageSessionConfig":
        """Build from ``BrowserSettings`` loaded from configuration."""
        return cls(
            navigation_timeout_ms=settings.navigation_timeout_ms,
            network_idle_best_effort=settings.network_idle_best_effort,
            network_idle_timeout_ms=settings.network_idle_timeout_ms,
            scroll_step_px=settings.scroll_step_px,
            scroll_interval_ms=settings.scroll_interval_ms,
            max_scrolls=settings.max_scrolls,
            screenshot_quality=settings.screenshot_quality,
            rule_engine_enabled=settings.rule_engine_enabled,
        )


class EvidencePageSession:
    """Captures evidence for one (url, device class) pair on an open page."""

    def __init__(
        self,
        page: Page,
        device: DeviceProfile,
        config: Optional[PageSessionConfig] = None,
        rule_runner: Optional[AccessibilityRuleRunner] = None
    ):
        self.page = page
        self.device = device
        self.config = config or PageSessionConfig()
        self.rule_runner = rule_runner

    async def capture(self, url: str, is_first_page: bool = False) -> CapturedEvidence:
        """Run the capture steps against ``url``.

        Args:
            url: Page to capture
            is_first_page: Whether this is the first input of the audit

        Returns:
            Captured evidence; heuristic and rule-engine fields are populated
            only for the first input's desktop pass
        """
        first_desktop = is_first_page and not self.device.is_mobile

        await self._navigate(url)
        await self._wait_for_network_idle()
        await self._normalize_layout()
        await self._scroll_pass()

        image = await self.page.screenshot(
            type='jpeg',
            quality=self.config.screenshot_quality,
            full_page=True
        )
        screenshot = Screenshot.from_bytes(
            image,
            path=urlparse(url).path or '/',
            is_mobile=self.device.is_mobile
        )

        page_data = await self._extract_page_data(first_desktop)

        evidence = CapturedEvidence(
            screenshot=screenshot,
            text=page_data.get('text') or '',
        )
        if first_desktop:
            evidence.animation_hints = list(page_data.get('animationHints') or [])[:MAX_ANIMATION_HINTS]
            evidence.accessibility_heuristics = AccessibilityHeuristics(**(page_data.get('heuristics') or {}))
            if self.config.rule_engine_enabled and self.rule_runner is not None:
                evidence.rule_results = await self.rule_runner.run(self.page)

        logger.info(f"Captured {self.device.name} evidence for {url} ({len(evidence.text)} chars of text)")
        return evidence

    async def _navigate(self, url: str) -> None:
        logger.debug(f"Navigating to {url} ({self.device.name})")
        await self.page.goto(
            url,
            wait_until=WaitStrategy.DOMCONTENTLOADED,
            timeout=self.config.navigation_timeout_ms
        )

    async def _wait_for_network_idle(self) -> None:
        """Best-effort wait for network quiescence; a timeout is not fatal."""
        if not self.config.network_idle_best_effort:
            return
        try:
            await self.page.wait_for_load_state(
                WaitStrategy.NETWORKIDLE,
                timeout=self.config.network_idle_timeout_ms
            )
        except PlaywrightTimeoutError:
            logger.debug("Network idle wait timed out, continuing")

    async def _normalize_layout(self) -> None:
        await self.page.evaluate(NORMALIZE_LAYOUT_JS)

    async def _scroll_pass(self) -> int:
        scrolls = await self.page.evaluate(SCROLL_PASS_JS, {
            'distance': self.config.scroll_step_px,
            'intervalMs': self.config.scroll_interval_ms,
            'maxScrolls': self.config.max_scrolls,
        })
        logger.debug(f"Scroll pass finished after {scrolls} steps")
        return scrolls or 0

    async def _extract_page_data(self, with_heuristics: bool) -> Dict[str, Any]:
        script = EXTRACT_PAGE_DATA_JS.replace('MAX_HINTS', str(MAX_ANIMATION_HINTS))
        result = await self.page.evaluate(script, with_heuristics)
        return result or {}
