"""Browser factory for obtaining Playwright browser sessions.

This module provides the BrowserFactory class that hands out one browser
session per capture attempt, either by launching a local browser or by
attaching to a shared remote automation endpoint. A locally launched
browser is fully closed on release; a remote browser is only disconnected
because the remote pool owns its lifecycle.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)


class BrowserEngineType:
    """Supported browser engine types."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class DeviceProfile:
    """Viewport and input capabilities for one device class."""

    def __init__(
        self,
        name: str,
        width: int,
        height: int,
        is_mobile: bool = False,
        has_touch: bool = False
    ):
        self.name = name
        self.width = width
        self.height = height
        self.is_mobile = is_mobile
        self.has_touch = has_touch

    def to_context_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser context options."""
        options: Dict[str, Any] = {
            'viewport': {'width': self.width, 'height': self.height},
        }
        if self.is_mobile:
            options['is_mobile'] = True
        if self.has_touch:
            options['has_touch'] = True
        return options

    def __repr__(self) -> str:
        return f"DeviceProfile({self.name}, {self.width}x{self.height})"


DESKTOP = DeviceProfile("desktop", 1920, 1080)
MOBILE = DeviceProfile("mobile", 390, 844, is_mobile=True, has_touch=True)


def device_for(is_mobile: bool) -> DeviceProfile:
    return MOBILE if is_mobile else DESKTOP


class BrowserConfig:
    """Configuration for browser creation and page setup."""

    def __init__(
        self,
        engine: str = BrowserEngineType.CHROMIUM,
        headless: bool = True,
        launch_args: Optional[List[str]] = None,
        remote_endpoint: Optional[str] = None,
        user_agent: Optional[str] = None,
        navigation_timeout_ms: int = 300000,
        ignore_https_errors: bool = False
    ):
        """Initialize browser configuration.

        Args:
            engine: Browser engine to use (chromium, firefox, webkit)
            headless: Run a locally launched browser in headless mode
            launch_args: Extra command line arguments for local launches
            remote_endpoint: CDP endpoint to attach to instead of launching
            user_agent: Identification string sent with every request
            navigation_timeout_ms: Default navigation timeout for pages
            ignore_https_errors: Ignore SSL/TLS certificate errors
        """
        self.engine = engine
        self.headless = headless
        self.launch_args = launch_args or []
        self.remote_endpoint = remote_endpoint
        self.user_agent = user_agent
        self.navigation_timeout_ms = navigation_timeout_ms
        self.ignore_https_errors = ignore_https_errors

    @property
    def is_remote(self) -> bool:
        return bool(self.remote_endpoint)

    def to_browser_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        options: Dict[str, Any] = {'headless': self.headless}
        if self.launch_args:
            options['args'] = list(self.launch_args)
        return options

    def to_context_options(self, device: DeviceProfile) -> Dict[str, Any]:
        """Convert to Playwright browser context options for a device class."""
        options = device.to_context_options()
        if self.user_agent:
            options['user_agent'] = self.user_agent
        if self.ignore_https_errors:
            options['ignore_https_errors'] = True
        return options

    @classmethod
    def from_settings(cls, settings, remote_endpoint: Optional[str] = None) -> "BrowserConfig":
        """Build from ``BrowserSettings`` loaded from configuration."""
        return cls(
            engine=settings.engine,
            headless=settings.headless,
            launch_args=settings.launch_args,
            remote_endpoint=remote_endpoint or settings.remote_endpoint,
            user_agent=settings.user_agent,
            navigation_timeout_ms=settings.navigation_timeout_ms,
        )


class BrowserSession:
    """One browser obtained for a single capture attempt.

    ``release()`` runs at most once: a local browser is closed, a remote
    one is disconnected.
    """

    def __init__(
        self,
        browser: Browser,
        playwright: Optional[Playwright],
        config: BrowserConfig,
        is_remote: bool
    ):
        self.browser = browser
        self.playwright = playwright
        self.config = config
        self.is_remote = is_remote
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @asynccontextmanager
    async def page(self, device: DeviceProfile) -> AsyncGenerator[Page, None]:
        """Context manager for a page sized for ``device``.

        Yields:
            Page instance that will be closed together with its context
        """
        context: Optional[BrowserContext] = None
        page: Optional[Page] = None
        try:
            context = await self.browser.new_context(**self.config.to_context_options(device))
            page = await context.new_page()
            page.set_default_navigation_timeout(self.config.navigation_timeout_ms)
            yield page
        finally:
            if page is not None:
                try:
                    if not page.is_closed():
                        await page.close()
                except Exception as e:
                    logger.warning(f"Failed to close page (might be already closed): {e}")
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    logger.warning(f"Failed to close browser context: {e}")

    async def close(self) -> None:
        """Fully close a locally launched browser."""
        await self.browser.close()

    async def disconnect(self) -> None:
        """Drop the connection to a remote browser without closing it."""
        # Stopping the driver closes the CDP connection; the remote browser keeps running.
        if self.playwright is not None:
            await self.playwright.stop()
            self.playwright = None

    async def release(self) -> None:
        """Release the browser exactly once, never raising."""
        if self._released:
            return
        self._released = True
        try:
            if self.is_remote:
                await self.disconnect()
            else:
                await self.close()
        except Exception as e:
            logger.warning(f"Failed to close/disconnect browser: {e}")

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.warning(f"Failed to stop Playwright driver: {e}")
            self.playwright = None


class BrowserFactory:
    """Factory for per-attempt Playwright browser sessions."""

    def __init__(self, config: BrowserConfig):
        """Initialize browser factory with configuration.

        Args:
            config: Browser configuration object
        """
        self.config = config
        self._sessions_opened = 0

    async def open_session(self) -> BrowserSession:
        """Launch or attach to a browser.

        Returns:
            New browser session; the caller must call ``release()``
        """
        playwright = await async_playwright().start()
        try:
            if self.config.engine == BrowserEngineType.FIREFOX:
                browser_type = playwright.firefox
            elif self.config.engine == BrowserEngineType.WEBKIT:
                browser_type = playwright.webkit
            else:
                browser_type = playwright.chromium

            if self.config.is_remote:
                logger.debug(f"Connecting to remote browser at {self.config.remote_endpoint}")
                browser = await browser_type.connect_over_cdp(self.config.remote_endpoint)
            else:
                browser = await browser_type.launch(**self.config.to_browser_options())
        except Exception as e:
            logger.error(f"Failed to obtain browser: {e}")
            await playwright.stop()
            raise

        self._sessions_opened += 1
        return BrowserSession(browser, playwright, self.config, is_remote=self.config.is_remote)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[BrowserSession, None]:
        """Context manager for one browser session.

        Yields:
            Browser session that is released on exit, on every path
        """
        browser_session = await self.open_session()
        try:
            yield browser_session
        finally:
            await browser_session.release()

    @property
    def sessions_opened(self) -> int:
        return self._sessions_opened

    def __repr__(self) -> str:
        mode = "remote" if self.config.is_remote else "local"
        return f"BrowserFactory(engine={self.config.engine}, mode={mode})"
