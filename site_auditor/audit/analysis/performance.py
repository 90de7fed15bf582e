"""Page performance metrics lookup against PageSpeed Insights.

Lookups never raise: failures are reported through ``PerformanceResult.error``
so the analysis can mention why lab data is missing.
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel, Field

from ...config import get_settings

logger = logging.getLogger(__name__)

METRIC_AUDITS = {
    'lcp': 'largest-contentful-paint',
    'cls': 'cumulative-layout-shift',
    'tbt': 'total-blocking-time',
    'fcp': 'first-contentful-paint',
    'tti': 'interactive',
    'si': 'speed-index',
}

TIMEOUT_MESSAGE = "Google PageSpeed Insights API timed out after 1 minute."


class PerformanceResult(BaseModel):
    """Lab metrics for one URL, or the reason they are missing."""

    metrics: Optional[Dict[str, str]] = Field(default=None, description="lcp/cls/tbt/fcp/tti/si display values")
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.metrics is not None


def _error_message(payload: Any) -> Optional[str]:
    error = payload.get('error') if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return error.get('message')
    if isinstance(error, str):
        return error
    return None


def extract_metrics(payload: Any) -> PerformanceResult:
    """Pull display values out of a PageSpeed response body.

    Bodies of an unexpected shape produce an error result rather than raising.
    """
    if not isinstance(payload, dict):
        return PerformanceResult(error="Unexpected PageSpeed response format.")

    lighthouse = payload.get('lighthouseResult')
    if not isinstance(lighthouse, dict) or not lighthouse:
        return PerformanceResult(error=_error_message(payload) or "Lighthouse returned an empty result.")

    audits = lighthouse.get('audits')
    if not isinstance(audits, dict):
        audits = {}
    metrics = {}
    for key, audit_id in METRIC_AUDITS.items():
        audit = audits.get(audit_id)
        metrics[key] = (audit.get('displayValue') if isinstance(audit, dict) else None) or 'N/A'
    return PerformanceResult(metrics=metrics)


class PerformanceClient:
    """Client for the PageSpeed Insights API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: str = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed",
        strategy: str = "desktop",
        timeout: float = 60.0
    ):
        """Initialize performance client.

        Args:
            api_key: API key; falls back to PAGESPEED_API_KEY, then the model API key
            endpoint: PageSpeed Insights endpoint
            strategy: desktop or mobile lab run
            timeout: Total request timeout in seconds
        """
        self.api_key = (
            api_key
            or os.getenv('PAGESPEED_API_KEY')
            or os.getenv('GEMINI_API_KEY')
            or os.getenv('API_KEY')
        )
        self.endpoint = endpoint
        self.strategy = strategy
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings=None) -> "PerformanceClient":
        performance = (settings or get_settings()).performance
        return cls(
            endpoint=performance.endpoint,
            strategy=performance.strategy,
            timeout=performance.timeout_seconds,
        )

    def _params(self, url: str) -> Dict[str, str]:
        params = {'url': url, 'category': 'performance', 'strategy': self.strategy}
        if self.api_key:
            params['key'] = self.api_key
        return params

    async def fetch(self, url: str) -> PerformanceResult:
        """Look up lab metrics for ``url``."""
        masked = f"...{self.api_key[-4:]}" if self.api_key else "none"
        logger.info(f"Fetching performance data for {url} (key {masked})")
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.endpoint, params=self._params(url)) as response:
                    body = await response.text()
                    if response.status != 200:
                        logger.warning(f"PageSpeed API returned {response.status} for {url}")
                        return PerformanceResult(error=self._error_from_body(response.status, body))
                    result = extract_metrics(json.loads(body))
        except asyncio.TimeoutError:
            logger.warning(f"PageSpeed lookup timed out for {url}")
            return PerformanceResult(error=TIMEOUT_MESSAGE)
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"PageSpeed lookup failed for {url}: {e}")
            return PerformanceResult(error=str(e) or type(e).__name__)

        if result.ok:
            logger.info(f"Performance metrics for {url}: {result.metrics}")
        return result

    @staticmethod
    def _error_from_body(status: int, body: str) -> str:
        try:
            message = _error_message(json.loads(body))
        except ValueError:
            return f"API Error {status}: {body}"
        return message or f"API Error {status}"
