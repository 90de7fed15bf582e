"""Automated accessibility rule engine run against a live page.

The axe-core engine is injected into the page and executed with the WCAG 2.0
and 2.1 A/AA tag sets plus best practices. Failures are logged and produce
empty results; they never fail the capture.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from ..models.capture import RuleEngineResults

logger = logging.getLogger(__name__)


AXE_SCRIPT_URL = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.10.0/axe.min.js"

RULE_TAGS = ['wcag2a', 'wcag2aa', 'wcag21a', 'wcag21aa', 'best-practice']

RUN_AXE_JS = """
(tags) => axe.run(document, { runOnly: { type: 'tag', values: tags } })
    .then((results) => JSON.parse(JSON.stringify(results)))
"""


def partition_results(raw: Optional[Dict[str, Any]]) -> RuleEngineResults:
    """Reduce raw axe output to the four outcome buckets.

    Violations are kept whole; passes keep the first offending node's
    markup, incomplete checks keep every node's markup and failure summary,
    inapplicable rules keep only id and help text.
    """
    raw = raw or {}

    passes: List[Dict[str, Any]] = []
    for rule in raw.get('passes') or []:
        nodes = rule.get('nodes') or []
        passes.append({
            'id': rule.get('id'),
            'help': rule.get('help'),
            'html': nodes[0].get('html') if nodes and nodes[0].get('html') else None,
        })

    incomplete = [
        {
            'id': rule.get('id'),
            'help': rule.get('help'),
            'nodes': [
                {'html': node.get('html'), 'failureSummary': node.get('failureSummary')}
                for node in rule.get('nodes') or []
            ],
        }
        for rule in raw.get('incomplete') or []
    ]

    inapplicable = [
        {'id': rule.get('id'), 'help': rule.get('help')}
        for rule in raw.get('inapplicable') or []
    ]

    return RuleEngineResults(
        violations=list(raw.get('violations') or []),
        passes=passes,
        incomplete=incomplete,
        inapplicable=inapplicable,
    )


class AccessibilityRuleRunner:
    """Injects and runs axe-core in a page."""

    def __init__(
        self,
        script_url: str = AXE_SCRIPT_URL,
        tags: Optional[List[str]] = None,
        settle_ms: int = 2000
    ):
        """Initialize rule runner.

        Args:
            script_url: Location of the axe-core bundle
            tags: Rule tags to run
            settle_ms: Pause before running so animations and client rendering settle
        """
        self.script_url = script_url
        self.tags = tags or list(RULE_TAGS)
        self.settle_ms = settle_ms

    async def run(self, page: Page) -> RuleEngineResults:
        """Run the rule engine; returns empty results on any failure."""
        try:
            if self.settle_ms:
                await asyncio.sleep(self.settle_ms / 1000)
            logger.debug("Injecting accessibility rule engine")
            await page.add_script_tag(url=self.script_url)
            raw = await page.evaluate(RUN_AXE_JS, self.tags)
            results = partition_results(raw)
            logger.info(
                f"Accessibility rules: {len(results.violations)} violations, "
                f"{len(results.passes)} passes, {len(results.incomplete)} incomplete"
            )
            return results
        except Exception as e:
            logger.error(f"Accessibility rule engine failed: {e}")
            return RuleEngineResults()
