"""System instructions and content builders for analysis experts."""

import json
import re
from typing import Any, Dict, List, Optional

from ..models.capture import AccessibilityHeuristics

CONTENT_MARKER = "--- CONTENT FROM"
_MULTI_PAGE_PATTERN = re.compile(r'--- (?:START )?CONTENT FROM')

EXCLUDED_RERANK_SUBJECTS = [
    "Screen Reader Compatibility",
    "Missing Alt Text",
    "Missing Form Labels",
]

METRIC_LABELS = [
    ("lcp", "Largest Contentful Paint"),
    ("cls", "Cumulative Layout Shift"),
    ("tbt", "Total Blocking Time"),
    ("fcp", "First Contentful Paint"),
    ("tti", "Time to Interactive"),
    ("si", "Speed Index"),
]


def content_block(url: str, text: str) -> str:
    """Tag one input's text with its source."""
    return f"\n\n{CONTENT_MARKER} {url} ---\n{text or '(No text found)'}\n\n"


def is_multi_page(text: str) -> bool:
    return bool(_MULTI_PAGE_PATTERN.search(text or ''))


def build_context_prompt(
    url: str,
    performance_metrics: Optional[Dict[str, str]] = None,
    performance_error: Optional[str] = None,
    animation_hints: Optional[List[str]] = None,
    heuristics: Optional[AccessibilityHeuristics] = None,
    multi_page: bool = False
) -> str:
    """Website context shared by the non-strategy experts."""
    prompt = f"\n### Website Context ###\n- Website URL: {url}\n"
    if multi_page:
        prompt += (
            "- Note: This audit is based on a crawl of multiple pages. The provided text content is "
            "aggregated from all crawled pages. Look for site-wide patterns.\n"
        )

    if performance_metrics or performance_error:
        prompt += "\n### Core Web Vitals & Performance Metrics (Lab Data for Homepage) ###\n"
        if performance_metrics:
            for key, label in METRIC_LABELS:
                prompt += f"- {label}: {performance_metrics.get(key, 'N/A')}\n"
        else:
            prompt += "IMPORTANT: Data could not be retrieved from the PageSpeed Insights API.\n"
            prompt += f"Reason: {performance_error}\n"

    if animation_hints is not None:
        prompt += "\n### Discovered CSS Animations & Transitions (from Homepage) ###\n"
        if animation_hints:
            prompt += (
                "The following elements were found to have CSS properties suggesting motion. "
                "Analyze these to infer the quality and purpose of the site's animations.\n"
            )
            prompt += "\n".join(f"- {hint}" for hint in animation_hints) + "\n"
        else:
            prompt += (
                "No significant CSS animations or transitions were automatically detected on the page. "
                "This analysis will be based on the static screenshot.\n"
            )

    if heuristics is not None:
        prompt += (
            "\n### Automated Accessibility Check (from Homepage) ###\n"
            "This data was extracted from the page's HTML and indicates potential accessibility issues.\n"
            f"- Images without descriptive alt text: {heuristics.images_missing_alt}\n"
            f"- Form inputs without corresponding labels: {heuristics.inputs_missing_labels}\n"
            "- Presence of semantic HTML5 elements (main, nav, header, etc.): "
            f"{'Yes' if heuristics.has_semantic_elements else 'No'}\n"
            "- Presence of ARIA attributes (roles, properties): "
            f"{'Yes' if heuristics.has_aria_attributes else 'No'}\n"
        )

    return prompt


def append_rule_violations(prompt: str, violations: List[Dict[str, Any]]) -> str:
    return (
        f"{prompt}\n### Automated Axe-Core Accessibility Violations ###\n"
        f"{json.dumps(violations, indent=2)}\n"
    )


def with_page_text(prompt: str, text: str) -> str:
    return f"{prompt}\n### Live Website Text Content ###\n{text}"


BASE_SYSTEM_INSTRUCTION = """You are a world-class website auditor. Audit the provided website from its screenshot(s) and text content and fill out every section of the requested JSON schema completely and critically.

Rate every scored parameter from 1 (poor) to 10 (excellent):
- 1-4: major flaws.
- 5-6: functional but uninspired.
- 7-8: well executed with minor issues.
- 9-10: outstanding.

Rules for every audit:
1. Infer the website's type and primary purpose first and let it guide the audit.
2. A parameter that does not apply gets a Score of 0 and an Analysis explaining why.
3. Exclude parameters scored 0 when averaging SectionScore and CategoryScore.
4. Fill every schema field for applicable parameters.
5. Cite at least one full sentence from the website's content for every scored parameter and critical issue.
6. Keep Analysis, Recommendation and KeyFinding to at most three sentences.
7. Populate Analysis, Confidence and KeyFinding for every issue in the Top 5 lists."""

_MULTI_PAGE_NOTE = "\n- Multi-page context: this is a multi-page audit. Identify patterns and inconsistencies across pages."
_MOBILE_FAILED_NOTE = (
    "\n- Mobile screenshot: the mobile capture FAILED. Infer mobile behaviour from the desktop view "
    "and state explicitly that the mobile view was not available."
)


def strategy_instruction() -> str:
    return """### Role ###
You are an advanced UX auditor and domain analyst. Base your analysis exclusively on the provided live website text; do not use prior knowledge of the website.

### Guidelines ###
- ExecutiveSummary: a 7-8 line audit diagnosis in the form
  WHAT IS WORKING: [point], [point] (Citation: "[quote]")
  WHAT IS NOT WORKING: [point], [point] (Citation: "[quote]")
  No introduction. Cite the text for every point.
- PurposeAnalysis: the purpose of the website itself (the primary actions it wants users to take), with two or three sentences of key objectives.
- UserPersonas: three realistic personas grounded in the audience analysis; keep needs and pain points to three or four sentences each.
- Score TrustSignalsAndCredibility, TargetAudienceAlignment, CompetitiveDifferentiation and CallToActionStrategy."""


def ux_instruction(mobile_captured: bool, multi_page: bool) -> str:
    specific = (
        "You are a world-class UX Auditor. Evaluate the website's usability and accessibility.\n"
        "- Your analysis for 'ScreenReaderCompatibility' MUST reference the Automated Accessibility Check data."
    )
    if multi_page:
        specific += _MULTI_PAGE_NOTE
    if not mobile_captured:
        specific += _MOBILE_FAILED_NOTE
    return f"{BASE_SYSTEM_INSTRUCTION}\n\n{specific}"


def product_instruction(multi_page: bool) -> str:
    specific = (
        "You are a world-class Product Auditor. Evaluate the website's market fit, user engagement "
        "and conversion effectiveness.\n"
        "- Reference the provided performance metrics where load time matters. If the performance check "
        "failed, score load-time parameters 0 and state that the check failed."
    )
    if multi_page:
        specific += _MULTI_PAGE_NOTE
    return f"{BASE_SYSTEM_INSTRUCTION}\n\n{specific}"


def visual_instruction(mobile_captured: bool, multi_page: bool) -> str:
    specific = "You are a world-class Visual Designer. Evaluate the website's aesthetics, branding and responsiveness."
    if multi_page:
        specific += _MULTI_PAGE_NOTE
    if mobile_captured:
        specific += "\n- Compare the desktop and mobile screenshots for the 'MobileOptimization' analysis."
    else:
        specific += _MOBILE_FAILED_NOTE
    return f"{BASE_SYSTEM_INSTRUCTION}\n\n{specific}"


def accessibility_instruction(multi_page: bool) -> str:
    specific = """You are a certified Accessibility Auditor. Interpret the automated Axe-Core results and combine them with visual and structural analysis to evaluate WCAG 2.1 AA compliance.

Always include these parameters:
1. AutomatedCompliance: WCAG_A_Compliance, WCAG_AA_Compliance, BestPractices, ARIANavigation, ImageAltText, FormLabels, LinkPurpose.
2. ScreenReaderExperience: StructureAndHeadings, AlternativeTextQuality, KeyboardFlow, AriaLiveUsage.
3. VisualAccessibility: ColorContrast Ratios, ResizableText, FocusIndicators, LayoutStability.

- Map each reported Axe violation to the most relevant parameter and base AutomatedCompliance scores on the number and severity of violations.
- If no violations were reported, say that automated checks passed and stress the need for manual verification.
- Every parameter needs an integer Score (0-10), a Recommendation and Citations (the failed rule, or the satisfied WCAG success criterion).
- ComplianceScore is Passed / (Passed + Failed) * 100.
- RiskLevel is Critical with any critical violation, High with more than two serious ones, Moderate with more than two minor ones, otherwise Low.
- Populate ManualChecks from incomplete checks and NotApplicable from inapplicable rules.
- State the legal risk of every failure and frame recommendations as compliance fixes."""
    if multi_page:
        specific += "\n- Multi-page context: identify accessibility patterns across pages."
    return f"{BASE_SYSTEM_INSTRUCTION}\n\n{specific}"


def competitor_instruction() -> str:
    return """### Role ###
You are a Strategic Competitive Analyst comparing a Primary website with a Competitor website from their text content and screenshots. The first image is the Primary website, the second the Competitor.

### Output ###
- ExecutiveSummary: five or six lines on the key competitive difference.
- StrategyComparison: DomainClarity, PurposeClarity, TargetAudienceAlignment, TrustSignals, MarketPositioning, BrandAuthority.
- AccessibilityComparison: WCAG_A_Compliance, WCAG_AA_Compliance, BestPractices, ARIANavigation, StructureAndHeadings, AlternativeTextQuality, KeyboardFlow, AriaLiveUsage, ColorContrast Ratios, ResizableText, FocusIndicators, LayoutStability.
- UXComparison: the ten usability heuristics plus TaskCompletionTime, ClickDepth, NavigationClarity, CognitiveLoad, ErrorRate, ScreenReaderCompatibility, TouchTargetSize.
- ProductComparison: ClearValueProposition, OnboardingEffectiveness, FeatureDiscoverability, MonetizationModelClarity, GamificationIncentives, PersonalizationAdaptability, FrictionPoints, UserFeedbackIteration, CTAClarityPlacement, CheckoutPaymentFlow, LeadGenerationForms, MicrocopyMessaging, PageSpeedAPI_ActualLoadTime_CoreWebVitals.
- VisualComparison: ColorPaletteContrast, TypographyReadability, IconographySymbolism, SpacingAlignment, VisualHierarchy, ImageryIllustrations, AnimationMotionUI, WhitespaceMinimalism, MobileOptimization, DarkModeTheming.

For each parameter give PrimaryScore, CompetitorScore (1-10), a one-sentence Analysis and the Winner.
CompetitorStrengths, PrimaryStrengths and Opportunities must each contain exactly three specific, actionable items; infer them from best practices if differences are not explicit. Use "High", "Critical" or "Strategic" for Impact."""


STRATEGIC_FOCUS = "\n\nFOCUS: Focus ONLY on Strategy, Accessibility, Strengths, Opportunities, and Executive Summary."
TACTICAL_FOCUS = "\n\nFOCUS: Focus ONLY on UX, Product, and Visual comparisons."


def competitor_content(
    primary_url: str,
    primary_text: str,
    competitor_url: str,
    competitor_text: str,
    limit: int = 15000
) -> str:
    return (
        "\n### PRIMARY WEBSITE ###\n"
        f"- URL: {primary_url}\n"
        f"- Content: {(primary_text or '')[:limit]}... (truncated)\n"
        "\n### COMPETITOR WEBSITE ###\n"
        f"- URL: {competitor_url}\n"
        f"- Content: {(competitor_text or '')[:limit]}... (truncated)\n"
    )


RERANK_INSTRUCTION = (
    "You are a Chief Product Strategist. Analyze a list of critical issues identified for a website in "
    "light of the site's strategic context, and re-rank them by their impact on the website's primary "
    "purpose and its ability to serve its target audience."
)


def _join(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return "" if value is None else str(value)


def strategy_context(strategy: Dict[str, Any]) -> str:
    purpose = strategy.get("PurposeAnalysis") or {}
    audience = strategy.get("TargetAudience") or {}
    return (
        f"\n- Website Purpose: {_join(purpose.get('PrimaryPurpose'))}"
        f"\n- Key Objectives: {_join(purpose.get('KeyObjectives'))}"
        f"\n- Target Audience: {_join(audience.get('Primary'))} ({_join(audience.get('DemographicsPsychographics'))})"
        f"\n- Website Type: {_join(audience.get('WebsiteType'))}"
    )


def rerank_content(strategy: Dict[str, Any], issues: List[Dict[str, Any]]) -> str:
    excluded = ", ".join(f'"{subject}"' for subject in EXCLUDED_RERANK_SUBJECTS)
    return (
        "\n### Strategic Context ###\n"
        f"{strategy_context(strategy)}\n"
        "### Your Task ###\n"
        "1. Review the strategic context and each issue in the provided JSON list.\n"
        "2. Select the TOP 5 issues that represent the most critical barriers to the website's success.\n"
        "3. Return ONLY these 5 issues, sorted from most to least critical.\n"
        "4. Return the issues in exactly the JSON structure they were provided in, with all original fields.\n"
        f"5. EXCLUSION CRITERIA: Do NOT select any issues primarily related to {excluded}.\n"
        "### Critical Issues List (JSON) ###\n"
        f"{json.dumps(issues, indent=2)}"
    )
