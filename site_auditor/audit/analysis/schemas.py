"""Response schemas for structured model output.

Schemas use the model's OpenAPI-style subset (upper-case type names) and
are plain dictionaries so they can be passed straight to the model client.
"""

from typing import Any, Dict, List

STRING = "STRING"
INTEGER = "INTEGER"
NUMBER = "NUMBER"
ARRAY = "ARRAY"
OBJECT = "OBJECT"

CONFIDENCE = {"type": STRING, "enum": ["high", "medium", "low"]}


def string_list() -> Dict[str, Any]:
    return {"type": ARRAY, "items": {"type": STRING}}


def _obj(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": OBJECT, "properties": properties, "required": list(required)}


def critical_issue_schema(with_source: bool = False) -> Dict[str, Any]:
    """Schema of one critical issue; reranked issues also carry ``source``."""
    properties = {
        "Issue": {"type": STRING},
        "ImpactLevel": {"type": STRING},
        "Score": {"type": INTEGER},
        "Recommendation": {"type": STRING},
        "Citations": string_list(),
        "Confidence": dict(CONFIDENCE),
        "Analysis": {"type": STRING},
        "KeyFinding": {"type": STRING},
    }
    required = ["Issue", "ImpactLevel", "Score", "Recommendation", "Citations", "Confidence", "Analysis", "KeyFinding"]
    if with_source:
        properties["source"] = {"type": STRING}
        required.insert(5, "source")
    return _obj(properties, required)


def scored_section_schema(parameter_names: List[str]) -> Dict[str, Any]:
    """Section with an overall score and per-parameter scored findings."""
    parameter_name: Dict[str, Any] = {"type": STRING}
    if parameter_names:
        parameter_name["enum"] = list(parameter_names)
    parameter = _obj(
        {
            "ParameterName": parameter_name,
            "Score": {"type": INTEGER},
            "ImpactLevel": {"type": STRING},
            "Confidence": dict(CONFIDENCE),
            "Analysis": {"type": STRING},
            "Recommendation": {"type": STRING},
            "Citations": string_list(),
            "KeyFinding": {"type": STRING},
        },
        ["ParameterName", "Score", "ImpactLevel", "Confidence", "Analysis", "Citations"],
    )
    return _obj(
        {
            "SectionScore": {"type": NUMBER},
            "Parameters": {"type": ARRAY, "items": parameter},
        },
        ["SectionScore", "Parameters"],
    )


def _issues() -> Dict[str, Any]:
    return {"type": ARRAY, "items": critical_issue_schema()}


UX_SECTIONS = {
    "UsabilityHeuristics": [
        "VisibilityOfSystemStatus", "MatchBetweenSystemAndRealWorld", "UserControlAndFreedom",
        "ConsistencyAndStandards", "ErrorPrevention", "RecognitionVsRecall",
        "FlexibilityAndEfficiencyOfUse", "AestheticAndMinimalistDesign",
        "HelpUsersRecoverFromErrors", "HelpAndDocumentation",
    ],
    "UsabilityMetrics": ["TaskCompletionTime", "ClickDepth", "NavigationClarity", "CognitiveLoad", "ErrorRate"],
    "AccessibilityCompliance": [
        "ContrastAndReadability", "KeyboardNavigation", "ScreenReaderCompatibility", "TouchTargetSize",
    ],
}

PRODUCT_SECTIONS = {
    "MarketFitAndBusinessAlignment": [
        "ClearValueProposition", "OnboardingEffectiveness", "FeatureDiscoverability", "MonetizationModelClarity",
    ],
    "UserRetentionAndEngagement": [
        "GamificationIncentives", "PersonalizationAdaptability", "FrictionPoints", "UserFeedbackIteration",
    ],
    "ConversionOptimization": [
        "CTAClarityPlacement", "CheckoutPaymentFlow", "LeadGenerationForms", "MicrocopyMessaging",
    ],
}

VISUAL_SECTIONS = {
    "UIConsistencyAndBranding": [
        "ColorPaletteContrast", "TypographyReadability", "IconographySymbolism", "SpacingAlignment",
    ],
    "AestheticAndEmotionalAppeal": [
        "VisualHierarchy", "ImageryIllustrations", "AnimationMotionUI", "WhitespaceMinimalism",
    ],
    "ResponsivenessAndAdaptability": ["MobileOptimization", "DarkModeTheming", "ActualLoadTimeAndCoreWebVitals"],
}

STRATEGY_SECTIONS = {
    "TrustSignalsAndCredibility": [
        "SocialProofIntegration", "AuthorityMarkers", "SecurityAssurances", "BrandConsistency",
    ],
    "TargetAudienceAlignment": ["contentRelevance", "ToneAndVoiceFit", "PainPointAddressing", "UserJourneyLogic"],
    "CompetitiveDifferentiation": [
        "UniqueValueProposition", "FeatureDistinctiveness", "MarketPositioningClarity", "InnovationFactor",
    ],
    "CallToActionStrategy": ["CTAPlacement", "ActionOrientedCopy", "UrgencyAndIncentives", "FrictionReduction"],
}

ACCESSIBILITY_SECTIONS = {
    "AutomatedCompliance": [
        "WCAG_A_Compliance", "WCAG_AA_Compliance", "BestPractices", "ARIANavigation",
        "ImageAltText", "FormLabels", "LinkPurpose",
    ],
    "ScreenReaderExperience": ["StructureAndHeadings", "AlternativeTextQuality", "KeyboardFlow", "AriaLiveUsage"],
    "VisualAccessibility": ["ColorContrast Ratios", "ResizableText", "FocusIndicators", "LayoutStability"],
    "PassedAudits": [],
}


def _category_schema(issues_field: str, sections: Dict[str, List[str]]) -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        "CategoryScore": {"type": NUMBER},
        issues_field: _issues(),
    }
    for section, parameters in sections.items():
        properties[section] = scored_section_schema(parameters)
    properties["OverallRecommendations"] = string_list()
    return _obj(properties, ["CategoryScore", issues_field, *sections.keys(), "OverallRecommendations"])


def ux_schema() -> Dict[str, Any]:
    return _category_schema("Top5CriticalUXIssues", UX_SECTIONS)


def product_schema() -> Dict[str, Any]:
    return _category_schema("Top5CriticalProductIssues", PRODUCT_SECTIONS)


def visual_schema() -> Dict[str, Any]:
    return _category_schema("Top5CriticalVisualIssues", VISUAL_SECTIONS)


def strategy_schema() -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        "ExecutiveSummary": {"type": STRING},
        "DomainAnalysis": _obj({"Items": string_list(), "Confidence": dict(CONFIDENCE)}, ["Items", "Confidence"]),
        "PurposeAnalysis": _obj(
            {
                "PrimaryPurpose": string_list(),
                "KeyObjectives": {"type": STRING},
                "Confidence": dict(CONFIDENCE),
            },
            ["PrimaryPurpose", "KeyObjectives", "Confidence"],
        ),
        "TargetAudience": _obj(
            {
                "WebsiteType": {"type": STRING},
                "Primary": string_list(),
                "DemographicsPsychographics": {"type": STRING},
                "MarketSegmentation": {"type": STRING},
                "Confidence": dict(CONFIDENCE),
            },
            ["WebsiteType", "Primary", "DemographicsPsychographics", "MarketSegmentation", "Confidence"],
        ),
        "UserPersonas": {
            "type": ARRAY,
            "items": _obj(
                {
                    "Name": {"type": STRING},
                    "Age": {"type": INTEGER},
                    "Location": {"type": STRING},
                    "Occupation": {"type": STRING},
                    "UserNeedsBehavior": {"type": STRING},
                    "PainPointOpportunity": {"type": STRING},
                },
                ["Name", "Age", "Location", "Occupation", "UserNeedsBehavior", "PainPointOpportunity"],
            ),
        },
    }
    for section, parameters in STRATEGY_SECTIONS.items():
        properties[section] = scored_section_schema(parameters)
    return _obj(properties, list(properties.keys()))


def accessibility_schema() -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        "CategoryScore": {"type": NUMBER},
        "ComplianceScore": {"type": NUMBER},
        "RiskLevel": {"type": STRING, "enum": ["Critical", "High", "Moderate", "Low"]},
        "Top5CriticalAccessibilityIssues": _issues(),
    }
    for section, parameters in ACCESSIBILITY_SECTIONS.items():
        properties[section] = scored_section_schema(parameters)
    properties["ManualChecks"] = {
        "type": ARRAY,
        "items": _obj(
            {"id": {"type": STRING}, "description": {"type": STRING}, "nodes": string_list()},
            ["id", "description"],
        ),
    }
    properties["NotApplicable"] = {
        "type": ARRAY,
        "items": _obj({"id": {"type": STRING}, "description": {"type": STRING}}, ["id", "description"]),
    }
    properties["OverallRecommendations"] = string_list()
    return _obj(properties, list(properties.keys()))


def _strengths() -> Dict[str, Any]:
    return {
        "type": ARRAY,
        "items": _obj(
            {"Strength": {"type": STRING}, "Description": {"type": STRING}, "Impact": {"type": STRING}},
            ["Strength", "Description", "Impact"],
        ),
    }


def comparison_schema() -> Dict[str, Any]:
    """List of per-parameter primary-versus-competitor scores."""
    return {
        "type": ARRAY,
        "items": _obj(
            {
                "Parameter": {"type": STRING},
                "PrimaryScore": {"type": INTEGER},
                "CompetitorScore": {"type": INTEGER},
                "Analysis": {"type": STRING},
                "Winner": {"type": STRING, "enum": ["Primary", "Competitor", "Tie"]},
            },
            ["Parameter", "PrimaryScore", "CompetitorScore", "Analysis", "Winner"],
        ),
    }


STRATEGIC_COMPETITOR_FIELDS = [
    "ExecutiveSummary", "CompetitorStrengths", "PrimaryStrengths", "Opportunities",
    "StrategyComparison", "AccessibilityComparison",
]
TACTICAL_COMPETITOR_FIELDS = ["UXComparison", "ProductComparison", "VisualComparison"]


def competitor_strategic_schema() -> Dict[str, Any]:
    """Strategic/accessibility partition of the competitor comparison."""
    return _obj(
        {
            "ExecutiveSummary": {"type": STRING},
            "CompetitorStrengths": _strengths(),
            "PrimaryStrengths": _strengths(),
            "Opportunities": {
                "type": ARRAY,
                "items": _obj(
                    {"Opportunity": {"type": STRING}, "ActionPlan": {"type": STRING}},
                    ["Opportunity", "ActionPlan"],
                ),
            },
            "StrategyComparison": comparison_schema(),
            "AccessibilityComparison": comparison_schema(),
        },
        STRATEGIC_COMPETITOR_FIELDS,
    )


def competitor_tactical_schema() -> Dict[str, Any]:
    """UX/product/visual partition of the competitor comparison."""
    return _obj({field: comparison_schema() for field in TACTICAL_COMPETITOR_FIELDS}, TACTICAL_COMPETITOR_FIELDS)


def ranked_issues_schema() -> Dict[str, Any]:
    """Response schema of the contextual re-rank call."""
    return {"type": ARRAY, "items": critical_issue_schema(with_source=True)}
