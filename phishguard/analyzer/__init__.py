"""Analyzer modules for PhishGuard."""

from .page import BrandSignals, FormSummary, LinkSummary, PageContent
from .prompt_builder import PromptBuilder, PromptPair
from .signatures import SignatureDatabase, SignatureMatch, SignatureType
from .threat_scorer import ThreatAssessment, ThreatLevel, ThreatScorer, ThreatSignals
from .url_analyzer import RiskLevel, UrlAnalysisResult, UrlAnalyzer, analyze_url

__all__ = [
    "BrandSignals",
    "FormSummary",
    "LinkSummary",
    "PageContent",
    "PromptBuilder",
    "PromptPair",
    "RiskLevel",
    "SignatureDatabase",
    "SignatureMatch",
    "SignatureType",
    "ThreatAssessment",
    "ThreatLevel",
    "ThreatScorer",
    "ThreatSignals",
    "UrlAnalysisResult",
    "UrlAnalyzer",
    "analyze_url",
]
