"""Synchronous scan: URL analysis, signatures and scoring without ML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..analyzer.signatures import SignatureDatabase
from ..analyzer.threat_scorer import (
    DomSignal,
    MlSignal,
    SignatureSignal,
    ThreatLevel,
    ThreatScorer,
    ThreatSignals,
    UrlSignal,
)
from ..analyzer.url_analyzer import UrlAnalyzer
from ..utils.domains import extract_hostname

logger = logging.getLogger(__name__)


@dataclass
class ScanRequest:
    url: str
    title: str = ""
    timestamp: float = 0.0
    dom_signals: Optional[DomSignal] = None
    page_text: Optional[str] = None


@dataclass
class ScanVerdict:
    url: str
    domain: str
    level: ThreatLevel
    score: int
    confidence: float
    should_warn: bool
    triggered_signals: list[str] = field(default_factory=list)
    reasoning: str = ""

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "domain": self.domain,
            "level": self.level.value,
            "score": self.score,
            "confidence": self.confidence,
            "should_warn": self.should_warn,
            "triggered_signals": list(self.triggered_signals),
            "reasoning": self.reasoning,
        }


class ScanHandler:
    """Scores a page from heuristics alone; never contacts a sandbox."""

    def __init__(
        self,
        url_analyzer: UrlAnalyzer,
        signatures: SignatureDatabase,
        scorer: Optional[ThreatScorer] = None,
    ):
        self.url_analyzer = url_analyzer
        self.signatures = signatures
        self.scorer = scorer or ThreatScorer()

    def handle_scan(self, request: ScanRequest) -> ScanVerdict:
        url = request.url
        url_result = self.url_analyzer.analyze(url)

        domain = extract_hostname(url)
        if domain.startswith("www."):
            domain = domain[4:]

        content_matches = self.signatures.match_content(request.page_text) if request.page_text else []
        signature = SignatureSignal(
            blocklisted=self.signatures.check_domain(domain).matched,
            allowlisted=self.signatures.is_allowlisted(domain),
            content_matches=content_matches,
            url_matches=self.signatures.match_url_pattern(url),
        )

        assessment = self.scorer.assess(
            ThreatSignals(
                url=UrlSignal.from_analysis(url_result),
                signature=signature,
                ml=MlSignal(
                    classification=ThreatLevel.SAFE.value,
                    confidence=0.0,
                    reasoning="ML model not loaded",
                ),
                dom=request.dom_signals or DomSignal(),
            )
        )

        verdict = ScanVerdict(
            url=url,
            domain=domain,
            level=assessment.level,
            score=assessment.score,
            confidence=assessment.confidence,
            should_warn=assessment.level != ThreatLevel.SAFE,
            triggered_signals=assessment.triggered_signals,
            reasoning=assessment.reasoning,
        )
        if verdict.should_warn:
            logger.info("Scan %s: %s (score %d)", domain, verdict.level.value, verdict.score)
        return verdict
