"""Fuse URL, signature, ML and DOM signals into a final threat verdict.

Default weights: URL 30%, signature 25%, ML 35%, DOM 10%.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .page import PageContent
from .signatures import URGENCY_TAGS, SignatureMatch
from .url_analyzer import RiskLevel, UrlAnalysisResult

logger = logging.getLogger(__name__)


class ThreatLevel(str, Enum):
    """Final threat classification."""

    SAFE = "SAFE"
    SUSPICIOUS = "SUSPICIOUS"
    LIKELY_PHISHING = "LIKELY_PHISHING"
    CONFIRMED_PHISHING = "CONFIRMED_PHISHING"


@dataclass(frozen=True)
class ScoringWeights:
    url: float = 0.30
    signature: float = 0.25
    ml: float = 0.35
    dom: float = 0.10


@dataclass
class UrlSignal:
    score: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    signals: list[str] = field(default_factory=list)

    @classmethod
    def from_analysis(cls, analysis: UrlAnalysisResult) -> "UrlSignal":
        return cls(score=analysis.score, risk_level=analysis.risk_level, signals=list(analysis.signals))


@dataclass
class SignatureSignal:
    blocklisted: bool = False
    allowlisted: bool = False
    content_matches: list[SignatureMatch] = field(default_factory=list)
    url_matches: list[SignatureMatch] = field(default_factory=list)

    @property
    def urgency_count(self) -> int:
        return sum(1 for m in self.content_matches if m.tag in URGENCY_TAGS)


@dataclass
class MlSignal:
    classification: str = ThreatLevel.SAFE.value
    confidence: float = 0.0
    reasoning: str = ""


@dataclass
class DomSignal:
    has_password_form: bool = False
    has_credit_card_form: bool = False
    link_mismatch_count: int = 0
    brand_domain_mismatch: bool = False
    urgency_signals: int = 0

    @classmethod
    def from_page(cls, page: Optional[PageContent], urgency_signals: int = 0) -> "DomSignal":
        if page is None:
            return cls(urgency_signals=urgency_signals)
        return cls(
            has_password_form=page.has_password_form,
            has_credit_card_form=page.has_credit_card_form,
            link_mismatch_count=len(page.mismatched_links),
            brand_domain_mismatch=page.brand_signals.brand_domain_mismatch,
            urgency_signals=urgency_signals,
        )


@dataclass
class ThreatSignals:
    url: UrlSignal = field(default_factory=UrlSignal)
    signature: SignatureSignal = field(default_factory=SignatureSignal)
    ml: MlSignal = field(default_factory=MlSignal)
    dom: DomSignal = field(default_factory=DomSignal)


@dataclass
class ThreatAssessment:
    """Final verdict for one page."""

    level: ThreatLevel
    score: int
    confidence: float
    triggered_signals: list[str] = field(default_factory=list)
    reasoning: str = ""

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "score": self.score,
            "confidence": self.confidence,
            "triggered_signals": list(self.triggered_signals),
            "reasoning": self.reasoning,
        }


ML_LABEL_SCORES: dict[str, int] = {
    ThreatLevel.SAFE.value: 0,
    ThreatLevel.SUSPICIOUS.value: 40,
    ThreatLevel.LIKELY_PHISHING.value: 70,
    ThreatLevel.CONFIRMED_PHISHING.value: 100,
}
UNKNOWN_ML_LABEL_SCORE = 50

THRESHOLDS: dict[ThreatLevel, int] = {
    ThreatLevel.SUSPICIOUS: 25,
    ThreatLevel.LIKELY_PHISHING: 55,
    ThreatLevel.CONFIRMED_PHISHING: 75,
}

DOM_ESCALATION_BONUS = 10
ML_DOMINANCE_MIN_CONFIDENCE = 0.5


class ThreatScorer:
    """Pure fusion of threat signals; the same input always yields the same verdict."""

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def assess(self, signals: ThreatSignals) -> ThreatAssessment:
        if signals.signature.allowlisted:
            return ThreatAssessment(
                level=ThreatLevel.SAFE,
                score=0,
                confidence=1.0,
                triggered_signals=[],
                reasoning="Domain is allowlisted",
            )

        if signals.signature.blocklisted:
            return ThreatAssessment(
                level=ThreatLevel.CONFIRMED_PHISHING,
                score=100,
                confidence=1.0,
                triggered_signals=["url:blocklisted_domain"],
                reasoning="Domain is in the phishing blocklist",
            )

        raw = (
            self.score_url(signals.url) * self.weights.url
            + self.score_signature(signals.signature) * self.weights.signature
            + self.score_ml(signals.ml) * self.weights.ml
            + self.score_dom(signals.dom) * self.weights.dom
        )
        score = _clamp(int(raw + 0.5))

        # Password form on a page impersonating another brand
        if signals.dom.has_password_form and signals.dom.brand_domain_mismatch:
            ceiling = THRESHOLDS[ThreatLevel.CONFIRMED_PHISHING] - 1
            score = min(score + DOM_ESCALATION_BONUS, max(score, ceiling))

        ml_label = signals.ml.classification
        if signals.ml.confidence >= ML_DOMINANCE_MIN_CONFIDENCE:
            for level in (ThreatLevel.CONFIRMED_PHISHING, ThreatLevel.LIKELY_PHISHING):
                if ml_label == level.value:
                    score = max(score, THRESHOLDS[level])
                    break

        assessment = ThreatAssessment(
            level=self.classify(score),
            score=score,
            confidence=self.confidence(signals, score),
            triggered_signals=self.collect_signals(signals),
            reasoning=signals.ml.reasoning or _summarize(score, signals),
        )
        logger.debug("Assessed score=%d level=%s", assessment.score, assessment.level.value)
        return assessment

    @staticmethod
    def score_url(url: UrlSignal) -> float:
        return min(100, max(0, url.score))

    @staticmethod
    def score_signature(signature: SignatureSignal) -> float:
        total = sum(m.weight for m in signature.content_matches)
        total += sum(m.weight for m in signature.url_matches)
        return min(100, total)

    @staticmethod
    def score_ml(ml: MlSignal) -> float:
        base = ML_LABEL_SCORES.get(ml.classification, UNKNOWN_ML_LABEL_SCORE)
        return base * min(1.0, max(0.0, ml.confidence))

    @staticmethod
    def score_dom(dom: DomSignal) -> float:
        score = 0
        if dom.has_password_form:
            score += 20
        if dom.has_credit_card_form:
            score += 30
        if dom.brand_domain_mismatch:
            score += 25
        score += dom.link_mismatch_count * 10
        score += dom.urgency_signals * 10
        return min(100, score)

    @staticmethod
    def classify(score: int) -> ThreatLevel:
        for level in (
            ThreatLevel.CONFIRMED_PHISHING,
            ThreatLevel.LIKELY_PHISHING,
            ThreatLevel.SUSPICIOUS,
        ):
            if score >= THRESHOLDS[level]:
                return level
        return ThreatLevel.SAFE

    @staticmethod
    def confidence(signals: ThreatSignals, score: int) -> float:
        ml_confidence = min(1.0, max(0.0, signals.ml.confidence))
        if ml_confidence >= ML_DOMINANCE_MIN_CONFIDENCE and (score >= 80 or score <= 10):
            return max(ml_confidence, 0.85)
        return max(ml_confidence * 0.8, 0.5)

    @staticmethod
    def collect_signals(signals: ThreatSignals) -> list[str]:
        triggered = [f"url:{s}" for s in signals.url.signals]
        triggered.extend(f"url:{m.tag}" for m in signals.signature.url_matches)
        triggered.extend(f"content:{m.tag}" for m in signals.signature.content_matches)

        dom = signals.dom
        if dom.has_password_form:
            triggered.append("dom:password_form")
        if dom.has_credit_card_form:
            triggered.append("dom:credit_card_form")
        if dom.brand_domain_mismatch:
            triggered.append("dom:brand_mismatch")
        if dom.link_mismatch_count > 0:
            triggered.append("dom:link_mismatch")
        if dom.urgency_signals > 0:
            triggered.append("dom:urgency")

        if signals.ml.classification != ThreatLevel.SAFE.value:
            triggered.append(f"ml:{signals.ml.classification.lower()}")
        return triggered


def _clamp(score: int) -> int:
    return min(100, max(0, score))


def _summarize(score: int, signals: ThreatSignals) -> str:
    parts = []
    if signals.url.signals:
        parts.append("URL: " + ", ".join(signals.url.signals))
    tags = [m.tag for m in signals.signature.content_matches + signals.signature.url_matches if m.tag]
    if tags:
        parts.append("patterns: " + ", ".join(tags))
    if not parts:
        return f"No significant indicators (score {score})"
    return f"Score {score} from " + "; ".join(parts)
