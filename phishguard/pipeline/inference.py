"""Inference pipeline: URL analysis, signatures, sandboxed ML, scoring."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..analyzer.page import PageContent
from ..analyzer.prompt_builder import PromptBuilder
from ..analyzer.signatures import SignatureDatabase
from ..analyzer.threat_scorer import (
    DomSignal,
    MlSignal,
    SignatureSignal,
    ThreatAssessment,
    ThreatLevel,
    ThreatScorer,
    ThreatSignals,
    UrlSignal,
)
from ..analyzer.url_analyzer import UrlAnalysisResult, UrlAnalyzer
from ..sandbox import InferenceRequest, InferenceSandboxManager, SandboxError
from ..utils.domains import extract_hostname

logger = logging.getLogger(__name__)

DEGRADED_CONFIDENCE = 0.3


class PipelineStatus(str, Enum):
    IDLE = "IDLE"
    ANALYZING_URL = "ANALYZING_URL"
    CHECKING_SIGNATURES = "CHECKING_SIGNATURES"
    BUILDING_PROMPT = "BUILDING_PROMPT"
    RUNNING_INFERENCE = "RUNNING_INFERENCE"
    SCORING = "SCORING"
    ERROR = "ERROR"


@dataclass
class PipelineInput:
    url: str
    page_content: PageContent


@dataclass
class PipelineResult:
    assessment: ThreatAssessment
    url_analysis: UrlAnalysisResult
    inference_skipped: bool
    inference_error: Optional[str] = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "assessment": self.assessment.to_dict(),
            "url_analysis": {
                "url": self.url_analysis.url,
                "score": self.url_analysis.score,
                "risk_level": self.url_analysis.risk_level.value,
                "signals": list(self.url_analysis.signals),
            },
            "inference_skipped": self.inference_skipped,
            "inference_error": self.inference_error,
            "duration_ms": round(self.duration_ms, 3),
        }


class InferencePipeline:
    """Runs one page through every detection stage.

    Allowlisted and blocklisted hosts exit before the sandbox is contacted.
    A failed inference degrades to a low-confidence SUSPICIOUS ML signal and
    still produces an assessment. The status field is not synchronized: run
    one `analyze` at a time per instance.
    """

    def __init__(
        self,
        *,
        url_analyzer: UrlAnalyzer,
        signatures: SignatureDatabase,
        prompt_builder: PromptBuilder,
        sandbox: Optional[InferenceSandboxManager],
        scorer: Optional[ThreatScorer] = None,
    ):
        self.url_analyzer = url_analyzer
        self.signatures = signatures
        self.prompt_builder = prompt_builder
        self.sandbox = sandbox
        self.scorer = scorer or ThreatScorer()
        self.status = PipelineStatus.IDLE

    async def analyze(self, pipeline_input: PipelineInput) -> PipelineResult:
        start = time.perf_counter()
        url = pipeline_input.url
        page = pipeline_input.page_content

        try:
            self.status = PipelineStatus.ANALYZING_URL
            url_analysis = self.url_analyzer.analyze(url)

            self.status = PipelineStatus.CHECKING_SIGNATURES
            hostname = extract_hostname(url)
            allowlisted = self.signatures.is_allowlisted(hostname)
            blocked = self.signatures.check_domain(hostname)
            content_matches = self.signatures.match_content(page.text)
            url_matches = self.signatures.match_url_pattern(url)
            signature = SignatureSignal(
                blocklisted=blocked.matched,
                allowlisted=allowlisted,
                content_matches=content_matches,
                url_matches=url_matches,
            )
            dom = DomSignal.from_page(page, urgency_signals=signature.urgency_count)

            if allowlisted or blocked.matched:
                signals = ThreatSignals(
                    url=UrlSignal.from_analysis(url_analysis),
                    signature=signature,
                    ml=MlSignal(
                        classification=(
                            ThreatLevel.SAFE.value if allowlisted else ThreatLevel.CONFIRMED_PHISHING.value
                        ),
                        confidence=1.0,
                        reasoning="Domain is allowlisted" if allowlisted else "Domain is blocklisted",
                    ),
                    dom=dom,
                )
                result = self._build_result(url_analysis, signals, start, inference_skipped=True)
                logger.info(
                    "Fast path for %s: %s (%s)",
                    hostname,
                    result.assessment.level.value,
                    "allowlisted" if allowlisted else f"blocklisted via {blocked.pattern}",
                )
                self.status = PipelineStatus.IDLE
                return result

            self.status = PipelineStatus.BUILDING_PROMPT
            prompt = self.prompt_builder.build_prompt(page, url_analysis)

            self.status = PipelineStatus.RUNNING_INFERENCE
            request = InferenceRequest(system=prompt.system, user=prompt.user, request_id=str(uuid.uuid4()))
            inference_error: Optional[str] = None
            try:
                if self.sandbox is None:
                    raise SandboxError("no sandbox configured")
                inference = await self.sandbox.run_inference(request)
                ml = MlSignal(
                    classification=inference.classification,
                    confidence=inference.confidence,
                    reasoning=inference.reasoning,
                )
            except Exception as exc:
                inference_error = str(exc) or type(exc).__name__
                logger.warning("Inference failed for %s, scoring without ML: %s", hostname, inference_error)
                ml = MlSignal(
                    classification=ThreatLevel.SUSPICIOUS.value,
                    confidence=DEGRADED_CONFIDENCE,
                    reasoning=f"ML inference unavailable: {inference_error}",
                )

            if inference_error is None:
                self.status = PipelineStatus.SCORING
            signals = ThreatSignals(
                url=UrlSignal.from_analysis(url_analysis),
                signature=signature,
                ml=ml,
                dom=dom,
            )
            result = self._build_result(
                url_analysis,
                signals,
                start,
                inference_skipped=False,
                inference_error=inference_error,
            )
            self.status = PipelineStatus.ERROR if inference_error else PipelineStatus.IDLE
            logger.info(
                "Verdict for %s: %s (score %d, confidence %.2f)",
                hostname,
                result.assessment.level.value,
                result.assessment.score,
                result.assessment.confidence,
            )
            return result
        except Exception:
            self.status = PipelineStatus.ERROR
            raise

    def _build_result(
        self,
        url_analysis: UrlAnalysisResult,
        signals: ThreatSignals,
        start: float,
        *,
        inference_skipped: bool,
        inference_error: Optional[str] = None,
    ) -> PipelineResult:
        assessment = self.scorer.assess(signals)
        return PipelineResult(
            assessment=assessment,
            url_analysis=url_analysis,
            inference_skipped=inference_skipped,
            inference_error=inference_error,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
