"""Owner of the single sandbox context used for ML inference."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

from ..analyzer.threat_scorer import ThreatLevel
from .host import SandboxError, SandboxHost

logger = logging.getLogger(__name__)

REQUEST_TYPE = "INFERENCE_REQUEST"
RESULT_TYPE = "INFERENCE_RESULT"


class SandboxStatus(str, Enum):
    IDLE = "IDLE"
    CREATING = "CREATING"
    INFERRING = "INFERRING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class InferenceRequest:
    system: str
    user: str
    request_id: str

    def to_message(self) -> dict:
        return {
            "type": REQUEST_TYPE,
            "system": self.system,
            "user": self.user,
            "requestId": self.request_id,
        }


@dataclass(frozen=True)
class InferenceResult:
    request_id: str
    classification: str
    confidence: float
    reasoning: str = ""

    @classmethod
    def from_message(cls, message: dict, expected_request_id: str) -> "InferenceResult":
        """Validate a sandbox response against the request it answers."""
        if message.get("type") != RESULT_TYPE:
            raise SandboxError(f"Unexpected sandbox message type: {message.get('type')!r}")

        request_id = message.get("requestId")
        if request_id != expected_request_id:
            raise SandboxError(
                f"Sandbox answered request {request_id!r}, expected {expected_request_id!r}"
            )

        classification = message.get("classification")
        if classification not in {level.value for level in ThreatLevel}:
            raise SandboxError(f"Unknown classification: {classification!r}")

        confidence = message.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise SandboxError(f"Confidence is not a number: {confidence!r}")
        if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
            raise SandboxError(f"Confidence out of range: {confidence!r}")

        return cls(
            request_id=request_id,
            classification=classification,
            confidence=float(confidence),
            reasoning=str(message.get("reasoning") or ""),
        )


class InferenceSandboxManager:
    """Creates, reuses and tears down the one sandbox context.

    Concurrent `run_inference` calls are not queued; callers run one at a time.
    """

    def __init__(self, host: SandboxHost):
        self.host = host
        self.status = SandboxStatus.IDLE

    async def ensure_context(self) -> None:
        """Create the context if it does not exist yet. Safe to call repeatedly."""
        if await self.host.has_context():
            return
        self.status = SandboxStatus.CREATING
        await self.host.create_context()
        self.status = SandboxStatus.IDLE

    async def close_context(self) -> None:
        if not await self.host.has_context():
            return
        await self.host.close_context()
        self.status = SandboxStatus.IDLE

    async def run_inference(self, request: InferenceRequest) -> InferenceResult:
        try:
            await self.ensure_context()
            self.status = SandboxStatus.INFERRING
            response = await self.host.send_message(request.to_message())
            result = InferenceResult.from_message(response, request.request_id)
        except Exception:
            self.status = SandboxStatus.ERROR
            raise
        self.status = SandboxStatus.IDLE
        return result

    async def is_healthy(self) -> bool:
        return await self.host.has_context()
