"""Sandbox context management for ML inference."""

from .host import ProcessSandboxHost, SandboxError, SandboxHost
from .manager import InferenceRequest, InferenceResult, InferenceSandboxManager, SandboxStatus

__all__ = [
    "InferenceRequest",
    "InferenceResult",
    "InferenceSandboxManager",
    "ProcessSandboxHost",
    "SandboxError",
    "SandboxHost",
    "SandboxStatus",
]
