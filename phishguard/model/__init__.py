"""Model artifact management."""

from .manager import ModelFetchError, ModelInfo, ModelManager, ModelManifest, ModelStatus
from .store import ModelStore

__all__ = [
    "ModelFetchError",
    "ModelInfo",
    "ModelManager",
    "ModelManifest",
    "ModelStatus",
    "ModelStore",
]
