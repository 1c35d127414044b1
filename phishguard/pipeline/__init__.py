"""Detection pipelines."""

from .inference import InferencePipeline, PipelineInput, PipelineResult, PipelineStatus
from .scan import ScanHandler, ScanRequest, ScanVerdict

__all__ = [
    "InferencePipeline",
    "PipelineInput",
    "PipelineResult",
    "PipelineStatus",
    "ScanHandler",
    "ScanRequest",
    "ScanVerdict",
]
