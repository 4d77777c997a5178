"""Request-scoped plumbing shared by the ingestion job controller and retrieval."""

from src.pipeline.cancellation import CancellationToken, OperationCancelled, never_cancelled
from src.pipeline.progress_channel import ProgressChannel

__all__ = [
    "CancellationToken",
    "OperationCancelled",
    "ProgressChannel",
    "never_cancelled",
]
