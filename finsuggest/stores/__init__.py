"""
Store implementations for the pipeline's persistence interfaces.
"""

from .memory import (
    AttachmentSource,
    BlobStore,
    JobStore,
    ManualReviewSink,
    ReviewItem,
    SuggestionStore,
)

__all__ = [
    "AttachmentSource",
    "BlobStore",
    "JobStore",
    "ManualReviewSink",
    "ReviewItem",
    "SuggestionStore",
]
