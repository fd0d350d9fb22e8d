"""
Orchestrator module - attachment to reviewable suggestion.

Flow for one attachment: Blob -> Hash -> Cascade -> Duplicate check -> Store,
or Manual review when no tier produced anything.

Every processed document ends either as stored suggestions (possibly flagged
as duplicates) or as a manual-review entry.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .cascade import ExtractionCascade
from .duplicate_detector import DuplicateDetector, compute_file_hash
from .models import DetectionMethod, OperationContext, Suggestion
from ..utils.logger import logger


@dataclass
class ProcessingOutcome:
    """What happened to one attachment."""
    file_name: str
    file_hash: str
    method: DetectionMethod
    suggestions: List[Suggestion] = field(default_factory=list)
    sent_to_review: bool = False
    reason: Optional[str] = None

    @property
    def duplicates(self) -> List[Suggestion]:
        return [s for s in self.suggestions if s.is_duplicate]


class Orchestrator:
    """
    Coordinates the pipeline: Blob store -> Cascade -> Dedup -> Suggestion store.

    The collaborators are built once by build_pipeline() and injected here;
    nothing in this class reaches for globals.
    """

    def __init__(
        self,
        cascade: ExtractionCascade,
        detector: DuplicateDetector,
        suggestion_store,
        blob_store,
        review_sink,
        provider=None,
        download_queue=None,
        thread_analyzer=None,
    ):
        self.cascade = cascade
        self.detector = detector
        self.suggestion_store = suggestion_store
        self.blob_store = blob_store
        self.review_sink = review_sink
        self.provider = provider
        self.download_queue = download_queue
        self.thread_analyzer = thread_analyzer

    async def process_attachment(
        self,
        blob_key: str,
        file_name: str,
        context: OperationContext,
        mime_type: Optional[str] = None,
    ) -> ProcessingOutcome:
        """
        Turn a stored attachment into suggestions.

        Args:
            blob_key: Blob store key of the attachment binary
            file_name: Original file name (drives routing and descriptions)
            context: Operation the attachment belongs to
            mime_type: Optional MIME type from the email part

        Returns:
            ProcessingOutcome
        """
        if context is None:
            raise ValueError("process_attachment() requires an OperationContext")

        binary = await asyncio.to_thread(self.blob_store.download, blob_key)
        file_hash = compute_file_hash(binary)
        logger.info(f"Processing {file_name} ({len(binary)} bytes) for operation {context.operation_id}")

        result = await self.cascade.detect(binary, file_name, context, mime_type)

        if result.is_empty:
            queued = self.review_sink.enqueue_for_review(
                blob_key, file_name, file_hash, None, context, result.reason
            )
            logger.info(
                f"{file_name}: no transaction detected, "
                f"{'queued for' if queued else 'already in'} manual review"
            )
            return ProcessingOutcome(
                file_name, file_hash, result.method, sent_to_review=True, reason=result.reason
            )

        # Exact-hash check once per file, so sibling transactions of a
        # multi-transaction document do not flag each other
        file_check = self.detector.check_file(file_hash)

        stored = []
        for candidate in result.transactions:
            check = file_check if file_check.is_duplicate else self.detector.check_fuzzy(
                candidate, context.operation_id, file_hash
            )
            suggestion = Suggestion.from_candidate(
                candidate,
                result.method,
                result.extracted_text,
                operation_id=context.operation_id,
                attachment_hash=file_hash,
                source_file_name=file_name,
            )
            suggestion.is_duplicate = check.is_duplicate
            suggestion.duplicate_reason = check.reason
            suggestion.related_suggestion_id = check.related_id

            self.suggestion_store.insert_suggestion(suggestion)
            stored.append(suggestion)
            logger.info(
                f"Stored {suggestion.type.value} suggestion {suggestion.id} "
                f"({suggestion.currency.value} {suggestion.amount}, method={result.method.value}"
                f"{', duplicate' if check.is_duplicate else ''})"
            )

        return ProcessingOutcome(file_name, file_hash, result.method, stored, reason=result.reason)

    async def process_upload(
        self,
        binary: bytes,
        file_name: str,
        context: OperationContext,
        mime_type: Optional[str] = None,
    ) -> ProcessingOutcome:
        """Store a binary under its content hash, then process it."""
        key = self.blob_store.upload(compute_file_hash(binary), binary)
        return await self.process_attachment(key, file_name, context, mime_type)

    def health(self) -> Dict:
        """Return health status of the pipeline."""
        provider_healthy = self.provider.health_check() if self.provider else False
        status = {
            "status": "ok" if provider_healthy else "degraded",
            "provider": self.provider.get_name() if self.provider else None,
            "provider_healthy": provider_healthy,
            "cascade": self.cascade.get_stats(),
        }
        if self.download_queue is not None:
            status["download_queue"] = self.download_queue.get_stats()
        if self.thread_analyzer is not None:
            status["thread_cache"] = self.thread_analyzer.cache.get_stats()
        return status
