"""
In-memory implementations of the store interfaces.

Used to wire the pipeline without a database and as test doubles. Every
store is guarded by a lock, so the pipeline may share them with worker
threads.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ..core.errors import DownloadError
from ..core.models import (
    AttachmentJob,
    Currency,
    OperationContext,
    Suggestion,
    SuggestionStatus,
    TransactionType,
)

logger = logging.getLogger(__name__)


class SuggestionStore:
    """
    Suggestion persistence.

    The pipeline only inserts; approve() and reject() are reviewer actions.
    Nothing is ever deleted, rejected suggestions stay for audit.
    """

    def __init__(self):
        self._items: Dict[str, Suggestion] = {}
        self._lock = threading.Lock()

    def insert_suggestion(self, suggestion: Suggestion) -> Suggestion:
        with self._lock:
            if suggestion.id in self._items:
                raise ValueError(f"Suggestion {suggestion.id} already exists")
            self._items[suggestion.id] = suggestion
        return suggestion

    def get(self, suggestion_id: str) -> Optional[Suggestion]:
        with self._lock:
            return self._items.get(suggestion_id)

    def find_by_attachment_hash(self, attachment_hash: str) -> Optional[Suggestion]:
        """Earliest suggestion produced from a file with this hash."""
        with self._lock:
            matches = [s for s in self._items.values() if s.attachment_hash == attachment_hash]
        return min(matches, key=lambda s: s.created_at) if matches else None

    def find_similar(
        self,
        operation_id: str,
        tx_type: TransactionType,
        currency: Currency,
        amount_range: Tuple[Decimal, Decimal],
        date_range: Tuple[date, date],
    ) -> List[Suggestion]:
        """Suggestions of the operation inside both ranges (inclusive), oldest first."""
        low_amount, high_amount = amount_range
        low_date, high_date = date_range
        with self._lock:
            found = [
                s for s in self._items.values()
                if s.operation_id == operation_id
                and s.type is tx_type
                and s.currency is currency
                and low_amount <= s.amount <= high_amount
                and low_date <= s.date <= high_date
            ]
        return sorted(found, key=lambda s: s.created_at)

    def list_suggestions(
        self,
        operation_id: Optional[str] = None,
        status: Optional[SuggestionStatus] = None,
        include_duplicates: bool = True,
    ) -> List[Suggestion]:
        with self._lock:
            items = list(self._items.values())
        return sorted(
            (
                s for s in items
                if (operation_id is None or s.operation_id == operation_id)
                and (status is None or s.status is status)
                and (include_duplicates or not s.is_duplicate)
            ),
            key=lambda s: s.created_at,
        )

    def approve(self, suggestion_id: str) -> Suggestion:
        return self._set_status(suggestion_id, SuggestionStatus.APPROVED)

    def reject(self, suggestion_id: str, reason: Optional[str] = None) -> Suggestion:
        return self._set_status(suggestion_id, SuggestionStatus.REJECTED, reason)

    def _set_status(
        self, suggestion_id: str, status: SuggestionStatus, reason: Optional[str] = None
    ) -> Suggestion:
        with self._lock:
            current = self._items.get(suggestion_id)
            if current is None:
                raise KeyError(suggestion_id)
            if current.status is not SuggestionStatus.PENDING:
                raise ValueError(
                    f"Suggestion {suggestion_id} already {current.status.value}"
                )
            updated = replace(current, status=status, rejection_reason=reason)
            self._items[suggestion_id] = updated
        logger.info(f"Suggestion {suggestion_id} {status.value}")
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class JobStore:
    """Persisted AttachmentJob status; survives the job leaving the queue."""

    def __init__(self):
        self._jobs: Dict[str, AttachmentJob] = {}
        self._lock = threading.Lock()

    def update_job_status(self, job: AttachmentJob) -> None:
        with self._lock:
            self._jobs[job.attachment_ref] = replace(job)

    def get_job(self, attachment_ref: str) -> Optional[AttachmentJob]:
        with self._lock:
            job = self._jobs.get(attachment_ref)
            return replace(job) if job else None

    def get_jobs_for_message(self, message_id: str) -> List[AttachmentJob]:
        with self._lock:
            return [replace(j) for j in self._jobs.values() if j.message_id == message_id]


class BlobStore:
    """Content-hash keyed binary storage."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def upload(self, key: str, binary: bytes) -> str:
        with self._lock:
            # Same key means same content
            self._blobs.setdefault(key, binary)
        return key

    def download(self, key: str) -> bytes:
        with self._lock:
            if key not in self._blobs:
                raise KeyError(key)
            return self._blobs[key]

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs


@dataclass
class ReviewItem:
    binary_ref: str
    file_name: str
    file_hash: str
    type_hint: Optional[str]
    context: Optional[OperationContext]
    reason: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ManualReviewSink:
    """Documents no tier could handle. Idempotent on file hash."""

    def __init__(self):
        self._items: Dict[str, ReviewItem] = {}
        self._lock = threading.Lock()

    def enqueue_for_review(
        self,
        binary_ref: str,
        file_name: str,
        file_hash: str,
        type_hint: Optional[str] = None,
        context: Optional[OperationContext] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Queue a document for manual review.

        Returns:
            False when the hash was already queued (no-op)
        """
        with self._lock:
            if file_hash in self._items:
                return False
            self._items[file_hash] = ReviewItem(
                binary_ref, file_name, file_hash, type_hint, context, reason
            )
        logger.info(f"Queued {file_name} for manual review ({reason})")
        return True

    def list_items(self) -> List[ReviewItem]:
        with self._lock:
            return sorted(self._items.values(), key=lambda i: i.created_at)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class AttachmentSource:
    """
    Attachment binaries by reference, grouped by email message.

    Stands in for the mail server in wiring and tests.
    """

    def __init__(self):
        self._binaries: Dict[str, bytes] = {}
        self._messages: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def add(self, message_id: str, attachment_ref: str, binary: bytes) -> None:
        with self._lock:
            self._binaries[attachment_ref] = binary
            refs = self._messages.setdefault(message_id, [])
            if attachment_ref not in refs:
                refs.append(attachment_ref)

    async def fetch(self, attachment_ref: str) -> bytes:
        with self._lock:
            if attachment_ref not in self._binaries:
                raise DownloadError(f"Unknown attachment {attachment_ref}")
            return self._binaries[attachment_ref]

    def list_attachments(self, message_id: str) -> List[str]:
        with self._lock:
            return list(self._messages.get(message_id, []))
