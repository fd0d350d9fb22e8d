"""
Duplicate suppression for transaction suggestions.

Two checks, in order:
- Exact: a suggestion already exists for a file with the same SHA-256 hash.
- Fuzzy: same operation, type and currency, amount within +/-2% and date
  within +/-3 days (both bounds inclusive).

The canonical suggestion (the one a duplicate points to) is always the
earliest-created non-duplicate, so duplicate links are never chained.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

from .models import Suggestion, TransactionCandidate

logger = logging.getLogger(__name__)

SAME_FILE_REASON = "same file already processed"


def compute_file_hash(binary: bytes) -> str:
    """SHA-256 hex digest of an attachment."""
    return hashlib.sha256(binary).hexdigest()


@dataclass
class DuplicateCheck:
    is_duplicate: bool
    reason: Optional[str] = None
    related_id: Optional[str] = None


NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)


def canonical_id(suggestion: Suggestion) -> str:
    """Id a new duplicate of this suggestion must point to."""
    if suggestion.is_duplicate and suggestion.related_suggestion_id:
        return suggestion.related_suggestion_id
    return suggestion.id


class DuplicateDetector:
    """
    Exact + fuzzy duplicate detection against a SuggestionStore.

    Store errors propagate: a failed lookup is never reported as
    "not a duplicate".

    Usage:
        detector = DuplicateDetector(store)
        check = detector.check(candidate, operation_id, file_hash)
    """

    def __init__(
        self,
        store,
        amount_tolerance: Decimal = Decimal("0.02"),
        date_window_days: int = 3,
    ):
        """
        Initialize detector.

        Args:
            store: SuggestionStore (find_by_attachment_hash, find_similar)
            amount_tolerance: Relative amount window, 0.02 = +/-2%
            date_window_days: Date window in days, inclusive
        """
        self.store = store
        self.amount_tolerance = Decimal(str(amount_tolerance))
        self.date_window_days = date_window_days

    def check(
        self,
        candidate: TransactionCandidate,
        operation_id: Optional[str],
        attachment_hash: Optional[str],
    ) -> DuplicateCheck:
        """Exact check first, then fuzzy."""
        exact = self.check_file(attachment_hash)
        if exact.is_duplicate:
            return exact
        return self.check_fuzzy(candidate, operation_id, attachment_hash)

    def check_file(self, attachment_hash: Optional[str]) -> DuplicateCheck:
        """Exact duplicate: the same file already produced a suggestion."""
        if not attachment_hash:
            return NOT_DUPLICATE

        existing = self.store.find_by_attachment_hash(attachment_hash)
        if existing is None:
            return NOT_DUPLICATE

        logger.info(f"Exact duplicate: file {attachment_hash[:12]} already processed")
        return DuplicateCheck(
            is_duplicate=True,
            reason=SAME_FILE_REASON,
            related_id=canonical_id(existing),
        )

    def check_fuzzy(
        self,
        candidate: TransactionCandidate,
        operation_id: Optional[str],
        attachment_hash: Optional[str] = None,
    ) -> DuplicateCheck:
        """
        Fuzzy duplicate within the same operation.

        Suggestions coming from the same file are ignored here; a file that
        yields several transactions must not flag its own siblings.
        """
        if not operation_id:
            return NOT_DUPLICATE

        delta = candidate.amount * self.amount_tolerance
        window = timedelta(days=self.date_window_days)

        similar: List[Suggestion] = self.store.find_similar(
            operation_id,
            candidate.type,
            candidate.currency,
            (candidate.amount - delta, candidate.amount + delta),
            (candidate.date - window, candidate.date + window),
        )

        matches = [
            s for s in similar
            if self.is_similar(candidate, s)
            and not (attachment_hash and s.attachment_hash == attachment_hash)
        ]
        if not matches:
            return NOT_DUPLICATE

        earliest = min(matches, key=lambda s: s.created_at)
        related_id = canonical_id(earliest)
        reason = (
            f"similar {earliest.type.value} of {earliest.currency.value} {earliest.amount} "
            f"on {earliest.date.isoformat()} in the same operation"
        )
        logger.info(f"Fuzzy duplicate of {related_id}: {reason}")
        return DuplicateCheck(is_duplicate=True, reason=reason, related_id=related_id)

    def is_similar(self, candidate: TransactionCandidate, existing: Suggestion) -> bool:
        """Inclusive tolerance check on amount and date, same type and currency."""
        if existing.type is not candidate.type or existing.currency is not candidate.currency:
            return False
        if abs(existing.amount - candidate.amount) > candidate.amount * self.amount_tolerance:
            return False
        return abs((existing.date - candidate.date).days) <= self.date_window_days
