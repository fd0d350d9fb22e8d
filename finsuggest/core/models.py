"""
Data model for transaction suggestions, attachment jobs and thread analysis.

Closed enums replace the free-form keyword/category strings so that every
consumer can match on a known variant set.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

EXCERPT_MAX_CHARS = 5000


class TransactionType(Enum):
    """Direction of money for a detected transaction."""
    PAYMENT = "payment"    # Money received from a client
    EXPENSE = "expense"    # Money sent by the company


class Currency(Enum):
    USD = "USD"
    MXN = "MXN"
    EUR = "EUR"
    ARS = "ARS"
    GBP = "GBP"
    CAD = "CAD"

    @classmethod
    def parse(cls, value: Optional[str], default: "Currency" = None) -> Optional["Currency"]:
        """Map a currency code or word (dolares, pesos) to a Currency."""
        if not value:
            return default
        token = value.strip().upper()
        if token in ("DOLAR", "DOLARES", "DÓLAR", "DÓLARES", "DOLLAR", "DOLLARS"):
            return cls.USD
        if token in ("PESO", "PESOS"):
            return cls.MXN
        if token in ("€", "EURO", "EUROS"):
            return cls.EUR
        try:
            return cls(token[:3])
        except ValueError:
            return default


class DetectionMethod(Enum):
    """Tier that produced a result."""
    AI = "ai"
    RULE_BASED = "rule-based"
    OCR = "ocr"
    NONE = "none"


class SuggestionStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentMethod(Enum):
    TRANSFER = "transfer"
    CASH = "cash"
    CHECK = "check"
    CARD = "card"
    OTHER = "other"


class ExpenseCategory(Enum):
    TRAVEL = "travel"
    SUPPLIES = "supplies"
    SERVICES = "services"
    CUSTOMS = "customs"
    FREIGHT = "freight"
    OTHER = "other"


class JobPriority(Enum):
    HIGH = "high"
    NORMAL = "normal"

    @property
    def rank(self) -> int:
        """Sort rank, lower runs first."""
        return 0 if self is JobPriority.HIGH else 1


class JobStatus(Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.READY, JobStatus.FAILED)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation, calls allowed
    OPEN = "open"            # Failing, calls rejected
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class OperationContext:
    """Business operation an attachment belongs to."""
    operation_id: str
    operation_name: str
    client_name: Optional[str] = None

    def __post_init__(self):
        if not self.operation_id:
            raise ValueError("OperationContext requires an operation_id")


@dataclass
class TransactionCandidate:
    """
    A transaction extracted from a document, before duplicate evaluation.

    Attributes:
        confidence: 0-100 score assigned by the producing tier
        reasoning: Free text, always prefixed with the tier tag
    """
    type: TransactionType
    amount: Decimal
    currency: Currency
    date: date
    description: str
    confidence: int
    reasoning: str
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = None
    category: Optional[ExpenseCategory] = None


@dataclass
class DetectionResult:
    """Outcome of ExtractionCascade.detect()."""
    transactions: List[TransactionCandidate]
    method: DetectionMethod
    extracted_text: str = ""
    reason: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.transactions


@dataclass
class Suggestion:
    """Reviewable transaction suggestion. Only a reviewer changes its status."""
    type: TransactionType
    amount: Decimal
    currency: Currency
    date: date
    description: str
    confidence: int
    detection_method: DetectionMethod
    extracted_text_excerpt: str = ""
    is_duplicate: bool = False
    duplicate_reason: Optional[str] = None
    related_suggestion_id: Optional[str] = None
    attachment_hash: Optional[str] = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    operation_id: Optional[str] = None
    reasoning: str = ""
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = None
    category: Optional[ExpenseCategory] = None
    source_file_name: Optional[str] = None
    rejection_reason: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_candidate(
        cls,
        candidate: TransactionCandidate,
        method: DetectionMethod,
        extracted_text: str,
        operation_id: Optional[str] = None,
        attachment_hash: Optional[str] = None,
        source_file_name: Optional[str] = None,
    ) -> "Suggestion":
        return cls(
            type=candidate.type,
            amount=candidate.amount,
            currency=candidate.currency,
            date=candidate.date,
            description=candidate.description,
            confidence=candidate.confidence,
            detection_method=method,
            extracted_text_excerpt=(extracted_text or "")[:EXCERPT_MAX_CHARS],
            attachment_hash=attachment_hash,
            operation_id=operation_id,
            reasoning=candidate.reasoning,
            payment_method=candidate.payment_method,
            reference=candidate.reference,
            category=candidate.category,
            source_file_name=source_file_name,
        )


@dataclass
class AttachmentJob:
    """Download lifecycle of one email attachment."""
    attachment_ref: str
    priority: JobPriority = JobPriority.NORMAL
    retry_count: int = 0
    status: JobStatus = JobStatus.PENDING
    last_error: Optional[str] = None
    enqueued_at: float = field(default_factory=time.monotonic)
    message_id: Optional[str] = None
    blob_key: Optional[str] = None


@dataclass
class CircuitBreakerState:
    """Point-in-time view of a circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    opened_at: Optional[float] = None


# Conversation-level analysis

@dataclass
class ThreadMessage:
    id: str
    sender: str
    subject: str
    snippet: str
    date: datetime


@dataclass
class EmailThread:
    thread_id: str
    messages: List[ThreadMessage]


@dataclass
class TaskSuggestion:
    title: str
    description: str
    priority: str = "medium"
    confidence: int = 0
    reasoning: str = ""


@dataclass
class NoteSuggestion:
    content: str
    confidence: int = 0
    reasoning: str = ""


@dataclass
class AnalysisResult:
    """Result of a conversation-level AI analysis."""
    tasks: List[TaskSuggestion] = field(default_factory=list)
    notes: List[NoteSuggestion] = field(default_factory=list)
    should_skip: bool = False
    cache_key: str = ""
    used_cache: bool = False
    skip_reason: Optional[str] = None
