"""
AI tier: turns document text into transaction candidates through an AIProvider.

The provider call is blocking; callers run extract() in a worker thread and
wrap it with the rate limiter. Provider errors propagate so the caller can
account for them on the circuit breaker.
"""

import logging
import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from ..core.errors import ProviderError
from ..core.models import (
    Currency,
    ExpenseCategory,
    OperationContext,
    PaymentMethod,
    TransactionCandidate,
    TransactionType,
)
from ..core.prompt_engine import PromptEngine
from ..utils.sanitize import extract_json, sanitize_text

logger = logging.getLogger(__name__)

AI_REASONING_TAG = "[ai]"


def _to_enum(enum_cls, value, default=None):
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def _to_confidence(raw) -> int:
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"non-finite confidence {raw!r}")
    # Some models answer 0.85 instead of 85
    if isinstance(raw, float) and 0 < value <= 1.0:
        value *= 100
    return max(0, min(100, int(round(value))))


def _to_date(raw) -> date:
    if raw:
        try:
            return datetime.strptime(str(raw)[:10], "%Y-%m-%d").date()
        except ValueError:
            logger.debug(f"Unparseable AI date {raw!r}, using today")
    return date.today()


class AIExtractor:
    """
    Prompt rendering + response parsing around an AI provider.

    Args:
        provider: Object with generate(prompt) -> str
        prompt_engine: Renders the extraction prompt
        min_confidence: Candidates below this (0-100) are dropped
        max_prompt_chars: Document text is truncated to this many characters
    """

    def __init__(
        self,
        provider,
        prompt_engine: Optional[PromptEngine] = None,
        min_confidence: int = 70,
        max_prompt_chars: int = 12000,
    ):
        self.provider = provider
        self.prompt_engine = prompt_engine or PromptEngine()
        self.min_confidence = min_confidence
        self.max_prompt_chars = max_prompt_chars

    def extract(self, text: str, context: Optional[OperationContext] = None) -> List[TransactionCandidate]:
        """
        Ask the provider for transactions in text.

        Returns:
            Candidates at or above min_confidence (possibly empty)

        Raises:
            RateLimitError: provider is rate limiting
            ProviderError: call failed or the answer is not JSON
        """
        prompt = self.prompt_engine.render_extraction(
            sanitize_text(text, self.max_prompt_chars),
            operation_name=context.operation_name if context else None,
            client_name=context.client_name if context else None,
            min_confidence=self.min_confidence,
            currencies=[c.value for c in Currency],
            max_text_chars=self.max_prompt_chars,
        )
        raw = self.provider.generate(prompt)
        return self.parse_response(raw)

    def parse_response(self, raw: str) -> List[TransactionCandidate]:
        """Convert a raw model answer into filtered candidates."""
        data = extract_json(raw, "[")
        if isinstance(data, dict):
            data = data.get("transactions", [])
        if not isinstance(data, list):
            raise ProviderError("AI response is not a JSON array")

        candidates = []
        for item in data:
            try:
                candidate = self._build_candidate(item)
            except (ArithmeticError, AttributeError, TypeError, ValueError) as e:
                raise ProviderError(f"Malformed AI transaction item: {e}") from e
            if candidate is None:
                continue
            if candidate.confidence < self.min_confidence:
                logger.debug(
                    f"Dropping AI candidate below threshold "
                    f"({candidate.confidence} < {self.min_confidence})"
                )
                continue
            candidates.append(candidate)

        logger.info(f"AI tier produced {len(candidates)} candidate(s) from {len(data)} item(s)")
        return candidates

    def _build_candidate(self, item: Dict) -> Optional[TransactionCandidate]:
        if not isinstance(item, dict):
            return None

        tx_type = _to_enum(TransactionType, item.get("type"))
        if tx_type is None:
            logger.warning(f"Skipping AI item with unknown type: {item.get('type')!r}")
            return None

        try:
            amount = Decimal(str(item.get("amount")).replace(",", ""))
            confidence = _to_confidence(item.get("confidence", 0))
        except (InvalidOperation, OverflowError, TypeError, ValueError):
            logger.warning(f"Skipping AI item with invalid amount/confidence: {item}")
            return None
        if not amount.is_finite() or amount <= 0:
            return None

        reasoning = str(item.get("reasoning") or "").strip()
        return TransactionCandidate(
            type=tx_type,
            amount=amount,
            currency=Currency.parse(item.get("currency"), default=Currency.MXN),
            date=_to_date(item.get("date")),
            description=str(item.get("description") or "").strip(),
            confidence=confidence,
            reasoning=f"{AI_REASONING_TAG} {reasoning}".strip(),
            payment_method=(
                _to_enum(PaymentMethod, item.get("paymentMethod"), PaymentMethod.OTHER)
                if tx_type is TransactionType.PAYMENT else None
            ),
            reference=(str(item["reference"]).strip() or None) if item.get("reference") else None,
            category=(
                _to_enum(ExpenseCategory, item.get("category"), ExpenseCategory.OTHER)
                if tx_type is TransactionType.EXPENSE else None
            ),
        )
