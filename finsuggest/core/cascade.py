"""
Extraction cascade: binary attachment -> transaction candidates.

Tiers are tried strictly in order and the first one producing candidates
wins:
1. text extraction (PDF text layer, OCR); under 50 chars is "insufficient"
2. AI tier, gated by the circuit breaker and wrapped by the rate limiter
3. rule-based tier, only when there is text and the AI tier produced nothing
4. none: empty result, the caller routes the file to manual review
"""

import asyncio
import logging
from typing import Optional, Tuple

from .circuit_breaker import CircuitBreaker
from .errors import ProviderError, RetriesExhausted
from .models import DetectionMethod, DetectionResult, OperationContext
from .rate_limiter import RateLimiter
from .rule_analyzer import RuleBasedAnalyzer

logger = logging.getLogger(__name__)


class ExtractionCascade:
    """
    Resilient multi-tier transaction detection.

    Usage:
        cascade = ExtractionCascade(router, ai_extractor, rule_analyzer, breaker, limiter)
        result = await cascade.detect(binary, "factura.pdf", context)
    """

    def __init__(
        self,
        router,
        ai_extractor,
        rule_analyzer: RuleBasedAnalyzer,
        breaker: CircuitBreaker,
        limiter: RateLimiter,
    ):
        """
        Initialize the cascade.

        Args:
            router: TextExtractorRouter (blocking, run in a worker thread)
            ai_extractor: AIExtractor, or None when no provider is configured
            rule_analyzer: Rule-based fallback
            breaker: Circuit breaker guarding the AI capability
            limiter: Rate limiter shared by every AI caller
        """
        self.router = router
        self.ai_extractor = ai_extractor
        self.rule_analyzer = rule_analyzer
        self.breaker = breaker
        self.limiter = limiter

        self._stats = {
            "documents": 0,
            "insufficient_text": 0,
            "ai_hits": 0,
            "ai_skipped_open": 0,
            "ai_failures": 0,
            "rule_hits": 0,
            "none": 0,
        }

    async def detect(
        self,
        binary: bytes,
        filename: str,
        context: OperationContext,
        mime_type: Optional[str] = None,
    ) -> DetectionResult:
        """
        Run the tiers for one document.

        Returns:
            DetectionResult; method NONE with no transactions is a valid outcome

        Raises:
            ValueError: no operation context
        """
        if context is None:
            raise ValueError("detect() requires an OperationContext")

        self._stats["documents"] += 1
        extracted = await asyncio.to_thread(self.router.extract, binary, filename, mime_type)
        text = extracted.text

        if not self.router.is_sufficient(text):
            self._stats["insufficient_text"] += 1
            self._stats["none"] += 1
            logger.info(f"{filename}: insufficient text ({len(text.strip())} chars), no tier can run")
            return DetectionResult([], DetectionMethod.NONE, text, reason="insufficient text")

        logger.debug(f"{filename}: {len(text)} chars of text via {extracted.source}")

        ai_result, ai_reason = await self._try_ai(text, filename, context)
        if ai_result is not None:
            return ai_result

        candidates = self.rule_analyzer.analyze(text, filename, context)
        if candidates:
            self._stats["rule_hits"] += 1
            return DetectionResult(candidates, DetectionMethod.RULE_BASED, text, reason=ai_reason)

        self._stats["none"] += 1
        logger.info(f"{filename}: no transaction detected by any tier ({ai_reason})")
        return DetectionResult([], DetectionMethod.NONE, text, reason=f"{ai_reason}; rule-based found nothing")

    async def _try_ai(
        self, text: str, filename: str, context: OperationContext
    ) -> Tuple[Optional[DetectionResult], str]:
        """AI tier. Returns (result, "") on success, else (None, why it fell through)."""
        if self.ai_extractor is None:
            return None, "ai not configured"

        if not self.breaker.can_call():
            self._stats["ai_skipped_open"] += 1
            logger.info(f"{filename}: AI circuit open, skipping AI tier")
            return None, "ai circuit open"

        try:
            candidates = await self.limiter.call(
                lambda: asyncio.to_thread(self.ai_extractor.extract, text, context)
            )
        except RetriesExhausted as e:
            self.breaker.record_failure()
            self._stats["ai_failures"] += 1
            logger.warning(f"{filename}: AI tier rate limited ({e}), falling back")
            return None, "ai rate limited"
        except ProviderError as e:
            self.breaker.record_failure()
            self._stats["ai_failures"] += 1
            logger.warning(f"{filename}: AI tier failed ({e}), falling back")
            return None, "ai error"
        except Exception:
            # Unexpected errors propagate, but must not leave a trial call hanging
            self.breaker.record_failure()
            raise

        self.breaker.record_success()
        if candidates:
            self._stats["ai_hits"] += 1
            return DetectionResult(candidates, DetectionMethod.AI, text), ""
        return None, "ai found nothing"

    def get_stats(self):
        return {**self._stats, "circuit": self.breaker.get_stats(), "rate_limit": self.limiter.get_status()}
