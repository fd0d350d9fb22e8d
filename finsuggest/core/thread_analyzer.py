"""
Conversation-level task/note suggestions with cost gates.

Order of gates for analyze_thread():
1. auto-reply / unsubscribe heuristic on the latest message
2. no action keyword in the last 3 messages
3. result cache
4. circuit breaker + rate limiter around the AI call
Gates 1 and 2 never touch the cache or the AI.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional

from .circuit_breaker import CircuitBreaker
from .errors import ProviderError, RetriesExhausted
from .models import AnalysisResult, EmailThread, NoteSuggestion, TaskSuggestion
from .prompt_engine import PromptEngine
from .rate_limiter import RateLimiter
from .thread_cache import ThreadAnalysisCache, thread_key
from ..utils.sanitize import extract_json, sanitize_snippet

logger = logging.getLogger(__name__)

AUTO_REPLY_KEYWORDS = (
    "out of office", "fuera de oficina", "auto reply", "automatic reply",
    "respuesta automática", "unsubscribe", "do not reply", "no-reply",
)

ACTION_KEYWORDS = (
    "enviar", "send", "need", "necesito", "urgente", "urgent",
    "revisar", "review", "confirmar", "confirm", "pagar", "payment",
    "pendiente", "pending", "favor", "please", "asap",
)

ACTION_WINDOW = 3


def is_auto_reply(thread: EmailThread) -> bool:
    last = thread.messages[-1]
    subject = (last.subject or "").lower()
    snippet = (last.snippet or "").lower()
    return any(kw in subject or kw in snippet for kw in AUTO_REPLY_KEYWORDS)


def has_actionable_content(thread: EmailThread) -> bool:
    content = " ".join(
        f"{m.subject} {m.snippet}".lower() for m in thread.messages[-ACTION_WINDOW:]
    )
    return any(kw in content for kw in ACTION_KEYWORDS)


def _skip(key: str, reason: str) -> AnalysisResult:
    return AnalysisResult(should_skip=True, cache_key=key, skip_reason=reason)


class ThreadAnalyzer:
    """
    Suggests tasks and notes for an email thread.

    Shares the breaker and limiter with the extraction cascade so that one
    provider outage is seen by every AI caller in the process.
    """

    def __init__(
        self,
        provider,
        cache: ThreadAnalysisCache,
        breaker: CircuitBreaker,
        limiter: RateLimiter,
        prompt_engine: Optional[PromptEngine] = None,
    ):
        self.provider = provider
        self.cache = cache
        self.breaker = breaker
        self.limiter = limiter
        self.prompt_engine = prompt_engine or PromptEngine()

    async def analyze_thread(
        self,
        thread: EmailThread,
        existing_tasks: Optional[List[Dict]] = None,
        existing_notes: Optional[List[Dict]] = None,
    ) -> AnalysisResult:
        """
        Analyze a thread, using the cache and pre-filters to avoid AI calls.

        Args:
            thread: Conversation, oldest message first
            existing_tasks: [{"title", "status"}] already on the operation
            existing_notes: [{"content"}] already on the operation

        Returns:
            AnalysisResult; should_skip=True when nothing needs to be created
        """
        if not thread.messages:
            raise ValueError("Cannot analyze an empty thread")

        key = thread_key(thread)

        if is_auto_reply(thread):
            logger.info(f"Thread {thread.thread_id} skipped: auto-reply or unsubscribe")
            return _skip(key, "auto-reply")

        if not has_actionable_content(thread):
            logger.info(f"Thread {thread.thread_id} skipped: no actionable content")
            return _skip(key, "no actionable content")

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        messages = [
            replace(m, subject=sanitize_snippet(m.subject), snippet=sanitize_snippet(m.snippet))
            for m in thread.messages
        ]
        prompt = self.prompt_engine.render_thread_analysis(
            messages,
            existing_tasks or [],
            existing_notes or [],
            self.cache.min_confidence,
        )

        if not self.breaker.can_call():
            logger.warning(f"Thread {thread.thread_id} skipped: AI circuit open")
            return _skip(key, "ai unavailable")

        try:
            raw = await self.limiter.call(lambda: asyncio.to_thread(self.provider.generate, prompt))
            result = self._parse(raw, key)
        except (ProviderError, RetriesExhausted) as e:
            self.breaker.record_failure()
            logger.error(f"Thread analysis failed for {thread.thread_id}: {e}")
            return _skip(key, "ai error")
        except Exception:
            self.breaker.record_failure()
            raise

        self.breaker.record_success()
        self.cache.put(key, result)
        logger.info(
            f"Thread {thread.thread_id}: {len(result.tasks)} task(s), {len(result.notes)} note(s)"
        )
        return result

    def _parse(self, raw: str, key: str) -> AnalysisResult:
        data = extract_json(raw, "{")
        if not isinstance(data, dict):
            raise ProviderError("Thread analysis response is not a JSON object")

        threshold = self.cache.min_confidence
        tasks = []
        for item in data.get("tasks") or []:
            task = _build_task(item)
            if task is not None and task.confidence >= threshold:
                tasks.append(task)
        notes = []
        for item in data.get("notes") or []:
            note = _build_note(item)
            if note is not None and note.confidence >= threshold:
                notes.append(note)

        return AnalysisResult(
            tasks=tasks,
            notes=notes,
            should_skip=not tasks and not notes,
            cache_key=key,
        )


def _confidence(item: Dict) -> Optional[int]:
    try:
        return int(round(float(item.get("confidence", 0))))
    except (TypeError, ValueError):
        return None


def _build_task(item) -> Optional[TaskSuggestion]:
    if not isinstance(item, dict) or not item.get("title"):
        return None
    confidence = _confidence(item)
    if confidence is None:
        return None
    return TaskSuggestion(
        title=str(item["title"]).strip(),
        description=str(item.get("description") or "").strip(),
        priority=str(item.get("priority") or "medium").lower(),
        confidence=confidence,
        reasoning=str(item.get("reasoning") or ""),
    )


def _build_note(item) -> Optional[NoteSuggestion]:
    if not isinstance(item, dict) or not item.get("content"):
        return None
    confidence = _confidence(item)
    if confidence is None:
        return None
    return NoteSuggestion(
        content=str(item["content"]).strip(),
        confidence=confidence,
        reasoning=str(item.get("reasoning") or ""),
    )
