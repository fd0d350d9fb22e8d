"""
Core modules for the FinSuggest pipeline.

This package contains the suggestion pipeline:
- cascade: Text -> AI -> rule-based tier selection
- orchestrator: Attachment to stored suggestion coordinator
- rule_analyzer: Keyword/regex transaction detection
- duplicate_detector: Exact-hash and fuzzy duplicate flagging
- circuit_breaker: Provider resilience
- rate_limiter: Call spacing and exponential backoff
- thread_cache: TTL cache for thread analysis
- thread_analyzer: Task/note suggestions for email threads
- download_queue: Bounded, retrying attachment downloads
- prompt_engine: Template-based prompts with i18n
"""

from .circuit_breaker import CircuitBreaker
from .duplicate_detector import DuplicateCheck, DuplicateDetector, compute_file_hash
from .errors import DownloadError, FinSuggestError, ProviderError, RateLimitError, RetriesExhausted
from .prompt_engine import PromptEngine
from .rate_limiter import RateLimiter, RetryState
from .rule_analyzer import RuleBasedAnalyzer
from .thread_cache import ThreadAnalysisCache, thread_key

__all__ = [
    "cascade",
    "orchestrator",
    "thread_analyzer",
    "download_queue",
    "CircuitBreaker",
    "DuplicateCheck",
    "DuplicateDetector",
    "compute_file_hash",
    "DownloadError",
    "FinSuggestError",
    "ProviderError",
    "RateLimitError",
    "RetriesExhausted",
    "PromptEngine",
    "RateLimiter",
    "RetryState",
    "RuleBasedAnalyzer",
    "ThreadAnalysisCache",
    "thread_key",
]
