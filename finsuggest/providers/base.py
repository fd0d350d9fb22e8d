"""
Base provider interface for the AI extraction capability.

The pipeline only needs text in, text out: every provider turns a prompt
into the model's raw response (JSON embedded in text). Parsing lives in
AIExtractor and ThreadAnalyzer so providers stay interchangeable.
"""

from abc import ABC, abstractmethod

from ..core.errors import ProviderError, RateLimitError

__all__ = ["AIProvider", "ProviderError", "RateLimitError"]


class AIProvider(ABC):
    """
    A language model reachable through a single blocking call.

    Callers run generate() through asyncio.to_thread behind the shared
    circuit breaker and rate limiter, so implementations stay synchronous
    and never retry on their own.

    Failure contract:
    - RateLimitError: the service throttled the request (HTTP 429)
    - ProviderError: anything else (transport, HTTP status, empty answer)
    """

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """
        Run one completion.

        Args:
            prompt: Fully rendered transaction or thread prompt

        Returns:
            The model's answer, unparsed
        """

    @abstractmethod
    def health_check(self) -> bool:
        """True when the backing service answers."""

    @abstractmethod
    def get_name(self) -> str:
        """Short identifier used in logs and health output."""

    @property
    @abstractmethod
    def is_local(self) -> bool:
        """Whether inference stays on this machine (no document leaves it)."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.get_name()!r} local={self.is_local}>"
