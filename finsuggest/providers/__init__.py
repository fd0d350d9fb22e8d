"""
AI providers package for FinSuggest.

Providers turn a rendered prompt into raw model text:
- Ollama: Local LLM inference (free, privacy-focused)
- Gemini: Google's Gemini models (cloud)

Use the ProviderFactory for creating provider instances:
    from finsuggest.providers import ProviderFactory
    provider = ProviderFactory.create("ollama", config)
"""

from .base import AIProvider, ProviderError, RateLimitError
from .factory import ProviderFactory
from .gemini_provider import GeminiProvider
from .ollama_provider import OllamaProvider

__all__ = [
    "AIProvider",
    "ProviderError",
    "RateLimitError",
    "ProviderFactory",
    "GeminiProvider",
    "OllamaProvider",
]
