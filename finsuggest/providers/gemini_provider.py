"""
Google Gemini provider for cloud LLM inference.

Used for transaction extraction and thread analysis with JSON output mode.
"""

from typing import Dict, Optional

import requests

from .base import AIProvider
from ..core.errors import ProviderError, RateLimitError
from ..utils.logger import logger
from ..utils.secrets import get_api_key


def _retry_after(response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class GeminiProvider(AIProvider):
    """
    Google Gemini provider for cloud LLM inference.

    Features:
    - Gemini 2.0 Flash by default (fast/cheap)
    - Native JSON response mode
    - Automatic API key retrieval from keyring

    Error mapping:
    - HTTP 429 -> RateLimitError (Retry-After honoured when present)
    - other HTTP errors, timeouts, malformed payloads -> ProviderError
    """

    SYSTEM_INSTRUCTION = (
        "You are a financial document assistant for a logistics company. "
        "You MUST respond with valid JSON only, no other text."
    )

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Gemini provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: gemini-2.0-flash)
                - api_key: API key (or retrieved from keyring)
                - timeout: Request timeout in seconds
                - max_tokens: Maximum response tokens
                - temperature: Sampling temperature
        """
        config = config or {}
        self.model = config.get("model", "gemini-2.0-flash")
        self.api_key = config.get("api_key") or get_api_key("gemini")
        self.timeout = config.get("timeout", 60)
        self.max_tokens = config.get("max_tokens", 2048)
        self.temperature = config.get("temperature", 0.1)

        self.base_url = config.get(
            "base_url", "https://generativelanguage.googleapis.com/v1beta"
        )

        if not self.api_key:
            raise ValueError(
                "Gemini API key not configured. "
                "Set it via keyring: python -c \"from finsuggest.utils.secrets import set_api_key; set_api_key('gemini', 'AIza...')\" "
                "or the FINSUGGEST_GEMINI_API_KEY environment variable"
            )

    def get_name(self) -> str:
        return "gemini"

    @property
    def is_local(self) -> bool:
        return False

    def health_check(self) -> bool:
        """
        Check if Gemini API is accessible.
        Uses the models list endpoint for a lightweight check.
        """
        try:
            response = requests.get(
                f"{self.base_url}/models?key={self.api_key}", timeout=10
            )

            if response.status_code == 400 or response.status_code == 403:
                logger.error("Gemini API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("Gemini rate limit hit during health check")
                return True  # API is reachable, just rate limited

            return response.status_code == 200
        except requests.exceptions.Timeout:
            logger.warning("Gemini health check timed out")
            return False
        except requests.exceptions.RequestException as e:
            logger.warning(f"Gemini health check failed: {e}")
            return False

    def generate(self, prompt: str) -> str:
        """
        Run the prompt through generateContent and return the text part.

        Raises:
            RateLimitError: HTTP 429
            ProviderError: any other failure
        """
        endpoint = f"{self.base_url}/models/{self.model}:generateContent?key={self.api_key}"

        try:
            response = requests.post(
                endpoint,
                headers={"Content-Type": "application/json"},
                json={
                    "systemInstruction": {"parts": [{"text": self.SYSTEM_INSTRUCTION}]},
                    "contents": [{"parts": [{"text": prompt}]}],
                    "generationConfig": {
                        "maxOutputTokens": self.max_tokens,
                        "temperature": self.temperature,
                        "responseMimeType": "application/json",
                    },
                },
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error("Gemini request timed out")
            raise ProviderError("Gemini request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Gemini request failed: {e}")
            raise ProviderError(f"Gemini request failed: {e}") from e

        if response.status_code == 429:
            logger.warning("Gemini rate limit exceeded")
            raise RateLimitError("Gemini rate limit exceeded", retry_after=_retry_after(response))

        if response.status_code >= 400:
            logger.error(f"Gemini HTTP error: {response.status_code}")
            raise ProviderError(
                f"Gemini HTTP error {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Gemini returned a non-JSON body") from e

        candidates = data.get("candidates", [])
        if not candidates:
            logger.error("No candidates in Gemini response")
            raise ProviderError("No candidates in Gemini response")

        parts = candidates[0].get("content", {}).get("parts", [])
        if not parts:
            logger.error("No parts in Gemini response")
            raise ProviderError("No parts in Gemini response")

        usage = data.get("usageMetadata", {})
        tokens_used = usage.get("promptTokenCount", 0) + usage.get("candidatesTokenCount", 0)
        logger.debug(f"Gemini call used {tokens_used} tokens")

        return parts[0].get("text", "")
