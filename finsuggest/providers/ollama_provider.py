"""
Ollama provider for local LLM inference.

Uses Ollama's HTTP API in JSON format mode. Zero cloud cost, and the
documents never leave the machine.
"""

from typing import Dict, Optional

import requests

from .base import AIProvider
from ..core.errors import ProviderError, RateLimitError
from ..utils.logger import logger


class OllamaProvider(AIProvider):
    """
    Transaction and thread prompts answered by a local Ollama server.

    Requests ask for format="json" so the answer is a bare JSON document;
    AIExtractor still tolerates fences in case a model ignores it.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Args:
            config: The "ollama" entry of config["providers"]:
                - base_url: server URL (default: http://localhost:11434)
                - model: model tag, e.g. llama3 or mistral (default: llama3)
                - timeout: seconds per request (default: 60)
                - temperature: sampling temperature (default: 0.1)
        """
        config = config or {}
        self.base_url = config.get("base_url", "http://localhost:11434")
        self.model = config.get("model", "llama3")
        self.timeout = config.get("timeout", 60)
        self.temperature = config.get("temperature", 0.1)
        self.api_endpoint = f"{self.base_url}/api/generate"

    def get_name(self) -> str:
        return "ollama"

    @property
    def is_local(self) -> bool:
        return True

    def health_check(self) -> bool:
        """
        Check if Ollama is running and the model is available.
        Uses the /api/tags endpoint to verify connectivity.
        """
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            if response.status_code != 200:
                logger.warning(f"Ollama health check returned status {response.status_code}")
                return False

            data = response.json()
            names = [m.get("name", "") for m in data.get("models", [])]
            models = [n.split(":")[0] for n in names]

            if self.model not in models and f"{self.model}:latest" not in names:
                logger.warning(f"Model '{self.model}' not found in Ollama. Available: {models}")
                # Still healthy if Ollama is running

            return True
        except requests.exceptions.Timeout:
            logger.warning("Ollama health check timed out")
            return False
        except requests.exceptions.ConnectionError:
            logger.warning(f"Cannot connect to Ollama at {self.base_url}")
            return False
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Ollama health check failed: {e}")
            return False

    def generate(self, prompt: str) -> str:
        """
        Run the prompt through /api/generate (non-streaming).

        Raises:
            RateLimitError: HTTP 429 (returned by proxies in front of Ollama)
            ProviderError: any other failure
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": self.temperature},
        }

        try:
            response = requests.post(self.api_endpoint, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error(f"Ollama request timed out after {self.timeout}s")
            raise ProviderError("Ollama request timed out") from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Cannot connect to Ollama at {self.base_url}")
            raise ProviderError(f"Cannot connect to Ollama at {self.base_url}") from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Ollama request failed: {e}") from e

        if response.status_code == 429:
            logger.warning("Ollama rate limit exceeded")
            raise RateLimitError("Ollama rate limit exceeded")

        if response.status_code >= 400:
            logger.error(f"Ollama HTTP error: {response.status_code}")
            raise ProviderError(
                f"Ollama HTTP error {response.status_code}", status_code=response.status_code
            )

        try:
            result = response.json()
        except ValueError as e:
            raise ProviderError("Ollama returned a non-JSON body") from e

        return result.get("response", "").strip()
