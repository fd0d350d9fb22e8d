"""
Unit tests for provider factory.
"""

from unittest.mock import patch

import pytest

from finsuggest.providers.base import AIProvider
from finsuggest.providers.factory import ProviderFactory
from finsuggest.providers.gemini_provider import GeminiProvider
from finsuggest.providers.ollama_provider import OllamaProvider


class EchoProvider(AIProvider):
    def __init__(self, config=None):
        self.config = config or {}

    def generate(self, prompt: str) -> str:
        return prompt

    def health_check(self) -> bool:
        return True

    def get_name(self) -> str:
        return "echo"

    @property
    def is_local(self) -> bool:
        return True


class TestProviderFactory:
    """Tests for ProviderFactory pattern."""

    def setup_method(self):
        """Reset factory state before each test."""
        ProviderFactory.clear_cache()

    def teardown_method(self):
        ProviderFactory.unregister("echo")

    def test_builtin_providers_registered(self):
        providers = ProviderFactory.list_providers()

        assert "ollama" in providers
        assert "gemini" in providers

    def test_create_ollama_provider(self):
        provider = ProviderFactory.create(
            "ollama", {"base_url": "http://localhost:11434", "model": "llama3"}
        )

        assert isinstance(provider, OllamaProvider)
        assert provider.get_name() == "ollama"

    def test_create_gemini_with_key(self):
        provider = ProviderFactory.create("gemini", {"api_key": "test-key"})

        assert isinstance(provider, GeminiProvider)

    def test_create_gemini_without_key_raises(self, monkeypatch):
        monkeypatch.delenv("FINSUGGEST_GEMINI_API_KEY", raising=False)
        with patch("finsuggest.utils.secrets.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = None
            with pytest.raises(ValueError):
                ProviderFactory.create("gemini", {})

    def test_create_with_cache(self):
        """Should return cached instance for same name."""
        assert ProviderFactory.create("ollama") is ProviderFactory.create("ollama")

    def test_create_without_cache(self):
        provider1 = ProviderFactory.create("ollama", use_cache=False)
        provider2 = ProviderFactory.create("ollama", use_cache=False)

        assert provider1 is not provider2

    def test_unknown_provider_raises(self):
        with pytest.raises(ValueError) as excinfo:
            ProviderFactory.create("unknown_provider")

        assert "Unknown provider" in str(excinfo.value)

    def test_register_and_unregister(self):
        ProviderFactory.register("echo", EchoProvider)

        assert ProviderFactory.is_registered("echo")
        assert ProviderFactory.create("echo").generate("hi") == "hi"

        assert ProviderFactory.unregister("echo") is True
        assert ProviderFactory.is_registered("echo") is False
        assert ProviderFactory.unregister("echo") is False

    def test_clear_cache(self):
        provider1 = ProviderFactory.create("ollama")
        ProviderFactory.clear_cache()

        assert ProviderFactory.create("ollama") is not provider1

    def test_from_config_uses_provider_section(self):
        config = {
            "provider": "ollama",
            "providers": {"ollama": {"base_url": "http://gpu-box:11434", "model": "mistral"}},
        }

        provider = ProviderFactory.from_config(config)

        assert isinstance(provider, OllamaProvider)
        assert provider.model == "mistral"
        assert provider.base_url == "http://gpu-box:11434"

    def test_from_config_returns_none_when_unavailable(self, monkeypatch):
        monkeypatch.delenv("FINSUGGEST_GEMINI_API_KEY", raising=False)
        with patch("finsuggest.utils.secrets.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = None
            assert ProviderFactory.from_config({"provider": "gemini"}) is None

        assert ProviderFactory.from_config({"provider": "nope"}) is None

    def test_cache_key_depends_on_config(self):
        first = ProviderFactory.create("ollama", {"model": "llama3"})

        assert ProviderFactory.create("ollama", {"model": "llama3"}) is first
        assert ProviderFactory.create("ollama", {"model": "mistral"}) is not first
