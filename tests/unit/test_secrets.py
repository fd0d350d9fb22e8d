"""
Unit tests for the secrets module.

All tests mock the keyring to avoid system dependencies.
"""

from unittest.mock import MagicMock, patch

import keyring.errors

import finsuggest.utils.secrets as secrets_module


class TestGetApiKey:
    """Tests for API key retrieval."""

    def test_get_api_key_from_keyring(self, monkeypatch):
        monkeypatch.setenv("FINSUGGEST_GEMINI_API_KEY", "env-key")
        mock_keyring = MagicMock()
        mock_keyring.get_password.return_value = "keyring-key"

        with patch.object(secrets_module, "keyring", mock_keyring):
            result = secrets_module.get_api_key("gemini")

        assert result == "keyring-key"
        mock_keyring.get_password.assert_called_once_with("finsuggest", "gemini_api_key")

    def test_get_api_key_falls_back_to_env(self, monkeypatch):
        monkeypatch.setenv("FINSUGGEST_GEMINI_API_KEY", "env-key")
        mock_keyring = MagicMock()
        mock_keyring.get_password.return_value = None

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.get_api_key("gemini") == "env-key"

    def test_get_api_key_keyring_error(self, monkeypatch):
        """A broken keyring backend is not fatal."""
        monkeypatch.delenv("FINSUGGEST_GEMINI_API_KEY", raising=False)
        mock_keyring = MagicMock()
        mock_keyring.get_password.side_effect = keyring.errors.KeyringError("no backend")

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.get_api_key("gemini") is None

    def test_get_api_key_not_found(self, monkeypatch):
        monkeypatch.delenv("FINSUGGEST_OLLAMA_API_KEY", raising=False)
        mock_keyring = MagicMock()
        mock_keyring.get_password.return_value = None

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.get_api_key("ollama") is None


class TestSetAndDeleteApiKey:
    """Tests for API key storage."""

    def test_set_api_key_success(self):
        mock_keyring = MagicMock()

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.set_api_key("gemini", "AIza-test") is True

        mock_keyring.set_password.assert_called_once_with(
            "finsuggest", "gemini_api_key", "AIza-test"
        )

    def test_set_api_key_failure(self):
        mock_keyring = MagicMock()
        mock_keyring.set_password.side_effect = keyring.errors.KeyringError("locked")

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.set_api_key("gemini", "AIza-test") is False

    def test_delete_api_key_success(self):
        mock_keyring = MagicMock()

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.delete_api_key("gemini") is True

    def test_delete_missing_api_key(self):
        mock_keyring = MagicMock()
        mock_keyring.delete_password.side_effect = keyring.errors.PasswordDeleteError("missing")

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.delete_api_key("gemini") is False
