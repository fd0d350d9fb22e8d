"""
Secrets management for FinSuggest using the system keyring.

Provides secure storage for AI provider API keys.
Uses the `keyring` library which supports:
- Windows Credential Manager
- macOS Keychain
- Linux Secret Service (GNOME Keyring, KWallet)

Deployments without a keyring backend (containers, CI) can set
FINSUGGEST_<PROVIDER>_API_KEY instead.
"""

import logging
import os
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

# Service name for keyring entries
SERVICE_NAME = "finsuggest"


def _env_var_name(provider: str) -> str:
    return f"FINSUGGEST_{provider.upper()}_API_KEY"


def get_api_key(provider: str) -> Optional[str]:
    """
    Retrieve API key for a provider.

    Keyring first, then the FINSUGGEST_<PROVIDER>_API_KEY environment variable.

    Args:
        provider: Provider name (e.g., 'gemini')

    Returns:
        API key string or None if not found
    """
    try:
        key = keyring.get_password(SERVICE_NAME, f"{provider}_api_key")
    except KeyringError as e:
        logger.warning(f"Keyring lookup failed for {provider}: {e}")
        key = None

    if key:
        logger.debug(f"Retrieved API key for {provider} from keyring")
        return key

    key = os.environ.get(_env_var_name(provider))
    if key:
        logger.debug(f"Retrieved API key for {provider} from environment")
    return key


def set_api_key(provider: str, api_key: str) -> bool:
    """
    Store API key for a provider in secure storage.

    Args:
        provider: Provider name (e.g., 'gemini')
        api_key: The API key to store

    Returns:
        True if successful, False otherwise
    """
    try:
        keyring.set_password(SERVICE_NAME, f"{provider}_api_key", api_key)
        logger.info(f"Stored API key for {provider} in keyring")
        return True
    except KeyringError as e:
        logger.error(f"Failed to store API key for {provider}: {e}")
        return False


def delete_api_key(provider: str) -> bool:
    """
    Remove API key for a provider from secure storage.

    Returns:
        True if successful, False otherwise
    """
    try:
        keyring.delete_password(SERVICE_NAME, f"{provider}_api_key")
        logger.info(f"Deleted API key for {provider} from keyring")
        return True
    except PasswordDeleteError:
        logger.warning(f"No API key found for {provider} to delete")
        return False
    except KeyringError as e:
        logger.error(f"Failed to delete API key for {provider}: {e}")
        return False
