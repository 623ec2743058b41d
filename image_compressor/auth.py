"""API key resolution and authentication helpers."""

from typing import List, Optional, Sequence, Union

import httpx
import keyring
from keyring.errors import KeyringError

from .config import Settings
from .constants import BASIC_AUTH_USER
from .exceptions import ConfigurationError
from .utils.logging import get_logger

logger = get_logger(__name__)

ApiKeys = Union[str, Sequence[str]]


def basic_auth(secret: str) -> httpx.BasicAuth:
    """HTTP Basic auth with the API key as the password half."""
    return httpx.BasicAuth(BASIC_AUTH_USER, secret)


def normalize_api_keys(api_keys: Optional[ApiKeys]) -> List[str]:
    """Flatten a key, a comma-separated string or a list of either."""
    if api_keys is None:
        return []
    if isinstance(api_keys, str):
        api_keys = [api_keys]

    keys = []
    for item in api_keys:
        keys.extend(part.strip() for part in str(item).split(","))
    return [key for key in keys if key]


class APIKeyStore:
    """Stores API key lists in the OS keychain."""

    SERVICE_NAME = "image-compressor"
    KEY_PREFIX = "IC_API_KEYS_"

    def store_api_keys(self, api_keys: ApiKeys, name: str = "default") -> bool:
        """Store keys under name.

        Returns:
            True if stored successfully
        """
        keys = normalize_api_keys(api_keys)
        if not keys:
            raise ConfigurationError("No API keys to store")
        try:
            keyring.set_password(self.SERVICE_NAME, f"{self.KEY_PREFIX}{name}", ",".join(keys))
            return True
        except KeyringError as e:
            logger.warning("Could not store API keys in keychain", error=str(e))
            return False

    def retrieve_api_keys(self, name: str = "default") -> List[str]:
        """Keys stored under name, or an empty list."""
        try:
            stored = keyring.get_password(self.SERVICE_NAME, f"{self.KEY_PREFIX}{name}")
        except KeyringError as e:
            logger.debug("Keychain unavailable", error=str(e))
            return []
        return normalize_api_keys(stored)

    def delete_api_keys(self, name: str = "default") -> bool:
        """Delete stored keys; False if nothing was stored."""
        try:
            keyring.delete_password(self.SERVICE_NAME, f"{self.KEY_PREFIX}{name}")
            return True
        except KeyringError as e:
            logger.debug("No API keys deleted from keychain", error=str(e))
            return False


def resolve_api_keys(
    api_keys: Optional[ApiKeys] = None,
    settings: Optional[Settings] = None,
    store: Optional[APIKeyStore] = None,
    name: str = "default",
) -> List[str]:
    """Pick API keys: explicit keys, then settings/env, then the keychain.

    Raises:
        ConfigurationError: If no source provides a key
    """
    keys = normalize_api_keys(api_keys)
    if keys:
        return keys

    if settings is not None:
        keys = normalize_api_keys(settings.api_keys)
        if keys:
            return keys

    keys = (store or APIKeyStore()).retrieve_api_keys(name)
    if keys:
        return keys

    raise ConfigurationError(
        "No API key configured: pass api_keys, set IMAGE_COMPRESSOR_API_KEYS "
        "or store keys with APIKeyStore"
    )
