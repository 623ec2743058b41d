"""Tests for API key resolution, keychain storage and log redaction."""

from unittest.mock import Mock, patch

import httpx
import pytest
import structlog
from keyring.errors import KeyringError, PasswordDeleteError

from image_compressor.auth import APIKeyStore, basic_auth, normalize_api_keys, resolve_api_keys
from image_compressor.config import Settings
from image_compressor.exceptions import ConfigurationError
from image_compressor.utils.logging import REDACTED, LoggingContext, filter_sensitive_data


class TestNormalizeKeys:
    """Test flattening of key inputs."""

    def test_variants(self):
        assert normalize_api_keys(None) == []
        assert normalize_api_keys("a") == ["a"]
        assert normalize_api_keys("a, b ,") == ["a", "b"]
        assert normalize_api_keys(["a,b", " c "]) == ["a", "b", "c"]


class TestResolveApiKeys:
    """Test precedence of key sources."""

    def test_explicit_keys_first(self):
        store = Mock()
        keys = resolve_api_keys("x,y", settings=Settings(api_keys=["z"]), store=store)
        assert keys == ["x", "y"]
        store.retrieve_api_keys.assert_not_called()

    def test_settings_second(self):
        store = Mock()
        assert resolve_api_keys(None, settings=Settings(api_keys=["z"]), store=store) == ["z"]
        store.retrieve_api_keys.assert_not_called()

    def test_keychain_last(self):
        store = Mock()
        store.retrieve_api_keys.return_value = ["from-keychain"]
        keys = resolve_api_keys(None, settings=Settings(api_keys=[]), store=store, name="work")
        assert keys == ["from-keychain"]
        store.retrieve_api_keys.assert_called_once_with("work")

    def test_nothing_configured(self):
        store = Mock()
        store.retrieve_api_keys.return_value = []
        with pytest.raises(ConfigurationError, match="No API key configured"):
            resolve_api_keys(None, settings=Settings(api_keys=[]), store=store)


class TestAPIKeyStore:
    """Test keychain storage with keyring patched out."""

    def test_store_and_retrieve(self):
        with patch("image_compressor.auth.keyring") as mock_keyring:
            store = APIKeyStore()
            assert store.store_api_keys(["a", "b"]) is True
            mock_keyring.set_password.assert_called_once_with(
                "image-compressor", "IC_API_KEYS_default", "a,b"
            )

            mock_keyring.get_password.return_value = "a,b"
            assert store.retrieve_api_keys() == ["a", "b"]

    def test_store_requires_keys(self):
        with pytest.raises(ConfigurationError):
            APIKeyStore().store_api_keys([])

    def test_store_failure(self):
        with patch("image_compressor.auth.keyring.set_password", side_effect=KeyringError("locked")):
            assert APIKeyStore().store_api_keys("a") is False

    def test_retrieve_when_keychain_unavailable(self):
        with patch("image_compressor.auth.keyring.get_password", side_effect=KeyringError("none")):
            assert APIKeyStore().retrieve_api_keys() == []

    def test_delete_missing(self):
        with patch(
            "image_compressor.auth.keyring.delete_password",
            side_effect=PasswordDeleteError("not found"),
        ):
            assert APIKeyStore().delete_api_keys() is False


class TestBasicAuth:
    """Test request authentication."""

    def test_key_is_password(self):
        request = httpx.Request("GET", "https://api.tinify.com/shrink")
        flow = basic_auth("secret").auth_flow(request)
        authed = next(flow)
        assert authed.headers["authorization"] == "Basic YXBpOnNlY3JldA=="


class TestLogRedaction:
    """Test that secrets never reach log output."""

    def test_sensitive_keys_redacted(self):
        event = {
            "event": "Request failed",
            "api_key": "abc",
            "Authorization": "Basic xyz",
            "nested": {"secret": "s", "key_index": 1},
            "items": [{"password": "p"}],
        }
        filtered = filter_sensitive_data(None, None, event)
        assert filtered["api_key"] == REDACTED
        assert filtered["Authorization"] == REDACTED
        assert filtered["nested"] == {"secret": REDACTED, "key_index": 1}
        assert filtered["items"] == [{"password": REDACTED}]
        assert filtered["event"] == "Request failed"

    def test_logging_context_binds_and_resets(self):
        with LoggingContext(task_id="abc123"):
            assert structlog.contextvars.get_contextvars()["task_id"] == "abc123"
        assert "task_id" not in structlog.contextvars.get_contextvars()
