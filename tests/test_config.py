"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from image_compressor.config import Settings


class TestSettings:
    """Test settings loading and validation."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("IMAGE_COMPRESSOR_API_KEYS", raising=False)
        config = Settings(_env_file=None)
        assert config.api_keys == []
        assert config.monthly_limit == 500
        assert config.api_base == "https://api.tinify.com"
        assert config.usage_header == "Compression-Count"
        assert config.chunk_size == 64 * 1024
        assert config.retry_base_delay == 1.0

    def test_comma_separated_keys_from_env(self, monkeypatch):
        monkeypatch.setenv("IMAGE_COMPRESSOR_API_KEYS", "key-a, key-b,,key-c")
        config = Settings(_env_file=None)
        assert config.api_keys == ["key-a", "key-b", "key-c"]

    def test_numeric_env_values(self, monkeypatch):
        monkeypatch.setenv("IMAGE_COMPRESSOR_MONTHLY_LIMIT", "1000")
        monkeypatch.setenv("IMAGE_COMPRESSOR_RETRY_BASE_DELAY", "0.25")
        config = Settings(_env_file=None)
        assert config.monthly_limit == 1000
        assert config.retry_base_delay == 0.25

    def test_dotenv_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("IMAGE_COMPRESSOR_API_KEYS", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("IMAGE_COMPRESSOR_API_KEYS=from-file\n")
        config = Settings(_env_file=str(env_file))
        assert config.api_keys == ["from-file"]

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")

    @pytest.mark.parametrize(
        "field,value",
        [("monthly_limit", 0), ("chunk_size", -1), ("retry_base_delay", -0.5)],
    )
    def test_rejects_invalid_numbers(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})

    def test_api_base_trailing_slash(self):
        assert Settings(api_base="https://example.test/").api_base == "https://example.test"
