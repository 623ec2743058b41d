from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_API_BASE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MONTHLY_LIMIT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_BASE_DELAY,
    USAGE_HEADER,
)


class Settings(BaseSettings):
    # Credentials
    api_keys: Union[str, List[str]] = Field(
        default_factory=list, description="API keys (comma-separated in env)"
    )
    monthly_limit: int = Field(
        default=DEFAULT_MONTHLY_LIMIT, description="Compressions per key per month"
    )

    # Remote API
    api_base: str = Field(default=DEFAULT_API_BASE, description="API base URL")
    usage_header: str = Field(
        default=USAGE_HEADER, description="Response header carrying the usage count"
    )
    request_timeout: Optional[float] = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        description="HTTP client timeout in seconds (None disables)",
    )

    # Transfer and retry
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE, description="Upload/download chunk size in bytes"
    )
    retry_base_delay: float = Field(
        default=DEFAULT_RETRY_BASE_DELAY,
        description="Backoff unit in seconds, multiplied by (attempt + 1)",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Render logs as JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="IMAGE_COMPRESSOR_",
        extra="ignore",
    )

    @field_validator("api_keys", mode="before")
    @classmethod
    def parse_comma_separated_list(cls, v):
        """Parse comma-separated string into list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return [str(item).strip() for item in v if str(item).strip()]

    @field_validator("monthly_limit", "chunk_size")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("retry_base_delay")
    @classmethod
    def validate_delay(cls, v):
        if v < 0:
            raise ValueError("retry_base_delay cannot be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @field_validator("api_base")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")
