"""Exception classes for Image Compressor SDK - secret-safe error handling."""

from typing import Optional, Dict, Any


class ImageCompressorError(Exception):
    """Base exception for all Image Compressor SDK errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Error message (must not contain API keys)
            error_code: Error category code
            details: Additional error details (no secrets)
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ConfigurationError(ImageCompressorError):
    """Raised when the client cannot be configured (e.g. no API keys)."""

    def __init__(self, message: str = "Invalid client configuration"):
        super().__init__(message, error_code="configuration")


class InvalidIndexError(ImageCompressorError, IndexError):
    """Raised when a credential index is outside the pool."""

    def __init__(self, index: int, size: int):
        super().__init__(
            f"Invalid key index: {index} (pool has {size} keys)",
            error_code="invalid_index",
            details={"index": index, "size": size},
        )
        self.index = index


class PoolExhaustedError(ImageCompressorError):
    """Raised when every credential in the pool is disabled."""

    def __init__(
        self,
        message: str = "All API keys are disabled",
        last_error: Optional[BaseException] = None,
    ):
        super().__init__(message, error_code="pool_exhausted")
        self.last_error = last_error


class QuotaExhaustedError(PoolExhaustedError):
    """Pool exhaustion where every credential ran out of monthly quota."""

    def __init__(
        self,
        message: str = "All API keys have reached their monthly limit",
        last_error: Optional[BaseException] = None,
    ):
        super().__init__(message, last_error=last_error)
        self.error_code = "quota_exhausted"


class ApiError(ImageCompressorError):
    """Raised for non-success responses from the remote API."""

    def __init__(
        self,
        message: str,
        status: int,
        status_text: str = "",
        error_type: Optional[str] = None,
    ):
        """Initialize API error.

        Args:
            message: Server-reported message, or a generic one
            status: HTTP status code
            status_text: HTTP reason phrase
            error_type: Machine-readable error kind reported by the server
        """
        super().__init__(
            message,
            error_code="api",
            details={"status": status, "error_type": error_type},
        )
        self.status = status
        self.status_text = status_text
        self.error_type = error_type


class AuthError(ApiError):
    """Credential rejected (401)."""


class QuotaError(ApiError):
    """Credential over its monthly limit (429)."""


class ClientError(ApiError):
    """Request rejected for this task (malformed, unsupported input, ...)."""


class ServerError(ApiError):
    """Transient server-side failure (5xx)."""


def api_error_for_status(
    status: int,
    status_text: str = "",
    message: Optional[str] = None,
    error_type: Optional[str] = None,
) -> ApiError:
    """Build the ApiError subclass matching an HTTP status."""
    message = message or f"API error: {status} {status_text}".rstrip()

    if status == 401:
        cls = AuthError
    elif status == 429:
        cls = QuotaError
    elif status >= 500:
        cls = ServerError
    elif status >= 400:
        cls = ClientError
    else:
        cls = ApiError

    return cls(message, status=status, status_text=status_text, error_type=error_type)


class NetworkError(ImageCompressorError):
    """Raised when a request never produced an HTTP response."""

    RETRYABLE_REASONS = frozenset({"connection_refused", "timeout"})

    def __init__(self, message: str = "Network request failed", reason: str = "transport"):
        super().__init__(message, error_code="network", details={"reason": reason})
        self.reason = reason

    @property
    def retryable(self) -> bool:
        return self.reason in self.RETRYABLE_REASONS


class ProtocolError(ImageCompressorError):
    """Raised when a success response is missing required data."""

    def __init__(self, message: str = "Unexpected response from API"):
        super().__init__(message, error_code="protocol")


class SourceError(ImageCompressorError):
    """Raised for unsupported or unreadable image sources."""

    def __init__(self, message: str = "Unsupported image source"):
        # Never include the full path in the message
        super().__init__(message, error_code="source")


class TaskCancelledError(ImageCompressorError):
    """Raised when a cancellation token fires during a task."""

    def __init__(self, message: str = "Compression task cancelled"):
        super().__init__(message, error_code="cancelled")


class PipelineFailedError(ImageCompressorError):
    """Raised when a compression task fails for good."""

    def __init__(
        self,
        message: str,
        last_error: Optional[BaseException] = None,
        attempts: int = 0,
    ):
        super().__init__(
            message,
            error_code="pipeline_failed",
            details={"attempts": attempts},
        )
        self.last_error = last_error
        self.attempts = attempts

    @property
    def status(self) -> Optional[int]:
        """HTTP status of the underlying error, if it had one."""
        return getattr(self.last_error, "status", None)
