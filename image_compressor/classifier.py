"""Classification of failed requests into retry decisions.

Every failure the pipeline sees is reduced to a ``Classification``: what kind
of failure it was, and what the retry loop should do next. The mapping is pure
and depends only on the HTTP status (or, for failures that never produced a
response, on the network failure reason).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .exceptions import ApiError, NetworkError


class ErrorKind(str, Enum):
    """What went wrong."""
    AUTH_EXPIRED = "auth_expired"
    QUOTA_EXCEEDED = "quota_exceeded"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class RetryAction(str, Enum):
    """What the retry loop does next."""
    ROTATE = "rotate"  # disable the credential, re-select immediately
    RETRY_SAME = "retry_same"  # back off, retry with the same credential
    RETRY_ANY = "retry_any"  # back off, re-select
    FAIL = "fail"  # surface to the caller


@dataclass(frozen=True)
class Classification:
    kind: ErrorKind
    action: RetryAction
    category: str
    message: str

    @property
    def retryable(self) -> bool:
        return self.action is not RetryAction.FAIL

    @property
    def disables_credential(self) -> bool:
        return self.action is RetryAction.ROTATE

    @property
    def needs_backoff(self) -> bool:
        return self.action in (RetryAction.RETRY_SAME, RetryAction.RETRY_ANY)


def classify_status(status: int, status_text: str = "") -> Classification:
    """Classify a non-success HTTP status."""
    if status == 401:
        return Classification(
            ErrorKind.AUTH_EXPIRED, RetryAction.ROTATE, "account", "API key is invalid"
        )
    if status == 429:
        return Classification(
            ErrorKind.QUOTA_EXCEEDED,
            RetryAction.ROTATE,
            "account",
            "API key has reached its monthly limit",
        )
    if status >= 500:
        return Classification(
            ErrorKind.SERVER_ERROR,
            RetryAction.RETRY_SAME,
            "server",
            "Server error, retrying shortly",
        )
    if status >= 400:
        return Classification(
            ErrorKind.CLIENT_ERROR,
            RetryAction.FAIL,
            "client",
            "Request rejected, check the input image and transform options",
        )
    return Classification(
        ErrorKind.UNKNOWN,
        RetryAction.FAIL,
        "unknown",
        f"HTTP {status}: {status_text}".rstrip(": "),
    )


def classify_network(reason: str) -> Classification:
    """Classify a failure that produced no HTTP response."""
    if reason in NetworkError.RETRYABLE_REASONS:
        return Classification(
            ErrorKind.NETWORK_ERROR,
            RetryAction.RETRY_ANY,
            "network",
            f"Network error ({reason}), retrying",
        )
    return Classification(
        ErrorKind.NETWORK_ERROR, RetryAction.FAIL, "network", f"Network error ({reason})"
    )


def classify(error: BaseException) -> Classification:
    """Classify any exception raised while running a pipeline attempt."""
    if isinstance(error, ApiError):
        return classify_status(error.status, error.status_text)
    if isinstance(error, NetworkError):
        return classify_network(error.reason)
    return Classification(ErrorKind.UNKNOWN, RetryAction.FAIL, "unknown", str(error))


def retry_delay(attempt: int, base_unit: float = 1.0) -> float:
    """Linear backoff for a 0-based attempt number."""
    return base_unit * (attempt + 1)


def status_of(error: Optional[BaseException]) -> Optional[int]:
    return getattr(error, "status", None)
