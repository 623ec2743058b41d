"""Image Compressor SDK for Python - quota-aware multi-key image compression."""

from .client import ImageCompressorClient
from .async_client import AsyncImageCompressorClient
from .models import (
    CompressionOptions,
    CompressionResult,
    ConvertOptions,
    CredentialStats,
    FileResult,
    PoolSnapshot,
    PoolSummary,
    ResizeMethod,
    ResizeOptions,
    SourceKind,
    TransformMode,
)
from .exceptions import (
    ImageCompressorError,
    ApiError,
    AuthError,
    ClientError,
    ConfigurationError,
    InvalidIndexError,
    NetworkError,
    PipelineFailedError,
    PoolExhaustedError,
    ProtocolError,
    QuotaError,
    QuotaExhaustedError,
    ServerError,
    SourceError,
    TaskCancelledError,
)
from .auth import APIKeyStore
from .classifier import Classification, ErrorKind, RetryAction, classify
from .events import EventEmitter, EventName
from .pipeline import PipelineOrchestrator
from .pool import Credential, CredentialPool
from .transport import CancellationToken, TransportClient
from .utils.logging import setup_logging

__version__ = "1.0.0"
__all__ = [
    "ImageCompressorClient",
    "AsyncImageCompressorClient",
    "CompressionOptions",
    "CompressionResult",
    "ConvertOptions",
    "CredentialStats",
    "FileResult",
    "PoolSnapshot",
    "PoolSummary",
    "ResizeMethod",
    "ResizeOptions",
    "SourceKind",
    "TransformMode",
    "ImageCompressorError",
    "ApiError",
    "AuthError",
    "ClientError",
    "ConfigurationError",
    "InvalidIndexError",
    "NetworkError",
    "PipelineFailedError",
    "PoolExhaustedError",
    "ProtocolError",
    "QuotaError",
    "QuotaExhaustedError",
    "ServerError",
    "SourceError",
    "TaskCancelledError",
    "APIKeyStore",
    "Classification",
    "ErrorKind",
    "RetryAction",
    "classify",
    "EventEmitter",
    "EventName",
    "PipelineOrchestrator",
    "Credential",
    "CredentialPool",
    "CancellationToken",
    "TransportClient",
    "setup_logging",
]
