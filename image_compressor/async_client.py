"""Async client for the image compression API with multi-key quota balancing."""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

import httpx

from .auth import ApiKeys, resolve_api_keys
from .config import Settings
from .events import EventEmitter, EventName, InitEvent, ResetEvent
from .models import (
    CompressionOptions,
    CompressionResult,
    ConvertOptions,
    CredentialStats,
    FileResult,
    PoolSnapshot,
    PoolSummary,
    ResizeOptions,
    TransformMode,
)
from .pipeline import PipelineOrchestrator
from .pool import CredentialPool
from .transport import CancellationToken, TransportClient
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


class AsyncImageCompressorClient:
    """Async client that spreads compressions over a pool of API keys."""

    def __init__(
        self,
        api_keys: Optional[ApiKeys] = None,
        monthly_limit: Optional[int] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        pool: Optional[CredentialPool] = None,
        events: Optional[EventEmitter] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        configure_logging: bool = False,
    ):
        """Initialize async client.

        Args:
            api_keys: One key, a comma-separated string or a list of keys.
                Falls back to settings/env, then the OS keychain.
            monthly_limit: Usage cap per key (defaults to settings)
            settings: Settings instance; read from env when omitted
            transport: Optional httpx transport (e.g. httpx.MockTransport)
            pool: Existing pool to share between clients
            events: Existing emitter to share between clients
            sleep: Coroutine used for retry backoff
            configure_logging: Apply settings.log_level and settings.json_logs
                to the global structlog configuration

        Raises:
            ConfigurationError: If no API key can be found
        """
        self.settings = settings or Settings()
        if configure_logging:
            setup_logging(self.settings.log_level, self.settings.json_logs)
        self.events = events or EventEmitter()

        if pool is None:
            keys = resolve_api_keys(api_keys, settings=self.settings)
            pool = CredentialPool(keys, monthly_limit=monthly_limit or self.settings.monthly_limit)
        self.pool = pool

        self._transport = TransportClient(
            base_url=self.settings.api_base,
            timeout=self.settings.request_timeout,
            chunk_size=self.settings.chunk_size,
            usage_header=self.settings.usage_header,
            transport=transport,
        )
        self._pipeline = PipelineOrchestrator(
            self.pool,
            self._transport,
            self.events,
            retry_base_delay=self.settings.retry_base_delay,
            sleep=sleep,
        )

        self.events.emit(
            EventName.INIT,
            InitEvent(
                total_keys=len(self.pool),
                keys_configured=[f"Key {i + 1}" for i in range(len(self.pool))],
            ),
        )
        logger.info("Image compressor initialized", total_keys=len(self.pool))

    async def __aenter__(self):
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._transport.close()

    def on(self, event: Union[EventName, str], listener: Optional[Callable] = None):
        """Register an event listener; usable as a decorator."""
        return self.events.on(event, listener)

    def off(self, event: Union[EventName, str], listener: Callable) -> None:
        self.events.off(event, listener)

    async def compress(
        self,
        source: Any,
        options: Optional[CompressionOptions] = None,
        *,
        resize: Optional[ResizeOptions] = None,
        convert: Optional[ConvertOptions] = None,
        transform_mode: Optional[TransformMode] = None,
        token: Optional[CancellationToken] = None,
    ) -> CompressionResult:
        """Compress one image.

        Args:
            source: File path, http(s) URL, bytes, or a (sync or async) stream
            options: Transform options; keyword shortcuts override its fields
            resize: Resize to apply after compression
            convert: Format conversion to apply after compression
            transform_mode: How resize and convert are composed
            token: Cancellation token checked between chunks

        Returns:
            Compressed image and size statistics

        Raises:
            SourceError: If the source cannot be read
            PoolExhaustedError: If every key is disabled
            QuotaExhaustedError: PoolExhaustedError subclass, if every key is out of quota
            PipelineFailedError: If compression failed for good
        """
        options = _merge_options(options, resize, convert, transform_mode)
        return await self._pipeline.run(source, options, token=token)

    async def compress_to_file(
        self,
        source: Any,
        output_path: Union[str, Path],
        options: Optional[CompressionOptions] = None,
        **kwargs: Any,
    ) -> FileResult:
        """Compress one image and write the result, creating parent directories."""
        result = await self.compress(source, options, **kwargs)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(result.buffer)

        return FileResult(output_path=str(output_path), size=result.compressed_size)

    async def compress_many(
        self,
        sources: Sequence[Any],
        options: Optional[CompressionOptions] = None,
        max_concurrent: int = 4,
    ) -> List[Union[CompressionResult, BaseException]]:
        """Compress several images concurrently on the shared pool.

        Results keep the order of sources; failures are returned in place
        rather than raised.
        """
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be positive")
        semaphore = asyncio.Semaphore(max_concurrent)

        async def run_one(source: Any) -> CompressionResult:
            async with semaphore:
                return await self.compress(source, options)

        return await asyncio.gather(
            *(run_one(source) for source in sources), return_exceptions=True
        )

    def get_stats(self) -> List[CredentialStats]:
        return self.pool.stats()

    def get_summary(self) -> PoolSummary:
        return self.pool.summary()

    def snapshot(self) -> PoolSnapshot:
        return self.pool.snapshot()

    def reset_counts(self) -> None:
        """Forget usage and re-enable every key, e.g. at a new billing month."""
        self.pool.reset()
        self.events.emit(EventName.RESET, ResetEvent(message="All key usage counts reset"))


def _merge_options(
    options: Optional[CompressionOptions],
    resize: Optional[ResizeOptions],
    convert: Optional[ConvertOptions],
    transform_mode: Optional[TransformMode],
) -> CompressionOptions:
    options = options or CompressionOptions()
    updates = {}
    if resize is not None:
        updates["resize"] = resize
    if convert is not None:
        updates["convert"] = convert
    if transform_mode is not None:
        updates["transform_mode"] = transform_mode
    return options.model_copy(update=updates) if updates else options
