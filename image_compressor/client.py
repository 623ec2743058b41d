"""Synchronous client for the image compression API."""

import asyncio
import concurrent.futures
from functools import wraps
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

import httpx

from .async_client import AsyncImageCompressorClient
from .auth import ApiKeys
from .config import Settings
from .events import EventEmitter, EventName
from .models import (
    CompressionOptions,
    CompressionResult,
    CredentialStats,
    FileResult,
    PoolSnapshot,
    PoolSummary,
)
from .pool import CredentialPool


def _run(coro):
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    # A loop is already running in this thread, run on a fresh one elsewhere
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


def sync_wrapper(async_func):
    """Wrapper to run async client methods synchronously.

    Each call runs on its own event loop, so the HTTP client is closed before
    the loop goes away.
    """

    @wraps(async_func)
    def wrapper(self, *args, **kwargs):
        async def call():
            try:
                return await async_func(self, *args, **kwargs)
            finally:
                await self._async_client.close()

        return _run(call())

    return wrapper


class ImageCompressorClient:
    """Synchronous client that spreads compressions over a pool of API keys."""

    def __init__(
        self,
        api_keys: Optional[ApiKeys] = None,
        monthly_limit: Optional[int] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        pool: Optional[CredentialPool] = None,
        events: Optional[EventEmitter] = None,
        configure_logging: bool = False,
    ):
        """Initialize synchronous client.

        Args:
            api_keys: One key, a comma-separated string or a list of keys
            monthly_limit: Usage cap per key (defaults to settings)
            settings: Settings instance; read from env when omitted
            transport: Optional httpx transport (e.g. httpx.MockTransport)
            pool: Existing pool to share between clients
            events: Existing emitter to share between clients
            configure_logging: Apply the settings' log level and format

        Raises:
            ConfigurationError: If no API key can be found
        """
        self._async_client = AsyncImageCompressorClient(
            api_keys=api_keys,
            monthly_limit=monthly_limit,
            settings=settings,
            transport=transport,
            pool=pool,
            events=events,
            configure_logging=configure_logging,
        )

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    @property
    def pool(self) -> CredentialPool:
        return self._async_client.pool

    @property
    def events(self) -> EventEmitter:
        return self._async_client.events

    @sync_wrapper
    async def close(self) -> None:
        """Close the client."""
        await self._async_client.close()

    def on(self, event: Union[EventName, str], listener: Optional[Callable] = None):
        """Register an event listener; usable as a decorator."""
        return self._async_client.on(event, listener)

    def off(self, event: Union[EventName, str], listener: Callable) -> None:
        self._async_client.off(event, listener)

    @sync_wrapper
    async def compress(
        self,
        source: Any,
        options: Optional[CompressionOptions] = None,
        **kwargs: Any,
    ) -> CompressionResult:
        """Compress one image.

        Args:
            source: File path, http(s) URL, bytes or a file-like object
            options: Transform options
            **kwargs: resize, convert, transform_mode or token shortcuts

        Returns:
            Compressed image and size statistics
        """
        return await self._async_client.compress(source, options, **kwargs)

    @sync_wrapper
    async def compress_to_file(
        self,
        source: Any,
        output_path: Union[str, Path],
        options: Optional[CompressionOptions] = None,
        **kwargs: Any,
    ) -> FileResult:
        """Compress one image and write the result to output_path."""
        return await self._async_client.compress_to_file(source, output_path, options, **kwargs)

    @sync_wrapper
    async def compress_many(
        self,
        sources: Sequence[Any],
        options: Optional[CompressionOptions] = None,
        max_concurrent: int = 4,
    ) -> List[Union[CompressionResult, BaseException]]:
        """Compress several images concurrently; failures are returned in place."""
        return await self._async_client.compress_many(sources, options, max_concurrent)

    def get_stats(self) -> List[CredentialStats]:
        return self._async_client.get_stats()

    def get_summary(self) -> PoolSummary:
        return self._async_client.get_summary()

    def snapshot(self) -> PoolSnapshot:
        return self._async_client.snapshot()

    def reset_counts(self) -> None:
        """Forget usage and re-enable every key."""
        self._async_client.reset_counts()
