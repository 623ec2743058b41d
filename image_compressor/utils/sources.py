"""Normalisation of image sources into compression tasks."""

import os
import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from ..exceptions import SourceError
from ..models import CompressionOptions, CompressionTask, SourceKind

_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

_READ_SIZE = 64 * 1024


def is_url(value: Any) -> bool:
    """True for http(s) URL strings."""
    return isinstance(value, str) and bool(_URL_PATTERN.match(value))


def filename_from_url(url: str) -> str:
    """Last path segment of a URL, or 'image' when there is none."""
    path = urlparse(url).path
    name = path.rstrip("/").split("/")[-1] if path else ""
    return name or "image"


def _stream_name(stream: Any) -> Optional[str]:
    name = getattr(stream, "name", None)
    if isinstance(name, (str, os.PathLike)):
        return Path(name).name
    return None


def _binary_chunk(chunk: Any) -> bytes:
    if not isinstance(chunk, (bytes, bytearray, memoryview)):
        raise SourceError("Input stream must be binary")
    return bytes(chunk)


async def _read_async_iterable(source: Any) -> bytes:
    chunks = []
    async for chunk in source:
        chunks.append(_binary_chunk(chunk))
    return b"".join(chunks)


def _read_stream(stream: Any) -> bytes:
    chunks = []
    while True:
        chunk = stream.read(_READ_SIZE)
        if not chunk:
            break
        chunks.append(_binary_chunk(chunk))
    return b"".join(chunks)


async def prepare_source(
    source: Any, options: Optional[CompressionOptions] = None
) -> CompressionTask:
    """Turn a file path, URL, bytes buffer or stream into a CompressionTask.

    Remote URLs are passed through untouched; their size is unknown until
    the server reports it.

    Raises:
        SourceError: If the source type is unsupported or cannot be read
    """
    options = options or CompressionOptions()
    transforms = {
        "resize": options.resize,
        "convert": options.convert,
        "transform_mode": options.transform_mode,
    }

    if is_url(source):
        return CompressionTask(
            source_kind=SourceKind.REMOTE_URL,
            filename=filename_from_url(source),
            url=source,
            **transforms,
        )

    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        if not path.is_file():
            raise SourceError("Input file not found")
        try:
            buffer = path.read_bytes()
        except OSError as e:
            raise SourceError("Failed to read input file") from e
        kind, filename = SourceKind.FILE, path.name

    elif isinstance(source, (bytes, bytearray, memoryview)):
        buffer, kind, filename = bytes(source), SourceKind.BUFFER, None

    elif hasattr(source, "read"):
        try:
            buffer = _read_stream(source)
        except OSError as e:
            raise SourceError("Failed to read input stream") from e
        kind, filename = SourceKind.STREAM, _stream_name(source)

    elif hasattr(source, "__aiter__"):
        buffer = await _read_async_iterable(source)
        kind, filename = SourceKind.STREAM, None

    else:
        raise SourceError(
            f"Unsupported source type {type(source).__name__}: "
            "expected a file path, URL, bytes or stream"
        )

    return CompressionTask(
        source_kind=kind,
        original_size=len(buffer),
        filename=filename,
        buffer=buffer,
        **transforms,
    )
