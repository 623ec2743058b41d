"""Async HTTP transport for the compression API."""

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx

from .auth import basic_auth
from .constants import (
    DEFAULT_API_BASE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_REQUEST_TIMEOUT,
    RESULT_HANDLE_HEADER,
    SHRINK_PATH,
    USAGE_HEADER,
)
from .exceptions import (
    NetworkError,
    ProtocolError,
    TaskCancelledError,
    api_error_for_status,
)
from .models import ConvertOptions, ResizeOptions
from .utils.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Caller-owned flag checked before each request and between chunks."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise TaskCancelledError()


@dataclass
class TransportResponse:
    """Fully buffered response plus the side-channel usage counter."""

    status_code: int
    content: bytes = field(repr=False)
    usage_count: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    def json(self) -> Any:
        return json.loads(self.content)


@dataclass
class ShrinkResult:
    """Result handle issued by the shrink endpoint."""

    output_url: str
    usage_count: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def input_size(self) -> Optional[int]:
        size = self.data.get("input", {}).get("size")
        return size if isinstance(size, int) else None


def parse_usage_count(value: Optional[str]) -> Optional[int]:
    """Usage header value as an int, or None when absent or malformed."""
    if value is None:
        return None
    value = value.strip()
    return int(value) if value.isdigit() else None


def _network_reason(exc: httpx.TransportError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, httpx.ConnectError):
        cause: Optional[BaseException] = exc
        while cause is not None:
            if isinstance(cause, ConnectionRefusedError):
                return "connection_refused"
            cause = cause.__cause__ or cause.__context__
        if "refused" in str(exc).lower():
            return "connection_refused"
        return "connect_failed"
    return "transport"


class TransportClient:
    """Issues authenticated requests with chunked bodies and progress callbacks.

    Usage counters are read from the usage header of every response and handed
    back with the payload. Non-success responses become ApiError subclasses.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE,
        timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        usage_header: str = USAGE_HEADER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize transport.

        Args:
            base_url: API base URL
            timeout: Request timeout in seconds, enforced by httpx
            chunk_size: Upload and download chunk size in bytes
            usage_header: Header carrying the usage counter
            transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.usage_header = usage_header
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self._client:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _iter_upload(
        self,
        data: bytes,
        on_progress: Optional[ProgressCallback],
        token: Optional[CancellationToken],
    ) -> AsyncIterator[bytes]:
        total = len(data)
        sent = 0
        for offset in range(0, total, self.chunk_size):
            if token:
                token.raise_if_cancelled()
            chunk = data[offset:offset + self.chunk_size]
            yield chunk
            sent += len(chunk)
            if on_progress:
                on_progress(sent, total)

    async def _read_body(
        self,
        response: httpx.Response,
        on_progress: Optional[ProgressCallback],
        token: Optional[CancellationToken],
    ) -> bytes:
        content_length = response.headers.get("content-length", "")
        total = int(content_length) if content_length.isdigit() else 0

        chunks = []
        received = 0
        async for chunk in response.aiter_bytes(self.chunk_size):
            if token:
                token.raise_if_cancelled()
            chunks.append(chunk)
            received += len(chunk)
            if on_progress:
                on_progress(received, total)
        return b"".join(chunks)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return

        message = None
        error_type = None
        try:
            error_data = response.json()
            if isinstance(error_data, dict):
                message = error_data.get("message")
                error_type = error_data.get("error")
        except ValueError:
            pass  # Body is not JSON

        raise api_error_for_status(
            response.status_code,
            response.reason_phrase,
            message=message,
            error_type=error_type,
        )

    async def request(
        self,
        method: str,
        url: str,
        secret: str,
        *,
        content: Optional[bytes] = None,
        json_body: Optional[Dict[str, Any]] = None,
        on_upload_progress: Optional[ProgressCallback] = None,
        on_download_progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> TransportResponse:
        """Send one authenticated request and buffer the whole response.

        Raises:
            ApiError: For non-success responses
            NetworkError: If no response was received
            TaskCancelledError: If the token fired
        """
        client = await self._ensure_client()
        if token:
            token.raise_if_cancelled()

        headers: Dict[str, str] = {}
        body: Any = None
        if content is not None:
            headers["Content-Type"] = "application/octet-stream"
            headers["Content-Length"] = str(len(content))
            body = self._iter_upload(content, on_upload_progress, token)

        try:
            async with client.stream(
                method,
                url,
                content=body,
                json=json_body,
                headers=headers,
                auth=basic_auth(secret),
            ) as response:
                usage_count = parse_usage_count(response.headers.get(self.usage_header))
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status(response)
                payload = await self._read_body(response, on_download_progress, token)
        except httpx.TransportError as e:
            reason = _network_reason(e)
            logger.warning("Request failed without response", method=method, reason=reason)
            raise NetworkError(f"Network request failed: {e}", reason=reason) from e

        return TransportResponse(
            status_code=response.status_code,
            content=payload,
            usage_count=usage_count,
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    def _shrink_result(self, response: TransportResponse) -> ShrinkResult:
        data: Dict[str, Any] = {}
        if response.content:
            try:
                data = response.json()
            except ValueError as e:
                raise ProtocolError("Shrink response is not valid JSON") from e
            if not isinstance(data, dict):
                raise ProtocolError("Shrink response is not a JSON object")

        output_url = response.headers.get(RESULT_HANDLE_HEADER.lower())
        if not output_url and isinstance(data.get("output"), dict):
            output_url = data["output"].get("url")
        if not output_url:
            raise ProtocolError("API did not return a result location")

        return ShrinkResult(output_url=output_url, usage_count=response.usage_count, data=data)

    async def shrink(
        self,
        data: bytes,
        secret: str,
        on_upload_progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> ShrinkResult:
        """Upload raw image bytes to the shrink endpoint."""
        response = await self.request(
            "POST",
            SHRINK_PATH,
            secret,
            content=data,
            on_upload_progress=on_upload_progress,
            token=token,
        )
        return self._shrink_result(response)

    async def shrink_from_url(
        self,
        url: str,
        secret: str,
        token: Optional[CancellationToken] = None,
    ) -> ShrinkResult:
        """Ask the server to fetch and shrink a remote image."""
        response = await self.request(
            "POST",
            SHRINK_PATH,
            secret,
            json_body={"source": {"url": url}},
            token=token,
        )
        return self._shrink_result(response)

    async def transform(
        self,
        output_url: str,
        secret: str,
        resize: Optional[ResizeOptions] = None,
        convert: Optional[ConvertOptions] = None,
        on_download_progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> TransportResponse:
        """Apply resize and/or convert to a result handle; returns the new image."""
        if resize is None and convert is None:
            raise ValueError("transform requires resize or convert options")

        payload: Dict[str, Any] = {}
        if resize is not None:
            payload["resize"] = resize.to_payload()
        if convert is not None:
            payload["convert"] = convert.to_payload()

        return await self.request(
            "POST",
            output_url,
            secret,
            json_body=payload,
            on_download_progress=on_download_progress,
            token=token,
        )

    async def download(
        self,
        output_url: str,
        secret: str,
        on_download_progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> TransportResponse:
        """Fetch the image behind a result handle."""
        return await self.request(
            "GET",
            output_url,
            secret,
            on_download_progress=on_download_progress,
            token=token,
        )
