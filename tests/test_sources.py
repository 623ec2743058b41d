"""Unit tests for source normalisation and size helpers."""

import io

import pytest

from image_compressor.exceptions import SourceError
from image_compressor.models import (
    CompressionOptions,
    ConvertOptions,
    ResizeMethod,
    ResizeOptions,
    SourceKind,
)
from image_compressor.utils.compression import (
    calculate_compression_ratio,
    calculate_saved_bytes,
    calculate_saved_percent,
    format_size,
)
from image_compressor.utils.sources import filename_from_url, is_url, prepare_source


class TestPrepareSource:
    """Test conversion of every source kind into a task."""

    @pytest.mark.asyncio
    async def test_file_path(self, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"x" * 2048)

        task = await prepare_source(str(path))
        assert task.source_kind == SourceKind.FILE
        assert task.original_size == 2048
        assert task.filename == "photo.png"
        assert task.buffer == b"x" * 2048

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(SourceError) as exc_info:
            await prepare_source(tmp_path / "missing.png")
        # Paths stay out of error messages
        assert str(tmp_path) not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_buffer(self):
        task = await prepare_source(bytearray(b"abc"))
        assert task.source_kind == SourceKind.BUFFER
        assert task.buffer == b"abc"
        assert task.original_size == 3
        assert task.filename is None

    @pytest.mark.asyncio
    async def test_file_like_stream(self):
        stream = io.BytesIO(b"y" * 100_000)
        stream.name = "/tmp/upload.jpg"

        task = await prepare_source(stream)
        assert task.source_kind == SourceKind.STREAM
        assert task.original_size == 100_000
        assert task.filename == "upload.jpg"

    @pytest.mark.asyncio
    async def test_async_iterable(self):
        async def chunks():
            yield b"ab"
            yield b"cd"

        task = await prepare_source(chunks())
        assert task.source_kind == SourceKind.STREAM
        assert task.buffer == b"abcd"

    @pytest.mark.asyncio
    async def test_text_stream_rejected(self):
        with pytest.raises(SourceError, match="Input stream must be binary"):
            await prepare_source(io.StringIO("not an image"))

    @pytest.mark.asyncio
    async def test_text_async_iterable_rejected(self):
        async def lines():
            yield "text"

        with pytest.raises(SourceError, match="Input stream must be binary"):
            await prepare_source(lines())

    @pytest.mark.asyncio
    async def test_remote_url_has_unknown_size(self):
        task = await prepare_source("https://example.com/images/cat.png")
        assert task.source_kind == SourceKind.REMOTE_URL
        assert task.is_remote
        assert task.original_size is None
        assert task.buffer is None
        assert task.filename == "cat.png"

    @pytest.mark.asyncio
    async def test_options_carried_over(self):
        options = CompressionOptions(
            resize=ResizeOptions(method=ResizeMethod.SCALE, width=100),
            convert=ConvertOptions(type="webp"),
        )
        task = await prepare_source(b"data", options)
        assert task.resize.width == 100
        assert task.convert.type == ["image/webp"]

    @pytest.mark.asyncio
    async def test_unsupported_source(self):
        with pytest.raises(SourceError, match="Unsupported source type"):
            await prepare_source(12345)


class TestUrlHelpers:
    """Test URL detection and naming."""

    def test_is_url(self):
        assert is_url("https://example.com/a.png")
        assert is_url("HTTP://example.com/a.png")
        assert not is_url("ftp://example.com/a.png")
        assert not is_url("/local/a.png")
        assert not is_url(b"https://example.com")

    def test_filename_from_url(self):
        assert filename_from_url("https://example.com/a/b.webp?x=1") == "b.webp"
        assert filename_from_url("https://example.com/") == "image"


class TestOptionModels:
    """Test transform option validation."""

    def test_scale_needs_one_dimension(self):
        with pytest.raises(ValueError):
            ResizeOptions(method=ResizeMethod.SCALE, width=10, height=10)
        assert ResizeOptions(method="scale", height=10).to_payload() == {
            "method": "scale",
            "height": 10,
        }

    def test_fit_needs_both_dimensions(self):
        with pytest.raises(ValueError):
            ResizeOptions(method=ResizeMethod.FIT, width=10)
        assert ResizeOptions(width=10, height=20).to_payload() == {
            "method": "fit",
            "width": 10,
            "height": 20,
        }

    def test_convert_normalizes_types(self):
        options = ConvertOptions(type=["webp", "image/PNG"])
        assert options.type == ["image/webp", "image/png"]
        assert options.to_payload() == {"type": ["image/webp", "image/png"]}

    def test_convert_background(self):
        assert ConvertOptions(type="jpg").needs_background
        options = ConvertOptions(type="image/jpeg", background="#ffffff")
        assert not options.needs_background
        assert options.to_payload() == {"type": "image/jpeg", "background": "#ffffff"}


class TestCompressionHelpers:
    """Test size arithmetic."""

    def test_saved_bytes_clamped(self):
        assert calculate_saved_bytes(1000, 400) == 600
        assert calculate_saved_bytes(400, 1000) == 0
        assert calculate_saved_bytes(None, 400) == 0

    def test_saved_percent(self):
        assert calculate_saved_percent(1000, 400) == 60.0
        assert calculate_saved_percent(None, 400) == 0.0
        assert calculate_saved_percent(100, 150) == 0.0

    def test_compression_ratio(self):
        assert calculate_compression_ratio(0, 10) == 0.0
        assert calculate_compression_ratio(200, 150) == 25.0

    def test_format_size(self):
        assert format_size(512) == "512 B"
        assert format_size(2048) == "2.00 KB"
        assert format_size(3 * 1024 * 1024) == "3.00 MB"
