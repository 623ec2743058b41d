"""Utility helpers for the Image Compressor SDK."""

from .compression import (
    calculate_compression_ratio,
    calculate_saved_bytes,
    calculate_saved_percent,
    format_size,
)
from .logging import get_logger, setup_logging, LoggingContext
from .progress import ProgressEmitter, Stage, calculate_progress_in_range, format_progress_message
from .sources import filename_from_url, is_url, prepare_source

__all__ = [
    "calculate_compression_ratio",
    "calculate_saved_bytes",
    "calculate_saved_percent",
    "format_size",
    "get_logger",
    "setup_logging",
    "LoggingContext",
    "ProgressEmitter",
    "Stage",
    "calculate_progress_in_range",
    "format_progress_message",
    "filename_from_url",
    "is_url",
    "prepare_source",
]
