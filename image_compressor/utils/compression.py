"""Helpers for calculating and formatting compression results."""

from typing import Optional


def calculate_compression_ratio(original_size: int, compressed_size: int) -> float:
    """Percentage saved, rounded to two decimals (negative when the output grew)."""
    if original_size <= 0:
        return 0.0
    return round((1 - compressed_size / original_size) * 100, 2)


def calculate_saved_bytes(original_size: Optional[int], compressed_size: int) -> int:
    """Bytes saved, clamped at zero; zero when the original size is unknown."""
    if original_size is None:
        return 0
    return max(0, original_size - compressed_size)


def calculate_saved_percent(original_size: Optional[int], compressed_size: int) -> float:
    """Clamped counterpart of calculate_compression_ratio."""
    if not original_size:
        return 0.0
    return max(0.0, calculate_compression_ratio(original_size, compressed_size))


def format_size(num_bytes: int) -> str:
    """Format a byte count, e.g. '128 B', '512.00 KB', '1.50 MB'."""
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.2f} KB"
    return f"{num_bytes / (1024 * 1024):.2f} MB"
