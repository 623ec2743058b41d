"""Constants and default values for the image compressor."""

from typing import Tuple

# Remote API
DEFAULT_API_BASE = "https://api.tinify.com"
SHRINK_PATH = "/shrink"
USAGE_HEADER = "Compression-Count"
RESULT_HANDLE_HEADER = "Location"
BASIC_AUTH_USER = "api"

# Quota
DEFAULT_MONTHLY_LIMIT = 500  # Compressions per key per month

# Transport
DEFAULT_CHUNK_SIZE = 64 * 1024  # 64 KiB
DEFAULT_REQUEST_TIMEOUT = 60.0  # Seconds, enforced by httpx only

# Retry
DEFAULT_RETRY_BASE_DELAY = 1.0  # Seconds, multiplied by (attempt + 1)

# Progress sub-ranges of [0, 1]
UPLOAD_RANGE: Tuple[float, float] = (0.05, 0.35)
TRANSFORM_RANGE: Tuple[float, float] = (0.5, 0.85)
DOWNLOAD_RANGE: Tuple[float, float] = (0.6, 0.9)
URL_FETCH_PROGRESS = 0.2
COMPRESSED_PROGRESS = 0.4

# Convert targets that cannot carry transparency
OPAQUE_MIME_TYPES = frozenset({"image/jpeg", "image/jpg"})
