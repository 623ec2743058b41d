"""Data models for Image Compressor SDK."""

from enum import Enum
from typing import Optional, List, Dict, Any, Union
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import OPAQUE_MIME_TYPES


class ResizeMethod(str, Enum):
    """Supported server-side resize methods."""
    SCALE = "scale"
    FIT = "fit"
    COVER = "cover"
    THUMB = "thumb"


class SourceKind(str, Enum):
    """Kinds of image source accepted by the pipeline."""
    FILE = "file"
    BUFFER = "buffer"
    STREAM = "stream"
    REMOTE_URL = "url"


class TransformMode(str, Enum):
    """How resize and convert are composed when both are requested."""
    COMBINED = "combined"
    CHAINED = "chained"


class ResizeOptions(BaseModel):
    """Resize directive applied to the result handle."""

    method: ResizeMethod = ResizeMethod.FIT
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_dimensions(self) -> "ResizeOptions":
        """Scale takes exactly one dimension, every other method takes both."""
        given = [v for v in (self.width, self.height) if v is not None]
        if self.method == ResizeMethod.SCALE:
            if len(given) != 1:
                raise ValueError("scale requires exactly one of width or height")
        elif len(given) != 2:
            raise ValueError(f"{self.method.value} requires both width and height")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ConvertOptions(BaseModel):
    """Convert directive: one or more target MIME types."""

    type: List[str] = Field(..., min_length=1)
    background: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_types(cls, v: Union[str, List[str]]) -> List[str]:
        """Accept a single MIME type or a bare extension like 'webp'."""
        if isinstance(v, str):
            v = [v]
        normalized = []
        for item in v:
            item = item.strip().lower().lstrip(".")
            if "/" not in item:
                item = f"image/{item}"
            normalized.append(item)
        return normalized

    @property
    def needs_background(self) -> bool:
        """True when every target is opaque and no flattening colour is set."""
        return self.background is None and all(t in OPAQUE_MIME_TYPES for t in self.type)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type[0] if len(self.type) == 1 else self.type}
        if self.background is not None:
            payload["background"] = self.background
        return payload


class CompressionOptions(BaseModel):
    """Optional transforms applied after the primary compression."""

    resize: Optional[ResizeOptions] = None
    convert: Optional[ConvertOptions] = None
    transform_mode: TransformMode = TransformMode.COMBINED


class CompressionTask(BaseModel):
    """One unit of work, built during the preparing stage."""

    source_kind: SourceKind
    original_size: Optional[int] = Field(default=None, ge=0)
    filename: Optional[str] = None
    buffer: Optional[bytes] = Field(default=None, repr=False)
    url: Optional[str] = None
    resize: Optional[ResizeOptions] = None
    convert: Optional[ConvertOptions] = None
    transform_mode: TransformMode = TransformMode.COMBINED

    @property
    def is_remote(self) -> bool:
        return self.source_kind == SourceKind.REMOTE_URL


class CompressionResult(BaseModel):
    """Final outcome of a successful compression."""

    buffer: bytes = Field(repr=False)
    original_size: Optional[int] = None
    compressed_size: int
    saved_bytes: int = Field(ge=0)
    saved_percent: float
    filename: Optional[str] = None
    key_index: int
    content_type: Optional[str] = None


class FileResult(BaseModel):
    """Result of compress_to_file."""

    output_path: str
    size: int


class CredentialStats(BaseModel):
    """Secret-free view of one credential."""

    key_index: int
    usage_count: Optional[int] = None
    monthly_limit: int
    remaining: Optional[int] = None
    percent_used: Optional[float] = None
    last_updated: Optional[datetime] = None
    disabled: bool
    last_error: Optional[str] = None


class PoolSummary(BaseModel):
    """Aggregate statistics across the pool.

    Totals are None while no credential has a known usage count.
    """

    total_keys: int
    active_keys: int
    disabled_keys: int
    unknown_keys: int
    total_used: Optional[int] = None
    total_limit: Optional[int] = None
    total_remaining: Optional[int] = None
    percent_used: Optional[float] = None


class PoolSnapshot(BaseModel):
    """Read-only view of the pool at one instant."""

    credentials: List[CredentialStats]
    summary: PoolSummary
    current_index: int
