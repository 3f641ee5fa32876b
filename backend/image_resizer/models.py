"""
Image Resizer Data Models

Contains:
- ResizeRequest: raw form parameters, leniently parsed
- OutputSpec: normalized output format, quality and filename base
- ImageSource: an acquired source file
- ResizePlan: requested and final output dimensions
"""

import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

# Output formats and their canonical extension / MIME type
OUTPUT_FORMATS = {
    "jpeg": ("jpeg", "image/jpeg"),
    "png": ("png", "image/png"),
    "webp": ("webp", "image/webp"),
}

# URL/filename extension -> declared source format hint
EXTENSION_FORMATS = {
    "jpg": "jpeg",
    "jpeg": "jpeg",
    "png": "png",
    "gif": "gif",
    "webp": "webp",
    "bmp": "bmp",
}

UNKNOWN_FORMAT = "unknown"
DEFAULT_FILENAME_BASE = "processed_image"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Any) -> Optional[int]:
    """Leading integer of a form value ("300px" -> 300), None when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def sanitize_filename(filename: str) -> str:
    """
    Make a caller-supplied name safe to use as a file name.

    Removes ``..`` and ``/``, drops characters outside ``[A-Za-z0-9_.-]``,
    collapses runs of dots and trims dots, hyphens and underscores from both
    ends. May return an empty string.
    """
    filename = filename.replace("..", "").replace("/", "")
    filename = re.sub(r"[^A-Za-z0-9_.-]", "", filename)
    filename = re.sub(r"\.+", ".", filename)
    return filename.strip(".-_")


def default_filename_base(now: Optional[float] = None) -> str:
    timestamp = int(now if now is not None else time.time())
    return f"{DEFAULT_FILENAME_BASE}_{timestamp}_{secrets.token_hex(2)}"


def normalize_output_format(value: Optional[str], default: str = "jpeg") -> str:
    """Case-insensitive format name; jpg becomes jpeg, unknown names fall back to the default."""
    fmt = (value or "").strip().lower()
    if fmt == "jpg":
        fmt = "jpeg"
    return fmt if fmt in OUTPUT_FORMATS else default


@dataclass(frozen=True)
class OutputSpec:
    """Normalized output settings for one request."""
    format: str
    quality: int
    filename_base: str

    @property
    def extension(self) -> str:
        return OUTPUT_FORMATS[self.format][0]

    @property
    def mime_type(self) -> str:
        return OUTPUT_FORMATS[self.format][1]

    @property
    def filename(self) -> str:
        return f"{self.filename_base}.{self.extension}"


@dataclass(frozen=True)
class ImageSource:
    """An acquired source image on disk, owned by the current request."""
    storage_location: Path
    declared_format_hint: str
    byte_length: int


@dataclass(frozen=True)
class ResizePlan:
    """Requested and final output dimensions."""
    requested_width: Optional[int]
    requested_height: Optional[int]
    final_width: int
    final_height: int

    @property
    def size(self) -> Tuple[int, int]:
        return self.final_width, self.final_height


class ResizeRequest(BaseModel):
    """Form parameters of a resize request (image_file travels separately)."""
    image_url: Optional[str] = Field(None, description="URL of the image to process")
    width: Optional[int] = Field(None, description="Desired width in pixels")
    height: Optional[int] = Field(None, description="Desired height in pixels")
    quality: Optional[int] = Field(None, description="Output quality (0-100)")
    format: Optional[str] = Field(None, description="Output format: jpeg, jpg, png, webp")
    output_filename: Optional[str] = Field(None, description="Base name for the output file")

    @field_validator("width", "height", mode="before")
    @classmethod
    def _lenient_int(cls, value):
        return parse_int(value)

    @field_validator("quality", mode="before")
    @classmethod
    def _lenient_quality(cls, value):
        # A supplied but unparsable quality counts as 0, not as unset
        if value is None:
            return None
        parsed = parse_int(value)
        return 0 if parsed is None else parsed

    @field_validator("image_url", "format", "output_filename", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def requested_dimensions(self, max_dimension: int = 10000) -> Tuple[Optional[int], Optional[int]]:
        """Width/height with values outside (0, max_dimension] treated as absent."""

        def in_range(value: Optional[int]) -> Optional[int]:
            if value is None or value <= 0 or value > max_dimension:
                return None
            return value

        return in_range(self.width), in_range(self.height)

    def output_spec(self, default_format: str = "jpeg", default_quality: int = 85) -> OutputSpec:
        fmt = normalize_output_format(self.format, default_format)
        if self.quality is None:
            quality = default_quality
        else:
            quality = max(0, min(100, self.quality))

        filename_base = ""
        if self.output_filename:
            filename_base = sanitize_filename(self.output_filename)
        if not filename_base:
            filename_base = default_filename_base()

        return OutputSpec(format=fmt, quality=quality, filename_base=filename_base)

    def log_context(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
