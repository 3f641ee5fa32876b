"""
Image Processing Stages

Handles, in pipeline order:
- Format detection from the file's own header (never from its name)
- Decoding to an RGB/RGBA raster
- Output dimension planning
- Canvas allocation with the right background for the format pair
- Resampling into the canvas
- Encoding to jpeg/png/webp at the requested quality

All functions return StageResult; Pillow errors are turned into ErrorKinds.
"""

import logging
import math
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import Image, UnidentifiedImageError

from .capabilities import Capabilities
from .context import RequestContext
from .errors import ErrorKind, StageResult
from .models import OutputSpec, ResizePlan

logger = logging.getLogger(__name__)

# Pillow format name -> source format
SOURCE_FORMATS = {
    "JPEG": "jpeg",
    "PNG": "png",
    "GIF": "gif",
    "WEBP": "webp",
    "BMP": "bmp",
}

SOURCE_MIME_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
}

# Formats that can carry per-pixel transparency
ALPHA_SOURCE_FORMATS = {"png", "gif", "webp"}
ALPHA_OUTPUT_FORMATS = {"png", "webp"}

# Lanczos support widens with the scale factor, so downscaling averages
# over the whole source footprint of each destination pixel
RESAMPLE_FILTER = Image.Resampling.LANCZOS

WHITE = (255, 255, 255)
TRANSPARENT = (255, 255, 255, 0)


@dataclass(frozen=True)
class SourceInfo:
    """Format and size read from the image header."""
    format: str
    width: int
    height: int

    @property
    def mime_type(self) -> str:
        return SOURCE_MIME_TYPES[self.format]


@dataclass
class DecodedRaster:
    """A decoded source image, RGBA when the source format can carry alpha."""
    image: Image.Image
    source_format: str

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def has_alpha(self) -> bool:
        return self.image.mode == "RGBA"

    def close(self) -> None:
        self.image.close()


class BackgroundPolicy(str, Enum):
    """How the canvas is pre-filled before resampling"""
    TRANSPARENT = "transparent"    # alpha-aware canvas, alpha preserved
    WHITE = "white"                # opaque white, transparency flattened
    NONE = "none"                  # every pixel is overwritten anyway


# ============================================
# Format detection and decoding
# ============================================

def detect_format(path: Path, capabilities: Capabilities) -> StageResult:
    """Read format and dimensions from the file header."""
    try:
        with Image.open(path, formats=list(SOURCE_FORMATS)) as img:
            pil_format = img.format
            width, height = img.size
    except (UnidentifiedImageError, OSError, ValueError, KeyError, Image.DecompressionBombError) as e:
        logger.warning(f"[FormatDetector] Cannot identify {path}: {e}")
        return StageResult.fail(
            ErrorKind.UNREADABLE_IMAGE,
            f"Could not read image dimensions or unsupported image type at: {path.name}",
        )

    source_format = SOURCE_FORMATS.get(pil_format)
    if source_format is None or not width or not height:
        return StageResult.fail(
            ErrorKind.UNREADABLE_IMAGE,
            f"Could not read image dimensions or unsupported image type at: {path.name}",
        )

    info = SourceInfo(source_format, width, height)
    if not capabilities.can_decode(source_format):
        return StageResult.fail(
            ErrorKind.UNREADABLE_IMAGE,
            "Failed to load image. Unsupported source image format or error reading file. "
            f"Type detected: {info.mime_type}",
        )
    return StageResult.ok(info)


def decode_image(path: Path, info: SourceInfo) -> StageResult:
    """Decode the first frame into an RGB or RGBA raster."""
    mode = "RGBA" if info.format in ALPHA_SOURCE_FORMATS else "RGB"
    try:
        with Image.open(path, formats=[info.format.upper()]) as img:
            img.load()
            raster = img.convert(mode)
    except (UnidentifiedImageError, OSError, ValueError, KeyError, Image.DecompressionBombError) as e:
        logger.warning(f"[FormatDetector] Decode failed for {path}: {e}")
        return StageResult.fail(
            ErrorKind.UNREADABLE_IMAGE,
            "Failed to load image. Unsupported source image format or error reading file. "
            f"Type detected: {info.mime_type}",
        )

    if raster.width * raster.height <= 0:
        raster.close()
        return StageResult.fail(ErrorKind.UNREADABLE_IMAGE, "Decoded image has no pixels.")
    return StageResult.ok(DecodedRaster(raster, info.format))


# ============================================
# Dimension planning
# ============================================

def plan_dimensions(
    source_width: int,
    source_height: int,
    requested_width: Optional[int] = None,
    requested_height: Optional[int] = None,
) -> ResizePlan:
    """
    Final output size.

    Both given: used as-is. One given: the other follows the source aspect
    ratio, rounded down. Neither: source size. Never below 1x1.
    """
    if requested_width and requested_height:
        width, height = requested_width, requested_height
    elif requested_width:
        width = requested_width
        height = source_height * requested_width // source_width
    elif requested_height:
        height = requested_height
        width = source_width * requested_height // source_height
    else:
        width, height = source_width, source_height

    return ResizePlan(
        requested_width=requested_width,
        requested_height=requested_height,
        final_width=max(1, int(width)),
        final_height=max(1, int(height)),
    )


# ============================================
# Canvas and resampling
# ============================================

def background_policy(source_format: str, output_format: str) -> BackgroundPolicy:
    if source_format in ALPHA_SOURCE_FORMATS:
        if output_format in ALPHA_OUTPUT_FORMATS:
            return BackgroundPolicy.TRANSPARENT
        if output_format == "jpeg":
            return BackgroundPolicy.WHITE
    return BackgroundPolicy.NONE


def create_canvas(plan: ResizePlan, policy: BackgroundPolicy) -> StageResult:
    """Allocate the destination raster, pre-filled for the policy."""
    try:
        if policy is BackgroundPolicy.TRANSPARENT:
            canvas = Image.new("RGBA", plan.size, TRANSPARENT)
        elif policy is BackgroundPolicy.WHITE:
            canvas = Image.new("RGB", plan.size, WHITE)
        else:
            canvas = Image.new("RGB", plan.size)
    except (ValueError, MemoryError) as e:
        logger.error(f"[Resampler] Canvas allocation failed for {plan.size}: {e}")
        return StageResult.fail(
            ErrorKind.RESAMPLE_ERROR,
            "Failed to create true color image resource for resizing.",
        )
    return StageResult.ok(canvas)


def resample_into(raster: DecodedRaster, canvas: Image.Image) -> StageResult:
    """Scale the raster to the canvas size and composite it onto the canvas."""
    try:
        if raster.image.size == canvas.size:
            scaled = raster.image
        else:
            scaled = raster.image.resize(canvas.size, RESAMPLE_FILTER)

        if not raster.has_alpha:
            canvas.paste(scaled, (0, 0))
        elif canvas.mode == "RGBA":
            canvas.alpha_composite(scaled)
        else:
            canvas.paste(scaled, (0, 0), scaled)
    except (ValueError, MemoryError, OSError) as e:
        logger.error(f"[Resampler] Resample failed: {e}")
        return StageResult.fail(ErrorKind.RESAMPLE_ERROR, "Failed to resample image.")
    return StageResult.ok(canvas)


# ============================================
# Encoding
# ============================================

def png_compression_level(quality: int) -> int:
    """Quality 100 -> level 0 (fastest), quality 0 -> level 9 (smallest)."""
    quality = max(0, min(100, quality))
    # Half-up rounding so quality 50 maps to level 4
    return 9 - int(math.floor(quality / 100 * 9 + 0.5))


def encoder_params(spec: OutputSpec) -> Dict[str, Any]:
    if spec.format == "png":
        return {"format": "PNG", "compress_level": png_compression_level(spec.quality)}
    if spec.format == "webp":
        return {"format": "WEBP", "quality": spec.quality}
    return {"format": "JPEG", "quality": spec.quality}


def check_encodable(spec: OutputSpec, capabilities: Capabilities) -> StageResult:
    if capabilities.can_encode(spec.format):
        return StageResult.ok()
    label = "WebP" if spec.format == "webp" else spec.format.upper()
    return StageResult.fail(
        ErrorKind.UNSUPPORTED_FORMAT,
        f"{label} output is not supported by this server's image library.",
    )


def encode_image(
    canvas: Image.Image,
    spec: OutputSpec,
    temp_dir: Path,
    context: RequestContext,
    capabilities: Capabilities,
) -> StageResult:
    """Write the canvas to a new output file; returns its path."""
    encodable = check_encodable(spec, capabilities)
    if not encodable.success:
        return encodable

    dest = Path(temp_dir) / f"output_{int(time.time())}_{secrets.token_hex(4)}_{spec.filename}"
    context.tracker.register(dest)

    image = canvas
    if spec.format == "jpeg" and canvas.mode != "RGB":
        image = canvas.convert("RGB")

    try:
        image.save(dest, **encoder_params(spec))
        # Deletes the file straight away if the request was already cleaned up
        context.tracker.register(dest)
    except (OSError, ValueError, KeyError) as e:
        logger.error(f"[Encoder] Save failed for {dest}: {e}")
        return StageResult.fail(ErrorKind.ENCODE_ERROR, f"Failed to save processed image to: {dest.name}")

    if not dest.is_file() or dest.stat().st_size == 0:
        return StageResult.fail(ErrorKind.ENCODE_ERROR, f"Failed to save processed image to: {dest.name}")
    return StageResult.ok(dest)
