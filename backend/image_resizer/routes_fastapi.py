"""
Image Resizer API Routes

Provides endpoints for:
- POST: resize/re-encode an uploaded or remote image
- GET: status and usage page
- /health: capability report
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, Response

from .capabilities import Capabilities, temp_dir_writable
from .config import ImageResizerConfig
from .errors import StageError
from .models import ResizeRequest
from .pipeline import ImageResizer
from .status_page import render_status_page

logger = logging.getLogger(__name__)

# ============================================
# Configuration
# ============================================

config = ImageResizerConfig.from_env()
capabilities = Capabilities.probe()
default_resizer = ImageResizer(config, capabilities)


def get_resizer() -> ImageResizer:
    return default_resizer


def error_response(error: StageError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api/image-resizer", tags=["Image Resizer"])

# Everything except GET and POST answers 405 with the JSON error body
UNSUPPORTED_METHODS = ["PUT", "PATCH", "DELETE", "OPTIONS", "HEAD", "TRACE"]


# ============================================
# Endpoints
# ============================================

@router.get("", response_class=HTMLResponse)
@router.get("/", response_class=HTMLResponse)
async def status_index(request: Request, resizer: ImageResizer = Depends(get_resizer)):
    """Human-readable status and usage page."""
    html = render_status_page(
        capabilities=resizer.capabilities,
        config=resizer.config,
        temp_writable=temp_dir_writable(resizer.config.temp_dir),
        endpoint_url=str(request.url),
    )
    return HTMLResponse(content=html)


@router.post("")
@router.post("/")
async def resize_image(
    image_file: Optional[UploadFile] = File(None, description="Image to upload"),
    image_url: Optional[str] = Form(None, description="URL of the image to process"),
    width: Optional[str] = Form(None, description="Target width in pixels"),
    height: Optional[str] = Form(None, description="Target height in pixels"),
    quality: Optional[str] = Form(None, description="Output quality (0-100)"),
    output_format: Optional[str] = Form(None, alias="format", description="Output format: jpeg, png, webp"),
    output_filename: Optional[str] = Form(None, description="Base name of the output file"),
    resizer: ImageResizer = Depends(get_resizer),
):
    """
    Resize and re-encode one image.

    Exactly one of image_file / image_url must be given. The response body
    is the encoded image.

    Example:
        curl -X POST /api/image-resizer -F "image_url=https://example.com/a.png" -F "width=300"
    """
    # Browsers send an empty part for an untouched file input
    if image_file is not None and not image_file.filename:
        image_file = None

    params = ResizeRequest(
        image_url=image_url,
        width=width,
        height=height,
        quality=quality,
        format=output_format,
        output_filename=output_filename,
    )
    result = await resizer.process(params, image_file)
    if not result.success:
        logger.warning(f"[ImageResizer] Request failed: {result.describe()}")
        return error_response(result.error)

    image = result.value
    logger.info(
        f"[ImageResizer] Served {image.filename} ({image.width}x{image.height}, {len(image.data)} bytes)"
    )
    return Response(
        content=image.data,
        media_type=image.mime_type,
        headers={"Content-Disposition": f'inline; filename="{image.filename}"'},
    )


@router.api_route("", methods=UNSUPPORTED_METHODS, include_in_schema=False)
@router.api_route("/", methods=UNSUPPORTED_METHODS, include_in_schema=False)
async def method_not_allowed():
    return JSONResponse(status_code=405, content={"error": "Method Not Allowed"})


@router.get("/health")
async def health_check(resizer: ImageResizer = Depends(get_resizer)):
    """Health check endpoint."""
    return JSONResponse(content={
        "status": "healthy",
        "service": "image-resizer",
        "capabilities": resizer.capabilities.to_dict(),
        "temp_dir_writable": temp_dir_writable(resizer.config.temp_dir),
    })
