"""
Image Resize Pipeline

Runs one request end to end:
    acquire -> detect -> decode -> plan -> canvas -> resample -> encode

Every stage returns a StageResult and the first failure stops the pipeline.
Temp files are removed by exactly one cleanup pass, on success, failure or
timeout alike.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx

from .acquirer import SourceAcquirer, build_http_client
from .capabilities import Capabilities, temp_dir_writable
from .config import ImageResizerConfig
from .context import RequestContext
from .errors import ErrorKind, StageResult
from .models import UNKNOWN_FORMAT, ImageSource, OutputSpec, ResizeRequest
from .processor import (
    background_policy,
    check_encodable,
    create_canvas,
    decode_image,
    detect_format,
    encode_image,
    plan_dimensions,
    resample_into,
)

logger = logging.getLogger(__name__)


@dataclass
class ProcessedImage:
    """Encoded output, read into memory before the temp files go away."""
    data: bytes
    filename: str
    mime_type: str
    width: int
    height: int
    source_format: str


class ImageResizer:
    """
    Orchestrates one resize request.

    Usage:
        resizer = ImageResizer(config, Capabilities.probe())
        result = await resizer.process(ResizeRequest(width=400), upload)
        if result.success:
            image = result.value    # ProcessedImage

    ``upload`` is any object with ``file`` and ``filename`` attributes
    (FastAPI's UploadFile), or None.
    """

    def __init__(
        self,
        config: ImageResizerConfig,
        capabilities: Capabilities,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.capabilities = capabilities
        self.transport = transport

    def check_prerequisites(self) -> StageResult:
        """Server-side requirements, checked before any processing."""
        if not self.capabilities.core_codecs:
            return StageResult.fail(
                ErrorKind.CONFIGURATION_ERROR,
                "Pillow JPEG/PNG support is not available. It's required for image processing.",
            )
        if not self.capabilities.http_client:
            return StageResult.fail(
                ErrorKind.CONFIGURATION_ERROR,
                "httpx is not installed. It's required for URL downloads.",
            )
        if not temp_dir_writable(self.config.temp_dir):
            return StageResult.fail(
                ErrorKind.CONFIGURATION_ERROR,
                f"Temporary directory '{self.config.temp_dir}' is not writable or does not exist.",
            )
        return StageResult.ok()

    async def process(self, request: ResizeRequest, upload: Any = None) -> StageResult:
        context = RequestContext(self.config.log_dir)
        try:
            result = self.check_prerequisites()
            if result.success:
                try:
                    result = await asyncio.wait_for(
                        self._run(context, request, upload),
                        timeout=self.config.max_execution_time,
                    )
                except asyncio.TimeoutError:
                    result = StageResult.fail(
                        ErrorKind.TIMEOUT,
                        f"Processing exceeded the {self.config.max_execution_time:g}s execution limit.",
                    )

            if not result.success:
                log_context = request.log_context()
                if upload is not None:
                    log_context["image_file"] = getattr(upload, "filename", None)
                context.log_error(result.error.message, result.error.status_code, log_context)
            return result
        finally:
            context.cleanup()

    async def _run(self, context: RequestContext, request: ResizeRequest, upload: Any) -> StageResult:
        if upload is not None and request.image_url:
            return StageResult.fail(
                ErrorKind.INVALID_INPUT,
                "Provide either image_file or image_url, not both.",
            )
        if upload is None and not request.image_url:
            return StageResult.fail(
                ErrorKind.INVALID_INPUT,
                "No image_file uploaded or image_url provided.",
            )

        spec = request.output_spec(self.config.default_format, self.config.default_quality)
        encodable = check_encodable(spec, self.capabilities)
        if not encodable.success:
            return encodable

        if upload is not None:
            acquirer = SourceAcquirer(self.config, context, http_client=None)
            acquired = await acquirer.from_upload(upload.file, upload.filename)
        else:
            async with build_http_client(self.config, self.transport) as client:
                acquirer = SourceAcquirer(self.config, context, client)
                acquired = await acquirer.from_url(request.image_url)
        if not acquired.success:
            return acquired

        source: ImageSource = acquired.value
        if not source.storage_location.is_file():
            return StageResult.fail(
                ErrorKind.STORAGE_ERROR,
                "Source image path is invalid or file does not exist.",
            )

        width, height = request.requested_dimensions(self.config.max_dimension)
        context.log(
            f"Processing image: {source.storage_location}. Target Filename Base: {spec.filename_base}, "
            f"Width: {width}, Height: {height}, Format: {spec.format}, Quality: {spec.quality}"
        )

        transcoded = await asyncio.to_thread(self._transcode, context, source, spec, width, height)
        if not transcoded.success:
            return transcoded

        output_path, (final_width, final_height), source_format = transcoded.value
        try:
            data = output_path.read_bytes()
        except OSError as e:
            logger.error(f"[ImageResizer] Cannot read output {output_path}: {e}")
            return StageResult.fail(ErrorKind.STORAGE_ERROR, "Failed to read processed image.")

        context.log(
            f"Image processed successfully: {output_path}. "
            f"Final filename for header: {spec.filename}"
        )
        return StageResult.ok(ProcessedImage(
            data=data,
            filename=spec.filename,
            mime_type=spec.mime_type,
            width=final_width,
            height=final_height,
            source_format=source_format,
        ))

    def _transcode(
        self,
        context: RequestContext,
        source: ImageSource,
        spec: OutputSpec,
        requested_width: Optional[int],
        requested_height: Optional[int],
    ) -> StageResult:
        """CPU-bound stages; runs in a worker thread."""
        path: Path = source.storage_location
        detected = detect_format(path, self.capabilities)
        if not detected.success:
            return detected
        info = detected.value
        if source.declared_format_hint not in (info.format, UNKNOWN_FORMAT):
            logger.info(
                f"[ImageResizer] Declared {source.declared_format_hint}, detected {info.format}: {path.name}"
            )

        decoded = decode_image(path, info)
        if not decoded.success:
            return decoded
        raster = decoded.value

        try:
            plan = plan_dimensions(raster.width, raster.height, requested_width, requested_height)
            allocated = create_canvas(plan, background_policy(info.format, spec.format))
            if not allocated.success:
                return allocated
            canvas = allocated.value

            try:
                resampled = resample_into(raster, canvas)
                if not resampled.success:
                    return resampled
                raster.close()

                encoded = encode_image(canvas, spec, self.config.temp_dir, context, self.capabilities)
                if not encoded.success:
                    return encoded
                return StageResult.ok((encoded.value, plan.size, info.format))
            finally:
                canvas.close()
        finally:
            raster.close()
