"""
Source Acquisition

Handles:
- Relocating an uploaded file into the managed temp area
- Downloading an image URL into the managed temp area
- Guessing a cosmetic extension hint (URL path, then a HEAD probe)

Every file created here is registered with the request's ResourceTracker
the moment it is created. A failed download is removed immediately.
"""

import asyncio
import logging
import os
import re
import secrets
import shutil
import time
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional
from urllib.parse import urlparse, unquote

import httpx

from .config import ImageResizerConfig
from .context import RequestContext, ResourceTracker
from .errors import ErrorKind, StageResult
from .models import EXTENSION_FORMATS, UNKNOWN_FORMAT, ImageSource

logger = logging.getLogger(__name__)

# Declared content type -> extension hint
CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class DownloadTooLarge(Exception):
    """Raised while streaming when the body exceeds the configured limit."""


def build_http_client(
    config: ImageResizerConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """HTTP client for one request's download."""
    return httpx.AsyncClient(
        timeout=config.fetch_timeout,
        follow_redirects=True,
        max_redirects=config.max_redirects,
        headers={
            "User-Agent": config.user_agent,
            "Accept": "image/*,*/*;q=0.8",
        },
        transport=transport,
    )


def is_valid_url(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def url_extension(url: str) -> str:
    """Lower-cased extension of the URL path, '' when there is none."""
    path = unquote(urlparse(url).path)
    return PurePosixPath(path).suffix.lower().lstrip(".")


def content_type_extension(content_type: str) -> Optional[str]:
    content_type = content_type.lower()
    for mime, ext in CONTENT_TYPE_EXTENSIONS.items():
        if mime in content_type:
            return ext
    return None


def safe_upload_name(filename: Optional[str]) -> str:
    name = os.path.basename((filename or "").replace("\\", "/"))
    return re.sub(r"[^A-Za-z0-9._-]", "", name)


class SourceAcquirer:
    """
    Produces an ImageSource from an upload or a URL.

    Usage:
        acquirer = SourceAcquirer(config, context, http_client)
        result = await acquirer.from_url("https://example.com/a.png")
    """

    def __init__(
        self,
        config: ImageResizerConfig,
        context: RequestContext,
        http_client: httpx.AsyncClient,
    ):
        self.config = config
        self.context = context
        self.http_client = http_client

    def _temp_path(self, prefix: str, suffix: str) -> Path:
        return self.config.temp_dir / f"{prefix}_{int(time.time())}_{secrets.token_hex(4)}{suffix}"

    # ============================================
    # Upload
    # ============================================

    async def from_upload(self, fileobj: BinaryIO, filename: Optional[str]) -> StageResult:
        """Copy an uploaded file into the managed temp area."""
        safe_name = safe_upload_name(filename)
        dest = self._temp_path("upload", f"_{safe_name}" if safe_name else "")
        self.context.tracker.register(dest)

        try:
            await asyncio.to_thread(_copy_to_path, fileobj, dest, self.context.tracker)
            byte_length = dest.stat().st_size
        except OSError as e:
            self.context.tracker.release(dest)
            logger.error(f"[SourceAcquirer] Upload relocation failed: {e}")
            return StageResult.fail(
                ErrorKind.STORAGE_ERROR,
                f"Failed to move uploaded file. Check permissions for {self.config.temp_dir}",
            )

        hint = EXTENSION_FORMATS.get(Path(safe_name).suffix.lower().lstrip("."), UNKNOWN_FORMAT)
        self.context.log(f"Image uploaded to: {dest}")
        return StageResult.ok(ImageSource(dest, hint, byte_length))

    # ============================================
    # URL download
    # ============================================

    async def guess_extension(self, url: str) -> str:
        """
        Extension hint for the downloaded file name.

        Only cosmetic: the decoder always sniffs the real format.
        """
        ext = url_extension(url)
        if ext in EXTENSION_FORMATS:
            return ext

        try:
            response = await self.http_client.head(url)
            content_type = response.headers.get("content-type", "")
        except httpx.HTTPError as e:
            self.context.log(f"Could not determine valid image type from URL extension or Content-Type: {e}")
            return "tmp"

        probed = content_type_extension(content_type)
        if probed:
            return probed
        self.context.log(f"Could not determine valid image type from URL Content-Type: {content_type}")
        return "tmp"

    async def from_url(self, url: Optional[str]) -> StageResult:
        """Download an image URL into the managed temp area."""
        if not is_valid_url(url):
            return StageResult.fail(ErrorKind.INVALID_INPUT, "Invalid image_url provided.")

        self.context.log(f"Downloading image from: {url}")
        ext = await self.guess_extension(url)
        dest = self._temp_path("download", f".{ext}")
        self.context.tracker.register(dest)

        status_code = 0
        error = ""
        try:
            status_code = await asyncio.wait_for(
                self._stream_to_file(url, dest),
                timeout=self.config.fetch_timeout,
            )
        except asyncio.TimeoutError:
            error = f"Download timed out after {self.config.fetch_timeout:g}s"
        except DownloadTooLarge as e:
            error = str(e)
        except httpx.HTTPError as e:
            error = str(e) or e.__class__.__name__
        except OSError as e:
            self.context.tracker.release(dest)
            logger.error(f"[SourceAcquirer] Cannot write {dest}: {e}")
            return StageResult.fail(
                ErrorKind.STORAGE_ERROR,
                f"Failed to open temporary file for writing: {dest}",
            )

        if error or status_code >= 400 or not dest.is_file() or dest.stat().st_size == 0:
            self.context.tracker.release(dest)
            logger.error(f"[SourceAcquirer] Download failed: {url[:80]} (HTTP {status_code}) {error}")
            return StageResult.fail(
                ErrorKind.FETCH_ERROR,
                f"Failed to download image. HTTP: {status_code}. Error: {error}",
            )

        byte_length = dest.stat().st_size
        self.context.log(f"Image downloaded from URL to: {dest} ({byte_length} bytes)")
        return StageResult.ok(ImageSource(dest, EXTENSION_FORMATS.get(ext, UNKNOWN_FORMAT), byte_length))

    async def _stream_to_file(self, url: str, dest: Path) -> int:
        """Stream the response body into dest; returns the final status code."""
        async with self.http_client.stream("GET", url) as response:
            if response.status_code >= 400:
                return response.status_code

            written = 0
            with open(dest, "wb") as f:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    written += len(chunk)
                    if written > self.config.max_download_bytes:
                        raise DownloadTooLarge(
                            f"Image too large (max {self.config.max_download_mb}MB)"
                        )
                    f.write(chunk)
            return response.status_code


def _copy_to_path(fileobj: BinaryIO, dest: Path, tracker: ResourceTracker) -> None:
    if hasattr(fileobj, "seek"):
        fileobj.seek(0)
    with open(dest, "wb") as f:
        shutil.copyfileobj(fileobj, f)
    # The copy runs in a worker thread that may outlive a timed-out request
    tracker.register(dest)
