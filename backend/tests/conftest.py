"""
Image resizer test configuration.

Fixtures here build isolated temp areas, sample images and a FastAPI
TestClient whose resizer uses an httpx MockTransport instead of the network.

Key fixtures:
- config: ImageResizerConfig rooted in pytest's tmp_path
- capabilities / no_webp_capabilities: capability descriptors
- context: a RequestContext for stage-level tests
- make_client: TestClient factory taking remote URL routes
"""

import dataclasses
import io
import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from image_resizer.app import create_app
from image_resizer.capabilities import Capabilities
from image_resizer.config import ImageResizerConfig
from image_resizer.context import RequestContext
from image_resizer.pipeline import ImageResizer


# ============================================
# Sample images
# ============================================

def image_bytes(fmt: str, size=(800, 600), mode: str = "RGB", color=(30, 120, 200)) -> bytes:
    """Encode a solid image in memory."""
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def half_transparent_png(size=(40, 20)) -> bytes:
    """Left half fully transparent, right half opaque red."""
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    width, height = size
    img.paste((255, 0, 0, 255), (width // 2, 0, width, height))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def temp_files(config: ImageResizerConfig) -> list:
    """Files left in the temp area, ignoring request logs."""
    if not config.temp_dir.exists():
        return []
    return [p for p in config.temp_dir.iterdir() if p.is_file()]


# ============================================
# Remote server stub
# ============================================

def make_transport(routes: dict) -> httpx.MockTransport:
    """
    Serve canned responses.

    routes maps a full URL to (status, headers, body). Unknown URLs get 404.
    HEAD requests get the headers without a body.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        entry = routes.get(str(request.url))
        if entry is None:
            return httpx.Response(404, content=b"not found")
        status, headers, body = entry
        if request.method == "HEAD":
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, headers=headers, content=body)

    return httpx.MockTransport(handler)


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def config(tmp_path):
    return ImageResizerConfig(temp_dir=tmp_path / "temp_image_files")


@pytest.fixture
def capabilities():
    return Capabilities.probe()


@pytest.fixture
def no_webp_capabilities(capabilities):
    return dataclasses.replace(capabilities, webp_decode=False, webp_encode=False)


@pytest.fixture
def context(config):
    config.temp_dir.mkdir(parents=True, exist_ok=True)
    ctx = RequestContext(config.log_dir)
    yield ctx
    ctx.cleanup()


@pytest.fixture
def make_client(config, capabilities):
    """
    Build a TestClient for the resizer.

    Usage:
        client = make_client({"https://img.test/a.png": (200, {}, png)})
    """
    def factory(routes=None, caps=None):
        resizer = ImageResizer(config, caps or capabilities, transport=make_transport(routes or {}))
        return TestClient(create_app(resizer))

    return factory


# ============================================
# Helper Functions
# ============================================

def assert_stage_success(result):
    assert result.success, f"Stage failed: {result.describe()}"


def assert_stage_failure(result, kind=None, message_contains=None):
    assert not result.success, f"Stage should have failed but succeeded: {result.value!r}"
    if kind is not None:
        assert result.error.kind == kind, f"Expected {kind}, got {result.error.kind}"
    if message_contains:
        assert message_contains.lower() in result.error.message.lower(), \
            f"Error message should contain '{message_contains}', got: {result.error.message}"
