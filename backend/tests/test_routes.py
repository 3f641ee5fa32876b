"""
End-to-end tests through the FastAPI endpoint.

Run:
    cd backend
    pytest tests/test_routes.py -v
"""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from image_resizer.app import create_app
from image_resizer.pipeline import ImageResizer
from fastapi.testclient import TestClient
from conftest import half_transparent_png, image_bytes, open_image, temp_files

ENDPOINT = "/api/image-resizer"


class TestResizeUpload:
    """Uploaded images"""

    def test_width_only_jpeg(self, make_client, config):
        """800x600 JPEG, width=400 -> 400x300 JPEG"""
        client = make_client()
        response = client.post(
            ENDPOINT,
            files={"image_file": ("photo.jpg", image_bytes("JPEG", (800, 600)), "image/jpeg")},
            data={"width": "400", "format": "jpeg", "output_filename": "photo_small"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["content-disposition"] == 'inline; filename="photo_small.jpeg"'
        assert int(response.headers["content-length"]) == len(response.content)
        img = open_image(response.content)
        assert img.format == "JPEG"
        assert img.size == (400, 300)
        assert temp_files(config) == []

    def test_exact_dimensions_and_png(self, make_client):
        client = make_client()
        response = client.post(
            ENDPOINT,
            files={"image_file": ("a.png", image_bytes("PNG", (100, 100)), "image/png")},
            data={"width": "30", "height": "70", "format": "PNG", "quality": "100"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert open_image(response.content).size == (30, 70)

    def test_no_dimensions_keeps_size(self, make_client):
        client = make_client()
        response = client.post(
            ENDPOINT,
            files={"image_file": ("a.gif", image_bytes("GIF", (64, 48)), "image/gif")},
        )

        assert response.status_code == 200
        assert open_image(response.content).size == (64, 48)

    def test_unknown_format_falls_back_to_jpeg(self, make_client):
        client = make_client()
        response = client.post(
            ENDPOINT,
            files={"image_file": ("a.bmp", image_bytes("BMP", (20, 20)), "image/bmp")},
            data={"format": "tiff", "height": "10"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert open_image(response.content).size == (10, 10)

    def test_unparsable_quality_encodes_as_zero(self, make_client):
        client = make_client()
        source = image_bytes("PNG", (64, 64))

        def post(quality):
            return client.post(
                ENDPOINT,
                files={"image_file": ("a.png", source, "image/png")},
                data={"format": "png", "quality": quality},
            )

        garbled = post("abc")
        zero = post("0")

        assert garbled.status_code == 200
        assert garbled.content == zero.content

    def test_default_filename(self, make_client):
        client = make_client()
        response = client.post(
            ENDPOINT,
            files={"image_file": ("a.jpg", image_bytes("JPEG", (10, 10)), "image/jpeg")},
            data={"output_filename": "---"},
        )

        disposition = response.headers["content-disposition"]
        assert disposition.startswith('inline; filename="processed_image_')
        assert disposition.endswith('.jpeg"')

    def test_non_image_upload(self, make_client, config):
        client = make_client()
        response = client.post(
            ENDPOINT,
            files={"image_file": ("a.png", b"plain text", "image/png")},
        )

        assert response.status_code == 400
        assert "Could not read image dimensions" in response.json()["error"]
        assert temp_files(config) == []


class TestResizeUrl:
    """Remote images"""

    def test_transparent_png_to_jpeg_on_white(self, make_client, config):
        url = "https://img.test/logo.png"
        client = make_client({url: (200, {"content-type": "image/png"}, half_transparent_png((40, 20)))})

        response = client.post(ENDPOINT, data={"image_url": url, "format": "jpeg"})

        assert response.status_code == 200
        img = open_image(response.content)
        assert img.format == "JPEG"
        assert img.mode == "RGB"
        assert img.size == (40, 20)
        assert all(channel > 240 for channel in img.getpixel((2, 10)))
        red, green, blue = img.getpixel((37, 10))
        assert red > 200 and green < 60 and blue < 60
        assert temp_files(config) == []

    def test_fetch_failure(self, make_client, config):
        client = make_client()

        response = client.post(ENDPOINT, data={"image_url": "https://img.test/missing.png"})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Failed to download image. HTTP: 404")
        assert temp_files(config) == []

    def test_invalid_url(self, make_client):
        response = make_client().post(ENDPOINT, data={"image_url": "javascript:alert(1)"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid image_url provided."}


class TestRequestErrors:
    """Request-level failures"""

    def test_no_source(self, make_client, config):
        response = make_client().post(ENDPOINT, data={"width": "100"})

        assert response.status_code == 400
        assert response.json() == {"error": "No image_file uploaded or image_url provided."}
        logs = list(config.log_dir.glob("image_resize_*.log"))
        assert logs and "Error (HTTP 400)" in logs[0].read_text()

    def test_both_sources(self, make_client):
        response = make_client().post(
            ENDPOINT,
            files={"image_file": ("a.jpg", image_bytes("JPEG", (10, 10)), "image/jpeg")},
            data={"image_url": "https://img.test/a.jpg"},
        )

        assert response.status_code == 400
        assert "not both" in response.json()["error"]

    def test_webp_unsupported(self, make_client, no_webp_capabilities, config):
        client = make_client(caps=no_webp_capabilities)

        response = client.post(
            ENDPOINT,
            files={"image_file": ("a.jpg", image_bytes("JPEG", (10, 10)), "image/jpeg")},
            data={"format": "webp"},
        )

        assert response.status_code == 400
        assert "WebP output is not supported" in response.json()["error"]
        assert temp_files(config) == []

    def test_temp_dir_not_writable(self, config, capabilities, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        config.temp_dir = blocker / "temp"
        config.log_dir = blocker / "logs"
        client = TestClient(create_app(ImageResizer(config, capabilities)))

        response = client.post(ENDPOINT, data={"image_url": "https://img.test/a.png"})

        assert response.status_code == 500
        assert "not writable" in response.json()["error"]

    def test_execution_time_limit(self, config, capabilities):
        config.max_execution_time = 0.1

        async def handler(request):
            await asyncio.sleep(2)
            return httpx.Response(200, content=b"late")

        resizer = ImageResizer(config, capabilities, transport=httpx.MockTransport(handler))
        client = TestClient(create_app(resizer))

        response = client.post(ENDPOINT, data={"image_url": "https://slow.test/a.png"})

        assert response.status_code == 500
        assert "execution limit" in response.json()["error"]
        assert temp_files(config) == []

    def test_method_not_allowed(self, make_client):
        response = make_client().put(ENDPOINT)

        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}

    @pytest.mark.parametrize("method", ["HEAD", "TRACE", "PATCH", "DELETE"])
    def test_other_methods_get_json_405(self, make_client, method):
        response = make_client().request(method, ENDPOINT)

        assert response.status_code == 405
        if method != "HEAD":
            assert response.json() == {"error": "Method Not Allowed"}

    def test_unrouted_method_elsewhere_uses_error_body(self, make_client):
        response = make_client().request("TRACE", f"{ENDPOINT}/health")

        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}


class TestStatusEndpoints:

    def test_status_page(self, make_client):
        response = make_client().get(ENDPOINT)

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "Image Resizer/Optimizer API" in response.text
        assert "Writable" in response.text

    def test_health(self, make_client, capabilities):
        response = make_client().get(f"{ENDPOINT}/health")

        data = response.json()
        assert data["status"] == "healthy"
        assert data["capabilities"]["webp_encode"] == capabilities.webp_encode
        assert data["temp_dir_writable"] is True
