"""
Runtime Capability Descriptor

Computed once at process start and injected into the pipeline, so codec
availability is a typed fact rather than a probe inside each request.
"""

import importlib.util
import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path

import PIL
from PIL import features

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """What the image and network stack of this process can do."""
    pillow_version: str
    jpeg: bool
    png: bool
    webp_decode: bool
    webp_encode: bool
    bmp: bool
    http_client: bool

    @property
    def core_codecs(self) -> bool:
        """JPEG and PNG are required for the service to work at all."""
        return self.jpeg and self.png

    def can_decode(self, source_format: str) -> bool:
        return {
            "jpeg": self.jpeg,
            "png": self.png,
            "gif": True,
            "webp": self.webp_decode,
            "bmp": self.bmp,
        }.get(source_format, False)

    def can_encode(self, output_format: str) -> bool:
        return {
            "jpeg": self.jpeg,
            "png": self.png,
            "webp": self.webp_encode,
        }.get(output_format, False)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["core_codecs"] = self.core_codecs
        return data

    @classmethod
    def probe(cls) -> "Capabilities":
        http_client = importlib.util.find_spec("httpx") is not None
        webp = bool(features.check_module("webp"))
        caps = cls(
            pillow_version=PIL.__version__,
            jpeg=bool(features.check_codec("jpg")),
            png=bool(features.check_codec("zlib")),
            webp_decode=webp,
            webp_encode=webp,
            bmp=True,
            http_client=http_client,
        )
        logger.info(f"[Capabilities] {caps}")
        return caps


def temp_dir_writable(temp_dir) -> bool:
    """Create the temp dir if needed and report whether it is writable."""
    path = Path(temp_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"[Capabilities] Cannot create temp dir {path}: {e}")
        return False
    return path.is_dir() and os.access(path, os.W_OK)
