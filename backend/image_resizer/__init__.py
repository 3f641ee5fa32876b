"""
Image Resizer Module

Single-request image transcoding: takes an uploaded file or an image URL,
optionally resizes it, re-encodes it as JPEG, PNG or WebP and returns the
encoded bytes as the response body.

Features:
- URL download with redirect limit, timeout and content-type sniffing
- Format detection from file contents
- Exact or aspect-preserving resize
- Transparency-aware canvas handling across format conversions
- Guaranteed cleanup of every temp file a request creates
"""

from .routes_fastapi import router
from .pipeline import ImageResizer, ProcessedImage

__all__ = ["router", "ImageResizer", "ProcessedImage"]
