"""
Image Resizer Configuration

Settings are read from environment variables once, at import of the routes
module, into an ImageResizerConfig.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ImageResizerConfig:
    """Configuration for the image resize endpoint."""
    # Managed temp area for downloads, uploads and encoded output
    temp_dir: Path = Path("./temp_image_files")
    log_dir: Path = None            # Defaults to <temp_dir>/logs

    # Output defaults
    default_format: str = "jpeg"    # jpeg, png or webp
    default_quality: int = 85       # JPEG/WebP quality (0-100)
    max_dimension: int = 10000      # Larger requested width/height is ignored

    # Download settings
    fetch_timeout: float = 60.0     # Whole-download timeout in seconds
    max_redirects: int = 5
    max_download_mb: int = 50

    # Whole-request wall clock ceiling in seconds
    max_execution_time: float = 120.0

    user_agent: str = field(default="ImageResizer/1.0 (+httpx)")

    def __post_init__(self):
        self.temp_dir = Path(self.temp_dir)
        self.log_dir = Path(self.log_dir) if self.log_dir else self.temp_dir / "logs"
        self.default_format = self.default_format.strip().lower()
        if self.default_format == "jpg":
            self.default_format = "jpeg"

    @property
    def max_download_bytes(self) -> int:
        return self.max_download_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "ImageResizerConfig":
        return cls(
            temp_dir=Path(os.getenv("IMAGE_RESIZER_TEMP_DIR", "./temp_image_files")),
            log_dir=os.getenv("IMAGE_RESIZER_LOG_DIR") or None,
            default_format=os.getenv("IMAGE_RESIZER_DEFAULT_FORMAT", "jpeg"),
            default_quality=int(os.getenv("IMAGE_RESIZER_DEFAULT_QUALITY", "85")),
            max_dimension=int(os.getenv("IMAGE_RESIZER_MAX_DIMENSION", "10000")),
            fetch_timeout=float(os.getenv("IMAGE_RESIZER_FETCH_TIMEOUT", "60")),
            max_redirects=int(os.getenv("IMAGE_RESIZER_MAX_REDIRECTS", "5")),
            max_download_mb=int(os.getenv("IMAGE_RESIZER_MAX_DOWNLOAD_MB", "50")),
            max_execution_time=float(os.getenv("IMAGE_RESIZER_MAX_EXECUTION_TIME", "120")),
        )
