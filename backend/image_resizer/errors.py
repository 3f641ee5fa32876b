"""
Image Resizer Error Taxonomy

Pipeline stages do not raise for expected failures. Each stage returns a
StageResult carrying either a value or a StageError, and the HTTP layer maps
the ErrorKind to a status code in one place.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Categories of request failure"""
    INVALID_INPUT = "invalid_input"
    FETCH_ERROR = "fetch_error"
    STORAGE_ERROR = "storage_error"
    UNREADABLE_IMAGE = "unreadable_image"
    RESAMPLE_ERROR = "resample_error"
    ENCODE_ERROR = "encode_error"
    UNSUPPORTED_FORMAT = "unsupported_format"
    CONFIGURATION_ERROR = "configuration_error"
    TIMEOUT = "timeout"


# Missing server capabilities and aborted requests are not the caller's fault
SERVER_ERROR_KINDS = {ErrorKind.CONFIGURATION_ERROR, ErrorKind.TIMEOUT}


@dataclass
class StageError:
    """A failure reported by one pipeline stage"""
    kind: ErrorKind
    message: str

    @property
    def status_code(self) -> int:
        return 500 if self.kind in SERVER_ERROR_KINDS else 400


@dataclass
class StageResult:
    """Result from one pipeline stage"""
    success: bool
    value: Any = None
    error: Optional[StageError] = None

    @classmethod
    def ok(cls, value: Any = None) -> "StageResult":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "StageResult":
        return cls(success=False, error=StageError(kind=kind, message=message))

    def describe(self) -> str:
        if self.success:
            return "ok"
        return f"Error ({self.error.kind.value}): {self.error.message}"
