"""
Request Context and Resource Tracking

Every temporary file a request creates is registered with the request's
ResourceTracker at creation time. One cleanup pass at the end of the request
removes all of them, whatever way the request ended.

The RequestContext also owns the per-request diagnostic log file, so no
component needs a global log path.
"""

import logging
import os
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

MAX_LOG_CONTEXT_CHARS = 1024


class ResourceTracker:
    """
    Ordered set of temporary paths owned by one request.

    Usage:
        tracker = ResourceTracker()
        tracker.register(path)
        ...
        tracker.cleanup()   # safe to call more than once
    """

    def __init__(self):
        self._paths: List[Path] = []
        self._closed = False
        # The encoder registers from a worker thread
        self._lock = threading.Lock()

    @property
    def paths(self) -> List[Path]:
        with self._lock:
            return list(self._paths)

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, path) -> Path:
        """
        Take ownership of a path.

        After cleanup() has run the path is removed straight away, so a stage
        that finishes late (for example after a timeout) cannot leak a file.
        """
        path = Path(path)
        with self._lock:
            if not self._closed:
                if path not in self._paths:
                    self._paths.append(path)
                return path
        logger.warning(f"[ResourceTracker] Late registration, removing now: {path}")
        _remove_quietly(path)
        return path

    def release(self, path) -> None:
        """Remove a path immediately and stop tracking it."""
        path = Path(path)
        with self._lock:
            if path in self._paths:
                self._paths.remove(path)
        _remove_quietly(path)

    def cleanup(self) -> List[Path]:
        """
        Remove every tracked path exactly once.

        Missing files and removal failures are logged and skipped; every entry
        is attempted. Returns the paths that were attempted.
        """
        with self._lock:
            pending = self._paths
            self._paths = []
            self._closed = True

        for path in pending:
            _remove_quietly(path)
        return pending


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"[ResourceTracker] Failed to remove {path}: {e}")


class RequestContext:
    """
    State carried through one resize request.

    Holds the request's ResourceTracker and the destination of its
    diagnostic log (``image_resize_<timestamp>.log`` under the log dir).
    """

    def __init__(self, log_dir, started_at: Optional[float] = None):
        self.started_at = started_at if started_at is not None else time.time()
        self.log_path = Path(log_dir) / f"image_resize_{int(self.started_at)}.log"
        self.tracker = ResourceTracker()

    def log(self, message: str) -> None:
        """Append a line to the request log and mirror it to the module logger."""
        logger.info(f"[ImageResizer] {message}")
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(f"[{timestamp}] {message}\n")
        except OSError as e:
            logger.warning(f"[ImageResizer] Request log not writable ({self.log_path}): {e}")

    def log_error(self, message: str, status_code: int, context: Any = None) -> None:
        """Log an error together with truncated request parameters."""
        entry = f"Error (HTTP {status_code}): {message}"
        if context:
            context_str = context if isinstance(context, str) else repr(context)
            if len(context_str) > MAX_LOG_CONTEXT_CHARS:
                context_str = context_str[:MAX_LOG_CONTEXT_CHARS] + "..."
            entry += f"\nContext: {context_str}"
        self.log(entry)

    def cleanup(self) -> None:
        """Run the request's single cleanup pass."""
        pending = self.tracker.paths
        if pending:
            self.log("Cleaning up temp files: " + ", ".join(os.fspath(p) for p in pending))
        self.tracker.cleanup()
