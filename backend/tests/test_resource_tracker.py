"""
ResourceTracker and RequestContext tests.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from image_resizer.context import RequestContext, ResourceTracker


def touch(path: Path) -> Path:
    path.write_bytes(b"x")
    return path


class TestResourceTracker:
    """Temp file ownership and cleanup"""

    def test_cleanup_removes_all_registered(self, tmp_path):
        tracker = ResourceTracker()
        files = [tracker.register(touch(tmp_path / f"f{i}")) for i in range(3)]

        attempted = tracker.cleanup()

        assert attempted == files
        assert not any(f.exists() for f in files)

    def test_cleanup_twice_does_not_error(self, tmp_path):
        tracker = ResourceTracker()
        tracker.register(touch(tmp_path / "a"))

        tracker.cleanup()
        assert tracker.cleanup() == []

    def test_missing_files_are_skipped(self, tmp_path):
        tracker = ResourceTracker()
        tracker.register(tmp_path / "never-created")
        kept = tracker.register(touch(tmp_path / "b"))

        tracker.cleanup()
        assert not kept.exists()

    def test_removal_failure_does_not_stop_others(self, tmp_path):
        tracker = ResourceTracker()
        # A non-empty directory cannot be unlinked
        stuck = tmp_path / "stuck"
        stuck.mkdir()
        touch(stuck / "inner")
        tracker.register(stuck)
        later = tracker.register(touch(tmp_path / "later"))

        tracker.cleanup()

        assert stuck.exists()
        assert not later.exists()

    def test_register_is_idempotent(self, tmp_path):
        tracker = ResourceTracker()
        path = touch(tmp_path / "a")
        tracker.register(path)
        tracker.register(path)
        assert tracker.paths == [path]

    def test_release_removes_immediately(self, tmp_path):
        tracker = ResourceTracker()
        path = tracker.register(touch(tmp_path / "partial"))

        tracker.release(path)

        assert not path.exists()
        assert tracker.paths == []

    def test_late_registration_is_removed(self, tmp_path):
        tracker = ResourceTracker()
        tracker.cleanup()

        late = tracker.register(touch(tmp_path / "late"))

        assert tracker.closed
        assert not late.exists()
        assert tracker.paths == []


class TestRequestContext:
    """Per-request diagnostic log"""

    def test_log_file_named_by_start_time(self, tmp_path):
        ctx = RequestContext(tmp_path / "logs", started_at=1700000000.5)
        ctx.log("hello")

        assert ctx.log_path == tmp_path / "logs" / "image_resize_1700000000.log"
        assert ctx.log_path.read_text().rstrip().endswith("hello")

    def test_error_context_is_truncated(self, tmp_path):
        ctx = RequestContext(tmp_path / "logs")
        ctx.log_error("boom", 400, "x" * 5000)

        text = ctx.log_path.read_text()
        assert "Error (HTTP 400): boom" in text
        assert "Context: " + "x" * 1024 + "..." in text
        assert "x" * 1025 not in text

    def test_cleanup_logs_and_removes(self, tmp_path):
        ctx = RequestContext(tmp_path / "logs")
        path = ctx.tracker.register(touch(tmp_path / "tmp.jpg"))

        ctx.cleanup()
        ctx.cleanup()

        assert not path.exists()
        assert "Cleaning up temp files" in ctx.log_path.read_text()

    def test_unwritable_log_dir_does_not_raise(self, tmp_path):
        blocker = touch(tmp_path / "not-a-dir")
        ctx = RequestContext(blocker / "logs")
        ctx.log("still fine")
