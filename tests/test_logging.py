"""Unit tests for remote_text.engine.logging — FileLogger, AsyncLogQueue, LogRetentionManager."""

import gzip
import json
import logging
from datetime import date, timedelta

import remote_text.engine.logging as log_mod
from remote_text.engine.logging import (
    DEFAULT_RETENTION,
    OBJECT_TYPE_CATEGORIES,
    AsyncLogQueue,
    FileLogger,
    LogEntry,
    LogRetentionManager,
    configure_logging,
    get_log_queue,
    init_logging,
    log,
    log_document_event,
    log_document_performance,
    log_preview_event,
    log_system_event,
    shutdown_logging,
)


class TestObjectTypeCategories:
    def test_types(self):
        assert set(OBJECT_TYPE_CATEGORIES) == {"documents", "previews", "system"}

    def test_default_retention(self):
        assert DEFAULT_RETENTION == {"execution": 90, "performance": 30}


class TestLogEntry:
    def test_to_json(self):
        entry = LogEntry("documents", "execution", {"document_id": "d1"})
        assert json.loads(entry.to_json()) == {"document_id": "d1"}


class TestFileLogger:
    """Test FileLogger file writing."""

    def test_creates_category_directories(self, tmp_path):
        FileLogger(log_dir=str(tmp_path / "logs"))
        assert (tmp_path / "logs" / "documents" / "performance").is_dir()
        assert (tmp_path / "logs" / "system" / "execution").is_dir()

    def test_write_creates_daily_file(self, tmp_path):
        logger = FileLogger(log_dir=str(tmp_path / "logs"))
        logger.write(LogEntry("documents", "execution", {"document_id": "d1"}))

        path = tmp_path / "logs" / "documents" / "execution" / f"{date.today().isoformat()}.jsonl"
        assert json.loads(path.read_text().strip()) == {"document_id": "d1"}

    def test_write_batch(self, tmp_path):
        logger = FileLogger(log_dir=str(tmp_path / "logs"))
        logger.write_batch([LogEntry("previews", "execution", {"n": i}) for i in range(5)])
        files = list((tmp_path / "logs" / "previews" / "execution").glob("*.jsonl"))
        assert len(files) == 1
        assert len(files[0].read_text().strip().split("\n")) == 5

    def test_unknown_object_type_goes_to_system(self, tmp_path):
        logger = FileLogger(log_dir=str(tmp_path / "logs"))
        logger.write(LogEntry("mystery", "execution", {"x": 1}))
        assert logger.query("system", "execution") == [{"x": 1}]

    def test_query_newest_first_with_filters(self, tmp_path):
        logger = FileLogger(log_dir=str(tmp_path / "logs"))
        logger.write_batch([
            LogEntry("documents", "execution", {"document_id": "a", "n": 1}),
            LogEntry("documents", "execution", {"document_id": "b", "n": 2}),
            LogEntry("documents", "execution", {"document_id": "a", "n": 3}),
        ])
        rows = logger.query("documents", "execution", filters={"document_id": "a"})
        assert [r["n"] for r in rows] == [3, 1]
        assert len(logger.query("documents", "execution", limit=1)) == 1

    def test_query_reads_compressed_days(self, tmp_path):
        logger = FileLogger(log_dir=str(tmp_path / "logs"))
        day = date.today() - timedelta(days=2)
        gz = tmp_path / "logs" / "documents" / "execution" / f"{day.isoformat()}.jsonl.gz"
        with gzip.open(gz, "wt", encoding="utf-8") as f:
            f.write('{"n": 1}\nnot json\n')
        assert logger.query("documents", "execution") == [{"n": 1}]


class TestAsyncLogQueue:
    def test_flush_writes_pending(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        queue = AsyncLogQueue(file_logger)
        assert queue.push(LogEntry("system", "execution", {"event": "x"}))
        assert queue.pending_count == 1
        queue.flush()
        assert queue.pending_count == 0
        assert file_logger.query("system", "execution") == [{"event": "x"}]

    def test_full_queue_drops(self, tmp_path):
        queue = AsyncLogQueue(FileLogger(log_dir=str(tmp_path / "logs")), max_queue_size=1)
        assert queue.push(LogEntry("system", "execution", {}))
        assert queue.push(LogEntry("system", "execution", {})) is False
        assert queue.dropped_count == 1

    def test_stop_drains(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        queue = AsyncLogQueue(file_logger, flush_interval_ms=10)
        queue.start()
        for i in range(3):
            queue.push(LogEntry("system", "execution", {"n": i}))
        queue.stop()
        assert len(file_logger.query("system", "execution")) == 3

    def test_flush_while_thread_running_writes_everything_in_order(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        queue = AsyncLogQueue(file_logger, flush_interval_ms=5, flush_batch_size=4)
        queue.start()
        try:
            for i in range(200):
                queue.push(LogEntry("system", "execution", {"n": i}))
            queue.flush()
            rows = file_logger.query("system", "execution")
            assert [r["n"] for r in rows] == list(range(199, -1, -1))
        finally:
            queue.stop()


class TestGlobalQueue:
    def test_log_without_init_is_dropped(self):
        assert get_log_queue() is None
        assert log(log_system_event("x")) is False

    def test_init_and_shutdown(self, tmp_path):
        queue = init_logging(log_dir=str(tmp_path / "logs"))
        assert get_log_queue() is queue
        assert log(log_system_event("service_started")) is True
        shutdown_logging()
        assert get_log_queue() is None
        rows = FileLogger(str(tmp_path / "logs")).query("system", "execution")
        assert rows[0]["event"] == "service_started"

    def test_configure_logging_once(self):
        root = logging.getLogger("remote_text")
        before = len(root.handlers)
        configure_logging("info")
        configure_logging("debug")
        assert len(root.handlers) <= before + 1
        assert root.level == logging.DEBUG


class TestLogBuilders:
    """Test log entry builder functions."""

    def test_document_event(self):
        entry = log_document_event(
            "save", "d1", 12.3456, success=True,
            commit_hash="a" * 40, parent_hash="b" * 40, branch="main", author="anonymous",
        )
        assert (entry.object_type, entry.category) == ("documents", "execution")
        assert entry.data["event"] == "document_save"
        assert entry.data["level"] == "INFO"
        assert entry.data["duration_ms"] == 12.346
        assert entry.data["branch"] == "main"

    def test_document_event_failure_omits_empty_fields(self):
        entry = log_document_event("get", None, 1.0, success=False, error={"error_type": "X"})
        assert entry.data["level"] == "ERROR"
        assert "document_id" not in entry.data
        assert "commit_hash" not in entry.data
        assert entry.data["error"] == {"error_type": "X"}

    def test_document_performance(self):
        entry = log_document_performance("create", "d1", 5.0, lock_wait_ms=0.25)
        assert entry.category == "performance"
        assert entry.data["lock_wait_ms"] == 0.25

    def test_preview_event(self):
        compiled = log_preview_event("d1", "a" * 40, 100.0, success=True, state="SUCCESS")
        hit = log_preview_event("d1", "a" * 40, 1.0, success=True, cached=True)
        assert compiled.object_type == "previews"
        assert compiled.data["event"] == "preview_compiled"
        assert hit.data["event"] == "preview_cache_hit"

    def test_system_event(self):
        entry = log_system_event("service_started", details={"documents": 3})
        assert (entry.object_type, entry.category) == ("system", "execution")
        assert entry.data["details"] == {"documents": 3}


class TestLogRetentionManager:
    """Test retention cleanup."""

    def _touch(self, root, obj_type, category, day, suffix=".jsonl"):
        path = root / obj_type / category / f"{day.isoformat()}{suffix}"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text('{"n": 1}\n')
        return path

    def test_cleanup_empty_dir(self, tmp_path):
        mgr = LogRetentionManager(log_dir=str(tmp_path / "logs"))
        assert mgr.cleanup() == {"deleted": 0, "compressed": 0}

    def test_compress_and_delete(self, tmp_path):
        root = tmp_path / "logs"
        today = date(2026, 3, 1)
        fresh = self._touch(root, "documents", "execution", today)
        old = self._touch(root, "documents", "execution", today - timedelta(days=10))
        expired = self._touch(root, "documents", "performance", today - timedelta(days=31))

        mgr = LogRetentionManager(log_dir=str(root), compress_after_days=7)
        assert mgr.cleanup(today=today) == {"deleted": 1, "compressed": 1}

        assert fresh.exists()
        assert not old.exists()
        assert old.with_suffix(".jsonl.gz").exists()
        assert not expired.exists()

    def test_ignores_unparseable_names(self, tmp_path):
        root = tmp_path / "logs"
        stray = root / "system" / "execution" / "notes.txt"
        stray.parent.mkdir(parents=True)
        stray.write_text("x")
        LogRetentionManager(log_dir=str(root)).cleanup(today=date(2030, 1, 1))
        assert stray.exists()

    def test_global_state_reset_between_tests(self):
        assert log_mod._global_queue is None
