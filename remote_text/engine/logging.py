"""
Remote Text Logging — Structured JSONL event log with an async flush queue.

Implements:
- FileLogger: Per-object-type, per-category log files (daily rotation)
- AsyncLogQueue: In-memory queue with background flush (interval / batch size)
- Log entry builders for document, preview and system events
- LogRetentionManager: gzip old files, delete files past retention

Operational messages still go through stdlib ``logging``; this module records
one event per completed operation so outcomes can be queried afterwards.

Layout: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl
"""

from __future__ import annotations

import gzip
import json
import logging
import shutil
import sys
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

logger = logging.getLogger("remote_text.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "documents": ["execution", "performance"],
    "previews": ["execution", "performance"],
    "system": ["execution"],
}

DEFAULT_RETENTION = {
    "execution": 90,
    "performance": 30,
}

_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "WARNING") -> None:
    """Attach a stderr handler to the remote_text logger tree (CLI use)."""
    root = logging.getLogger("remote_text")
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    if not any(getattr(h, "_remote_text", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._remote_text = True  # type: ignore[attr-defined]
        root.addHandler(handler)


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-object-type, per-category files.

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = ".remote_text/logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    def write(self, entry: LogEntry) -> None:
        """Write a single log entry to the appropriate file."""
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Write a batch of entries, grouping by file path."""
        grouped: Dict[str, List[LogEntry]] = defaultdict(list)
        for entry in entries:
            grouped[str(self._resolve_path(entry.object_type, entry.category))].append(entry)

        for file_path, batch in grouped.items():
            with self._file_locks[file_path]:
                with open(file_path, "a", encoding="utf-8") as f:
                    for entry in batch:
                        f.write(entry.to_json())
                        f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        if object_type not in OBJECT_TYPE_CATEGORIES:
            object_type = "system"
        today = date.today().isoformat()
        path = self._log_dir / object_type / category / f"{today}.jsonl"
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def query(
        self,
        object_type: str,
        category: str,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Query log entries for an object_type/category.

        Args:
            object_type: "documents", "previews" or "system".
            category: "execution" or "performance".
            start_date: Earliest date to include (defaults to 7 days ago).
            end_date: Latest date to include (defaults to today).
            filters: Exact-match filters on top-level keys, e.g.
                     {"document_id": "..."}.
            limit: Max number of entries to return.

        Returns:
            Parsed entries, newest first.
        """
        if end_date is None:
            end_date = date.today()
        if start_date is None:
            start_date = end_date - timedelta(days=7)

        log_base = self._log_dir / object_type / category
        if not log_base.exists():
            return []

        results: List[Dict[str, Any]] = []
        current = end_date
        while current >= start_date and len(results) < limit:
            file_path = log_base / f"{current.isoformat()}.jsonl"
            day: List[Dict[str, Any]] = []
            if file_path.exists():
                day.extend(self._read_jsonl(file_path, filters))
            gz_path = file_path.with_suffix(".jsonl.gz")
            if gz_path.exists():
                day.extend(self._read_jsonl(gz_path, filters))
            # lines within a file are chronological
            day.reverse()
            results.extend(day)
            current -= timedelta(days=1)

        return results[:limit]

    @staticmethod
    def _read_jsonl(path: Path, filters: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        opener = gzip.open if path.suffix == ".gz" else open
        try:
            with opener(path, "rt", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if filters and not all(data.get(k) == v for k, v in filters.items()):
                        continue
                    entries.append(data)
        except OSError as exc:
            logger.warning("Could not read log file %s: %s", path, exc)
        return entries


class AsyncLogQueue:
    """
    In-memory queue with a background flush thread.

    Entries are pushed non-blocking. The thread flushes to FileLogger every
    flush_interval_ms OR when flush_batch_size entries accumulate.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._logger = file_logger
        self._flush_interval = flush_interval_ms / 1000.0
        self._flush_batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._running = False
        self._flush_thread: Optional[threading.Thread] = None
        self._dropped_count = 0
        # Held from dequeue to write so batches reach disk in queue order.
        self._write_lock = threading.Lock()

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="remote-text-log-flush",
            daemon=True,
        )
        self._flush_thread.start()
        logger.info("Async log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the flush thread and drain remaining entries."""
        self._running = False
        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=timeout)
        self._drain()
        logger.info(f"Async log queue stopped (dropped: {self._dropped_count})")

    def push(self, entry: LogEntry) -> bool:
        """Queue an entry. Returns False if it was dropped (queue full)."""
        try:
            self._queue.put_nowait(entry)
            return True
        except Full:
            self._dropped_count += 1
            return False

    def flush(self) -> None:
        """
        Synchronously write everything queued so far.

        Waits for a batch the flush thread has already dequeued, so on return
        every entry pushed before the call is on disk.
        """
        self._drain()

    def _flush_loop(self) -> None:
        while self._running:
            with self._write_lock:
                batch = self._collect_batch()
                if batch:
                    try:
                        self._logger.write_batch(batch)
                    except OSError as e:
                        logger.error(f"Log flush error: {e}")
            if not batch:
                time.sleep(self._flush_interval)

    def _collect_batch(self) -> List[LogEntry]:
        batch: List[LogEntry] = []
        deadline = time.monotonic() + self._flush_interval

        while len(batch) < self._flush_batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.append(self._queue.get(timeout=min(remaining, 0.01)))
            except Empty:
                if batch:
                    break
        return batch

    def _drain(self) -> None:
        with self._write_lock:
            batch: List[LogEntry] = []
            while True:
                try:
                    batch.append(self._queue.get_nowait())
                except Empty:
                    break
            if batch:
                try:
                    self._logger.write_batch(batch)
                except OSError as e:
                    logger.error(f"Log drain error: {e}")

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def file_logger(self) -> FileLogger:
        return self._logger


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, **extra: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def log_document_event(
    operation: str,
    document_id: Optional[Any],
    duration_ms: float,
    success: bool,
    commit_hash: Optional[str] = None,
    parent_hash: Optional[str] = None,
    branch: Optional[str] = None,
    author: Optional[str] = None,
    error: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build an entry for a repository operation (create/get/save/delete/history/list)."""
    data = _base_entry(
        event=f"document_{operation}",
        level="INFO" if success else "ERROR",
        operation=operation,
        document_id=str(document_id) if document_id is not None else None,
        commit_hash=commit_hash,
        parent_hash=parent_hash,
        branch=branch,
        author=author,
        duration_ms=round(duration_ms, 3),
        success=success,
        error=error,
    )
    return LogEntry("documents", "execution", data)


def log_document_performance(operation: str, document_id: Optional[Any], duration_ms: float,
                             lock_wait_ms: Optional[float] = None) -> LogEntry:
    data = _base_entry(
        event="document_performance",
        level="INFO",
        operation=operation,
        document_id=str(document_id) if document_id is not None else None,
        duration_ms=round(duration_ms, 3),
        lock_wait_ms=round(lock_wait_ms, 3) if lock_wait_ms is not None else None,
    )
    return LogEntry("documents", "performance", data)


def log_preview_event(
    document_id: Any,
    commit_hash: str,
    duration_ms: float,
    success: bool,
    state: Optional[str] = None,
    cached: bool = False,
    compiler: Optional[str] = None,
    error: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build an entry for a preview compilation request."""
    data = _base_entry(
        event="preview_compiled" if not cached else "preview_cache_hit",
        level="INFO" if success else "ERROR",
        document_id=str(document_id),
        commit_hash=commit_hash,
        state=state,
        cached=cached,
        compiler=compiler,
        duration_ms=round(duration_ms, 3),
        success=success,
        error=error,
    )
    return LogEntry("previews", "execution", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a system event entry (startup, shutdown, discovery)."""
    return LogEntry("system", "execution", _base_entry(event=event, level=level, details=details))


# ---------------------------------------------------------------------------
# Log Cleanup / Retention
# ---------------------------------------------------------------------------

class LogRetentionManager:
    """Deletes log files past retention and gzips files older than compress_after_days."""

    def __init__(
        self,
        log_dir: str = ".remote_text/logs",
        retention_days: Optional[Dict[str, int]] = None,
        compress_after_days: int = 7,
    ):
        self._log_dir = Path(log_dir)
        self._retention = retention_days or DEFAULT_RETENTION.copy()
        self._compress_after = compress_after_days

    def cleanup(self, today: Optional[date] = None) -> Dict[str, int]:
        """
        Run retention cleanup across all log directories.

        Returns:
            {"deleted": N, "compressed": M}
        """
        deleted = 0
        compressed = 0
        today = today or date.today()

        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                cat_dir = self._log_dir / obj_type / cat
                if not cat_dir.exists():
                    continue

                retention = self._retention.get(cat, 90)

                for file_path in cat_dir.iterdir():
                    if not file_path.is_file():
                        continue
                    file_date = self._parse_file_date(file_path)
                    if file_date is None:
                        continue

                    age_days = (today - file_date).days
                    if age_days > retention:
                        file_path.unlink()
                        deleted += 1
                    elif age_days > self._compress_after and file_path.suffix == ".jsonl":
                        if self._compress_file(file_path):
                            compressed += 1

        result = {"deleted": deleted, "compressed": compressed}
        logger.info(f"Log cleanup: {result}")
        return result

    @staticmethod
    def _parse_file_date(file_path: Path) -> Optional[date]:
        try:
            return date.fromisoformat(file_path.name.split(".")[0])
        except ValueError:
            return None

    @staticmethod
    def _compress_file(file_path: Path) -> bool:
        gz_path = file_path.with_suffix(file_path.suffix + ".gz")
        try:
            with open(file_path, "rb") as f_in:
                with gzip.open(gz_path, "wb") as f_out:
                    shutil.copyfileobj(f_in, f_out)
            file_path.unlink()
            return True
        except OSError as e:
            logger.error(f"Failed to compress {file_path}: {e}")
            if gz_path.exists():
                gz_path.unlink()
            return False


# ---------------------------------------------------------------------------
# Process-wide queue
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = ".remote_text/logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Initialize and start the global async log queue."""
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
    _global_queue = AsyncLogQueue(
        file_logger=FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push an entry to the global queue. Non-blocking; dropped when uninitialized."""
    if _global_queue is None:
        logger.debug("Log queue not initialized — entry dropped")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
