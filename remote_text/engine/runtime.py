"""
Remote Text Runtime — Wiring and lifecycle.

Ties together:
- RepositoryRegistry (discovered once at startup)
- RepositoryMutator / RevisionResolver / HistoryReader
- CompilationCache + CompilerRegistry (PreviewService)
- AsyncLogQueue (JSONL event log) and LogRetentionManager
- DocumentService (the operation facade)

Lifecycle:
    runtime = RemoteTextRuntime(config)
    runtime.startup()    # create roots, start log queue, discover repositories
    runtime.documents.create_file("a.txt", "hello")
    runtime.shutdown()   # flush logs, close repository handles
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from remote_text.documents.service import DocumentService
from remote_text.engine.config import ServiceConfig, get_config, get_project_root
from remote_text.engine.logging import (
    AsyncLogQueue,
    LogRetentionManager,
    init_logging,
    log,
    log_system_event,
    shutdown_logging,
)
from remote_text.previews.cache import CompilationCache
from remote_text.previews.compilers import CompilerRegistry
from remote_text.previews.service import PreviewService
from remote_text.repository.handle import CommitIdentity
from remote_text.repository.history import HistoryReader
from remote_text.repository.mutator import RepositoryMutator
from remote_text.repository.registry import RepositoryRegistry
from remote_text.repository.resolver import RevisionResolver

logger = logging.getLogger("remote_text.engine.runtime")


class RemoteTextRuntime:
    """
    Owns every long-lived component. Nothing is built before startup().

    Args:
        config: Service configuration. Defaults to get_config().
        base_dir: Directory relative storage paths resolve against.
                  Defaults to the project root (where remote_text.yaml lives).
        compilers: Override the extension → compiler table (tests).
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        base_dir: Optional[Path] = None,
        compilers: Optional[CompilerRegistry] = None,
    ):
        self.config = config or get_config()
        self.base_dir = Path(base_dir) if base_dir else get_project_root()
        self._compilers = compilers

        self.registry: Optional[RepositoryRegistry] = None
        self.previews: Optional[PreviewService] = None
        self.documents: Optional[DocumentService] = None
        self.log_queue: Optional[AsyncLogQueue] = None
        self.retention_manager: Optional[LogRetentionManager] = None

        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def files_root(self) -> Path:
        return self.config.files_root(self.base_dir)

    @property
    def previews_root(self) -> Path:
        return self.config.previews_root(self.base_dir)

    @property
    def log_root(self) -> Path:
        return self.config.log_root(self.base_dir)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def startup(self) -> None:
        """Create storage roots, start logging, discover repositories."""
        if self._started:
            logger.warning("Runtime already started")
            return

        cfg = self.config
        logger.info(f"Starting {cfg.name} {cfg.version} ({cfg.environment})")

        # 1. Storage roots
        self.files_root.mkdir(parents=True, exist_ok=True)
        self.previews_root.mkdir(parents=True, exist_ok=True)

        # 2. Logging
        queue_cfg = cfg.logging.async_queue
        self.log_queue = init_logging(
            log_dir=str(self.log_root),
            flush_interval_ms=queue_cfg.flush_interval_ms,
            flush_batch_size=queue_cfg.flush_batch_size,
            max_queue_size=queue_cfg.max_queue_size,
        )
        self.retention_manager = LogRetentionManager(
            log_dir=str(self.log_root),
            retention_days=cfg.logging.retention_days(),
            compress_after_days=cfg.logging.compress_after_days,
        )

        # 3. Repository core
        committer = CommitIdentity(
            name=cfg.identity.committer_name,
            email=cfg.identity.committer_email,
        )
        self.registry = RepositoryRegistry(
            self.files_root,
            committer,
            default_branch=cfg.repository.default_branch,
        )
        discovered = self.registry.discover()
        resolver = RevisionResolver()

        # 4. Previews
        compilers = self._compilers or CompilerRegistry.default(
            pdflatex_command=cfg.previews.pdflatex_command,
            pandoc_command=cfg.previews.pandoc_command,
        )
        self.previews = PreviewService(
            self.registry,
            CompilationCache(self.previews_root),
            compilers,
            resolver=resolver,
            timeout_seconds=cfg.previews.compile_timeout_seconds,
        )

        # 5. Facade
        self.documents = DocumentService(
            self.registry,
            RepositoryMutator(committer, reject_stale_parent=cfg.repository.reject_stale_parent),
            self.previews,
            resolver=resolver,
            history=HistoryReader(),
            anonymous_author=cfg.identity.anonymous_author,
        )

        self._started = True
        log(log_system_event("service_started", details=self.status()))
        logger.info(f"Runtime started: {discovered} documents in {self.files_root}")

    def shutdown(self) -> None:
        """Flush the log queue and close every repository handle."""
        if not self._started:
            return

        logger.info("Shutting down runtime...")
        log(log_system_event("service_shutdown", details={"documents": len(self.registry)}))
        shutdown_logging()
        self.log_queue = None
        self.registry.close()

        self._started = False
        logger.info("Runtime shut down")

    def __enter__(self) -> "RemoteTextRuntime":
        self.startup()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()

    # -----------------------------------------------------------------------
    # Maintenance
    # -----------------------------------------------------------------------

    def cleanup_logs(self) -> Dict[str, int]:
        """Compress and expire JSONL log files per logging.retention."""
        manager = self.retention_manager or LogRetentionManager(
            log_dir=str(self.log_root),
            retention_days=self.config.logging.retention_days(),
            compress_after_days=self.config.logging.compress_after_days,
        )
        return manager.cleanup()

    def status(self) -> Dict[str, Any]:
        return {
            "started": self._started,
            "files_root": str(self.files_root),
            "previews_root": str(self.previews_root),
            "documents": len(self.registry) if self.registry else 0,
            "log_queue": self.log_queue is not None,
        }
