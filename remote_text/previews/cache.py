"""
Remote Text Compilation Cache — (DocumentId, commit hash) → compiled preview.

On-disk layout:
    {previews_dir}/{document_id}/{commit_hash}/status        SUCCESS | FAILURE
    {previews_dir}/{document_id}/{commit_hash}/log           compiler log (UTF-8)
    {previews_dir}/{document_id}/{commit_hash}/artifact      rendered output (success only)
    {previews_dir}/{document_id}/{commit_hash}/content_type  MIME type of artifact

Entries are immutable. put() builds the entry in a scratch directory and
renames it into place, so readers never see half an entry and the first
writer wins. No repository lock is involved.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
from uuid import UUID

from remote_text.repository.models import CompilationOutput, CompilationState

logger = logging.getLogger("remote_text.previews.cache")

STATUS_FILE = "status"
LOG_FILE = "log"
ARTIFACT_FILE = "artifact"
CONTENT_TYPE_FILE = "content_type"


@dataclass(frozen=True)
class PreviewArtifact:
    """One cached compilation."""

    document_id: UUID
    commit_hash: str
    state: CompilationState
    log: str
    artifact: Optional[bytes] = None
    content_type: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == CompilationState.SUCCESS

    def output(self) -> CompilationOutput:
        return CompilationOutput(state=self.state, log=self.log)


class CompilationCache:
    """
    Directory-backed, write-once preview cache.

    Usage:
        cache = CompilationCache(Path("previews"))
        with cache.key_lock(doc_id, commit_hash):
            entry = cache.get(doc_id, commit_hash)
            if entry is None:
                entry = cache.put(PreviewArtifact(...))
    """

    def __init__(self, root: Path):
        self._root = Path(root)
        # Entries disappear once no caller holds a reference to the lock.
        self._locks: "weakref.WeakValueDictionary[Tuple[UUID, str], threading.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def entry_path(self, document_id: UUID, commit_hash: str) -> Path:
        return self._root / str(document_id) / commit_hash

    def key_lock(self, document_id: UUID, commit_hash: str) -> threading.Lock:
        """
        Per-key lock so concurrent requests for one revision compile it once.
        Independent of the repository lock. The same lock is returned for a
        key for as long as any caller still holds it.
        """
        key = (document_id, commit_hash)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    # -----------------------------------------------------------------------
    # Read / write
    # -----------------------------------------------------------------------

    def contains(self, document_id: UUID, commit_hash: str) -> bool:
        return (self.entry_path(document_id, commit_hash) / STATUS_FILE).is_file()

    def get(self, document_id: UUID, commit_hash: str) -> Optional[PreviewArtifact]:
        """Cached entry, or None if this revision was never compiled."""
        path = self.entry_path(document_id, commit_hash)
        status_path = path / STATUS_FILE
        if not status_path.is_file():
            return None

        state = CompilationState(status_path.read_text(encoding="utf-8").strip())
        log_path = path / LOG_FILE
        log_text = log_path.read_bytes().decode("utf-8", errors="replace") if log_path.is_file() else ""

        artifact = None
        content_type = None
        if (path / ARTIFACT_FILE).is_file():
            artifact = (path / ARTIFACT_FILE).read_bytes()
            content_type = (path / CONTENT_TYPE_FILE).read_text(encoding="utf-8").strip()

        return PreviewArtifact(
            document_id=document_id,
            commit_hash=commit_hash,
            state=state,
            log=log_text,
            artifact=artifact,
            content_type=content_type,
        )

    def put(self, entry: PreviewArtifact) -> PreviewArtifact:
        """
        Store an entry unless one already exists.

        Returns:
            The entry now in the cache (the existing one if another writer won).
        """
        final = self.entry_path(entry.document_id, entry.commit_hash)
        parent = final.parent
        parent.mkdir(parents=True, exist_ok=True)

        existing = self.get(entry.document_id, entry.commit_hash)
        if existing is not None:
            logger.info(f"[{entry.document_id}] Preview for {entry.commit_hash} already cached")
            return existing

        scratch = Path(tempfile.mkdtemp(prefix=f".{entry.commit_hash}.", dir=parent))
        try:
            (scratch / LOG_FILE).write_bytes(entry.log.encode("utf-8"))
            if entry.artifact is not None:
                (scratch / ARTIFACT_FILE).write_bytes(entry.artifact)
                (scratch / CONTENT_TYPE_FILE).write_text(
                    entry.content_type or "application/octet-stream", encoding="utf-8"
                )
            # status last: its presence marks a complete entry
            (scratch / STATUS_FILE).write_text(entry.state.value, encoding="utf-8")
            try:
                os.rename(scratch, final)
            except OSError:
                existing = self.get(entry.document_id, entry.commit_hash)
                if existing is None:
                    raise
                logger.info(f"[{entry.document_id}] Lost cache race for {entry.commit_hash}")
                return existing
        finally:
            if scratch.exists():
                shutil.rmtree(scratch, ignore_errors=True)

        logger.info(
            f"[{entry.document_id}] Cached {entry.state.value} preview for {entry.commit_hash}"
        )
        return entry

    def drop_document(self, document_id: UUID) -> bool:
        """Remove every cached preview of a document. Returns True if any existed."""
        path = self._root / str(document_id)
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.info(f"[{document_id}] Dropped cached previews")
        return True
