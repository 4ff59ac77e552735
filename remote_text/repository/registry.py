"""
Remote Text Repository Registry — DocumentId → open repository handle.

The registry is the only owner of repository handles. One lock guards the
map AND every operation that touches any repository's HEAD, working tree or
object store, so all repository work in the process is serialized. HEAD and
the checked-out tree are a single mutable cursor per repository; two
interleaved detach + checkout + read sequences would corrupt what each
observes.

Lifecycle:
    registry = RepositoryRegistry(files_dir, committer)
    registry.discover()                      # once, at startup
    created = registry.create("a.txt", "hello", author)
    registry.with_repository(doc_id, lambda repo: ...)
    registry.delete(doc_id)
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar
from uuid import UUID, uuid4

from dulwich.errors import NotGitRepository

from remote_text.engine.errors import (
    DocumentNotFoundError,
    FileWriteError,
    InvalidFilenameError,
    RepositoryCreationError,
    RepositoryDeletionError,
)
from remote_text.repository.handle import (
    CONTROL_DIR,
    CommitIdentity,
    DocumentRepository,
    is_valid_filename,
)
from remote_text.repository.models import CreatedFile, FileSummary

logger = logging.getLogger("remote_text.repository.registry")

T = TypeVar("T")


def _commit_datetime(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class RepositoryRegistry:
    """
    In-memory map of DocumentId → DocumentRepository, guarded by one lock.

    with_repository() is the only way other components reach a handle.
    """

    def __init__(
        self,
        files_dir: Path,
        committer: CommitIdentity,
        default_branch: str = "main",
    ):
        self._files_dir = Path(files_dir)
        self._committer = committer
        self._default_branch = default_branch
        self._repositories: Dict[UUID, DocumentRepository] = {}
        self._lock = threading.Lock()
        self._discovered = False
        self.last_lock_wait_ms: float = 0.0

    @property
    def files_dir(self) -> Path:
        return self._files_dir

    @property
    def default_branch(self) -> str:
        return self._default_branch

    @property
    def committer(self) -> CommitIdentity:
        return self._committer

    def repository_path(self, document_id: UUID) -> Path:
        """Deterministic on-disk location for a document's repository."""
        return self._files_dir / str(document_id)

    # -----------------------------------------------------------------------
    # Locking
    # -----------------------------------------------------------------------

    def _acquire(self) -> None:
        start = time.perf_counter()
        self._lock.acquire()
        self.last_lock_wait_ms = (time.perf_counter() - start) * 1000

    def with_repository(self, document_id: UUID, fn: Callable[[DocumentRepository], T]) -> T:
        """
        Run fn against a document's repository with the registry lock held.

        Raises:
            DocumentNotFoundError: no repository is registered for document_id.
        """
        self._acquire()
        try:
            handle = self._repositories.get(document_id)
            if handle is None:
                raise DocumentNotFoundError(
                    f"No document {document_id}",
                    document_id=document_id,
                )
            return fn(handle)
        finally:
            self._lock.release()

    # -----------------------------------------------------------------------
    # Discovery
    # -----------------------------------------------------------------------

    def discover(self) -> int:
        """
        Scan files_dir and open every {uuid}/ directory holding a repository.

        Unparseable names and non-repositories are skipped. Runs once; later
        calls are logged and ignored.

        Returns:
            Number of repositories registered.
        """
        with self._lock:
            if self._discovered:
                logger.warning("Repository discovery already ran; ignoring")
                return len(self._repositories)
            self._discovered = True

            if not self._files_dir.is_dir():
                logger.info(f"Repository root {self._files_dir} does not exist yet")
                return 0

            for entry in sorted(self._files_dir.iterdir()):
                if not entry.is_dir():
                    continue
                try:
                    document_id = UUID(entry.name)
                except ValueError:
                    logger.debug(f"Skipping {entry.name}: not a document id")
                    continue
                if str(document_id) != entry.name:
                    logger.debug(f"Skipping {entry.name}: non-canonical document id")
                    continue
                if not (entry / CONTROL_DIR).exists():
                    logger.debug(f"[{document_id}] Skipping: no {CONTROL_DIR} directory")
                    continue
                try:
                    handle = DocumentRepository.open(document_id, entry)
                except NotGitRepository:
                    logger.debug(f"[{document_id}] Skipping: not a repository")
                    continue
                self._repositories[document_id] = handle
                logger.info(f"[{document_id}] Detected")

            logger.info(f"Discovered {len(self._repositories)} repositories in {self._files_dir}")
            return len(self._repositories)

    # -----------------------------------------------------------------------
    # Create / delete
    # -----------------------------------------------------------------------

    def create(
        self,
        name: str,
        content: Optional[str],
        author: CommitIdentity,
    ) -> CreatedFile:
        """
        Allocate a DocumentId, initialize its repository with one working file,
        make the root commit on the default branch, and register the handle.

        Raises:
            InvalidFilenameError: name is not a single path component.
            RepositoryCreationError: directory or repository could not be created.
            FileWriteError: the working file could not be written.
        """
        if not is_valid_filename(name):
            raise InvalidFilenameError(f"Invalid file name {name!r}", operation="create")

        document_id = uuid4()
        path = self.repository_path(document_id)
        now = datetime.now(timezone.utc).replace(microsecond=0)
        logger.info(f"[{document_id}] Creating new file {name!r}")

        with self._lock:
            try:
                path.mkdir(parents=True)
                handle = DocumentRepository.init(document_id, path, self._default_branch)
            except OSError as e:
                logger.error(f"[{document_id}] Cannot create repository: {e}")
                shutil.rmtree(path, ignore_errors=True)
                raise RepositoryCreationError(
                    f"Cannot create repository for {document_id}: {e}",
                    document_id=document_id, path=path, operation="create",
                ) from e

            try:
                handle.write_working_file(name, content or "")
            except OSError as e:
                logger.error(f"[{document_id}] Unable to create file: {e}")
                handle.close()
                shutil.rmtree(path, ignore_errors=True)
                raise FileWriteError(
                    f"Cannot write {name!r} for {document_id}: {e}",
                    document_id=document_id, path=path / name, operation="create",
                ) from e

            try:
                tree_id = handle.stage_all()
                commit_id = handle.commit_tree(
                    tree_id, [], author, self._committer, int(now.timestamp())
                )
                handle.set_branch(self._default_branch, commit_id)
                handle.checkout(commit_id)
            except OSError as e:
                logger.error(f"[{document_id}] Cannot make initial commit: {e}")
                handle.close()
                shutil.rmtree(path, ignore_errors=True)
                raise RepositoryCreationError(
                    f"Cannot make initial commit for {document_id}: {e}",
                    document_id=document_id, path=path, operation="create",
                ) from e

            self._repositories[document_id] = handle

        commit_hash = commit_id.decode("ascii")
        logger.info(f"[{document_id}] Made initial commit ({commit_hash})")
        return CreatedFile(name=name, id=document_id, commit_hash=commit_hash, created_at=now)

    def delete(self, document_id: UUID) -> None:
        """
        Unregister a document, then remove its directory.

        The map entry is removed first. If the directory cannot be removed the
        error is raised but the entry is not restored; the directory is orphaned.

        Raises:
            DocumentNotFoundError: unknown document_id.
            RepositoryDeletionError: directory removal failed.
        """
        with self._lock:
            handle = self._repositories.pop(document_id, None)
            if handle is None:
                logger.info(f"[{document_id}] Request made to delete nonexistent file")
                raise DocumentNotFoundError(
                    f"No document {document_id}", document_id=document_id, operation="delete",
                )
            handle.close()
            logger.info(f"[{document_id}] Target repo unregistered")

            path = handle.path
            try:
                shutil.rmtree(path)
            except OSError as e:
                logger.error(f"[{document_id}] Target directory could not be removed: {e}")
                raise RepositoryDeletionError(
                    f"Document {document_id} unregistered but {path} could not be removed: {e}",
                    document_id=document_id, path=path, operation="delete",
                ) from e
            logger.info(f"[{document_id}] Target directory removed")

    # -----------------------------------------------------------------------
    # Listing
    # -----------------------------------------------------------------------

    def summaries(self) -> List[FileSummary]:
        """
        Name plus created/edited times for every registered document,
        most recently edited first. Documents whose state cannot be read are
        logged and left out.
        """
        with self._lock:
            handles = list(self._repositories.values())
            result = [s for s in (self._summarize(h) for h in handles) if s is not None]
        result.sort(key=lambda s: s.edited_at, reverse=True)
        logger.info(f"Found {len(result)} file(s)")
        return result

    def _summarize(self, handle: DocumentRepository) -> Optional[FileSummary]:
        document_id = handle.document_id
        try:
            files = handle.working_files()
        except OSError as e:
            logger.error(f"[{document_id}] Cannot read entries in directory: {e}")
            return None
        if not files:
            logger.error(f"[{document_id}] No files found")
            return None
        if len(files) > 1:
            logger.warning(f"[{document_id}] Multiple files found")

        head = handle.head_commit()
        if head is None:
            logger.error(f"[{document_id}] HEAD does not resolve to a commit")
            return None
        history = handle.walk(head)
        newest, oldest = history[0], history[-1]
        return FileSummary(
            name=files[0].name,
            id=document_id,
            created_at=_commit_datetime(oldest.commit_time),
            edited_at=_commit_datetime(newest.commit_time),
        )

    # -----------------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------------

    def __contains__(self, document_id: object) -> bool:
        with self._lock:
            return document_id in self._repositories

    def __len__(self) -> int:
        with self._lock:
            return len(self._repositories)

    def ids(self) -> List[UUID]:
        with self._lock:
            return list(self._repositories)

    @property
    def discovered(self) -> bool:
        return self._discovered

    def close(self) -> None:
        """Close every handle and empty the map (shutdown)."""
        with self._lock:
            for handle in self._repositories.values():
                handle.close()
            self._repositories.clear()
