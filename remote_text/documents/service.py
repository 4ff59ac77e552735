"""
Remote Text Document Service — The operation facade.

Composes the repository core (registry, resolver, mutator, history reader)
and the preview service into the operations the API and CLI call:

    list_files, create_file, get_file, save_file, delete_file,
    get_history, preview_file, get_preview

Every operation is timed and emits a structured event to the JSONL log.
Failures are logged with the DocumentId and re-raised unchanged; mapping
to a response is the caller's job.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional, Tuple, TypeVar
from uuid import UUID

from remote_text.engine.errors import RemoteTextError, RevisionNotFoundError
from remote_text.engine.logging import (
    log,
    log_document_event,
    log_document_performance,
    log_preview_event,
)
from remote_text.previews.service import PreviewService
from remote_text.repository.handle import CommitIdentity, DocumentRepository
from remote_text.repository.history import HistoryReader
from remote_text.repository.models import (
    CompilationOutput,
    CreatedFile,
    DocumentFile,
    FileSummary,
    GitCommit,
    GitHistory,
)
from remote_text.repository.mutator import RepositoryMutator
from remote_text.repository.registry import RepositoryRegistry
from remote_text.repository.resolver import RevisionResolver

logger = logging.getLogger("remote_text.documents.service")

T = TypeVar("T")


class DocumentService:
    """
    Document operations over the repository registry.

    Constructed by RemoteTextRuntime; tests may build one directly.
    """

    def __init__(
        self,
        registry: RepositoryRegistry,
        mutator: RepositoryMutator,
        previews: PreviewService,
        resolver: Optional[RevisionResolver] = None,
        history: Optional[HistoryReader] = None,
        anonymous_author: str = "anonymous",
    ):
        self.registry = registry
        self.mutator = mutator
        self.previews = previews
        self.resolver = resolver or RevisionResolver()
        self.history = history or HistoryReader()
        self.anonymous_author = anonymous_author

    def author_for(self, client_address: Optional[str]) -> CommitIdentity:
        """Caller's address as author name, or the anonymous author."""
        return CommitIdentity(
            name=client_address or self.anonymous_author,
            email=self.registry.committer.email,
        )

    # -------------------------------------------------------------------
    # Timing / event wrapper
    # -------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        document_id: Optional[UUID],
        fn: Callable[[], T],
        **fields: Any,
    ) -> T:
        start = time.perf_counter()
        try:
            result = fn()
        except RemoteTextError as e:
            duration_ms = (time.perf_counter() - start) * 1000
            level = logging.ERROR if e.status_code >= 500 else logging.INFO
            logger.log(level, f"[{document_id}] {operation} failed: {e!r}")
            log(log_document_event(
                operation, document_id, duration_ms, success=False,
                error=e.to_dict(), **fields,
            ))
            raise
        duration_ms = (time.perf_counter() - start) * 1000
        if isinstance(result, CreatedFile):
            document_id = result.id
            fields["commit_hash"] = result.commit_hash
        elif isinstance(result, GitCommit):
            fields["commit_hash"] = result.hash
        log(log_document_event(operation, document_id, duration_ms, success=True, **fields))
        log(log_document_performance(
            operation, document_id, duration_ms, lock_wait_ms=self.registry.last_lock_wait_ms,
        ))
        return result

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------

    def list_files(self) -> List[FileSummary]:
        return self._run("list", None, self.registry.summaries)

    def create_file(
        self,
        name: str,
        content: Optional[str] = None,
        client_address: Optional[str] = None,
    ) -> CreatedFile:
        author = self.author_for(client_address)
        return self._run(
            "create", None,
            lambda: self.registry.create(name, content, author),
            author=author.name,
        )

    def get_file(self, document_id: UUID, commit_hash: Optional[str] = None) -> DocumentFile:
        """
        Content as of commit_hash. Without a hash, the tip of the branch HEAD
        is attached to is used (the default branch while HEAD is detached).
        """
        def _read(repo: DocumentRepository) -> Tuple[str, str]:
            target = commit_hash
            if target is None:
                branch = repo.head_branch() or self.registry.default_branch
                head = repo.branch_tip(branch) or repo.head_commit()
                if head is None:
                    raise RevisionNotFoundError(
                        f"Document {document_id} has no commits",
                        document_id=document_id, operation="get",
                    )
                target = head.decode("ascii")
            return self.resolver.resolve(repo, target)

        name, content = self._run(
            "get", document_id,
            lambda: self.registry.with_repository(document_id, _read),
            commit_hash=commit_hash,
        )
        return DocumentFile(name=name, id=document_id, content=content)

    def save_file(
        self,
        document_id: UUID,
        name: str,
        content: str,
        parent_hash: str,
        branch: Optional[str] = None,
        client_address: Optional[str] = None,
    ) -> GitCommit:
        branch = branch or self.registry.default_branch
        author = self.author_for(client_address)
        return self._run(
            "save", document_id,
            lambda: self.registry.with_repository(
                document_id,
                lambda repo: self.mutator.save(repo, name, content, parent_hash, branch, author),
            ),
            parent_hash=parent_hash, branch=branch, author=author.name,
        )

    def delete_file(self, document_id: UUID) -> None:
        self._run("delete", document_id, lambda: self.registry.delete(document_id))
        self.previews.cache.drop_document(document_id)

    def get_history(self, document_id: UUID) -> GitHistory:
        return self._run(
            "history", document_id,
            lambda: self.registry.with_repository(document_id, self.history.read),
        )

    def preview_file(self, document_id: UUID, commit_hash: str) -> CompilationOutput:
        start = time.perf_counter()
        try:
            entry, cached = self.previews.compile_entry(document_id, commit_hash)
        except RemoteTextError as e:
            duration_ms = (time.perf_counter() - start) * 1000
            level = logging.ERROR if e.status_code >= 500 else logging.INFO
            logger.log(level, f"[{document_id}] preview failed: {e!r}")
            log(log_preview_event(
                document_id, commit_hash, duration_ms, success=False, error=e.to_dict(),
            ))
            raise
        duration_ms = (time.perf_counter() - start) * 1000
        log(log_preview_event(
            document_id, entry.commit_hash, duration_ms, success=True,
            state=entry.state.value, cached=cached,
        ))
        return entry.output()

    def get_preview(self, document_id: UUID, commit_hash: str) -> Tuple[bytes, str]:
        return self._run(
            "get_preview", document_id,
            lambda: self.previews.artifact(document_id, commit_hash),
            commit_hash=commit_hash,
        )
