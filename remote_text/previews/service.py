"""
Remote Text Preview Service — Compile a revision once, serve it from cache.

Flow for compile(id, hash):
    1. Under the registry lock: validate the revision exists.
    2. Per-key cache lock: return the cached entry if present.
    3. Under the registry lock: check out the revision, read the file.
    4. Lock released: copy the file into a scratch directory, run the compiler.
    5. Store the outcome in the cache (successes and tool failures alike).

The external compiler never runs while the registry lock is held, and never
runs inside the shared working tree.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional, Tuple
from uuid import UUID

from remote_text.engine.errors import PreviewNotFoundError
from remote_text.previews.cache import CompilationCache, PreviewArtifact
from remote_text.previews.compilers import CompilerRegistry
from remote_text.repository.models import CompilationOutput
from remote_text.repository.registry import RepositoryRegistry
from remote_text.repository.resolver import RevisionResolver, lookup_commit

logger = logging.getLogger("remote_text.previews.service")


class PreviewService:
    def __init__(
        self,
        registry: RepositoryRegistry,
        cache: CompilationCache,
        compilers: CompilerRegistry,
        resolver: Optional[RevisionResolver] = None,
        timeout_seconds: float = 60.0,
    ):
        self.registry = registry
        self.cache = cache
        self.compilers = compilers
        self.resolver = resolver or RevisionResolver()
        self.timeout_seconds = timeout_seconds

    def _canonical_hash(self, document_id: UUID, commit_hash: str) -> str:
        commit_id, _ = self.registry.with_repository(
            document_id, lambda repo: lookup_commit(repo, commit_hash, operation="preview")
        )
        return commit_id.decode("ascii")

    def compile(self, document_id: UUID, commit_hash: str) -> CompilationOutput:
        entry, _ = self.compile_entry(document_id, commit_hash)
        return entry.output()

    def compile_entry(self, document_id: UUID, commit_hash: str) -> Tuple[PreviewArtifact, bool]:
        """
        Returns:
            (cache entry, True if it was already cached)

        Raises:
            DocumentNotFoundError, BadRevisionError, RevisionNotFoundError,
            UnsupportedPreviewError, CompilerLaunchError, PreviewTimeoutError.
        """
        commit_hash = self._canonical_hash(document_id, commit_hash)

        with self.cache.key_lock(document_id, commit_hash):
            cached = self.cache.get(document_id, commit_hash)
            if cached is not None:
                logger.info(f"[{document_id}] Preview path already exists for commit {commit_hash}")
                return cached, True

            name, content = self.registry.with_repository(
                document_id, lambda repo: self.resolver.resolve(repo, commit_hash)
            )
            compiler = self.compilers.for_filename(name, document_id)

            with tempfile.TemporaryDirectory(prefix="remote-text-preview-") as scratch:
                workdir = Path(scratch)
                source = workdir / name
                source.write_bytes(content.encode("utf-8"))
                result = compiler.compile(source, workdir, self.timeout_seconds, document_id)

            entry = self.cache.put(PreviewArtifact(
                document_id=document_id,
                commit_hash=commit_hash,
                state=result.state,
                log=result.log,
                artifact=result.artifact,
                content_type=result.content_type,
            ))
            return entry, False

    def artifact(self, document_id: UUID, commit_hash: str) -> Tuple[bytes, str]:
        """
        Rendered output of a successful compilation.

        Raises:
            PreviewNotFoundError: never compiled, or the compilation failed.
        """
        commit_hash = self._canonical_hash(document_id, commit_hash)
        entry = self.cache.get(document_id, commit_hash)
        if entry is None or not entry.succeeded or entry.artifact is None:
            reason = "never compiled" if entry is None else "compilation failed"
            logger.info(f"[{document_id}] No preview for {commit_hash}: {reason}")
            raise PreviewNotFoundError(
                f"No preview for {commit_hash}: {reason}",
                document_id=document_id, commit_hash=commit_hash, operation="get_preview",
            )
        return entry.artifact, entry.content_type or "application/octet-stream"
