"""
Remote Text Revision Resolver — (document, commit hash) → (file name, content).

Reading a revision moves the repository's cursor: HEAD is detached to the
commit and the working tree is force-synchronized to it before the single
working file is read. Callers run this inside
RepositoryRegistry.with_repository() so nothing else observes the
intermediate state.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple, Type

from dulwich.objects import Commit

from remote_text.engine.errors import (
    BadRequestError,
    BadRevisionError,
    InternalInconsistencyError,
    NotFoundError,
    ReadError,
    RevisionNotFoundError,
)
from remote_text.repository.handle import DocumentRepository, parse_commit_hash

logger = logging.getLogger("remote_text.repository.resolver")


def lookup_commit(
    repo: DocumentRepository,
    commit_hash: str,
    bad_error: Type[BadRequestError] = BadRevisionError,
    missing_error: Type[NotFoundError] = RevisionNotFoundError,
    operation: str = "get",
) -> Tuple[bytes, Commit]:
    """
    Parse and look up a commit hash.

    Raises:
        bad_error: commit_hash is not a 40-character hex id.
        missing_error: no commit with that id in this repository.
    """
    document_id = repo.document_id
    commit_id = parse_commit_hash(commit_hash)
    if commit_id is None:
        logger.info(f"[{document_id}] Malformed commit hash {commit_hash!r}")
        raise bad_error(
            f"Malformed commit hash {commit_hash!r}",
            document_id=document_id, commit_hash=commit_hash, operation=operation,
        )
    commit = repo.find_commit(commit_id)
    if commit is None:
        logger.info(f"[{document_id}] Commit {commit_hash} not found")
        raise missing_error(
            f"Commit {commit_hash} not found in {document_id}",
            document_id=document_id, commit_hash=commit_hash, operation=operation,
        )
    return commit_id, commit


class RevisionResolver:
    """Materializes one revision in the working tree and reads its file."""

    def resolve(self, repo: DocumentRepository, commit_hash: str) -> Tuple[str, str]:
        """
        Returns:
            (file name, content) as of commit_hash.

        Raises:
            BadRevisionError, RevisionNotFoundError: see lookup_commit().
            InternalInconsistencyError: checkout failed, or no working file.
            ReadError: the file cannot be read or is not UTF-8.
        """
        document_id = repo.document_id
        commit_id, _ = lookup_commit(repo, commit_hash)

        try:
            repo.detach_head(commit_id)
            repo.checkout(commit_id)
        except (OSError, KeyError) as e:
            logger.error(f"[{document_id}] Failed to check out {commit_hash}: {e}")
            raise InternalInconsistencyError(
                f"Cannot check out {commit_hash}: {e}",
                document_id=document_id, commit_hash=commit_hash, operation="get",
            ) from e
        logger.debug(f"[{document_id}] Checked out {commit_hash}")

        return self.read_working_file(repo, commit_hash)

    def read_working_file(
        self, repo: DocumentRepository, commit_hash: Optional[str] = None
    ) -> Tuple[str, str]:
        """Read the single working file as currently checked out."""
        document_id = repo.document_id
        try:
            files = repo.working_files()
        except OSError as e:
            logger.error(f"[{document_id}] Cannot read entries in directory: {e}")
            raise ReadError(
                f"Cannot list working directory of {document_id}: {e}",
                document_id=document_id, commit_hash=commit_hash, path=repo.path,
                operation="get",
            ) from e

        if not files:
            logger.error(f"[{document_id}] No files found")
            raise InternalInconsistencyError(
                f"Document {document_id} has no working file",
                document_id=document_id, commit_hash=commit_hash, operation="get",
            )
        if len(files) > 1:
            logger.warning(
                f"[{document_id}] Multiple files found: "
                f"{', '.join(p.name for p in files)}; using {files[0].name}"
            )

        path = files[0]
        try:
            content = repo.read_working_file(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"[{document_id}] Failed to read {path.name}: {e}")
            raise ReadError(
                f"Cannot read {path.name} of {document_id}: {e}",
                document_id=document_id, commit_hash=commit_hash, path=path,
                operation="get",
            ) from e
        return path.name, content
