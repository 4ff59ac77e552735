"""
Remote Text Repository Mutator — The save path.

A save replaces the working file, commits it on top of a caller-supplied
parent, and force-moves a named branch to the new commit:

    validate name / branch / parent
    clear working files, write new file
    detach HEAD → parent, force branch → parent
    stage, write tree, commit (parent as sole ancestor), branch → commit
    attach HEAD → branch, sync index

The parent hash is the optimistic-concurrency token. By default a parent that
is no longer the branch tip is accepted and produces a divergent history
(logged as a warning). With reject_stale_parent enabled it raises
ConflictError instead.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from remote_text.engine.errors import (
    BadParentError,
    ConflictError,
    FileWriteError,
    InternalIOError,
    InvalidBranchError,
    InvalidFilenameError,
    ParentNotFoundError,
)
from remote_text.repository.handle import (
    CommitIdentity,
    DocumentRepository,
    is_valid_branch,
    is_valid_filename,
)
from remote_text.repository.models import GitCommit
from remote_text.repository.resolver import lookup_commit

logger = logging.getLogger("remote_text.repository.mutator")


class RepositoryMutator:
    """
    Applies saves to a repository handle. Must run under the registry lock.

    Usage:
        mutator = RepositoryMutator(committer)
        registry.with_repository(doc_id, lambda repo: mutator.save(
            repo, "a.txt", "world", parent_hash, "main", author))
    """

    def __init__(self, committer: CommitIdentity, reject_stale_parent: bool = False):
        self.committer = committer
        self.reject_stale_parent = reject_stale_parent

    def save(
        self,
        repo: DocumentRepository,
        name: str,
        content: str,
        parent_hash: str,
        branch: str,
        author: CommitIdentity,
        timestamp: Optional[int] = None,
    ) -> GitCommit:
        """
        Commit new content on top of parent_hash and move branch to it.

        Raises:
            InvalidFilenameError, InvalidBranchError: bad name or branch.
            BadParentError: parent_hash is malformed.
            ParentNotFoundError: parent_hash names no commit.
            ConflictError: stale parent while reject_stale_parent is on.
            FileWriteError: the working file could not be replaced.
            InternalIOError: refs or objects could not be written.
        """
        document_id = repo.document_id
        if not is_valid_filename(name):
            raise InvalidFilenameError(
                f"Invalid file name {name!r}", document_id=document_id, operation="save",
            )
        if not is_valid_branch(branch):
            raise InvalidBranchError(
                f"Invalid branch name {branch!r}", document_id=document_id, operation="save",
            )
        self._check_branch_namespace(repo, branch)

        parent_id, _ = lookup_commit(
            repo, parent_hash,
            bad_error=BadParentError, missing_error=ParentNotFoundError, operation="save",
        )
        self._check_parent(repo, branch, parent_id, parent_hash)

        try:
            repo.clear_working_files()
            repo.write_working_file(name, content)
        except OSError as e:
            logger.error(f"[{document_id}] Failed to write file: {e}")
            raise FileWriteError(
                f"Cannot write {name!r} for {document_id}: {e}",
                document_id=document_id, commit_hash=parent_hash,
                path=repo.path / name, operation="save",
            ) from e

        if timestamp is None:
            timestamp = int(datetime.now(timezone.utc).timestamp())

        try:
            repo.detach_head(parent_id)
            repo.set_branch(branch, parent_id)
            tree_id = repo.stage_all()
            commit_id = repo.commit_tree(
                tree_id, [parent_id], author, self.committer, timestamp
            )
            repo.set_branch(branch, commit_id)
            repo.attach_head(branch)
            repo.checkout(commit_id)
        except OSError as e:
            logger.error(f"[{document_id}] Failed to commit on {branch}: {e}")
            raise InternalIOError(
                f"Cannot commit save for {document_id}: {e}",
                document_id=document_id, commit_hash=parent_hash,
                path=repo.path, operation="save",
            ) from e

        commit_hash = commit_id.decode("ascii")
        logger.info(f"[{document_id}] Committed {commit_hash} on {branch} (parent {parent_hash})")
        return GitCommit(hash=commit_hash, parent=parent_id.decode("ascii"))

    @staticmethod
    def _check_branch_namespace(repo: DocumentRepository, branch: str) -> None:
        """A ref cannot be both a branch and a directory of branches."""
        for existing in repo.branches():
            if existing == branch:
                continue
            if existing.startswith(branch + "/") or branch.startswith(existing + "/"):
                raise InvalidBranchError(
                    f"Branch name {branch!r} conflicts with existing branch {existing!r}",
                    document_id=repo.document_id, operation="save",
                )

    def _check_parent(
        self, repo: DocumentRepository, branch: str, parent_id: bytes, parent_hash: str
    ) -> None:
        tip = repo.branch_tip(branch)
        if tip is None or tip == parent_id:
            return
        tip_hash = tip.decode("ascii")
        if self.reject_stale_parent:
            logger.info(
                f"[{repo.document_id}] Rejecting save: {branch} is at {tip_hash}, "
                f"not {parent_hash}"
            )
            raise ConflictError(
                f"Branch {branch} has moved to {tip_hash}",
                document_id=repo.document_id, commit_hash=parent_hash, operation="save",
                branch=branch, current_tip=tip_hash,
            )
        logger.warning(
            f"[{repo.document_id}] Stale parent {parent_hash}: {branch} was at {tip_hash}; "
            f"moving {branch} anyway"
        )
