"""
Remote Text History Reader — Commit DAG summary and branch list.

Reads the whole object store, not just what is reachable from HEAD, so
commits left behind by force-moved branches still show up.
"""

from __future__ import annotations

import logging

from remote_text.repository.handle import DocumentRepository
from remote_text.repository.models import GitCommit, GitHistory, GitRef

logger = logging.getLogger("remote_text.repository.history")


class HistoryReader:
    def read(self, repo: DocumentRepository) -> GitHistory:
        """
        Every commit as {hash, first parent} plus every local branch as
        {name, hash}. Commit order is object-store order, not time.
        """
        commits = []
        for commit in repo.iter_commits():
            parent = commit.parents[0].decode("ascii") if commit.parents else None
            commits.append(GitCommit(hash=commit.id.decode("ascii"), parent=parent))

        refs = [
            GitRef(name=name, hash=commit_id.decode("ascii"))
            for name, commit_id in repo.branches().items()
        ]

        logger.debug(f"[{repo.document_id}] History: {len(commits)} commits, {len(refs)} refs")
        return GitHistory(commits=commits, refs=refs)
