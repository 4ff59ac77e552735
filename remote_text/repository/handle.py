"""
Remote Text Repository Handle — One document, one dulwich repository.

The low-level primitives (HEAD moves, branch writes, working-tree sync,
tree/commit construction, object-store enumeration) that the registry,
resolver, mutator and history reader compose.

Nothing here takes the registry lock. Handles are only reachable through
RepositoryRegistry.with_repository(), which holds it.

On-disk layout:
    {files_dir}/{document_id}/.git/      — repository metadata
    {files_dir}/{document_id}/{name}     — the single working file
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence
from uuid import UUID

from dulwich.file import GitFile
from dulwich.index import build_index_from_tree
from dulwich.objects import Blob, Commit, Tree
from dulwich.refs import check_ref_format
from dulwich.repo import Repo
from dulwich.walk import Walker

logger = logging.getLogger("remote_text.repository.handle")

CONTROL_DIR = ".git"
FILE_MODE = 0o100644
HEADS_PREFIX = b"refs/heads/"
HEAD = b"HEAD"

_HEX_SHA = re.compile(r"[0-9a-fA-F]{40}")
_FORBIDDEN_NAME_CHARS = ("/", "\\", "\x00")


@dataclass(frozen=True)
class CommitIdentity:
    """Name/email pair rendered as a git signature."""

    name: str
    email: str

    def signature(self) -> bytes:
        return f"{self.name} <{self.email}>".encode("utf-8")


def parse_commit_hash(value: str) -> Optional[bytes]:
    """Return the hex sha as ascii bytes, or None if value is not a 40-char hex id."""
    if not isinstance(value, str) or not _HEX_SHA.fullmatch(value):
        return None
    return value.lower().encode("ascii")


def is_valid_filename(name: str) -> bool:
    """A working file name must be one plain path component."""
    if not isinstance(name, str) or not name or name in (".", "..", CONTROL_DIR):
        return False
    return not any(c in name for c in _FORBIDDEN_NAME_CHARS)


def is_valid_branch(name: str) -> bool:
    if not isinstance(name, str) or not name:
        return False
    try:
        return check_ref_format(HEADS_PREFIX + name.encode("utf-8"))
    except UnicodeEncodeError:
        return False


class DocumentRepository:
    """
    A document's repository: dulwich Repo plus the document id it belongs to.

    Usage (inside RepositoryRegistry.with_repository):
        repo.detach_head(sha)
        repo.checkout(sha)
        files = repo.working_files()
    """

    def __init__(self, document_id: UUID, repo: Repo):
        self.document_id = document_id
        self._repo = repo

    # -----------------------------------------------------------------------
    # Construction
    # -----------------------------------------------------------------------

    @classmethod
    def init(cls, document_id: UUID, path: Path, default_branch: str) -> "DocumentRepository":
        """
        Initialize an empty repository at path (which must already exist).
        HEAD points at refs/heads/{default_branch}, which is unborn until the
        first commit.
        """
        repo = Repo.init(str(path), mkdir=False)
        repo.refs.set_symbolic_ref(HEAD, HEADS_PREFIX + default_branch.encode("utf-8"))
        return cls(document_id, repo)

    @classmethod
    def open(cls, document_id: UUID, path: Path) -> "DocumentRepository":
        """Open an existing repository. Raises dulwich NotGitRepository if invalid."""
        return cls(document_id, Repo(str(path)))

    @property
    def path(self) -> Path:
        """Working directory root."""
        return Path(self._repo.path)

    @property
    def control_dir(self) -> Path:
        return Path(self._repo.controldir())

    def close(self) -> None:
        self._repo.close()

    # -----------------------------------------------------------------------
    # Working directory
    # -----------------------------------------------------------------------

    def working_files(self) -> List[Path]:
        """Regular files directly in the working directory, sorted by name."""
        files = []
        with os.scandir(self.path) as entries:
            for entry in entries:
                if entry.name == CONTROL_DIR:
                    continue
                if entry.is_file(follow_symlinks=False):
                    files.append(Path(entry.path))
        return sorted(files, key=lambda p: p.name)

    def clear_working_files(self) -> List[Path]:
        """Delete every regular working file. Returns what was removed."""
        removed = []
        for path in self.working_files():
            path.unlink()
            removed.append(path)
            logger.debug(f"[{self.document_id}] Removed {path.name}")
        return removed

    def write_working_file(self, name: str, content: str) -> Path:
        # bytes, not text mode: content must round-trip without newline translation
        path = self.path / name
        path.write_bytes(content.encode("utf-8"))
        return path

    @staticmethod
    def read_working_file(path: Path) -> str:
        """UTF-8 content of a working file. Raises OSError / UnicodeDecodeError."""
        return path.read_bytes().decode("utf-8")

    def checkout(self, commit_id: bytes) -> None:
        """
        Force-synchronize working directory and index to a commit's tree.

        Stray regular files are deleted first; every tracked file is rewritten.
        """
        commit = self.find_commit(commit_id)
        if commit is None:
            raise KeyError(commit_id)
        self.clear_working_files()
        build_index_from_tree(
            self._repo.path,
            self._repo.index_path(),
            self._repo.object_store,
            commit.tree,
        )
        logger.debug(f"[{self.document_id}] Checked out {commit_id.decode('ascii')}")

    # -----------------------------------------------------------------------
    # Objects
    # -----------------------------------------------------------------------

    def find_commit(self, commit_id: bytes) -> Optional[Commit]:
        """Commit with that id, or None if absent or not a commit."""
        try:
            obj = self._repo.object_store[commit_id]
        except KeyError:
            return None
        return obj if isinstance(obj, Commit) else None

    def stage_all(self) -> bytes:
        """Snapshot every working file into blobs + one tree. Returns the tree id."""
        store = self._repo.object_store
        tree = Tree()
        for path in self.working_files():
            blob = Blob.from_string(path.read_bytes())
            store.add_object(blob)
            tree.add(os.fsencode(path.name), FILE_MODE, blob.id)
        store.add_object(tree)
        return tree.id

    def commit_tree(
        self,
        tree_id: bytes,
        parents: Sequence[bytes],
        author: CommitIdentity,
        committer: CommitIdentity,
        timestamp: int,
        message: str = "",
    ) -> bytes:
        """Write a commit object. Moves no refs."""
        commit = Commit()
        commit.tree = tree_id
        commit.parents = list(parents)
        commit.author = author.signature()
        commit.committer = committer.signature()
        commit.author_time = commit.commit_time = timestamp
        commit.author_timezone = commit.commit_timezone = 0
        commit.encoding = b"UTF-8"
        commit.message = message.encode("utf-8")
        self._repo.object_store.add_object(commit)
        return commit.id

    def iter_commits(self) -> Iterator[Commit]:
        """Every commit in the object store, in store enumeration order."""
        store = self._repo.object_store
        for sha in store:
            type_num, _ = store.get_raw(sha)
            if type_num != Commit.type_num:
                continue
            yield store[sha]

    def walk(self, start: bytes) -> List[Commit]:
        """Commits reachable from start, newest first."""
        return [entry.commit for entry in Walker(self._repo.object_store, [start])]

    # -----------------------------------------------------------------------
    # Refs
    # -----------------------------------------------------------------------

    def head_commit(self) -> Optional[bytes]:
        """Commit id HEAD resolves to, or None while the branch is unborn."""
        try:
            return self._repo.refs[HEAD]
        except KeyError:
            return None

    def head_branch(self) -> Optional[str]:
        """Branch HEAD is attached to, or None when detached."""
        raw = self._repo.refs.read_ref(HEAD)
        if raw and raw.startswith(b"ref: " + HEADS_PREFIX):
            return raw[len(b"ref: " + HEADS_PREFIX):].decode("utf-8")
        return None

    def detach_head(self, commit_id: bytes) -> None:
        """Point HEAD straight at a commit. Branches are untouched."""
        # dulwich ref writes follow the HEAD symref, so write the file directly
        with GitFile(str(self.control_dir / HEAD.decode("ascii")), "wb") as f:
            f.write(commit_id + b"\n")

    def attach_head(self, branch: str) -> None:
        self._repo.refs.set_symbolic_ref(HEAD, HEADS_PREFIX + branch.encode("utf-8"))

    def set_branch(self, branch: str, commit_id: bytes) -> None:
        """Create or force-move a branch."""
        self._repo.refs[HEADS_PREFIX + branch.encode("utf-8")] = commit_id

    def branch_tip(self, branch: str) -> Optional[bytes]:
        try:
            return self._repo.refs[HEADS_PREFIX + branch.encode("utf-8")]
        except KeyError:
            return None

    def branches(self) -> Dict[str, bytes]:
        """Local branch name → commit id, sorted by name."""
        result: Dict[str, bytes] = {}
        for name in sorted(self._repo.refs.keys(base=HEADS_PREFIX)):
            try:
                result[name.decode("utf-8")] = self._repo.refs[HEADS_PREFIX + name]
            except KeyError:
                logger.warning(f"[{self.document_id}] Branch {name!r} vanished during listing")
        return result

    def __repr__(self) -> str:
        return f"<DocumentRepository id={self.document_id} path='{self.path}'>"
