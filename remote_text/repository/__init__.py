"""
Remote Text Repository Core.

One git repository per document, reached only through RepositoryRegistry,
which serializes every repository operation behind one lock.
"""

from remote_text.repository.graph import CommitGraph
from remote_text.repository.handle import CommitIdentity, DocumentRepository
from remote_text.repository.history import HistoryReader
from remote_text.repository.models import (
    CompilationOutput,
    CompilationState,
    CreatedFile,
    DocumentFile,
    FileSummary,
    GitCommit,
    GitHistory,
    GitRef,
)
from remote_text.repository.mutator import RepositoryMutator
from remote_text.repository.registry import RepositoryRegistry
from remote_text.repository.resolver import RevisionResolver

__all__ = [
    "CommitGraph",
    "CommitIdentity",
    "CompilationOutput",
    "CompilationState",
    "CreatedFile",
    "DocumentFile",
    "DocumentRepository",
    "FileSummary",
    "GitCommit",
    "GitHistory",
    "GitRef",
    "HistoryReader",
    "RepositoryMutator",
    "RepositoryRegistry",
    "RevisionResolver",
]
