"""
Remote Text Repository Models — Pydantic shapes handed to the API layer.

Field names are snake_case in Python and camelCase on the wire
(``model_dump(by_alias=True)``); both spellings are accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileSummary(WireModel):
    """One row of the document listing."""

    name: str
    id: UUID
    created_at: datetime
    edited_at: datetime


class CreatedFile(WireModel):
    name: str
    id: UUID
    commit_hash: str
    created_at: datetime


class DocumentFile(WireModel):
    """Working file content as of one revision."""

    name: str
    id: UUID
    content: str


class GitCommit(WireModel):
    """
    A commit in a document's history.

    ``parent`` is the first parent only; merge commits are flattened to their
    mainline ancestor. None for the root commit.
    """

    hash: str
    parent: Optional[str] = None


class GitRef(WireModel):
    name: str
    hash: str


class GitHistory(WireModel):
    """
    Every commit in the object store plus every local branch.

    Commit order follows object-store enumeration, not time.
    """

    commits: List[GitCommit]
    refs: List[GitRef]

    def commit(self, commit_hash: str) -> Optional[GitCommit]:
        for c in self.commits:
            if c.hash == commit_hash:
                return c
        return None

    def ref(self, name: str) -> Optional[GitRef]:
        for r in self.refs:
            if r.name == name:
                return r
        return None


class CompilationState(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class CompilationOutput(WireModel):
    """
    Result of running a compiler over one revision.

    FAILURE is a successful call carrying the tool's failure status, not an error.
    """

    state: CompilationState
    log: str
