"""
Remote Text Commit Graph — NetworkX view over a GitHistory.

Edges: parent → child (first parent only, as recorded by HistoryReader).
Nodes: commit hashes. Node attribute ``branches`` lists the local branches
pointing at the commit.

Used by the CLI history view and by tests asserting on history shape.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

import networkx as nx

from remote_text.repository.models import GitHistory

logger = logging.getLogger("remote_text.repository.graph")


class CommitGraph:
    """
    In-memory commit DAG backed by a NetworkX DiGraph.

    Usage:
        graph = CommitGraph.from_history(history)
        graph.lineage(graph.history.ref("main").hash)
    """

    def __init__(self, history: GitHistory):
        self.history = history
        self._graph = nx.DiGraph()
        self._parent: Dict[str, str] = {}

        for commit in history.commits:
            self._graph.add_node(commit.hash, branches=[])
        for commit in history.commits:
            if commit.parent is None:
                continue
            if not self._graph.has_node(commit.parent):
                # first parent absent from the store: keep the edge, mark the node
                logger.warning(f"Commit {commit.hash} has missing parent {commit.parent}")
                self._graph.add_node(commit.parent, branches=[], missing=True)
            self._graph.add_edge(commit.parent, commit.hash)
            self._parent[commit.hash] = commit.parent
        for ref in history.refs:
            if not self._graph.has_node(ref.hash):
                self._graph.add_node(ref.hash, branches=[], missing=True)
            self._graph.nodes[ref.hash]["branches"].append(ref.name)

    @classmethod
    def from_history(cls, history: GitHistory) -> "CommitGraph":
        return cls(history)

    # -----------------------------------------------------------------------
    # Query operations
    # -----------------------------------------------------------------------

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def __contains__(self, commit_hash: object) -> bool:
        return self._graph.has_node(commit_hash)

    def roots(self) -> List[str]:
        """Commits with no parent, sorted."""
        return sorted(n for n in self._graph.nodes if self._graph.in_degree(n) == 0)

    def tips(self) -> List[str]:
        """Commits with no children, sorted."""
        return sorted(n for n in self._graph.nodes if self._graph.out_degree(n) == 0)

    def parent(self, commit_hash: str) -> Optional[str]:
        return self._parent.get(commit_hash)

    def children(self, commit_hash: str) -> List[str]:
        if not self._graph.has_node(commit_hash):
            return []
        return sorted(self._graph.successors(commit_hash))

    def lineage(self, commit_hash: str) -> List[str]:
        """First-parent chain from the root down to commit_hash. Empty if unknown."""
        if not self._graph.has_node(commit_hash):
            return []
        chain = [commit_hash]
        current = commit_hash
        while current in self._parent:
            current = self._parent[current]
            chain.append(current)
        chain.reverse()
        return chain

    def is_linear(self, commit_hash: str) -> bool:
        """True if every commit in the graph lies on commit_hash's lineage."""
        chain = self.lineage(commit_hash)
        return bool(chain) and len(chain) == self._graph.number_of_nodes()

    def descendants(self, commit_hash: str) -> Set[str]:
        """Every commit built (transitively) on top of commit_hash."""
        if not self._graph.has_node(commit_hash):
            return set()
        return set(nx.descendants(self._graph, commit_hash))

    def ancestors(self, commit_hash: str) -> Set[str]:
        if not self._graph.has_node(commit_hash):
            return set()
        return set(nx.ancestors(self._graph, commit_hash))

    def branches_at(self, commit_hash: str) -> List[str]:
        if not self._graph.has_node(commit_hash):
            return []
        return sorted(self._graph.nodes[commit_hash]["branches"])

    def to_dict(self) -> Dict[str, object]:
        """Summary for display."""
        return {
            "commits": self._graph.number_of_nodes(),
            "roots": self.roots(),
            "tips": self.tips(),
            "branches": {ref.name: ref.hash for ref in self.history.refs},
        }
