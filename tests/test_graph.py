"""Unit tests for remote_text.repository.graph — CommitGraph (NetworkX)."""

from remote_text.repository.graph import CommitGraph
from remote_text.repository.models import GitCommit, GitHistory, GitRef

A, B, C, D, E = ("a" * 40, "b" * 40, "c" * 40, "d" * 40, "e" * 40)


def _history(commits, refs):
    return GitHistory(
        commits=[GitCommit(hash=h, parent=p) for h, p in commits],
        refs=[GitRef(name=n, hash=h) for n, h in refs],
    )


class TestLinearHistory:
    def setup_method(self):
        self.graph = CommitGraph.from_history(
            _history([(C, B), (A, None), (B, A)], [("main", C)])
        )

    def test_roots_and_tips(self):
        assert self.graph.roots() == [A]
        assert self.graph.tips() == [C]

    def test_lineage_is_root_first(self):
        assert self.graph.lineage(C) == [A, B, C]
        assert self.graph.lineage(A) == [A]

    def test_is_linear(self):
        assert self.graph.is_linear(C) is True
        assert self.graph.is_linear(B) is False

    def test_descendants_and_ancestors(self):
        assert self.graph.descendants(A) == {B, C}
        assert self.graph.ancestors(C) == {A, B}

    def test_branches_at(self):
        assert self.graph.branches_at(C) == ["main"]
        assert self.graph.branches_at(B) == []

    def test_unknown_commit(self):
        assert self.graph.lineage(D) == []
        assert self.graph.is_linear(D) is False
        assert self.graph.descendants(D) == set()
        assert D not in self.graph


class TestBranchedHistory:
    def setup_method(self):
        # A ─ B ─ C  (main)
        #      └─ D  (draft, old)
        #  └─ E      (fork)
        self.graph = CommitGraph(_history(
            [(A, None), (B, A), (C, B), (D, B), (E, A)],
            [("main", C), ("draft", D), ("fork", E)],
        ))

    def test_tips(self):
        assert self.graph.tips() == sorted([C, D, E])

    def test_children(self):
        assert self.graph.children(A) == sorted([B, E])
        assert self.graph.children(B) == sorted([C, D])

    def test_not_linear(self):
        assert self.graph.is_linear(C) is False
        assert self.graph.lineage(D) == [A, B, D]

    def test_to_dict(self):
        summary = self.graph.to_dict()
        assert summary["commits"] == 5
        assert summary["roots"] == [A]
        assert summary["branches"] == {"main": C, "draft": D, "fork": E}


class TestMissingParent:
    def test_missing_parent_becomes_root(self):
        graph = CommitGraph(_history([(B, A)], [("main", B)]))
        assert graph.roots() == [A]
        assert graph.lineage(B) == [A, B]
        assert graph.parent(B) == A


class TestFromRepository:
    def test_graph_over_real_history(self, registry, committer, author):
        from remote_text.repository.history import HistoryReader
        from remote_text.repository.mutator import RepositoryMutator

        doc = registry.create("a.txt", "0", author)
        mutator = RepositoryMutator(committer)
        parent = doc.commit_hash
        for i in range(3):
            parent = registry.with_repository(
                doc.id,
                lambda repo, p=parent, i=i: mutator.save(repo, "a.txt", str(i + 1), p, "main", author),
            ).hash

        graph = CommitGraph.from_history(registry.with_repository(doc.id, HistoryReader().read))
        assert len(graph) == 4
        assert graph.roots() == [doc.commit_hash]
        assert graph.is_linear(parent)
        assert graph.branches_at(parent) == ["main"]
