"""Tests for topological installation ordering."""

import pytest

from conftest import LINUX, formula
from resolution import BuildContext, CyclicDependency, ExpansionCache, GraphBuilder, ResolveOptions, order


def expand(repo, *roots):
    return GraphBuilder(repo, BuildContext(platform=LINUX), ExpansionCache(), ResolveOptions()).expand(roots)


def assert_topological(graph, names):
    position = {name: i for i, name in enumerate(names)}
    for owner, deps in graph.edges.items():
        for dep in deps:
            assert position[dep] < position[owner], f"{dep} must precede {owner}"


class TestOrder:
    """Kahn ordering with visitation-order tie breaking."""

    def test_chain(self, make_repo):
        graph = expand(make_repo(formula("a", "b"), formula("b", "c"), formula("c")), "a")
        assert order(graph).names() == ["c", "b", "a"]

    def test_diamond(self, make_repo):
        repo = make_repo(formula("a", "b", "c"), formula("b", "d"), formula("c", "d"), formula("d"))
        assert order(expand(repo, "a")).names() == ["d", "b", "c", "a"]

    def test_ties_follow_visitation_order(self, make_repo):
        repo = make_repo(formula("a", "z", "m", "b"), formula("z"), formula("m"), formula("b"))
        assert order(expand(repo, "a")).names() == ["z", "m", "b", "a"]

    def test_repeatable(self, make_repo):
        repo = make_repo(
            formula("app", "web", "db"),
            formula("web", "ssl", "zlib"),
            formula("db", "zlib", "readline"),
            formula("ssl", "ca"),
            formula("ca"),
            formula("zlib"),
            formula("readline"),
        )
        first = order(expand(repo, "app")).names()
        for _ in range(5):
            assert order(expand(repo, "app")).names() == first
        assert_topological(expand(repo, "app"), first)

    def test_partition_keeps_relative_order(self, make_repo):
        repo = make_repo(formula("a", "b"), formula("b", "c"), formula("c"), formula("x", "c"))
        result = order(expand(repo, "a", "x"))
        assert result.names() == ["c", "b", "a", "x"]
        assert [p.name for p in result.dependencies] == ["c", "b"]
        assert [p.name for p in result.requested] == ["a", "x"]

    def test_requested_dependency_counts_as_requested(self, make_repo):
        repo = make_repo(formula("a", "b"), formula("b"))
        result = order(expand(repo, "a", "b"))
        assert result.names() == ["b", "a"]
        assert result.dependencies == []

    def test_cycle_raises(self, make_repo):
        graph = expand(make_repo(formula("a", "b"), formula("b", "a")), "a")
        with pytest.raises(CyclicDependency) as exc:
            order(graph)
        assert exc.value.path == ["a", "b", "a"]
