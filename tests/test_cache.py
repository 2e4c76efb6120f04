"""Tests for the per-invocation expansion cache."""

import pytest

from conftest import LINUX, formula
from formula import FormulaRepository, record_to_spec
from resolution import (
    BuildContext,
    ExpansionCache,
    GraphBuilder,
    ResolutionFailed,
    ResolutionService,
    ResolveOptions,
    SpecKind,
)


class TestExpansionCache:
    """Memoization and invalidation."""

    def test_dependencies_are_computed_once(self):
        cache = ExpansionCache()
        calls = []

        def compute():
            calls.append(1)
            return ["b", "c"]

        assert cache.dependencies("a", "fp", compute) == ["b", "c"]
        assert cache.dependencies("a", "fp", compute) == ["b", "c"]
        assert len(calls) == 1
        assert (cache.hits, cache.misses) == (1, 1)

    def test_fingerprint_is_part_of_the_key(self):
        cache = ExpansionCache()
        cache.set_dependencies("a", "stable", ["b"])
        assert cache.get_dependencies("a", "head") is None
        assert cache.get_dependencies("a", "stable") == ["b"]

    def test_returned_lists_are_copies(self):
        cache = ExpansionCache()
        cache.set_dependencies("a", "fp", ["b"])
        cache.get_dependencies("a", "fp").append("x")
        assert cache.get_dependencies("a", "fp") == ["b"]

    def test_invalidate_drops_every_fingerprint(self):
        cache = ExpansionCache()
        cache.set_dependencies("a", "one", ["b"])
        cache.set_dependencies("a", "two", ["c"])
        cache.set_requirements("a", "stable", [])
        cache.set_requirements("a", "head", [])
        cache.set_dependencies("b", "one", [])
        assert cache.invalidate("a") == 4
        assert cache.stats()["dependency_entries"] == 1
        assert cache.get_requirements("a", "stable") is None
        assert cache.stats()["requirement_entries"] == 0

    def test_requirements_are_keyed_by_spec(self):
        cache = ExpansionCache()
        cache.set_requirements("a", "stable", ["stable-only"])
        assert cache.get_requirements("a", "head") is None
        assert cache.requirements("a", "head", lambda: ["head-only"]) == ["head-only"]
        assert cache.get_requirements("a", "stable") == ["stable-only"]

    def test_invalidating_a_member_drops_closures_containing_it(self):
        cache = ExpansionCache()
        cache.set_closure("app", "fp", ["lib", "zlib"])
        cache.set_closure("lib", "fp", ["zlib"])
        cache.set_closure("other", "fp", ["ssl"])
        assert cache.on_options_changed("zlib") == 2
        assert cache.get_closure("app", "fp") is None
        assert cache.get_closure("lib", "fp") is None
        assert cache.get_closure("other", "fp") == ["ssl"]

    def test_clear(self):
        cache = ExpansionCache()
        cache.set_dependencies("a", "fp", [])
        cache.set_closure("a", "fp", [])
        cache.clear()
        stats = cache.stats()
        assert stats["dependency_entries"] == 0
        assert stats["closure_entries"] == 0


class TestTriggers:
    """Spec switches and option changes invalidate through the service."""

    def test_builder_closure_invalidated_by_dependency_change(self, make_repo):
        repo = make_repo(formula("a", "b"), formula("b", "c"), formula("c"))
        cache = ExpansionCache()
        builder = GraphBuilder(repo, BuildContext(platform=LINUX), cache)
        root = builder.expand(["a"]).package("a")
        assert [p.name for p in builder.recursive_dependencies(root)] == ["c", "b"]
        cache.on_spec_switch("c")
        assert cache.stats()["closure_entries"] == 0

    def test_switch_spec_selects_head(self, make_service):
        service = make_service(formula("a", "b", head={"url": "https://example.com/a.git"}), formula("b"))
        service.resolve(["a"])
        before = service.cache.stats()["dependency_entries"]
        service.switch_spec("a", SpecKind.HEAD)
        assert service.cache.stats()["dependency_entries"] == before - 1
        plan = service.resolve(["a"])
        assert plan.order[-1].is_head
        service.switch_spec("a", SpecKind.STABLE)
        assert not service.resolve(["a"]).order[-1].is_head

    def test_set_options_changes_the_expansion(self, make_service):
        service = make_service(
            formula("a", {"name": "gnutls", "tag": "optional"}, options=["with-gnutls"]),
            formula("gnutls"),
        )
        assert [p.name for p in service.resolve(["a"]).order] == ["a"]
        service.set_options("a", ["with-gnutls"])
        plan = service.resolve(["a"])
        assert [p.name for p in plan.order] == ["gnutls", "a"]
        assert plan.order[-1].build_from_source

    def test_tapped_name_invalidates_full_name(self, cellar):
        repo = FormulaRepository()
        repo.add(record_to_spec(formula("tool"), tap="user/tools"))
        service = ResolutionService(repo, cellar, platform=LINUX)
        service.resolve(["user/tools/tool"])
        assert service.cache.stats()["dependency_entries"] == 1
        service.set_options("tool", [])
        assert service.cache.stats()["dependency_entries"] == 0

    def test_head_requirements_apply_after_stable_resolve(self, make_service):
        head = {"url": "https://example.com/a.git", "requirements": [{"kind": "macos"}]}
        service = make_service(formula("a", head=head))
        assert [p.name for p in service.resolve(["a"]).order] == ["a"]
        with pytest.raises(ResolutionFailed) as exc:
            service.resolve(["a"], ResolveOptions(head_requested=True))
        assert "a" in str(exc.value)
        with pytest.raises(ResolutionFailed):
            service.resolve(["a"], ResolveOptions(head_names=frozenset({"a"})))
        assert [p.name for p in service.resolve(["a"]).order] == ["a"]

    def test_closure_follows_build_from_source_names(self, make_service):
        service = make_service(
            formula("a", "b"),
            formula("b", {"name": "cmake", "tag": "build"}),
            formula("cmake"),
        )
        poured = service.builder()
        root = poured.expand(["a"]).package("a")
        assert [p.name for p in poured.recursive_dependencies(root)] == ["b"]

        built = service.builder(ResolveOptions(build_from_source_names=frozenset({"b"})))
        root = built.expand(["a"]).package("a")
        assert [p.name for p in built.recursive_dependencies(root)] == ["cmake", "b"]
        assert [p.name for p in poured.recursive_dependencies(poured.expand(["a"]).package("a"))] == ["b"]

    def test_closure_follows_dependency_options(self, make_service):
        service = make_service(
            formula("a", "b"),
            formula("b", {"name": "gnutls", "tag": "optional"}, options=["with-gnutls"]),
            formula("gnutls"),
        )
        plain = service.builder()
        assert [p.name for p in plain.recursive_dependencies(plain.expand(["a"]).package("a"))] == ["b"]
        tuned = service.builder(ResolveOptions(force_options={"b": frozenset({"with-gnutls"})}))
        closure = tuned.recursive_dependencies(tuned.expand(["a"]).package("a"))
        assert [p.name for p in closure] == ["gnutls", "b"]
