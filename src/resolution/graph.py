"""Dependency graph builder.

Expands requested packages into a ResolutionGraph: depth-first, in
declaration order, memoized by full name. Each visited package's declared
edges are classified by the requirement model and then offered to an
optional per-edge callback that can keep, prune or skip them.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from common.logging_utils import Timer, extra_context, is_debug_enabled

from .cache import ExpansionCache
from .errors import DependencyUnavailable, HeadUnavailable, ResolutionError, ResolutionFailed
from .models import (
    Dependency,
    EdgeAction,
    Package,
    PackageSpec,
    ResolutionGraph,
    ResolveOptions,
    SpecKind,
)
from .requirements import BuildContext, required_dependencies
from .sequencer import order

logger = logging.getLogger(__name__)

EdgeCallback = Callable[[Package, Dependency], Optional[EdgeAction]]


def runtime_only(owner: Package, dep: Dependency) -> EdgeAction:
    """Callback keeping only edges needed after installation."""
    return EdgeAction.KEEP if dep.is_runtime else EdgeAction.PRUNE


class GraphBuilder:
    """Builds resolution graphs against a spec repository.

    The repository only needs ``lookup(name) -> PackageSpec | None``. Spec
    lookups are cached for the lifetime of the builder; classified edge
    lists go through the shared ExpansionCache.
    """

    def __init__(
        self,
        repository,
        context: BuildContext,
        cache: Optional[ExpansionCache] = None,
        options: Optional[ResolveOptions] = None,
    ):
        self.repository = repository
        self.context = context
        self.cache = cache if cache is not None else ExpansionCache()
        self.options = options or ResolveOptions()
        self._specs: Dict[str, Optional[PackageSpec]] = {}
        self._packages: Dict[str, Package] = {}
        self._warned: Set[str] = set()

    # -- spec collaborator ----------------------------------------------

    def lookup_spec(self, name: str) -> Optional[PackageSpec]:
        if name not in self._specs:
            self._specs[name] = self.repository.lookup(name)
        return self._specs[name]

    def make_package(self, spec: PackageSpec, requested: bool = False) -> Package:
        """Construct the Package value a spec takes in this pass.

        A package is built from source when its active spec is HEAD, when it
        is a root of a ``build_from_source`` resolution, when it is named in
        ``build_from_source_names``, when explicit build options were given
        for it, or when no bottle exists for the current platform.
        """
        opts = self.options.options_for(spec.name, spec.full_name)
        package = Package(
            spec=spec,
            requested=requested,
            include_test=requested and self.options.include_test,
        ).with_options(opts)
        head_names = self.options.head_names
        wants_head = spec.name in head_names or spec.full_name in head_names
        if wants_head or (requested and self.options.head_requested):
            if spec.head is None:
                raise HeadUnavailable(spec.full_name)
            package = package.with_spec(SpecKind.HEAD)
        names = self.options.build_from_source_names
        from_source = (
            package.is_head
            or (requested and self.options.build_from_source)
            or spec.name in names
            or spec.full_name in names
            or bool(opts)
            or package.bottle_for(self.context.platform.bottle_tag) is None
        )
        return dataclasses.replace(package, build_from_source=from_source)

    def _available_spec(self, name: str, requested_by: Optional[str] = None) -> PackageSpec:
        spec = self.lookup_spec(name)
        if spec is None:
            raise DependencyUnavailable(name, requested_by)
        if spec.disabled:
            raise DependencyUnavailable(name, requested_by, reason=f"disabled because {spec.disabled}")
        if spec.deprecated and spec.full_name not in self._warned:
            self._warned.add(spec.full_name)
            logger.warning("%s has been deprecated because %s", spec.full_name, spec.deprecated)
        return spec

    def _package_for(self, name: str, requested_by: Optional[str] = None) -> Package:
        cached = self._packages.get(name)
        if cached is not None:
            return cached
        spec = self._available_spec(name, requested_by)
        package = self._packages.get(spec.full_name)
        if package is None:
            package = self.make_package(spec)
            self._packages[spec.full_name] = package
        self._packages[name] = package
        return package

    def _root_package(self, root: Union[str, Package]) -> Package:
        if isinstance(root, Package):
            package = root
        else:
            spec = self._available_spec(root)
            package = self.make_package(spec, requested=True)
            self._packages[root] = package
        self._packages[package.full_name] = package
        return package

    # -- classification -------------------------------------------------

    def dependencies_of(self, package: Package) -> List[Dependency]:
        """Required edges of ``package`` in this context, through the cache."""
        fingerprint = f"{package.fingerprint()}|{self.context.fingerprint()}"
        return self.cache.dependencies(
            package.full_name, fingerprint, lambda: required_dependencies(package, self.context)
        )

    # -- expansion ------------------------------------------------------

    def expand(
        self,
        roots: Iterable[Union[str, Package]],
        callback: Optional[EdgeCallback] = None,
    ) -> ResolutionGraph:
        """Expand ``roots`` transitively into a ResolutionGraph.

        Args:
            roots: Package names or prebuilt Package values, in request order.
            callback: Optional per-edge policy returning an EdgeAction; ``None``
                or a missing return value keeps the edge.

        Returns:
            The graph. Roots whose expansion hit an unavailable package are
            rolled back and listed in ``graph.failed_roots``.

        Raises:
            ResolutionFailed: when any root failed and ``keep_going`` is off.
            InvalidDependencyTag: immediately, on malformed declarations.
        """
        graph = ResolutionGraph()
        expanded: Set[str] = set()
        root_list = list(roots)

        with Timer() as timer:
            # Root packages first so a root that is also a dependency of an
            # earlier root keeps its requested flags.
            pending = []
            for root in root_list:
                label = root.full_name if isinstance(root, Package) else root
                try:
                    pending.append((label, self._root_package(root)))
                except DependencyUnavailable as exc:
                    graph.failed_roots.setdefault(label, []).append(exc)

            for label, package in pending:
                nodes_before = list(graph.nodes)
                expanded_before = set(expanded)
                edge_owners = {k: list(v) for k, v in graph.edges.items()}
                try:
                    graph.add_node(package)
                    if package.full_name not in graph.roots:
                        graph.roots.append(package.full_name)
                    self._expand(graph, package, callback, expanded)
                except DependencyUnavailable as exc:
                    self._rollback(graph, nodes_before, edge_owners)
                    expanded.clear()
                    expanded.update(expanded_before)
                    graph.failed_roots.setdefault(label, []).append(exc)

        if is_debug_enabled(logger):
            logger.debug(
                "Expanded dependency graph",
                extra=extra_context(
                    event="graph_expand",
                    component="graph_builder",
                    outcome="failed" if graph.failed_roots else "ok",
                    roots=len(root_list),
                    nodes=len(graph),
                    duration_ms=timer.duration_ms(),
                ),
            )

        if graph.failed_roots and not self.options.keep_going:
            errors: List[ResolutionError] = []
            for errs in graph.failed_roots.values():
                errors.extend(errs)
            raise ResolutionFailed(errors)
        return graph

    def _expand(
        self,
        graph: ResolutionGraph,
        package: Package,
        callback: Optional[EdgeCallback],
        expanded: Set[str],
        attach_to: Optional[str] = None,
        skipping: Optional[Set[str]] = None,
    ) -> None:
        if attach_to is None:
            expanded.add(package.full_name)
        owner_name = attach_to or package.full_name
        for dep in self.dependencies_of(package):
            action = callback(package, dep) if callback else None
            action = action or EdgeAction.KEEP
            if action is EdgeAction.PRUNE:
                continue

            target = self._resolve_target(graph, package, dep)
            if target is None:
                continue

            if action is EdgeAction.SKIP:
                skipping = set(skipping or ())
                if target.full_name in skipping:
                    continue
                skipping.add(target.full_name)
                self._expand(graph, target, callback, expanded, attach_to=owner_name, skipping=skipping)
                continue

            if target.full_name == owner_name and attach_to is not None:
                continue
            graph.add_edge(owner_name, target.full_name, dep.tags)
            graph.add_node(target)
            if action is EdgeAction.KEEP and target.full_name not in expanded:
                self._expand(graph, target, callback, expanded)

    def _resolve_target(self, graph: ResolutionGraph, owner: Package, dep: Dependency) -> Optional[Package]:
        try:
            return self._package_for(dep.name, requested_by=owner.full_name)
        except DependencyUnavailable as exc:
            if not self.options.best_effort:
                raise
            if dep.name not in graph.dropped:
                graph.dropped[dep.name] = exc
                graph.warnings.append(f"{exc.message}; skipped")
                logger.warning("%s; skipped", exc.message)
            return None

    @staticmethod
    def _rollback(graph: ResolutionGraph, nodes_before: List[str], edges_before: Dict[str, List[str]]) -> None:
        keep = set(nodes_before)
        for name in [n for n in graph.nodes if n not in keep]:
            del graph.nodes[name]
            graph.edges.pop(name, None)
            if name in graph.roots:
                graph.roots.remove(name)
        for owner in list(graph.edges):
            graph.edges[owner] = list(edges_before.get(owner, []))
        for key in [k for k in graph.edge_tags if k[0] not in keep or k[1] not in graph.edges.get(k[0], ())]:
            del graph.edge_tags[key]

    # -- closures -------------------------------------------------------

    def recursive_dependencies(self, package: Package, callback: Optional[EdgeCallback] = None) -> List[Package]:
        """Full required dependency closure of ``package`` in installable order.

        Without a callback the closure is memoized in the ExpansionCache, so a
        shared subgraph is only expanded once per invocation.
        """
        fingerprint = f"{package.fingerprint()}|{self.context.fingerprint()}|{self.options.fingerprint()}"
        if callback is None:
            cached = self.cache.get_closure(package.full_name, fingerprint)
            if cached is not None:
                return [self._package_for(name) for name in cached]

        graph = ResolutionGraph()
        graph.add_node(package)
        graph.roots.append(package.full_name)
        self._packages.setdefault(package.full_name, package)
        self._expand(graph, package, callback, set())
        members = [p for p in order(graph).packages if p.full_name != package.full_name]

        if callback is None:
            self.cache.set_closure(package.full_name, fingerprint, [p.full_name for p in members])
        return members
