"""Resolution service: names in, execution plan out.

Runs the whole planning phase for one request: expand, validate, order and
reconcile. Nothing here writes to disk or takes a lock.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from common.logging_utils import Timer, extra_context, is_debug_enabled

from .cache import ExpansionCache
from .errors import CyclicDependency, ResolutionError, ResolutionFailed
from .graph import EdgeCallback, GraphBuilder
from .models import ExecutionPlan, ResolutionGraph, ResolveOptions, SpecKind
from .platform import Platform
from .reconcile import reconcile
from .requirements import BuildContext
from .sequencer import order
from .validation import validate

logger = logging.getLogger(__name__)


def _closure(graph: ResolutionGraph, root: str) -> Set[str]:
    seen: Set[str] = set()
    stack = [root]
    while stack:
        name = stack.pop()
        if name in seen or name not in graph.nodes:
            continue
        seen.add(name)
        stack.extend(graph.edges.get(name, ()))
    return seen


class ResolutionService:
    """Plans installations against a spec repository and a Cellar.

    The cache lives as long as the service; ``switch_spec`` and
    ``set_options`` are its invalidation triggers.
    """

    def __init__(self, repository, cellar=None, platform: Optional[Platform] = None,
                 cache: Optional[ExpansionCache] = None):
        self.repository = repository
        self.cellar = cellar
        self.platform = platform or Platform.detect()
        self.cache = cache if cache is not None else ExpansionCache()
        self._head_names: Set[str] = set()
        self._options: Dict[str, FrozenSet[str]] = {}

    # -- invalidation triggers ------------------------------------------

    def switch_spec(self, name: str, kind: SpecKind) -> None:
        """Select the stable or head spec of ``name`` for later resolutions."""
        if kind is SpecKind.HEAD:
            self._head_names.add(name)
        else:
            self._head_names.discard(name)
        self._invalidate(name, self.cache.on_spec_switch)

    def set_options(self, name: str, options: Iterable[str]) -> None:
        """Set the effective build options of ``name`` for later resolutions."""
        self._options[name] = frozenset(options)
        self._invalidate(name, self.cache.on_options_changed)

    def _invalidate(self, name: str, trigger) -> None:
        spec = self.repository.lookup(name)
        trigger(name)
        if spec is not None and spec.full_name != name:
            trigger(spec.full_name)

    # -- planning -------------------------------------------------------

    def _effective_options(self, options: Optional[ResolveOptions]) -> ResolveOptions:
        options = options or ResolveOptions()
        force = dict(self._options)
        force.update(options.force_options)
        return dataclasses.replace(
            options,
            head_names=frozenset(options.head_names) | frozenset(self._head_names),
            force_options=force,
        )

    def context_for(self, options: ResolveOptions) -> BuildContext:
        return BuildContext(platform=self.platform, skip_optional_names=frozenset(options.skip_optional_names))

    def builder(self, options: Optional[ResolveOptions] = None) -> GraphBuilder:
        options = self._effective_options(options)
        return GraphBuilder(self.repository, self.context_for(options), self.cache, options)

    def _linked_names(self) -> List[str]:
        if self.cellar is None:
            return []
        return [keg.name for keg in self.cellar.all_installed() if keg.linked]

    def _installed_kegs(self, graph: ResolutionGraph) -> Dict[str, object]:
        kegs: Dict[str, object] = {}
        if self.cellar is None:
            return kegs
        for full, package in graph.nodes.items():
            keg = self.cellar.installed_keg(package.name)
            if keg is not None:
                kegs[full] = keg
        return kegs

    def resolve(
        self,
        names: Sequence[str],
        options: Optional[ResolveOptions] = None,
        callback: Optional[EdgeCallback] = None,
    ) -> ExecutionPlan:
        """Resolve ``names`` into an ExecutionPlan.

        Raises:
            ResolutionFailed: listing every offending package and reason.
                Cycles and malformed declarations always fail; unavailable
                packages and unmet requirements only drop the affected
                roots when ``keep_going`` is set.
        """
        options = self._effective_options(options)
        context = self.context_for(options)
        builder = GraphBuilder(self.repository, context, self.cache, options)

        with Timer() as timer:
            graph = builder.expand(names, callback)
            result = validate(graph, context, linked_installed=self._linked_names(), cache=self.cache)

            if any(isinstance(e, CyclicDependency) for e in result.errors):
                raise ResolutionFailed(result.errors)
            graph = result.graph
            if result.errors:
                if not options.keep_going:
                    raise ResolutionFailed(result.errors)
                graph = self._drop_failed_roots(graph, result.errors)

            install_order = order(graph)
            plan = reconcile(install_order, self._installed_kegs(graph), graph, options)

        if options.only_dependencies:
            self._drop_requested(plan, graph.roots)
        plan.conflicts = list(result.conflicts)
        plan.warnings = list(graph.warnings) + [w for w in plan.warnings if w not in graph.warnings]
        plan.failed_roots = {k: list(v) for k, v in graph.failed_roots.items()}

        logger.info(
            "Resolved %d package(s): %d to install, %d to upgrade, %d to reinstall, %d already installed",
            len(plan.order),
            len(plan.to_install),
            len(plan.to_upgrade),
            len(plan.to_reinstall),
            len(plan.already_satisfied),
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Resolution finished",
                extra=extra_context(
                    event="resolve",
                    component="resolution_service",
                    outcome="ok",
                    roots=",".join(names),
                    duration_ms=timer.duration_ms(),
                    **self.cache.stats(),
                ),
            )
        return plan

    @staticmethod
    def _drop_failed_roots(graph: ResolutionGraph, errors: List[ResolutionError]) -> ResolutionGraph:
        bad = {e.package for e in errors if e.package}
        kept_roots: List[str] = []
        for root in graph.roots:
            hit = _closure(graph, root) & bad
            if hit:
                graph.failed_roots[root] = [e for e in errors if e.package in hit]
                logger.warning("Skipping %s: %s", root, "; ".join(e.message for e in graph.failed_roots[root]))
            else:
                kept_roots.append(root)
        keep: Set[str] = set()
        for root in kept_roots:
            keep |= _closure(graph, root)
        return graph.without([n for n in graph.nodes if n not in keep])

    @staticmethod
    def _drop_requested(plan: ExecutionPlan, roots: Iterable[str]) -> None:
        roots = set(roots)

        def keep(packages):
            return [p for p in packages if p.full_name not in roots]

        plan.order = keep(plan.order)
        plan.to_install = keep(plan.to_install)
        plan.to_upgrade = keep(plan.to_upgrade)
        plan.to_reinstall = keep(plan.to_reinstall)
        plan.already_satisfied = keep(plan.already_satisfied)
        plan.entries = [e for e in plan.entries if e.package.full_name not in roots]
