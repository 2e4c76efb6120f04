"""Cycle, conflict and requirement validation of a resolution graph.

A single ``validate`` pass collects every problem it finds instead of
stopping at the first one, so a failed resolution can report all of them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from common.logging_utils import extra_context, is_debug_enabled

from .cache import ExpansionCache
from .errors import CyclicDependency, DeclaredConflict, ResolutionError, UnsatisfiedRequirement
from .models import DependencyTag, ResolutionGraph
from .requirements import BuildContext, Requirement, declared_requirements

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2

_CONDITIONAL_TAGS = (DependencyTag.OPTIONAL, DependencyTag.RECOMMENDED)


@dataclass
class ValidationResult:
    """Outcome of one validation pass.

    ``graph`` is the validated graph with optional-only subtrees whose
    requirements cannot be met already pruned away.
    """

    graph: ResolutionGraph
    errors: List[ResolutionError] = field(default_factory=list)
    conflicts: List[DeclaredConflict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def cycles(self) -> List[CyclicDependency]:
        return [e for e in self.errors if isinstance(e, CyclicDependency)]


def find_cycles(graph: ResolutionGraph) -> List[CyclicDependency]:
    """Three-colour DFS over the graph in visitation order.

    Each back edge to an in-progress node yields the cycle path, starting and
    ending on that node. A cycle reachable through several back edges over
    the same node set is reported once.
    """
    color: Dict[str, int] = {name: _WHITE for name in graph.nodes}
    found: List[CyclicDependency] = []
    seen: Set[FrozenSet[str]] = set()

    for start in graph.nodes:
        if color[start] != _WHITE:
            continue
        color[start] = _GRAY
        path = [start]
        stack = [(start, iter(graph.edges.get(start, ())))]
        while stack:
            node, targets = stack[-1]
            for target in targets:
                state = color.get(target)
                if state is None:
                    continue
                if state == _GRAY:
                    cycle = path[path.index(target):] + [target]
                    key = frozenset(cycle)
                    if key not in seen:
                        seen.add(key)
                        found.append(CyclicDependency(cycle))
                elif state == _WHITE:
                    color[target] = _GRAY
                    path.append(target)
                    stack.append((target, iter(graph.edges.get(target, ()))))
                    break
            else:
                color[node] = _BLACK
                path.pop()
                stack.pop()
    return found


def _name_index(graph: ResolutionGraph) -> Dict[str, str]:
    """Map every name a node answers to (name, full name, aliases) to its full name."""
    index: Dict[str, str] = {}
    for full, package in graph.nodes.items():
        index[full] = full
        index.setdefault(package.name, full)
        for alias in package.spec.aliases:
            index.setdefault(alias, full)
    return index


def find_conflicts(graph: ResolutionGraph, linked_installed: Iterable[str] = ()) -> List[DeclaredConflict]:
    """Declared conflicts between graph nodes, and with installed linked Kegs.

    The relation is symmetric, so each pair is reported once, by the node
    visited first.
    """
    index = _name_index(graph)
    linked = set(linked_installed)
    reported: Set[FrozenSet[str]] = set()
    conflicts: List[DeclaredConflict] = []

    for full, package in graph.nodes.items():
        for conflict in package.conflicts:
            other = index.get(conflict.name)
            if other is not None:
                if other == full:
                    continue
                pair = frozenset((full, other))
                if pair in reported:
                    continue
                reported.add(pair)
                conflicts.append(DeclaredConflict(full, other, conflict.reason))
            elif conflict.name in linked:
                conflicts.append(DeclaredConflict(full, conflict.name, conflict.reason, installed=True))
    return conflicts


def _mandatory_nodes(graph: ResolutionGraph) -> Set[str]:
    """Nodes reachable from a root without crossing an optional/recommended edge."""
    reached: Set[str] = set()
    stack = [r for r in graph.roots if r in graph.nodes]
    while stack:
        name = stack.pop()
        if name in reached:
            continue
        reached.add(name)
        for target in graph.edges.get(name, ()):
            tags = graph.edge_tags.get((name, target), ())
            if any(t in _CONDITIONAL_TAGS for t in tags):
                continue
            stack.append(target)
    return reached


def _reachable(graph: ResolutionGraph) -> Set[str]:
    reached: Set[str] = set()
    stack = [r for r in graph.roots if r in graph.nodes]
    while stack:
        name = stack.pop()
        if name in reached:
            continue
        reached.add(name)
        stack.extend(graph.edges.get(name, ()))
    return reached


def validate(
    graph: ResolutionGraph,
    context: BuildContext,
    linked_installed: Iterable[str] = (),
    cache: Optional[ExpansionCache] = None,
) -> ValidationResult:
    """Validate ``graph``: cycles, declared conflicts and requirements.

    Cycles and unsatisfied fatal requirements are errors. Conflicts are
    reported separately and are not fatal. A node whose fatal requirement is
    unmet but which is only reachable through optional or recommended edges
    is pruned together with the part of the graph only it pulled in.
    """
    result = ValidationResult(graph=graph)
    result.errors.extend(find_cycles(graph))

    failures: List[Tuple[str, Requirement]] = []
    for full, package in graph.nodes.items():
        if cache is not None:
            reqs = cache.requirements(full, package.active.value, lambda p=package: declared_requirements(p))
        else:
            reqs = declared_requirements(package)
        for req in reqs:
            if not req.applies(package, context) or req.satisfied(context.platform):
                continue
            if not req.fatal:
                result.warnings.append(f"{full}: requirement not satisfied: {req.display()}")
                continue
            failures.append((full, req))

    if failures:
        mandatory = _mandatory_nodes(graph)
        prunable = {name for name, _ in failures if name not in mandatory}
        if prunable:
            trimmed = graph.without(prunable)
            reachable = _reachable(trimmed)
            unreachable = [n for n in trimmed.nodes if n not in reachable]
            trimmed = trimmed.without(unreachable)
            result.pruned = [n for n in graph.nodes if n not in trimmed.nodes]
            for name, req in failures:
                if name in prunable:
                    result.warnings.append(
                        f"{name}: requirement not satisfied: {req.display()}; optional dependency skipped"
                    )
            result.graph = trimmed
        for name, req in failures:
            if name in result.graph.nodes:
                result.errors.append(UnsatisfiedRequirement(name, req))

    result.conflicts.extend(find_conflicts(result.graph, linked_installed))
    result.graph.warnings.extend(w for w in result.warnings if w not in result.graph.warnings)

    if is_debug_enabled(logger):
        logger.debug(
            "Validated dependency graph",
            extra=extra_context(
                event="graph_validate",
                component="validator",
                outcome="ok" if result.ok else "errors",
                errors=len(result.errors),
                conflicts=len(result.conflicts),
                pruned=len(result.pruned),
            ),
        )
    return result
