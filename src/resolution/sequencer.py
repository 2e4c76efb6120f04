"""Topological installation order.

Kahn's algorithm over a validated graph. Among nodes whose dependencies are
all placed, the one visited earliest by the graph builder goes next, so a
fixed input always yields the same order.
"""

import heapq
import logging
from typing import Dict, List, Tuple

from common.logging_utils import extra_context, is_debug_enabled

from .errors import CyclicDependency
from .models import InstallOrder, ResolutionGraph

logger = logging.getLogger(__name__)


def order(graph: ResolutionGraph) -> InstallOrder:
    """Return the installation order of ``graph``.

    For every edge ``A -> B`` (A depends on B), B precedes A. The graph must
    have passed validation; a cycle left in it surfaces as CyclicDependency
    naming the nodes that could not be ordered.
    """
    index = graph.visit_index()
    # remaining unplaced dependencies per node; dependents to release
    pending: Dict[str, int] = {}
    dependents: Dict[str, List[str]] = {name: [] for name in graph.nodes}
    for name in graph.nodes:
        deps = [d for d in graph.edges.get(name, ()) if d in graph.nodes]
        pending[name] = len(deps)
        for dep in deps:
            dependents[dep].append(name)

    ready: List[Tuple[int, str]] = [(index[n], n) for n, count in pending.items() if count == 0]
    heapq.heapify(ready)

    names: List[str] = []
    while ready:
        _, name = heapq.heappop(ready)
        names.append(name)
        for dependent in dependents[name]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, (index[dependent], dependent))

    if len(names) != len(graph.nodes):
        stuck = [n for n in graph.nodes if pending[n] > 0]
        raise CyclicDependency(stuck + stuck[:1])

    packages = [graph.nodes[n] for n in names]
    roots = set(graph.roots)
    result = InstallOrder(
        packages=packages,
        dependencies=[p for p in packages if p.full_name not in roots],
        requested=[p for p in packages if p.full_name in roots],
    )
    if is_debug_enabled(logger):
        logger.debug(
            "Sequenced install order",
            extra=extra_context(
                event="sequence",
                component="sequencer",
                outcome="ok",
                count=len(names),
                order=",".join(names),
            ),
        )
    return result
