"""Expansion cache scoped to one command invocation.

Memoizes per-package classification results so the graph builder never
re-expands a shared subgraph. The cache is an explicit object handed to the
builder, never module state, and it is never persisted. Entries are
invalidated through an enumerated set of triggers: switching a package's
active spec and changing its build options.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Set, Tuple, TypeVar

from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = Tuple[str, str]


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry."""

    value: T
    created_at: float = field(default_factory=time.time)


class ExpansionCache:
    """Memoizes ``(name, fingerprint) -> dependencies`` and ``(name, spec) -> requirements``.

    A third map holds recursive closures (the full required dependency set of
    a package). Closures embed the expansion of every member, so invalidating
    a package also drops every closure it appears in.
    """

    def __init__(self) -> None:
        self._dependencies: Dict[CacheKey, CacheEntry[List[Any]]] = {}
        self._requirements: Dict[CacheKey, CacheEntry[List[Any]]] = {}
        self._closures: Dict[CacheKey, CacheEntry[List[str]]] = {}
        # member name -> closure keys that contain it
        self._closure_index: Dict[str, Set[CacheKey]] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _make_key(name: str, fingerprint: str) -> CacheKey:
        return (name, fingerprint)

    # -- dependencies ---------------------------------------------------

    def get_dependencies(self, name: str, fingerprint: str) -> Optional[List[Any]]:
        entry = self._dependencies.get(self._make_key(name, fingerprint))
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return list(entry.value)

    def set_dependencies(self, name: str, fingerprint: str, deps: List[Any]) -> None:
        self._dependencies[self._make_key(name, fingerprint)] = CacheEntry(value=list(deps))

    def dependencies(self, name: str, fingerprint: str, compute: Callable[[], List[Any]]) -> List[Any]:
        """Return cached dependencies or compute and store them."""
        cached = self.get_dependencies(name, fingerprint)
        if cached is not None:
            return cached
        deps = compute()
        self.set_dependencies(name, fingerprint, deps)
        return list(deps)

    # -- requirements ---------------------------------------------------

    def get_requirements(self, name: str, fingerprint: str) -> Optional[List[Any]]:
        entry = self._requirements.get(self._make_key(name, fingerprint))
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return list(entry.value)

    def set_requirements(self, name: str, fingerprint: str, reqs: List[Any]) -> None:
        self._requirements[self._make_key(name, fingerprint)] = CacheEntry(value=list(reqs))

    def requirements(self, name: str, fingerprint: str, compute: Callable[[], List[Any]]) -> List[Any]:
        """Return cached requirements of one spec variant or compute and store them."""
        cached = self.get_requirements(name, fingerprint)
        if cached is not None:
            return cached
        reqs = compute()
        self.set_requirements(name, fingerprint, reqs)
        return list(reqs)

    # -- recursive closures ---------------------------------------------

    def get_closure(self, name: str, fingerprint: str) -> Optional[List[str]]:
        entry = self._closures.get(self._make_key(name, fingerprint))
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return list(entry.value)

    def set_closure(self, name: str, fingerprint: str, members: List[str]) -> None:
        key = self._make_key(name, fingerprint)
        self._closures[key] = CacheEntry(value=list(members))
        for member in (name, *members):
            self._closure_index.setdefault(member, set()).add(key)

    # -- invalidation ---------------------------------------------------

    def invalidate(self, name: str) -> int:
        """Drop every entry derived from ``name``; returns the number removed."""
        removed = 0
        for key in [k for k in self._dependencies if k[0] == name]:
            del self._dependencies[key]
            removed += 1
        for key in [k for k in self._requirements if k[0] == name]:
            del self._requirements[key]
            removed += 1
        for key in self._closure_index.pop(name, set()):
            if self._closures.pop(key, None) is not None:
                removed += 1
        if is_debug_enabled(logger):
            logger.debug(
                "Expansion cache invalidated",
                extra=extra_context(
                    event="cache_invalidate",
                    component="expansion_cache",
                    target=name,
                    removed=removed,
                ),
            )
        return removed

    def on_spec_switch(self, name: str) -> int:
        """Trigger: the package's active spec changed (stable <-> head)."""
        return self.invalidate(name)

    def on_options_changed(self, name: str) -> int:
        """Trigger: the package's effective build options changed."""
        return self.invalidate(name)

    def clear(self) -> None:
        self._dependencies.clear()
        self._requirements.clear()
        self._closures.clear()
        self._closure_index.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "dependency_entries": len(self._dependencies),
            "requirement_entries": len(self._requirements),
            "closure_entries": len(self._closures),
            "hits": self.hits,
            "misses": self.misses,
        }
