"""Data models for dependency resolution and install planning."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from versioning.models import PkgVersion, Version
from versioning.parser import full_name as _join_full_name

from .errors import InvalidDependencyTag, ResolutionError


class DependencyTag(Enum):
    """Condition under which a dependency edge applies."""
    REQUIRED = "required"
    BUILD = "build"
    TEST = "test"
    OPTIONAL = "optional"
    RECOMMENDED = "recommended"
    USES_FROM_OS = "uses_from_os"

    @classmethod
    def parse(cls, value: str, owner: Optional[str] = None, target: Optional[str] = None) -> "DependencyTag":
        """Map a raw tag to the enum; anything outside the fixed set is an error."""
        raw = str(value).strip().lstrip(":").lower() if value is not None else ""
        for tag in cls:
            if tag.value == raw:
                return tag
        raise InvalidDependencyTag(str(value), owner=owner, target=target)


class SpecKind(Enum):
    """Active specification of a package: stable release or version-control head."""
    STABLE = "stable"
    HEAD = "head"


class EdgeAction(Enum):
    """Decision of a graph-builder callback for one edge."""
    KEEP = "keep"
    PRUNE = "prune"
    SKIP = "skip"
    KEEP_BUT_PRUNE_RECURSIVE = "keep_but_prune_recursive"


class PlanAction(Enum):
    INSTALL = "install"
    UPGRADE = "upgrade"
    REINSTALL = "reinstall"


@dataclass(frozen=True)
class Bottle:
    """Prebuilt binary artifact for one platform tag (``all`` matches any)."""
    tag: str
    url: str
    sha256: str


@dataclass(frozen=True)
class DeclaredDependency:
    """Raw dependency declaration as handed over by the spec collaborator."""
    name: str
    tags: Tuple[str, ...] = ()
    since: Optional[str] = None  # uses_from_os: required below this OS version


@dataclass(frozen=True)
class DeclaredRequirement:
    """Raw non-package precondition declaration."""
    kind: str
    params: Tuple[Tuple[str, Any], ...] = ()
    tags: Tuple[str, ...] = ()
    fatal: bool = True

    def param(self, key: str, default: Any = None) -> Any:
        for k, v in self.params:
            if k == key:
                return v
        return default


@dataclass(frozen=True)
class Conflict:
    name: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class SpecVariant:
    """One named source variant (stable or head) with its own declarations."""
    version: str
    url: Optional[str] = None
    sha256: Optional[str] = None
    dependencies: Tuple[DeclaredDependency, ...] = ()
    requirements: Tuple[DeclaredRequirement, ...] = ()
    bottles: Tuple[Bottle, ...] = ()


@dataclass(frozen=True)
class PackageSpec:
    """Immutable declaration record of a package, as produced by the loader."""
    name: str
    stable: SpecVariant
    tap: Optional[str] = None
    head: Optional[SpecVariant] = None
    revision: int = 0
    version_scheme: int = 0
    desc: Optional[str] = None
    homepage: Optional[str] = None
    keg_only: Optional[str] = None  # reason; None when the package is linked
    deprecated: Optional[str] = None
    disabled: Optional[str] = None
    aliases: Tuple[str, ...] = ()
    options: Tuple[str, ...] = ()
    conflicts: Tuple[Conflict, ...] = ()
    install: Tuple[str, ...] = ()
    source_path: Optional[str] = None

    @property
    def full_name(self) -> str:
        return _join_full_name(self.tap, self.name)

    def variant(self, kind: SpecKind) -> Optional[SpecVariant]:
        return self.head if kind is SpecKind.HEAD else self.stable


@dataclass(frozen=True)
class Dependency:
    """A classified dependency edge owned by exactly one package."""
    owner: str
    name: str
    tags: Tuple[DependencyTag, ...] = (DependencyTag.REQUIRED,)
    since: Optional[str] = None

    @property
    def tag(self) -> DependencyTag:
        return self.tags[0]

    def has(self, tag: DependencyTag) -> bool:
        return tag in self.tags

    @property
    def is_build(self) -> bool:
        return DependencyTag.BUILD in self.tags

    @property
    def is_test(self) -> bool:
        return DependencyTag.TEST in self.tags

    @property
    def is_runtime(self) -> bool:
        return not (self.is_build or self.is_test)

    @property
    def is_optional(self) -> bool:
        return DependencyTag.OPTIONAL in self.tags

    @property
    def is_recommended(self) -> bool:
        return DependencyTag.RECOMMENDED in self.tags

    @property
    def option_name(self) -> str:
        """Base option name derived from the dependency (``foo`` for ``tap/foo``)."""
        return self.name.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class Package:
    """A package as seen by one resolution pass.

    Immutable within the pass; switching the active spec or the build options
    produces a new value (see ``with_spec`` and ``with_options``).
    """
    spec: PackageSpec
    active: SpecKind = SpecKind.STABLE
    options: FrozenSet[str] = frozenset()
    build_from_source: bool = False
    requested: bool = False
    include_test: bool = False

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def full_name(self) -> str:
        return self.spec.full_name

    @property
    def variant(self) -> SpecVariant:
        variant = self.spec.variant(self.active)
        if variant is None:
            raise ValueError(f"{self.full_name} has no {self.active.value} spec")
        return variant

    @property
    def version(self) -> Version:
        return Version(self.variant.version)

    @property
    def revision(self) -> int:
        # Revisions only apply to stable releases
        return self.spec.revision if self.active is SpecKind.STABLE else 0

    @property
    def pkg_version(self) -> PkgVersion:
        return PkgVersion(self.version, self.revision)

    @property
    def version_scheme(self) -> int:
        return self.spec.version_scheme

    @property
    def is_head(self) -> bool:
        return self.active is SpecKind.HEAD

    @property
    def keg_only(self) -> bool:
        return self.spec.keg_only is not None

    @property
    def pour_bottle(self) -> bool:
        return not self.build_from_source

    @property
    def declared_dependencies(self) -> Tuple[DeclaredDependency, ...]:
        return self.variant.dependencies

    @property
    def declared_requirements(self) -> Tuple[DeclaredRequirement, ...]:
        return self.variant.requirements

    @property
    def conflicts(self) -> Tuple[Conflict, ...]:
        return self.spec.conflicts

    def bottle_for(self, tag: str) -> Optional[Bottle]:
        """Bottle matching ``tag`` exactly, else the ``all`` bottle, else None."""
        if self.is_head:
            return None
        fallback = None
        for bottle in self.variant.bottles:
            if bottle.tag == tag:
                return bottle
            if bottle.tag == "all":
                fallback = bottle
        return fallback

    def with_spec(self, kind: SpecKind) -> "Package":
        return dataclasses.replace(self, active=kind, build_from_source=self.build_from_source or kind is SpecKind.HEAD)

    def with_options(self, options: FrozenSet[str]) -> "Package":
        return dataclasses.replace(self, options=frozenset(options))

    def fingerprint(self) -> str:
        """Context fingerprint of this package's own classification inputs."""
        opts = ",".join(sorted(self.options))
        return (
            f"{self.active.value}|{opts}|src={int(self.build_from_source)}"
            f"|test={int(self.include_test)}"
        )

    def __str__(self) -> str:
        return self.full_name


@dataclass
class ResolveOptions:
    """Inbound options of a resolve call."""
    build_from_source: bool = False
    build_from_source_names: FrozenSet[str] = frozenset()
    head_requested: bool = False
    head_names: FrozenSet[str] = frozenset()
    skip_optional_names: FrozenSet[str] = frozenset()
    force_options: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    include_test: bool = False
    best_effort: bool = False
    keep_going: bool = False
    only_dependencies: bool = False
    reinstall_names: FrozenSet[str] = frozenset()

    def options_for(self, name: str, full: Optional[str] = None) -> FrozenSet[str]:
        opts = self.force_options.get(name)
        if opts is None and full:
            opts = self.force_options.get(full)
        return frozenset(opts or ())

    def fingerprint(self) -> str:
        """Per-package selections that can change any member of a closure."""
        heads = ",".join(sorted(self.head_names))
        source = ",".join(sorted(self.build_from_source_names))
        opts = ";".join(f"{name}=" + ",".join(sorted(o)) for name, o in sorted(self.force_options.items()))
        return f"head={heads}|src={source}|opts={opts}"


@dataclass
class ResolutionGraph:
    """Packages and required edges assembled by one resolution pass.

    ``nodes`` keeps insertion (visitation) order, which the sequencer uses to
    break ties. ``edges`` maps an owner's full name to the full names it
    depends on, in declaration order.
    """
    nodes: Dict[str, Package] = field(default_factory=dict)
    edges: Dict[str, List[str]] = field(default_factory=dict)
    edge_tags: Dict[Tuple[str, str], Tuple[DependencyTag, ...]] = field(default_factory=dict)
    roots: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    dropped: Dict[str, ResolutionError] = field(default_factory=dict)
    failed_roots: Dict[str, List[ResolutionError]] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def add_node(self, package: Package) -> None:
        if package.full_name not in self.nodes:
            self.nodes[package.full_name] = package
            self.edges[package.full_name] = []

    def add_edge(self, owner: str, target: str, tags: Tuple[DependencyTag, ...]) -> None:
        deps = self.edges.setdefault(owner, [])
        if target not in deps:
            deps.append(target)
            self.edge_tags[(owner, target)] = tuple(tags)
        else:
            # A second declaration to the same target: keep the union of tags
            merged = list(self.edge_tags.get((owner, target), ()))
            merged.extend(t for t in tags if t not in merged)
            self.edge_tags[(owner, target)] = tuple(merged)

    def package(self, name: str) -> Package:
        return self.nodes[name]

    def packages(self) -> List[Package]:
        return list(self.nodes.values())

    def visit_index(self) -> Dict[str, int]:
        return {name: i for i, name in enumerate(self.nodes)}

    def dependencies_of(self, name: str) -> List[str]:
        return list(self.edges.get(name, ()))

    def dependents_of(self, name: str) -> List[str]:
        return [owner for owner, deps in self.edges.items() if name in deps]

    def runtime_dependencies_of(self, name: str) -> List[str]:
        """Direct dependencies of ``name`` that are needed after installation."""
        out = []
        for target in self.edges.get(name, ()):
            tags = self.edge_tags.get((name, target), ())
            if not any(t in (DependencyTag.BUILD, DependencyTag.TEST) for t in tags):
                out.append(target)
        return out

    def without(self, names) -> "ResolutionGraph":
        """Copy of the graph with ``names`` (and edges touching them) removed."""
        drop = set(names)
        graph = ResolutionGraph(
            roots=[r for r in self.roots if r not in drop],
            warnings=list(self.warnings),
            dropped=dict(self.dropped),
            failed_roots={k: list(v) for k, v in self.failed_roots.items()},
        )
        for name, package in self.nodes.items():
            if name in drop:
                continue
            graph.nodes[name] = package
            graph.edges[name] = [d for d in self.edges.get(name, ()) if d not in drop]
            for target in graph.edges[name]:
                graph.edge_tags[(name, target)] = self.edge_tags[(name, target)]
        return graph


@dataclass
class InstallOrder:
    """Total installation order, partitioned without changing relative order."""
    packages: List[Package]
    dependencies: List[Package]
    requested: List[Package]

    def names(self) -> List[str]:
        return [p.full_name for p in self.packages]


@dataclass
class PlanEntry:
    """One unit of work for the build/fetch/link collaborators."""
    package: Package
    action: PlanAction
    installed_version: Optional[PkgVersion] = None
    runtime_dependencies: List[str] = field(default_factory=list)

    @property
    def pour_bottle(self) -> bool:
        return self.package.pour_bottle

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.package.full_name,
            "action": self.action.value,
            "version": str(self.package.pkg_version),
            "spec": self.package.active.value,
            "installed_version": str(self.installed_version) if self.installed_version else None,
            "pour_bottle": self.pour_bottle,
            "requested": self.package.requested,
            "options": sorted(self.package.options),
            "runtime_dependencies": list(self.runtime_dependencies),
        }


@dataclass
class ExecutionPlan:
    """Result of reconciling an install order against the Cellar."""
    order: List[Package] = field(default_factory=list)
    to_install: List[Package] = field(default_factory=list)
    to_upgrade: List[Package] = field(default_factory=list)
    to_reinstall: List[Package] = field(default_factory=list)
    already_satisfied: List[Package] = field(default_factory=list)
    entries: List[PlanEntry] = field(default_factory=list)
    pinned: List[Package] = field(default_factory=list)
    conflicts: List[ResolutionError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    failed_roots: Dict[str, List[ResolutionError]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def names(self, packages: List[Package]) -> List[str]:
        return [p.full_name for p in packages]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": self.names(self.order),
            "to_install": self.names(self.to_install),
            "to_upgrade": self.names(self.to_upgrade),
            "to_reinstall": self.names(self.to_reinstall),
            "already_satisfied": self.names(self.already_satisfied),
            "pinned": self.names(self.pinned),
            "entries": [e.to_dict() for e in self.entries],
            "conflicts": [c.message for c in self.conflicts],
            "warnings": list(self.warnings),
            "failed_roots": {
                root: [e.message for e in errs] for root, errs in self.failed_roots.items()
            },
        }
