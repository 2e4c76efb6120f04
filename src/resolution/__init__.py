"""Dependency resolution and installation planning."""

from .cache import ExpansionCache
from .errors import (
    CyclicDependency,
    DeclaredConflict,
    DependencyUnavailable,
    HeadUnavailable,
    InvalidDependencyTag,
    ResolutionError,
    ResolutionFailed,
    UnknownRequirementKind,
    UnsatisfiedRequirement,
)
from .graph import GraphBuilder, runtime_only
from .models import (
    Bottle,
    Conflict,
    DeclaredDependency,
    DeclaredRequirement,
    Dependency,
    DependencyTag,
    EdgeAction,
    ExecutionPlan,
    InstallOrder,
    Package,
    PackageSpec,
    PlanAction,
    PlanEntry,
    ResolutionGraph,
    ResolveOptions,
    SpecKind,
    SpecVariant,
)
from .platform import Platform
from .reconcile import reconcile
from .requirements import BuildContext
from .sequencer import order
from .service import ResolutionService
from .validation import ValidationResult, validate

__all__ = [
    "Bottle",
    "BuildContext",
    "Conflict",
    "CyclicDependency",
    "DeclaredConflict",
    "DeclaredDependency",
    "DeclaredRequirement",
    "Dependency",
    "DependencyTag",
    "DependencyUnavailable",
    "EdgeAction",
    "ExecutionPlan",
    "ExpansionCache",
    "GraphBuilder",
    "HeadUnavailable",
    "InstallOrder",
    "InvalidDependencyTag",
    "Package",
    "PackageSpec",
    "PlanAction",
    "PlanEntry",
    "Platform",
    "ResolutionError",
    "ResolutionFailed",
    "ResolutionGraph",
    "ResolutionService",
    "ResolveOptions",
    "SpecKind",
    "SpecVariant",
    "UnknownRequirementKind",
    "UnsatisfiedRequirement",
    "ValidationResult",
    "order",
    "reconcile",
    "validate",
]
