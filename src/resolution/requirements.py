"""Requirement model: classification of dependency edges and requirements.

Pure functions over immutable declarations. Given a package and the build
context of the pass, decide which declared edges are required and which
non-package requirements apply. The graph builder consumes the result.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple, Type

from .errors import UnknownRequirementKind
from .models import DeclaredDependency, DeclaredRequirement, Dependency, DependencyTag, Package
from .platform import Platform, os_version_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildContext:
    """Pass-wide inputs to classification that are not owned by a package."""
    platform: Platform
    skip_optional_names: FrozenSet[str] = frozenset()

    def fingerprint(self) -> str:
        skip = ",".join(sorted(self.skip_optional_names))
        return f"{self.platform.bottle_tag}|{self.platform.os_version}|skip={skip}"


def parse_tags(raw_tags, owner: str, target: str = None) -> Tuple[DependencyTag, ...]:
    """Parse raw tags, dedupe them and drop a redundant ``required``."""
    tags: List[DependencyTag] = []
    for raw in raw_tags or ():
        tag = DependencyTag.parse(raw, owner=owner, target=target)
        if tag not in tags:
            tags.append(tag)
    if len(tags) > 1 and DependencyTag.REQUIRED in tags:
        tags.remove(DependencyTag.REQUIRED)
    return tuple(tags) or (DependencyTag.REQUIRED,)


def classify_dependency(decl: DeclaredDependency, owner: Package) -> Dependency:
    """Turn a raw declaration into a classified edge (raises InvalidDependencyTag)."""
    tags = parse_tags(decl.tags, owner.full_name, decl.name)
    return Dependency(owner=owner.full_name, name=decl.name, tags=tags, since=decl.since)


def _tag_gate_passes(
    tag: DependencyTag, name: str, option: str, owner: Package, context: BuildContext
) -> bool:
    if tag is DependencyTag.BUILD:
        return owner.build_from_source
    if tag is DependencyTag.TEST:
        return owner.include_test
    declined = name in context.skip_optional_names or option in context.skip_optional_names
    if tag is DependencyTag.OPTIONAL:
        return not declined and f"with-{option}" in owner.options
    if tag is DependencyTag.RECOMMENDED:
        return not declined and f"without-{option}" not in owner.options
    return True


def dependency_required(dep: Dependency, owner: Package, context: BuildContext) -> bool:
    """Decide whether ``dep`` is part of this resolution.

    Every tag of the edge must pass its gate: ``build`` needs the owner to be
    built from source, ``test`` needs its test suite to run, ``optional``
    needs ``with-<dep>``, ``recommended`` must not be declined, and
    ``uses_from_os`` applies only where the OS does not provide the
    capability (any non-macOS host, or a macOS older than ``since``).
    """
    for tag in dep.tags:
        if tag is DependencyTag.USES_FROM_OS:
            plat = context.platform
            if plat.os == "macos" and (dep.since is None or not plat.os_version_below(dep.since)):
                return False
            continue
        if not _tag_gate_passes(tag, dep.name, dep.option_name, owner, context):
            return False
    return True


def required_dependencies(owner: Package, context: BuildContext) -> List[Dependency]:
    """Classified edges of ``owner`` that apply in ``context``, in declaration order.

    Duplicate declarations of the same target and tags are collapsed to the
    first one.
    """
    seen = set()
    out: List[Dependency] = []
    for decl in owner.declared_dependencies:
        dep = classify_dependency(decl, owner)
        key = (dep.name, dep.tags)
        if key in seen:
            continue
        seen.add(key)
        if dependency_required(dep, owner, context):
            out.append(dep)
    return out


# ---------------------------------------------------------------------------
# Requirements
# ---------------------------------------------------------------------------


class Requirement:
    """A non-package precondition of a package."""

    kind = ""

    def __init__(self, owner: str, decl: DeclaredRequirement, tags: Tuple[DependencyTag, ...]):
        self.owner = owner
        self.decl = decl
        self.tags = tags
        self.fatal = decl.fatal

    def satisfied(self, platform: Platform) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        return self.kind

    def display(self) -> str:
        text = self.describe()
        extra = [t.value for t in self.tags if t is not DependencyTag.REQUIRED]
        return f"{text} [{', '.join(extra)}]" if extra else text

    def applies(self, owner: Package, context: BuildContext) -> bool:
        """Whether the tag context of the declaration is active for ``owner``."""
        option = str(self.decl.param("option", self.kind))
        return all(
            _tag_gate_passes(tag, self.kind, option, owner, context)
            for tag in self.tags
            if tag is not DependencyTag.USES_FROM_OS
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.display()} of {self.owner}>"


class MacOSRequirement(Requirement):
    kind = "macos"

    def satisfied(self, platform: Platform) -> bool:
        return platform.os == "macos"

    def describe(self) -> str:
        return "macOS"


class LinuxRequirement(Requirement):
    kind = "linux"

    def satisfied(self, platform: Platform) -> bool:
        return platform.os == "linux"

    def describe(self) -> str:
        return "Linux"


class ArchRequirement(Requirement):
    kind = "arch"

    def satisfied(self, platform: Platform) -> bool:
        return platform.arch == str(self.decl.param("arch", "")).lower()

    def describe(self) -> str:
        return f"{self.decl.param('arch')} architecture"


class MinimumOSRequirement(Requirement):
    """macOS at or above a version; other systems are unaffected."""

    kind = "min_os_version"

    def satisfied(self, platform: Platform) -> bool:
        if platform.os != "macos":
            return True
        return platform.os_version_at_least(self.decl.param("version"))

    def describe(self) -> str:
        return f"macOS >= {os_version_number(self.decl.param('version'))}"


class MaximumOSRequirement(Requirement):
    """macOS at or below a version; other systems are unaffected."""

    kind = "max_os_version"

    def satisfied(self, platform: Platform) -> bool:
        if platform.os != "macos":
            return True
        bound = self.decl.param("version")
        return platform.os_version_below(bound) or os_version_number(platform.os_version) == os_version_number(bound)

    def describe(self) -> str:
        return f"macOS <= {os_version_number(self.decl.param('version'))}"


class ExecutableRequirement(Requirement):
    """An external tool must be found on PATH."""

    kind = "executable"

    def satisfied(self, platform: Platform) -> bool:
        return shutil.which(str(self.decl.param("command", ""))) is not None

    def describe(self) -> str:
        return f"{self.decl.param('command')} executable"


REQUIREMENT_TYPES: Dict[str, Type[Requirement]] = {
    cls.kind: cls
    for cls in (
        MacOSRequirement,
        LinuxRequirement,
        ArchRequirement,
        MinimumOSRequirement,
        MaximumOSRequirement,
        ExecutableRequirement,
    )
}


def build_requirement(decl: DeclaredRequirement, owner: Package) -> Requirement:
    """Instantiate the Requirement class registered for ``decl.kind``."""
    cls = REQUIREMENT_TYPES.get(str(decl.kind).lower())
    if cls is None:
        raise UnknownRequirementKind(decl.kind, owner=owner.full_name)
    tags = parse_tags(decl.tags, owner.full_name, decl.kind)
    return cls(owner.full_name, decl, tags)


def declared_requirements(owner: Package) -> List[Requirement]:
    """All requirements of the owner's active spec, regardless of context."""
    return [build_requirement(decl, owner) for decl in owner.declared_requirements]
