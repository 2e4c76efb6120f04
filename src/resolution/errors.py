"""Error taxonomy of the resolution core.

Every error names the offending package(s) and a specific reason so a failed
resolution can report each problem instead of a bare "resolution failed".
Validation collects these as values; only ``ResolutionFailed`` and the
errors the graph builder cannot recover from are raised.
"""

from typing import List, Optional, Sequence


class ResolutionError(Exception):
    """Base class for all resolution problems."""

    #: Whether the problem prevents a plan from being produced.
    fatal = True

    def __init__(self, message: str, package: Optional[str] = None):
        super().__init__(message)
        self.package = package

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class DependencyUnavailable(ResolutionError):
    """A named dependency has no resolvable spec."""

    def __init__(self, name: str, requested_by: Optional[str] = None, reason: str = "no formula with this name"):
        if requested_by:
            msg = f"{name}: {reason} (required by {requested_by})"
        else:
            msg = f"{name}: {reason}"
        super().__init__(msg, package=name)
        self.name = name
        self.requested_by = requested_by
        self.reason = reason


class HeadUnavailable(DependencyUnavailable):
    """HEAD was requested for a package that declares no head spec."""

    def __init__(self, name: str):
        super().__init__(name, reason="no HEAD spec is defined")


class CyclicDependency(ResolutionError):
    """The dependency graph contains a cycle; ``path`` starts and ends on the same node."""

    def __init__(self, path: Sequence[str]):
        self.path: List[str] = list(path)
        super().__init__(
            "dependency cycle: " + " -> ".join(self.path),
            package=self.path[0] if self.path else None,
        )


class DeclaredConflict(ResolutionError):
    """Two packages that declare each other mutually exclusive are both slated."""

    fatal = False

    def __init__(self, a: str, b: str, reason: Optional[str] = None, installed: bool = False):
        self.a = a
        self.b = b
        self.reason = reason
        self.installed = installed
        where = "installed and linked " if installed else ""
        msg = f"{a} conflicts with {where}{b}"
        if reason:
            msg += f" (because {reason})"
        super().__init__(msg, package=a)


class UnsatisfiedRequirement(ResolutionError):
    """A fatal requirement of a package in the graph is not met."""

    def __init__(self, package: str, requirement):
        self.requirement = requirement
        super().__init__(
            f"{package}: requirement not satisfied: {requirement.display()}",
            package=package,
        )


class InvalidDependencyTag(ResolutionError):
    """A declared dependency or requirement carries a tag outside the fixed set."""

    def __init__(self, tag: str, owner: Optional[str] = None, target: Optional[str] = None):
        self.tag = tag
        self.owner = owner
        self.target = target
        what = f" on {target}" if target else ""
        super().__init__(f"{owner or '<unknown>'}: invalid dependency tag {tag!r}{what}", package=owner)


class UnknownRequirementKind(ResolutionError):
    """A declared requirement names a kind no Requirement class implements."""

    def __init__(self, kind: str, owner: Optional[str] = None):
        self.kind = kind
        self.owner = owner
        super().__init__(f"{owner or '<unknown>'}: unknown requirement kind {kind!r}", package=owner)


class ResolutionFailed(ResolutionError):
    """Aggregate of every fatal problem found by one resolve call."""

    def __init__(self, errors: Sequence[ResolutionError]):
        self.errors: List[ResolutionError] = list(errors)
        lines = [f"  {err.message}" for err in self.errors]
        super().__init__("resolution failed:\n" + "\n".join(lines))

    def packages(self) -> List[str]:
        """Names of every package that contributed an error, in report order."""
        seen: List[str] = []
        for err in self.errors:
            if err.package and err.package not in seen:
                seen.append(err.package)
        return seen
