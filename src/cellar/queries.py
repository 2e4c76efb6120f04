"""Questions about installed state: dependents, missing and outdated Kegs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

from resolution.models import Package
from resolution.reconcile import compare_installed
from versioning.models import PkgVersion

from .cellar import Cellar
from .keg import Keg


def _short(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def dependents(cellar: Cellar, name: str) -> List[Keg]:
    """Installed Kegs whose receipt lists ``name`` as a runtime dependency."""
    target = _short(name)
    out = []
    for keg in cellar.all_installed():
        if keg.name == target:
            continue
        deps = keg.runtime_dependencies or []
        if any(_short(d.full_name) == target for d in deps):
            out.append(keg)
    return out


def missing(cellar: Cellar) -> Dict[str, List[str]]:
    """Runtime dependencies recorded in receipts that are no longer installed."""
    installed = {keg.name for keg in cellar.all_installed()}
    out: Dict[str, List[str]] = {}
    for keg in cellar.all_installed():
        absent = [d.full_name for d in keg.runtime_dependencies or [] if _short(d.full_name) not in installed]
        if absent:
            out[keg.name] = absent
    return out


@dataclass
class OutdatedKeg:
    keg: Keg
    latest: PkgVersion

    @property
    def pinned(self) -> bool:
        return self.keg.pinned

    def __str__(self) -> str:
        suffix = " [pinned]" if self.pinned else ""
        return f"{self.keg.name} ({self.keg.pkg_version}) < {self.latest}{suffix}"


def outdated(cellar: Cellar, repository) -> List[OutdatedKeg]:
    """Installed Kegs older than the formula currently available.

    HEAD Kegs and Kegs whose formula is gone are never reported.
    """
    out = []
    for keg in cellar.all_installed():
        if keg.is_head:
            continue
        spec = repository.lookup(keg.full_name) or repository.lookup(keg.name)
        if spec is None:
            continue
        package = Package(spec=spec)
        if compare_installed(keg, package) < 0:
            out.append(OutdatedKeg(keg=keg, latest=package.pkg_version))
    return out
