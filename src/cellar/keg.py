"""Installed Kegs and their install receipts."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from constants import Constants
from versioning.models import PkgVersion
from versioning.parser import parse_keg_dirname

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuntimeDependency:
    full_name: str
    version: str = ""


@dataclass
class Receipt:
    """Install receipt stored as ``INSTALL_RECEIPT.json`` inside a Keg."""

    name: str
    full_name: str
    version: str
    revision: int = 0
    version_scheme: int = 0
    spec: str = "stable"
    poured_from_bottle: bool = False
    installed_on_request: bool = False
    installed_as_dependency: bool = False
    used_options: List[str] = field(default_factory=list)
    runtime_dependencies: Optional[List[RuntimeDependency]] = None
    time: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Receipt":
        deps = data.get("runtime_dependencies")
        runtime = None
        if isinstance(deps, list):
            runtime = [
                RuntimeDependency(full_name=str(d.get("full_name", "")), version=str(d.get("version", "")))
                for d in deps
                if isinstance(d, dict) and d.get("full_name")
            ]
        return cls(
            name=str(data["name"]),
            full_name=str(data.get("full_name") or data["name"]),
            version=str(data["version"]),
            revision=int(data.get("revision") or 0),
            version_scheme=int(data.get("version_scheme") or 0),
            spec=str(data.get("spec") or "stable"),
            poured_from_bottle=bool(data.get("poured_from_bottle")),
            installed_on_request=bool(data.get("installed_on_request")),
            installed_as_dependency=bool(data.get("installed_as_dependency")),
            used_options=[str(o) for o in data.get("used_options") or ()],
            runtime_dependencies=runtime,
            time=data.get("time"),
        )

    @classmethod
    def for_package(cls, package, runtime_dependencies: List[RuntimeDependency]) -> "Receipt":
        """Receipt describing a package as it is being installed now."""
        return cls(
            name=package.name,
            full_name=package.full_name,
            version=str(package.version),
            revision=package.revision,
            version_scheme=package.version_scheme,
            spec=package.active.value,
            poured_from_bottle=package.pour_bottle,
            installed_on_request=package.requested,
            installed_as_dependency=not package.requested,
            used_options=sorted(package.options),
            runtime_dependencies=list(runtime_dependencies),
            time=time.time(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def write(self, keg_path: Path) -> Path:
        path = Path(keg_path) / Constants.RECEIPT_FILE
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2, sort_keys=True)
        tmp.replace(path)
        return path

    @classmethod
    def read(cls, keg_path: Path) -> Optional["Receipt"]:
        path = Path(keg_path) / Constants.RECEIPT_FILE
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return cls.from_dict(json.load(fh))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Unreadable install receipt %s: %s", path, exc)
            return None


@dataclass
class Keg:
    """A versioned installation of a package below the Cellar."""

    name: str
    path: Path
    pkg_version: PkgVersion
    receipt: Optional[Receipt] = None
    linked: bool = False
    pinned: bool = False

    @classmethod
    def from_path(cls, path: Path, linked: bool = False, pinned: bool = False) -> Optional["Keg"]:
        """Read a Keg directory; None when the directory name is not a version."""
        path = Path(path)
        pkg_version = parse_keg_dirname(path.name)
        if pkg_version is None:
            return None
        receipt = Receipt.read(path)
        if receipt is None:
            logger.warning("Keg %s has no install receipt; using defaults", path)
        return cls(name=path.parent.name, path=path, pkg_version=pkg_version, receipt=receipt,
                   linked=linked, pinned=pinned)

    @property
    def full_name(self) -> str:
        return self.receipt.full_name if self.receipt else self.name

    @property
    def version(self):
        return self.pkg_version.version

    @property
    def version_scheme(self) -> int:
        return self.receipt.version_scheme if self.receipt else 0

    @property
    def is_head(self) -> bool:
        return self.pkg_version.is_head or (self.receipt is not None and self.receipt.spec == "head")

    @property
    def used_options(self) -> List[str]:
        return list(self.receipt.used_options) if self.receipt else []

    @property
    def runtime_dependencies(self) -> Optional[List[RuntimeDependency]]:
        return self.receipt.runtime_dependencies if self.receipt else None

    @property
    def installed_on_request(self) -> bool:
        return bool(self.receipt and self.receipt.installed_on_request)

    @property
    def poured_from_bottle(self) -> bool:
        return bool(self.receipt and self.receipt.poured_from_bottle)

    def __str__(self) -> str:
        return f"{self.name} {self.pkg_version}"
