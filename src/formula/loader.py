"""Formula repository: loads formula records and answers spec lookups.

Formula files (``*.yml``, ``*.yaml``, ``*.json``) live below one or more
root directories. Files placed under ``<root>/<user>/<repo>/`` belong to the
``user/repo`` tap; everything else belongs to the core tap. Aliases and
short names are flattened to the canonical full name here so the resolver
only ever sees canonical identities.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import yaml

from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from resolution.models import (
    Bottle,
    Conflict,
    DeclaredDependency,
    DeclaredRequirement,
    PackageSpec,
    SpecVariant,
)
from versioning.parser import is_valid_tap, normalize_identifier, tokenize_rightmost_slash

from .schema import FormulaSchemaError, validate_record

logger = logging.getLogger(__name__)

_REQUIREMENT_KEYS = ("kind", "tag", "tags", "fatal")


def _tags(entry: Mapping[str, Any]) -> Tuple[str, ...]:
    tags: List[str] = []
    if entry.get("tag"):
        tags.append(str(entry["tag"]))
    tags.extend(str(t) for t in entry.get("tags") or ())
    return tuple(tags)


def _dependencies(entries: Iterable[Any]) -> Tuple[DeclaredDependency, ...]:
    out = []
    for entry in entries or ():
        if isinstance(entry, str):
            out.append(DeclaredDependency(name=normalize_identifier(entry)))
            continue
        since = entry.get("since")
        out.append(
            DeclaredDependency(
                name=normalize_identifier(entry["name"]),
                tags=_tags(entry),
                since=str(since) if since is not None else None,
            )
        )
    return tuple(out)


def _requirements(entries: Iterable[Mapping[str, Any]]) -> Tuple[DeclaredRequirement, ...]:
    out = []
    for entry in entries or ():
        params = tuple(sorted((k, v) for k, v in entry.items() if k not in _REQUIREMENT_KEYS))
        out.append(
            DeclaredRequirement(
                kind=str(entry["kind"]),
                params=params,
                tags=_tags(entry),
                fatal=bool(entry.get("fatal", True)),
            )
        )
    return tuple(out)


def _reason(value: Any, default: str) -> Optional[str]:
    """Normalise a ``bool | str`` flag into an optional reason string."""
    if value is None or value is False:
        return None
    if value is True:
        return default
    return str(value)


def record_to_spec(record: Mapping[str, Any], tap: Optional[str] = None, source: Optional[str] = None) -> PackageSpec:
    """Validate one record and build its immutable PackageSpec.

    Top-level dependencies and requirements apply to every spec; the ``head``
    block adds its own on top for the head spec.
    """
    validate_record(record, source=source)
    deps = _dependencies(record.get("dependencies"))
    reqs = _requirements(record.get("requirements"))
    bottles = tuple(
        Bottle(tag=tag, url=b["url"], sha256=b["sha256"].lower())
        for tag, b in (record.get("bottles") or {}).items()
    )
    stable = SpecVariant(
        version=str(record["version"]),
        url=record.get("url"),
        sha256=record.get("sha256"),
        dependencies=deps,
        requirements=reqs,
        bottles=bottles,
    )
    head = None
    if record.get("head"):
        raw = record["head"]
        head = SpecVariant(
            version=str(raw.get("version") or "HEAD"),
            url=raw["url"],
            dependencies=deps + _dependencies(raw.get("dependencies")),
            requirements=reqs + _requirements(raw.get("requirements")),
        )

    conflicts = []
    for entry in record.get("conflicts") or ():
        if isinstance(entry, str):
            conflicts.append(Conflict(name=normalize_identifier(entry)))
        else:
            conflicts.append(Conflict(name=normalize_identifier(entry["name"]), reason=entry.get("because")))

    return PackageSpec(
        name=record["name"],
        stable=stable,
        tap=tap,
        head=head,
        revision=int(record.get("revision", 0)),
        version_scheme=int(record.get("version_scheme", 0)),
        desc=record.get("desc"),
        homepage=record.get("homepage"),
        keg_only=_reason(record.get("keg_only"), "provided by the system"),
        deprecated=_reason(record.get("deprecated"), "it is no longer maintained"),
        disabled=_reason(record.get("disabled"), "it is no longer maintained"),
        aliases=tuple(normalize_identifier(a) for a in record.get("aliases") or ()),
        options=tuple(record.get("options") or ()),
        conflicts=tuple(conflicts),
        install=tuple(record.get("install") or ()),
        source_path=source,
    )


def read_record(path: Path) -> Any:
    """Parse a formula file as JSON or YAML depending on its suffix."""
    with open(path, "r", encoding="utf-8") as fh:
        if path.suffix == ".json":
            return json.load(fh)
        return yaml.safe_load(fh)


class FormulaRepository:
    """In-memory index of PackageSpecs keyed by full name.

    ``lookup`` accepts a name, a full name or an alias and returns None when
    nothing matches.
    """

    def __init__(self) -> None:
        self._specs: Dict[str, PackageSpec] = {}
        self._by_name: Dict[str, List[str]] = {}
        self._aliases: Dict[str, str] = {}

    @classmethod
    def from_paths(cls, paths: Optional[Iterable[str]] = None) -> "FormulaRepository":
        repo = cls()
        for root in paths if paths is not None else Constants.FORMULA_PATHS:
            repo.load_path(root)
        return repo

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]], tap: Optional[str] = None) -> "FormulaRepository":
        repo = cls()
        for record in records:
            repo.add(record_to_spec(record, tap=tap))
        return repo

    def add(self, spec: PackageSpec) -> None:
        full = spec.full_name
        if full in self._specs:
            logger.warning("Duplicate formula %s from %s ignored", full, spec.source_path or "<record>")
            return
        self._specs[full] = spec
        self._by_name.setdefault(spec.name, []).append(full)
        for alias in spec.aliases:
            self._aliases.setdefault(alias, full)

    def load_path(self, root: str) -> int:
        """Load every formula file below ``root``; returns the number loaded.

        Raises:
            FormulaSchemaError: when a file does not hold a valid record.
        """
        base = Path(os.path.expanduser(str(root)))
        if not base.is_dir():
            logger.warning("Formula path %s does not exist", base)
            return 0
        count = 0
        for path in sorted(base.rglob("*")):
            if path.suffix not in Constants.FORMULA_SUFFIXES or not path.is_file():
                continue
            parts = path.relative_to(base).parts
            tap = None
            if len(parts) >= 3:
                candidate = f"{parts[0]}/{parts[1]}".lower()
                tap = candidate if is_valid_tap(candidate) else None
            try:
                record = read_record(path)
            except (OSError, ValueError, yaml.YAMLError) as exc:
                raise FormulaSchemaError(f"unreadable formula file: {exc}", source=str(path)) from exc
            self.add(record_to_spec(record, tap=tap, source=str(path)))
            count += 1
        if is_debug_enabled(logger):
            logger.debug(
                "Loaded formula path",
                extra=extra_context(event="formula_load", component="formula_repository", target=str(base), count=count),
            )
        return count

    def lookup(self, name: str) -> Optional[PackageSpec]:
        """Find the spec for a name, full name or alias."""
        ident = normalize_identifier(name)
        if ident in self._specs:
            return self._specs[ident]
        tap, short = tokenize_rightmost_slash(ident)
        if tap is not None:
            # a fully qualified name only matches that tap
            return None
        candidates = self._by_name.get(short)
        if candidates:
            # core formulae win over tapped ones of the same name
            for full in candidates:
                if "/" not in full:
                    return self._specs[full]
            if len(candidates) > 1:
                logger.warning("%s is ambiguous (%s); using %s", short, ", ".join(candidates), candidates[0])
            return self._specs[candidates[0]]
        alias = self._aliases.get(short)
        return self._specs.get(alias) if alias else None

    def names(self) -> List[str]:
        return sorted(self._specs)

    def __iter__(self) -> Iterator[PackageSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None
