"""Pour collaborator: unpacks bottle tarballs into a staging directory."""

from __future__ import annotations

import logging
import os
import tarfile
from pathlib import Path
from typing import List

from resolution.models import Package

logger = logging.getLogger(__name__)


class PourError(Exception):
    """A bottle archive could not be unpacked into a Keg prefix."""

    def __init__(self, package: str, reason: str):
        super().__init__(f"{package}: {reason}")
        self.package = package
        self.reason = reason


def _inside(path: str, root: str) -> bool:
    return os.path.commonpath([path, root]) == root


def safe_members(tar: tarfile.TarFile, dest: Path) -> List[tarfile.TarInfo]:
    """Members that stay inside ``dest``; anything else is logged and dropped.

    Absolute names, ``..`` escapes, links pointing outside ``dest`` and
    special files are rejected. File modes lose high bits and group/other
    write bits.
    """
    root = os.path.realpath(dest)
    kept = []
    for member in tar.getmembers():
        if member.name.startswith(("/", os.sep)):
            logger.warning("Rejecting absolute path in archive: %s", member.name)
            continue
        target = os.path.realpath(os.path.join(root, member.name))
        if not _inside(target, root):
            logger.warning("Rejecting path outside of prefix: %s", member.name)
            continue
        if not (member.isreg() or member.isdir() or member.issym() or member.islnk()):
            logger.warning("Rejecting special file in archive: %s", member.name)
            continue
        if member.issym() or member.islnk():
            if os.path.isabs(member.linkname):
                logger.warning("Rejecting absolute link in archive: %s -> %s", member.name, member.linkname)
                continue
            base = os.path.join(root, os.path.dirname(member.name)) if member.issym() else root
            if not _inside(os.path.realpath(os.path.join(base, member.linkname)), root):
                logger.warning("Rejecting link outside of prefix: %s -> %s", member.name, member.linkname)
                continue
        if member.mode is not None:
            member.mode &= 0o755
            if member.isreg():
                member.mode |= 0o600
        kept.append(member)
    return kept


def extract(archive: Path, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    # The "data" filter runs after safe_members where tarfile provides it.
    kwargs = {"filter": "data"} if hasattr(tarfile, "data_filter") else {}
    with tarfile.open(archive, "r:*") as tar:
        tar.extractall(dest, members=safe_members(tar, dest), **kwargs)


class BottlePourer:
    """Pours a bottle: ``<name>/<version>/...`` inside the tarball becomes the Keg prefix."""

    def pour(self, package: Package, archive: Path, staging: Path) -> Path:
        try:
            extract(Path(archive), Path(staging))
        except (tarfile.TarError, OSError) as exc:
            raise PourError(package.full_name, f"cannot unpack {Path(archive).name}: {exc}") from exc
        prefix = Path(staging) / package.name / str(package.pkg_version)
        if not prefix.is_dir():
            # Bottles built before a revision bump still carry the bare version
            prefix = Path(staging) / package.name / str(package.version)
        if not prefix.is_dir():
            raise PourError(package.full_name, f"bottle does not contain {package.name}/{package.pkg_version}")
        logger.info("Poured %s %s", package.full_name, package.pkg_version)
        return prefix
