"""On-disk Cellar: discovery and registration of installed Kegs.

Layout below the root directory::

    Cellar/<name>/<pkgversion>/   Keg prefix with INSTALL_RECEIPT.json
    opt/<name>                    symlink to the linked Keg
    pinned/<name>                 symlink to the pinned Keg
    locks/<name>.lock             advisory lock file
    cache/                        downloads
    staging/                      temporary build and pour directories
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator, List, Optional

from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants

from .keg import Keg, Receipt

logger = logging.getLogger(__name__)


class CellarError(Exception):
    """Raised for invalid Cellar operations."""


class KegLocked(CellarError):
    """Another process holds the install lock of a package."""

    def __init__(self, name: str):
        super().__init__(f"{name} is being installed by another process")
        self.name = name


class Cellar:
    """Read and register Kegs below ``root``."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(os.path.expanduser(str(root or Constants.ROOT)))
        self.cellar = self.root / Constants.CELLAR_DIR
        self.opt = self.root / Constants.OPT_DIR
        self.pinned_dir = self.root / Constants.PINNED_DIR
        self.locks = self.root / Constants.LOCKS_DIR
        self.cache = self.root / Constants.CACHE_DIR
        self.staging = self.root / Constants.STAGING_DIR

    # -- discovery ------------------------------------------------------

    def _linked_path(self, name: str) -> Optional[Path]:
        link = self.opt / name
        return link.resolve() if link.is_symlink() else None

    def _pinned_path(self, name: str) -> Optional[Path]:
        link = self.pinned_dir / name
        return link.resolve() if link.is_symlink() else None

    def installed_kegs(self, name: str) -> List[Keg]:
        """All Kegs of ``name``, oldest first."""
        rack = self.cellar / name
        if not rack.is_dir():
            return []
        linked = self._linked_path(name)
        pinned = self._pinned_path(name)
        kegs = []
        for path in rack.iterdir():
            if not path.is_dir():
                continue
            keg = Keg.from_path(path, linked=path.resolve() == linked, pinned=path.resolve() == pinned)
            if keg is not None:
                kegs.append(keg)
        kegs.sort(key=lambda k: k.pkg_version)
        return kegs

    def installed_keg(self, name: str) -> Optional[Keg]:
        """The linked Keg of ``name`` if any, else the newest one."""
        name = name.rsplit("/", 1)[-1]
        kegs = self.installed_kegs(name)
        if not kegs:
            return None
        for keg in kegs:
            if keg.linked:
                return keg
        return kegs[-1]

    def all_installed(self) -> List[Keg]:
        """The current Keg of every installed package, by name."""
        if not self.cellar.is_dir():
            return []
        out = []
        for rack in sorted(self.cellar.iterdir()):
            if rack.is_dir():
                keg = self.installed_keg(rack.name)
                if keg is not None:
                    out.append(keg)
        return out

    def is_pinned(self, name: str) -> bool:
        return (self.pinned_dir / name).is_symlink()

    # -- registration ---------------------------------------------------

    def keg_path(self, package) -> Path:
        return self.cellar / package.name / str(package.pkg_version)

    def add_keg(self, package, source_dir: Path, receipt: Receipt) -> Keg:
        """Move a fully built prefix into place as the Keg of ``package``.

        The receipt is written before the rename so the Cellar never sees a
        Keg without one. An existing Keg at the same version is replaced.
        """
        source_dir = Path(source_dir)
        receipt.write(source_dir)
        target = self.keg_path(package)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists():
            shutil.rmtree(target)
        os.replace(source_dir, target)
        if is_debug_enabled(logger):
            logger.debug(
                "Keg registered",
                extra=extra_context(event="keg_add", component="cellar", target=str(target)),
            )
        keg = Keg.from_path(target, linked=target.resolve() == self._linked_path(package.name))
        if keg is None:
            raise CellarError(f"{target} is not a valid Keg directory")
        return keg

    def pin(self, name: str) -> Keg:
        keg = self.installed_keg(name)
        if keg is None:
            raise CellarError(f"{name} is not installed")
        self.pinned_dir.mkdir(parents=True, exist_ok=True)
        link = self.pinned_dir / keg.name
        if link.is_symlink():
            link.unlink()
        link.symlink_to(keg.path)
        keg.pinned = True
        return keg

    def unpin(self, name: str) -> None:
        link = self.pinned_dir / name.rsplit("/", 1)[-1]
        if not link.is_symlink():
            raise CellarError(f"{name} is not pinned")
        link.unlink()

    # -- locking and staging --------------------------------------------

    @contextlib.contextmanager
    def lock(self, name: str) -> Iterator[Path]:
        """Exclusive advisory lock on the install prefix of ``name``.

        Raises:
            KegLocked: when another process already holds the lock.
        """
        self.locks.mkdir(parents=True, exist_ok=True)
        path = self.locks / f"{name.rsplit('/', 1)[-1]}.lock"
        with path.open("a+", encoding="utf-8") as lf:
            try:
                fcntl.flock(lf.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as exc:
                raise KegLocked(name) from exc
            try:
                yield path
            finally:
                fcntl.flock(lf.fileno(), fcntl.LOCK_UN)

    def staging_dir(self, name: str) -> Path:
        """Fresh temporary directory for building or pouring ``name``."""
        self.staging.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{name.rsplit('/', 1)[-1]}-", dir=self.staging))

    def download_dir(self) -> Path:
        self.cache.mkdir(parents=True, exist_ok=True)
        return self.cache
