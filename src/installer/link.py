"""Link collaborator: maintains the ``opt/<name>`` symlink of each package."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cellar.keg import Keg

logger = logging.getLogger(__name__)


class OptLinker:
    def __init__(self, opt_dir: Path):
        self.opt_dir = Path(opt_dir)

    def link(self, keg: Keg) -> Path:
        """Point ``opt/<name>`` at ``keg``, replacing any previous link atomically."""
        self.opt_dir.mkdir(parents=True, exist_ok=True)
        link = self.opt_dir / keg.name
        tmp = self.opt_dir / f".{keg.name}.tmp"
        if tmp.is_symlink():
            tmp.unlink()
        tmp.symlink_to(keg.path)
        os.replace(tmp, link)
        keg.linked = True
        logger.info("Linked %s", keg)
        return link

    def unlink(self, keg: Keg) -> bool:
        """Remove ``opt/<name>`` if it points at ``keg``; returns whether it did."""
        link = self.opt_dir / keg.name
        if not link.is_symlink() or link.resolve() != Path(keg.path).resolve():
            return False
        link.unlink()
        keg.linked = False
        logger.info("Unlinked %s", keg)
        return True
