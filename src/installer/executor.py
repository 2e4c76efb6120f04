"""Plan executor: drives fetch, pour/build and link for an ExecutionPlan.

Entries run strictly in plan order. A failure stops the run; Kegs completed
before it stay installed, and the failing entry's staging directory is
always removed, so re-resolving afterwards resumes with what is left.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from cellar.cellar import Cellar, CellarError
from cellar.keg import Keg, Receipt, RuntimeDependency
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants
from resolution.models import ExecutionPlan, Package, PlanAction, PlanEntry

from .build import BuildError
from .fetch import FetchError
from .pour import PourError

logger = logging.getLogger(__name__)


class InstallFailed(Exception):
    """An entry of the plan could not be installed."""

    def __init__(self, package: str, cause: Exception, completed: Optional[List[Keg]] = None):
        super().__init__(f"{package}: installation failed: {cause}")
        self.package = package
        self.cause = cause
        self.completed = list(completed or [])


class PlanExecutor:
    def __init__(self, cellar: Cellar, fetcher, pourer, builder, linker, link: Optional[bool] = None):
        self.cellar = cellar
        self.fetcher = fetcher
        self.pourer = pourer
        self.builder = builder
        self.linker = linker
        self.link = Constants.INSTALL_LINK if link is None else link

    def execute(self, plan: ExecutionPlan) -> List[Keg]:
        """Install every entry of ``plan``; returns the new Kegs in order.

        Raises:
            InstallFailed: for the first entry that could not be fetched,
                built, poured or registered.
        """
        entries = list(plan.entries)
        if not entries:
            logger.info("Nothing to install")
            return []

        try:
            archives = self.fetcher.fetch_all([e.package for e in entries])
        except FetchError as exc:
            raise InstallFailed(exc.package, exc) from exc

        versions: Dict[str, str] = {p.full_name: str(p.pkg_version) for p in plan.order}
        completed: List[Keg] = []
        for entry, archive in zip(entries, archives):
            try:
                with Timer() as timer:
                    keg = self._install_entry(entry, Path(archive), versions)
            except (BuildError, PourError, CellarError, OSError) as exc:
                logger.error("Failed to install %s: %s", entry.package.full_name, exc)
                raise InstallFailed(entry.package.full_name, exc, completed) from exc
            completed.append(keg)
            if is_debug_enabled(logger):
                logger.debug(
                    "Plan entry installed",
                    extra=extra_context(
                        event="install",
                        component="plan_executor",
                        action=entry.action.value,
                        outcome="success",
                        target=entry.package.full_name,
                        duration_ms=timer.duration_ms(),
                    ),
                )
        return completed

    def _install_entry(self, entry: PlanEntry, archive: Path, versions: Dict[str, str]) -> Keg:
        package: Package = entry.package
        verb = {
            PlanAction.INSTALL: "Installing",
            PlanAction.UPGRADE: "Upgrading",
            PlanAction.REINSTALL: "Reinstalling",
        }[entry.action]
        logger.info("%s %s %s", verb, package.full_name, package.pkg_version)

        with self.cellar.lock(package.name):
            previous = self.cellar.installed_keg(package.name)
            staging = self.cellar.staging_dir(package.name)
            try:
                if entry.pour_bottle:
                    prefix = self.pourer.pour(package, archive, staging)
                else:
                    prefix = self.builder.build(package, archive, staging)
                runtime = [RuntimeDependency(full_name=d, version=versions.get(d, "")) for d in entry.runtime_dependencies]
                keg = self.cellar.add_keg(package, prefix, Receipt.for_package(package, runtime))
            finally:
                shutil.rmtree(staging, ignore_errors=True)

            if self.link and not package.keg_only:
                if previous is not None and previous.path != keg.path:
                    self.linker.unlink(previous)
                self.linker.link(keg)
            elif package.keg_only:
                logger.info("%s is keg-only and was not linked: %s", package.full_name, package.spec.keg_only)
        return keg
