"""Build collaborator: runs a formula's install commands against its source."""

from __future__ import annotations

import logging
import os
import subprocess
import tarfile
from pathlib import Path

from common.logging_utils import Timer, extra_context, is_debug_enabled
from resolution.models import Package

from .pour import extract

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """A source build failed; ``output`` holds the tail of its log."""

    def __init__(self, package: str, reason: str, output: str = ""):
        super().__init__(f"{package}: {reason}")
        self.package = package
        self.reason = reason
        self.output = output


class ScriptBuilder:
    """Extracts the source archive and runs the ``install`` commands.

    Each command runs through the shell with ``PREFIX`` pointing at the
    staging prefix and ``KEGPLAN_OPTIONS`` listing the active options, in the
    top-level directory of the unpacked source.
    """

    def __init__(self, timeout: int = 3600):
        self.timeout = timeout

    def build(self, package: Package, archive: Path, staging: Path) -> Path:
        if not package.spec.install:
            raise BuildError(package.full_name, "formula has no install commands")
        staging = Path(staging)
        source = staging / "src"
        prefix = staging / package.name / str(package.pkg_version)
        prefix.mkdir(parents=True)
        try:
            extract(Path(archive), source)
        except (tarfile.TarError, OSError) as exc:
            raise BuildError(package.full_name, f"cannot unpack source: {exc}") from exc

        entries = [p for p in source.iterdir()]
        workdir = entries[0] if len(entries) == 1 and entries[0].is_dir() else source

        env = dict(os.environ)
        env["PREFIX"] = str(prefix)
        env["KEGPLAN_OPTIONS"] = " ".join(sorted(package.options))

        with Timer() as timer:
            for command in package.spec.install:
                logger.info("==> %s", command)
                try:
                    proc = subprocess.run(
                        command,
                        shell=True,
                        cwd=workdir,
                        env=env,
                        stdout=subprocess.PIPE,
                        stderr=subprocess.STDOUT,
                        text=True,
                        timeout=self.timeout,
                        check=False,
                    )
                except subprocess.TimeoutExpired as exc:
                    raise BuildError(package.full_name, f"'{command}' timed out after {self.timeout}s") from exc
                if proc.returncode != 0:
                    tail = "\n".join((proc.stdout or "").splitlines()[-20:])
                    raise BuildError(package.full_name, f"'{command}' exited with {proc.returncode}", tail)

        if is_debug_enabled(logger):
            logger.debug(
                "Source build finished",
                extra=extra_context(
                    event="build",
                    component="script_builder",
                    outcome="success",
                    package=package.full_name,
                    duration_ms=timer.duration_ms(),
                ),
            )
        return prefix
