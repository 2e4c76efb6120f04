"""Fetch collaborator: downloads bottles and source archives into the cache."""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import urllib.parse
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from common.http_client import DownloadError, download_file
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from resolution.models import Package
from resolution.platform import Platform

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A bottle or source archive could not be obtained."""

    def __init__(self, package: str, reason: str):
        super().__init__(f"{package}: {reason}")
        self.package = package
        self.reason = reason


class ChecksumMismatch(FetchError):
    def __init__(self, package: str, path: Path, expected: str, actual: str):
        super().__init__(package, f"SHA256 mismatch for {path.name}: expected {expected}, got {actual}")
        self.path = path
        self.expected = expected
        self.actual = actual


def sha256_of(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(Constants.DOWNLOAD_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _archive_suffix(url: str) -> str:
    path = urllib.parse.urlsplit(url).path
    for suffix in (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".zip"):
        if path.endswith(suffix):
            return suffix
    return ".tar.gz"


class BottleFetcher:
    """Downloads the artifact each plan entry needs.

    Poured packages get the bottle for the platform tag; packages built
    from source get the source archive of their active spec.
    """

    def __init__(self, cache_dir: Path, platform: Platform, max_workers: Optional[int] = None):
        self.cache_dir = Path(cache_dir)
        self.platform = platform
        self.max_workers = max_workers or Constants.FETCH_MAX_CONCURRENCY

    def artifact_for(self, package: Package) -> Tuple[str, Optional[str], str]:
        """Return ``(url, sha256, cache filename)`` for ``package``."""
        if package.pour_bottle:
            bottle = package.bottle_for(self.platform.bottle_tag)
            if bottle is None:
                raise FetchError(package.full_name, f"no bottle for {self.platform.bottle_tag}")
            filename = f"{package.name}--{package.pkg_version}.{bottle.tag}.bottle.tar.gz"
            return bottle.url, bottle.sha256, filename
        variant = package.variant
        if not variant.url:
            raise FetchError(package.full_name, "no source URL")
        filename = f"{package.name}--{package.version}{_archive_suffix(variant.url)}"
        return variant.url, variant.sha256, filename

    @staticmethod
    def verify(path: Path, checksum: Optional[str]) -> bool:
        """True when ``path`` hashes to ``checksum`` (or no checksum is declared)."""
        if not checksum:
            return True
        return sha256_of(path) == checksum.lower()

    def fetch(self, package: Package) -> Path:
        url, checksum, filename = self.artifact_for(package)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        dest = self.cache_dir / filename

        # HEAD archives change upstream, so they are always downloaded again
        if dest.is_file() and checksum and self.verify(dest, checksum):
            logger.info("Already downloaded: %s", dest)
            return dest

        with Timer() as timer:
            parts = urllib.parse.urlsplit(url)
            try:
                if parts.scheme in ("", "file"):
                    shutil.copyfile(urllib.parse.unquote(parts.path), dest)
                else:
                    logger.info("Downloading %s", safe_url(url))
                    download_file(url, str(dest), context=package.full_name)
            except DownloadError as exc:
                raise FetchError(package.full_name, exc.reason) from exc
            except OSError as exc:
                raise FetchError(package.full_name, str(exc)) from exc

        if checksum:
            actual = sha256_of(dest)
            if actual != checksum.lower():
                os.remove(dest)
                raise ChecksumMismatch(package.full_name, dest, checksum.lower(), actual)

        if is_debug_enabled(logger):
            logger.debug(
                "Artifact fetched",
                extra=extra_context(
                    event="fetch",
                    component="bottle_fetcher",
                    outcome="success",
                    target=safe_url(url),
                    package=package.full_name,
                    duration_ms=timer.duration_ms(),
                ),
            )
        return dest

    def fetch_all(self, packages: Iterable[Package]) -> List[Path]:
        """Fetch every package with a bounded worker pool, in plan order.

        All downloads run to completion before the first failure (in plan
        order) is raised.
        """
        packages = list(packages)
        if not packages:
            return []
        with ThreadPoolExecutor(max_workers=max(1, self.max_workers)) as pool:
            futures = [pool.submit(self.fetch, p) for p in packages]
        paths: List[Path] = []
        for future in futures:
            exc = future.exception()
            if exc is not None:
                raise exc
            paths.append(future.result())
        return paths
