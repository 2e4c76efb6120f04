"""Shared fixtures: formula records, repositories, platforms and Cellars."""

import hashlib
import io
import tarfile

import pytest

from cellar import Cellar, Receipt, RuntimeDependency
from formula import FormulaRepository
from resolution import BuildContext, Platform, ResolutionService
from versioning import PkgVersion

LINUX = Platform(os="linux", os_version="6.1", arch="x86_64")
SONOMA = Platform(os="macos", os_version="14", arch="arm64")
MONTEREY = Platform(os="macos", os_version="12", arch="x86_64")

FAKE_SHA = "0" * 64


def formula(name, *deps, version="1.0", bottle=True, **extra):
    """Build a formula record; plain ``deps`` are required dependencies."""
    record = {"name": name, "version": version, "url": f"https://example.com/{name}-{version}.tar.gz"}
    if deps:
        record["dependencies"] = list(deps)
    if bottle:
        record["bottles"] = {"all": {"url": f"https://example.com/{name}-{version}.bottle.tar.gz", "sha256": FAKE_SHA}}
    record.update(extra)
    return record


def make_tarball(path, files):
    """Write a gzip tarball with ``{member name: bytes}`` and return its sha256."""
    with tarfile.open(path, "w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    with open(path, "rb") as fh:
        return hashlib.sha256(fh.read()).hexdigest()


@pytest.fixture
def make_repo():
    """Factory turning formula records into a FormulaRepository."""
    def _make(*records):
        return FormulaRepository.from_records(records)
    return _make


@pytest.fixture
def linux_context():
    return BuildContext(platform=LINUX)


@pytest.fixture
def cellar(tmp_path):
    return Cellar(str(tmp_path / "root"))


@pytest.fixture
def make_service(cellar):
    """Factory for a ResolutionService on Linux backed by a temporary Cellar."""
    def _make(*records, platform=LINUX):
        return ResolutionService(FormulaRepository.from_records(records), cellar, platform=platform)
    return _make


def register_keg(cellar, name, version="1.0", runtime=None, linked=True, on_request=True, **receipt):
    """Create a Keg directory with an install receipt below ``cellar``."""
    pkg_version = PkgVersion.parse(version)
    path = cellar.cellar / name / str(pkg_version)
    path.mkdir(parents=True)
    (path / "bin").mkdir()
    Receipt(
        name=name,
        full_name=receipt.pop("full_name", name),
        version=str(pkg_version.version),
        revision=pkg_version.revision,
        installed_on_request=on_request,
        runtime_dependencies=[RuntimeDependency(d) for d in runtime] if runtime is not None else None,
        **receipt,
    ).write(path)
    if linked:
        cellar.opt.mkdir(parents=True, exist_ok=True)
        link = cellar.opt / name
        if link.is_symlink():
            link.unlink()
        link.symlink_to(path)
    return path
