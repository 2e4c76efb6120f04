"""Host platform description used for bottle selection and OS gates."""

import platform as _platform
from dataclasses import dataclass
from typing import Optional

import semantic_version

MACOS_CODENAMES = {
    "yosemite": "10.10",
    "el_capitan": "10.11",
    "sierra": "10.12",
    "high_sierra": "10.13",
    "mojave": "10.14",
    "catalina": "10.15",
    "big_sur": "11",
    "monterey": "12",
    "ventura": "13",
    "sonoma": "14",
    "sequoia": "15",
    "tahoe": "26",
}

_ARCH_ALIASES = {"aarch64": "arm64", "amd64": "x86_64", "x64": "x86_64"}


def os_version_number(raw: str) -> str:
    """Translate a macOS codename (``ventura``) into its number; numbers pass through."""
    raw = str(raw).strip().lstrip(":").lower()
    return MACOS_CODENAMES.get(raw, raw)


def coerce_os_version(raw: str) -> semantic_version.Version:
    return semantic_version.Version.coerce(os_version_number(raw))


@dataclass(frozen=True)
class Platform:
    """Operating system, OS version and CPU architecture of a resolution."""

    os: str  # "macos" | "linux"
    os_version: str
    arch: str  # "arm64" | "x86_64"

    @classmethod
    def detect(cls) -> "Platform":
        arch = _platform.machine().lower()
        arch = _ARCH_ALIASES.get(arch, arch)
        if _platform.system() == "Darwin":
            major, minor, *_ = (_platform.mac_ver()[0] or "0.0").split(".") + ["0"]
            version = f"10.{minor}" if major == "10" else major
            return cls(os="macos", os_version=version, arch=arch)
        release = _platform.release().split("-")[0] or "0"
        return cls(os="linux", os_version=release, arch=arch)

    @property
    def codename(self) -> Optional[str]:
        if self.os != "macos":
            return None
        for name, number in MACOS_CODENAMES.items():
            if number == self.os_version:
                return name
        return None

    @property
    def bottle_tag(self) -> str:
        """Bottle tag for this platform, e.g. ``arm64_sonoma`` or ``x86_64_linux``."""
        if self.os == "linux":
            return f"{self.arch}_linux"
        name = self.codename or self.os_version
        return f"arm64_{name}" if self.arch == "arm64" else name

    def os_version_below(self, bound: str) -> bool:
        """True when the host OS version is strictly older than ``bound``."""
        return coerce_os_version(self.os_version) < coerce_os_version(bound)

    def os_version_at_least(self, bound: str) -> bool:
        return not self.os_version_below(bound)

    def __str__(self) -> str:
        return f"{self.os} {self.os_version} ({self.arch})"
