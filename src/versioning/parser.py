"""Token parsing utilities for package names and versions."""

import re
from typing import Optional, Tuple

from .models import PkgVersion

_TAP_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*/[a-z0-9][a-z0-9._-]*$")


def tokenize_rightmost_slash(s: str) -> Tuple[Optional[str], str]:
    """Return (tap or None, name) using the rightmost-slash rule.

    ``user/repo/name`` yields ``("user/repo", "name")``; a bare ``name``
    yields ``(None, "name")``.
    """
    s = s.strip()
    if "/" not in s:
        return None, s
    tap, name = s.rsplit("/", 1)
    return tap.strip() or None, name.strip()


def normalize_identifier(identifier: str) -> str:
    """Lowercase and strip a package name or full name."""
    return identifier.strip().lower()


def is_valid_tap(tap: str) -> bool:
    """Check a ``user/repo`` namespace."""
    return bool(_TAP_RE.match(tap))


def full_name(tap: Optional[str], name: str) -> str:
    """Join a namespace and a name; core packages have no namespace."""
    return f"{tap}/{name}" if tap else name


def parse_keg_dirname(dirname: str) -> Optional[PkgVersion]:
    """Parse a Keg directory name (``1.2.3_1``) into a PkgVersion."""
    if not dirname or dirname.startswith("."):
        return None
    try:
        return PkgVersion.parse(dirname)
    except ValueError:
        return None
