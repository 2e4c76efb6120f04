"""Version models and name/version token parsing."""

from .models import PkgVersion, Version
from .parser import (
    full_name,
    normalize_identifier,
    parse_keg_dirname,
    tokenize_rightmost_slash,
)

__all__ = [
    "PkgVersion",
    "Version",
    "full_name",
    "normalize_identifier",
    "parse_keg_dirname",
    "tokenize_rightmost_slash",
]
