"""Data models for package versions and their ordering."""

import functools
import re
from dataclasses import dataclass
from typing import List, Tuple, Union

_TOKEN_RE = re.compile(r"\d+|[a-z]+")

# Pre-release words sort before the release they qualify (1.0rc1 < 1.0).
_PRERELEASE_RANK = {"alpha": 0, "beta": 1, "pre": 2, "rc": 3}
# Short forms count only when a number follows (1.0b2, 1.0a1).
_SHORT_PRERELEASE = {"a": "alpha", "b": "beta"}

Token = Union[int, str]


def _tokenize(raw: str) -> List[Token]:
    raw = raw.lower()
    tokens: List[Token] = []
    for m in _TOKEN_RE.finditer(raw):
        tok = m.group(0)
        if tok.isdigit():
            tokens.append(int(tok))
        elif tok in _SHORT_PRERELEASE and raw[m.end():m.end() + 1].isdigit():
            tokens.append(_SHORT_PRERELEASE[tok])
        else:
            tokens.append(tok)
    return tokens


def _token_key(tok: Token) -> Tuple[int, int, str]:
    """Sort key for one token: pre-release < padding/number < other words."""
    if isinstance(tok, int):
        return (1, tok, "")
    if tok in _PRERELEASE_RANK:
        return (0, _PRERELEASE_RANK[tok], tok)
    return (2, 0, tok)


_PADDING = (1, 0, "")


@functools.total_ordering
class Version:
    """Package version with tokenized ordering.

    Numeric tokens compare as integers and missing trailing tokens compare as
    zero, so ``1.0 == 1.0.0``. ``HEAD`` versions (``HEAD`` or ``HEAD-<sha>``)
    compare greater than any released version.
    """

    __slots__ = ("raw", "_tokens")

    def __init__(self, raw: str):
        raw = str(raw).strip()
        if not raw:
            raise ValueError("Version string must not be empty")
        self.raw = raw
        self._tokens = () if self.is_head else tuple(_tokenize(raw))

    @property
    def is_head(self) -> bool:
        return self.raw == "HEAD" or self.raw.startswith("HEAD-")

    @property
    def commit(self) -> str:
        """Short commit of a ``HEAD-<sha>`` version, or an empty string."""
        return self.raw[5:] if self.raw.startswith("HEAD-") else ""

    def _key(self) -> Tuple:
        keys = [_token_key(t) for t in self._tokens]
        while keys and keys[-1] == _PADDING:
            keys.pop()
        return tuple(keys)

    def _compare(self, other: "Version") -> int:
        if self.is_head or other.is_head:
            return (self.is_head > other.is_head) - (self.is_head < other.is_head)
        left, right = self._key(), other._key()
        for i in range(max(len(left), len(right))):
            a = left[i] if i < len(left) else _PADDING
            b = right[i] if i < len(right) else _PADDING
            if a != b:
                return -1 if a < b else 1
        return 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._compare(other) == 0

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._compare(other) < 0

    def __hash__(self) -> int:
        return hash(("HEAD",) if self.is_head else self._key())

    def __str__(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"Version({self.raw!r})"


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class PkgVersion:
    """A version plus packaging revision, printed as ``1.2.3`` or ``1.2.3_1``.

    Ordering compares the version first; the revision only breaks ties
    between equal versions.
    """

    version: Version
    revision: int = 0

    @classmethod
    def parse(cls, raw: str) -> "PkgVersion":
        """Parse ``1.2.3_4`` (as used for Keg directory names)."""
        raw = str(raw).strip()
        m = re.match(r"^(.+)_(\d+)$", raw)
        if m:
            return cls(Version(m.group(1)), int(m.group(2)))
        return cls(Version(raw), 0)

    @property
    def is_head(self) -> bool:
        return self.version.is_head

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PkgVersion):
            return NotImplemented
        return self.version == other.version and self.revision == other.revision

    def __lt__(self, other: "PkgVersion") -> bool:
        if not isinstance(other, PkgVersion):
            return NotImplemented
        if self.version != other.version:
            return self.version < other.version
        return self.revision < other.revision

    def __hash__(self) -> int:
        return hash((self.version, self.revision))

    def __str__(self) -> str:
        return f"{self.version}_{self.revision}" if self.revision else str(self.version)
