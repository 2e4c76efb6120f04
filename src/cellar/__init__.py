"""Cellar collaborator: installed Kegs on disk."""

from .cellar import Cellar, CellarError, KegLocked
from .keg import Keg, Receipt, RuntimeDependency
from .queries import OutdatedKeg, dependents, missing, outdated

__all__ = [
    "Cellar",
    "CellarError",
    "Keg",
    "KegLocked",
    "OutdatedKeg",
    "Receipt",
    "RuntimeDependency",
    "dependents",
    "missing",
    "outdated",
]
