"""Fetch, pour, build and link collaborators plus the plan executor."""

from .build import BuildError, ScriptBuilder
from .executor import InstallFailed, PlanExecutor
from .fetch import BottleFetcher, ChecksumMismatch, FetchError
from .link import OptLinker
from .pour import BottlePourer, PourError

__all__ = [
    "BottleFetcher",
    "BottlePourer",
    "BuildError",
    "ChecksumMismatch",
    "FetchError",
    "InstallFailed",
    "OptLinker",
    "PlanExecutor",
    "PourError",
    "ScriptBuilder",
]
