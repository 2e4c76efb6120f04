"""CLI configuration overrides for runtime tunables.

Applies CLI values onto Constants with the highest precedence (CLI >
environment > YAML config > built-in default). Bad values are logged and
ignored so a typo never prevents the CLI from starting.
"""

from __future__ import annotations

import logging
import os

from constants import Constants

logger = logging.getLogger(__name__)


def apply_overrides(args) -> None:
    """Apply CLI overrides for paths, download concurrency and linking."""
    if getattr(args, "ROOT", None):
        Constants.ROOT = os.path.expanduser(args.ROOT)
    if getattr(args, "FORMULA_PATH", None):
        Constants.FORMULA_PATHS = [os.path.expanduser(p) for p in args.FORMULA_PATH]
    jobs = getattr(args, "JOBS", None)
    if jobs is not None:
        try:
            if int(jobs) < 1:
                raise ValueError(jobs)
            Constants.FETCH_MAX_CONCURRENCY = int(jobs)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid --jobs value: %r", jobs)
    if getattr(args, "NO_LINK", False):
        Constants.INSTALL_LINK = False
    if getattr(args, "LOG_LEVEL", None):
        Constants.LOG_LEVEL = str(args.LOG_LEVEL).upper()
