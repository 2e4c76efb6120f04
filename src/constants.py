"""Constants used in the project."""

import logging
import os
from enum import Enum

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3
    RESOLUTION_ERROR = 4
    INSTALL_ERROR = 5


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    ROOT = os.path.expanduser(os.environ.get("KEGPLAN_ROOT", "~/.kegplan"))
    FORMULA_PATHS = [
        p for p in os.environ.get("KEGPLAN_FORMULA_PATH", "").split(os.pathsep) if p
    ]
    CONFIG_FILE = os.environ.get(
        "KEGPLAN_CONFIG", os.path.expanduser("~/.config/kegplan/config.yml")
    )

    CELLAR_DIR = "Cellar"
    OPT_DIR = "opt"
    PINNED_DIR = "pinned"
    LOCKS_DIR = "locks"
    CACHE_DIR = "cache"
    STAGING_DIR = "staging"
    RECEIPT_FILE = "INSTALL_RECEIPT.json"
    FORMULA_SUFFIXES = (".yml", ".yaml", ".json")

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL = os.environ.get("KEGPLAN_LOG_LEVEL", "INFO")

    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    DOWNLOAD_CHUNK_SIZE = 65536
    FETCH_MAX_CONCURRENCY = int(os.environ.get("KEGPLAN_FETCH_CONCURRENCY", "4"))

    INSTALL_LINK = True


def _apply_config(cfg: dict) -> None:
    """Copy recognised keys of a parsed YAML config onto Constants."""
    if not isinstance(cfg, dict):
        return
    if cfg.get("root") and "KEGPLAN_ROOT" not in os.environ:
        Constants.ROOT = os.path.expanduser(str(cfg["root"]))
    paths = cfg.get("formula_paths")
    if isinstance(paths, list) and not Constants.FORMULA_PATHS:
        Constants.FORMULA_PATHS = [os.path.expanduser(str(p)) for p in paths]

    fetch = cfg.get("fetch") or {}
    if isinstance(fetch, dict):
        if fetch.get("concurrency") is not None and "KEGPLAN_FETCH_CONCURRENCY" not in os.environ:
            Constants.FETCH_MAX_CONCURRENCY = int(fetch["concurrency"])
        if fetch.get("timeout") is not None:
            Constants.REQUEST_TIMEOUT = int(fetch["timeout"])
        if fetch.get("retries") is not None:
            Constants.HTTP_RETRY_MAX = max(1, int(fetch["retries"]))

    install = cfg.get("install") or {}
    if isinstance(install, dict) and install.get("link") is not None:
        Constants.INSTALL_LINK = bool(install["link"])

    log_cfg = cfg.get("logging") or {}
    if isinstance(log_cfg, dict) and log_cfg.get("level") and "KEGPLAN_LOG_LEVEL" not in os.environ:
        Constants.LOG_LEVEL = str(log_cfg["level"]).upper()


def load_config(path: str = "") -> dict:
    """Load the user YAML config and apply it onto Constants.

    Returns the parsed mapping, or an empty dict when the file is absent or
    unreadable. A broken config never prevents the CLI from starting.
    """
    path = path or Constants.CONFIG_FILE
    if not path or not os.path.isfile(path):
        return {}
    import yaml  # pylint: disable=import-outside-toplevel

    try:
        with open(path, "r", encoding="utf-8") as fh:
            cfg = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    if not isinstance(cfg, dict):
        logger.warning("Ignoring config %s: top level must be a mapping", path)
        return {}
    _apply_config(cfg)
    return cfg
