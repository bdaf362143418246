"""Constants used in the project."""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

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
    INTEGRITY_ERROR = 5


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL = "https://registry.npmjs.org/"
    USER_AGENT = "polypm/1.0"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests

    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_POOL_SIZE = 10
    MAX_TARBALL_BYTES = 64 * 1024 * 1024

    INSTALL_MAX_WORKERS = 8
    RESOLVE_PREFETCH_WORKERS = 8
    STRICT_MODE = False

    MANIFEST_FILE = "poly.toml"
    LOCKFILE_FILE = "poly.lock"
    INSTALL_DIR = "packages"
    INTEGRITY_STAMP_FILE = ".polypm-integrity"
    ROOT_REQUIRER = "<root>"

    ENV_CONFIG = "POLYPM_CONFIG"
    ENV_LOG_LEVEL = "POLYPM_LOG_LEVEL"
    ENV_REGISTRY = "POLYPM_REGISTRY"
    ENV_STRICT = "POLYPM_STRICT"
    ENV_CI = "CI"


_TRUTHY = {"1", "true", "yes", "on"}


def _is_truthy(value: Optional[str]) -> bool:
    return bool(value) and str(value).strip().lower() in _TRUTHY


def _find_config_file() -> Optional[str]:
    """Return the first existing config file path in lookup order."""
    explicit = os.environ.get(Constants.ENV_CONFIG)
    if explicit:
        return explicit
    candidates = [os.path.join(os.getcwd(), "polypm.yml")]
    xdg = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    candidates.append(os.path.join(xdg, "polypm", "config.yml"))
    for path in candidates:
        if os.path.isfile(path):
            return path
    return None


def _apply_config(cfg: Dict[str, Any]) -> None:
    """Apply a parsed config mapping over Constants defaults."""
    registry = cfg.get("registry") or {}
    if isinstance(registry, dict):
        if registry.get("url"):
            url = str(registry["url"])
            Constants.REGISTRY_URL = url if url.endswith("/") else url + "/"
        if registry.get("timeout") is not None:
            Constants.REQUEST_TIMEOUT = int(registry["timeout"])
        if registry.get("retries") is not None:
            Constants.HTTP_RETRY_MAX = max(1, int(registry["retries"]))

    install = cfg.get("install") or {}
    if isinstance(install, dict) and install.get("workers") is not None:
        Constants.INSTALL_MAX_WORKERS = max(1, int(install["workers"]))

    resolve = cfg.get("resolve") or {}
    if isinstance(resolve, dict):
        if resolve.get("prefetch_workers") is not None:
            Constants.RESOLVE_PREFETCH_WORKERS = max(1, int(resolve["prefetch_workers"]))
        if resolve.get("strict") is not None:
            Constants.STRICT_MODE = bool(resolve["strict"])


def _load_yaml_config(path: Optional[str] = None) -> Optional[str]:
    """Load YAML config and environment overrides into Constants.

    Returns the path of the config file that was applied, if any.
    """
    import yaml  # pylint: disable=import-outside-toplevel

    if _is_truthy(os.environ.get(Constants.ENV_CI)):
        Constants.STRICT_MODE = True

    applied = None
    cfg_path = path or _find_config_file()
    if cfg_path:
        try:
            with open(cfg_path, "r", encoding="utf-8") as fh:
                cfg = yaml.safe_load(fh) or {}
            if isinstance(cfg, dict):
                _apply_config(cfg)
                applied = cfg_path
            else:
                logger.warning("Ignoring config file %s: top level is not a mapping", cfg_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s", cfg_path)
        except (OSError, yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load config %s: %s", cfg_path, exc)

    env_registry = os.environ.get(Constants.ENV_REGISTRY)
    if env_registry:
        Constants.REGISTRY_URL = env_registry if env_registry.endswith("/") else env_registry + "/"
    env_strict = os.environ.get(Constants.ENV_STRICT)
    if env_strict is not None and env_strict.strip():
        Constants.STRICT_MODE = _is_truthy(env_strict)
    return applied
