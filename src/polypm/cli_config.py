"""CLI configuration overrides for runtime tunables.

Applied after the YAML config and environment so command-line flags have the
highest precedence.
"""

from __future__ import annotations

import logging
import os

from .constants import Constants, _load_yaml_config

logger = logging.getLogger(__name__)


def load_config(args) -> None:
    """Load YAML/environment config, then apply CLI overrides on top."""
    config_path = getattr(args, "CONFIG", None)
    if config_path and not os.path.isfile(config_path):
        logger.warning("Config file not found: %s", config_path)
    applied = _load_yaml_config(config_path)
    if applied:
        logger.debug("Loaded config from %s", applied)
    apply_cli_overrides(args)


def apply_cli_overrides(args) -> None:
    """Apply CLI overrides for registry and concurrency tunables."""
    registry = getattr(args, "REGISTRY", None)
    if registry:
        Constants.REGISTRY_URL = registry if registry.endswith("/") else registry + "/"
    jobs = getattr(args, "JOBS", None)
    if jobs is not None:
        if jobs < 1:
            logger.warning("Ignoring --jobs %s; must be at least 1", jobs)
        else:
            Constants.INSTALL_MAX_WORKERS = jobs
    strict = getattr(args, "STRICT", None)
    if strict is not None:
        Constants.STRICT_MODE = bool(strict)
