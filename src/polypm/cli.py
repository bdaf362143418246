"""CLI entry point for polypm."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, List, Optional

from .args import parse_args
from .cli_config import load_config
from .common.logging_utils import configure_logging
from .commands import PackageManager
from .constants import ExitCodes
from .errors import InstallError, ManifestError, PackageManagerError
from .installer import InstallReport
from .registry import RegistryClient
from .versioning.parser import parse_cli_token

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments."""
    if getattr(args, "LOG_LEVEL", None):
        os.environ["POLYPM_LOG_LEVEL"] = str(args.LOG_LEVEL).upper()
    configure_logging()

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def print_failures(report: InstallReport) -> None:
    """List every failed package with its error kind."""
    for failure in report.failures:
        print(f"  x {failure.name} [{failure.kind}] {failure.error}")


def _run_install(pm: PackageManager, args: Any) -> int:
    if args.VERIFY:
        states = pm.verify()
        if not states:
            print("  No packages in poly.lock")
            return ExitCodes.SUCCESS.value
        lock = pm.read_lock()
        for name, state in states.items():
            print(f"  {name}@{lock.entries[name].version} {state}")
        return ExitCodes.SUCCESS.value if all(s == "installed" for s in states.values()) else ExitCodes.EXIT_WARNINGS.value

    report = pm.install()
    if report.installed or report.skipped:
        print(f"  Installed {len(report.installed)} packages, {len(report.skipped)} already up to date")
    else:
        print("  All packages up to date")
    return ExitCodes.SUCCESS.value


def _run_add(pm: PackageManager, args: Any) -> int:
    try:
        spec = parse_cli_token(args.PACKAGE, args.RANGE)
    except ValueError as exc:
        raise ManifestError(str(exc)) from exc
    specs, lock = pm.add_package(spec.name, spec.range)
    added = next(s for s in specs if s.name == spec.name)
    print(f"  Added {added} ({len(lock)} packages locked)")
    return ExitCodes.SUCCESS.value


def _run_remove(pm: PackageManager, args: Any) -> int:
    _, lock = pm.remove_package(args.PACKAGE)
    print(f"  Removed {args.PACKAGE} ({len(lock)} packages locked)")
    return ExitCodes.SUCCESS.value


def _run_update(pm: PackageManager, args: Any) -> int:
    lock = pm.update(args.PACKAGES or None)
    print(f"  Updated lockfile ({len(lock)} packages)")
    return ExitCodes.SUCCESS.value


def _run_outdated(pm: PackageManager, args: Any) -> int:  # pylint: disable=unused-argument
    outdated = pm.check_outdated()
    if not outdated:
        print("  All packages up to date")
        return ExitCodes.SUCCESS.value
    width = max(len(o.name) for o in outdated)
    for item in outdated:
        print(f"  {item.name.ljust(width)}  {item.current} -> {item.latest}")
    return ExitCodes.EXIT_WARNINGS.value


COMMANDS = {
    "install": _run_install,
    "add": _run_add,
    "remove": _run_remove,
    "update": _run_update,
    "outdated": _run_outdated,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main function of the program; returns the process exit code."""
    args = parse_args(argv)
    _setup_logging(args)
    load_config(args)

    client = RegistryClient()
    pm = PackageManager(args.PROJECT_DIR, client)
    try:
        return COMMANDS[args.COMMAND](pm, args)
    except InstallError as exc:
        logger.error("%s", exc)
        print_failures(exc.report)
        return exc.exit_code.value
    except PackageManagerError as exc:
        logger.error("%s", exc)
        return exc.exit_code.value
    except KeyboardInterrupt:
        logger.error("Interrupted; completed packages stay installed")
        return 130
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
