"""Argument parsing functionality for polypm."""

import argparse

from . import __version__


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="polypm",
        description="polypm - resolve, verify and install web-library packages",
        add_help=True,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument("-C", "--project-dir",
                        dest="PROJECT_DIR",
                        help="Project directory containing poly.toml (default: current directory)",
                        action="store", type=str, default=".")
    parser.add_argument("--registry",
                        dest="REGISTRY",
                        help="Registry base URL",
                        action="store", type=str)
    parser.add_argument("-j", "--jobs",
                        dest="JOBS",
                        help="Maximum parallel downloads",
                        action="store", type=int)
    strict_group = parser.add_mutually_exclusive_group()
    strict_group.add_argument("--strict",
                              dest="STRICT",
                              help="Fail on any version conflict instead of warning",
                              action="store_const", const=True, default=None)
    strict_group.add_argument("--no-strict",
                              dest="STRICT",
                              help="Warn on version conflicts and pick the best version",
                              action="store_const", const=False)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store", type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store", type=str)

    sub = parser.add_subparsers(dest="COMMAND", metavar="command")
    sub.required = True

    install = sub.add_parser("install", help="Install from poly.lock, or resolve poly.toml when unlocked")
    install.add_argument("--verify",
                         dest="VERIFY",
                         help="Only report which locked packages are present",
                         action="store_true")

    add = sub.add_parser("add", help="Add a dependency and relock")
    add.add_argument("PACKAGE", help="Package name, optionally name@range")
    add.add_argument("RANGE", nargs="?", default=None, help="Version range (default: ^latest)")

    remove = sub.add_parser("remove", help="Remove a dependency and relock")
    remove.add_argument("PACKAGE", help="Package name")

    update = sub.add_parser("update", help="Re-resolve dependencies ignoring the lockfile")
    update.add_argument("PACKAGES", nargs="*", help="Limit the update to these packages")

    sub.add_parser("outdated", help="List locked packages with newer releases")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
