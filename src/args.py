"""Argument parsing functionality for peerdeps."""

import argparse
from constants import Constants

def parse_args(argv=None):
    """Parses the arguments passed to the program.

    Unrecognised options are kept in ``EXTRA_ARGS`` and handed to the
    package manager untouched.
    """
    parser = argparse.ArgumentParser(
        prog="peerdeps",
        description=(
            "peerdeps - Resolve peer dependency conflicts before running npm, yarn or pnpm"
        ),
        add_help=True,
    )

    parser.add_argument("COMMAND",
                        help="Package manager command, e.g. install, add, i. 'restore' recovers a leftover backup.",
                        nargs="?",
                        default="")
    parser.add_argument("PACKAGES",
                        help="Packages passed to the package manager",
                        nargs="*",
                        default=[])

    parser.add_argument("--pm",
                        dest="PACKAGE_MANAGER",
                        help="Force the package manager (npm, yarn or pnpm)",
                        action="store", type=str.lower,
                        choices=Constants.SUPPORTED_PACKAGE_MANAGERS)
    parser.add_argument("-d", "--directory",
                        dest="DIRECTORY",
                        help="Project directory holding package.json (default: current directory)",
                        action="store",
                        type=str,
                        default=".")
    parser.add_argument("--registry",
                        dest="REGISTRY",
                        help="Registry base URL used to look up published versions",
                        action="store",
                        type=str)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="Registry request timeout in seconds",
                        action="store",
                        type=float)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)

    parser.add_argument("--dry-run",
                        dest="DRY_RUN",
                        help="Resolve and report conflicts without touching package.json or installing.",
                        action="store_true")
    parser.add_argument("--report",
                        dest="REPORT",
                        help="Write the conflict report to this JSON file",
                        action="store",
                        type=str)

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    args, extra = parser.parse_known_args(argv)
    args.EXTRA_ARGS = extra
    return args
