"""Argument parsing functionality for kegplan."""

import argparse


def _add_resolution_args(parser):
    """Flags shared by every command that runs a resolution."""
    parser.add_argument("NAMES",
                        help="Formula names, full names (user/repo/name) or aliases",
                        nargs="+",
                        type=str)
    parser.add_argument("-s", "--build-from-source",
                        dest="BUILD_FROM_SOURCE",
                        help="Build the requested formulae from source instead of pouring bottles",
                        action="store_true")
    parser.add_argument("--HEAD",
                        dest="HEAD",
                        help="Install the HEAD (version control) spec of the requested formulae",
                        action="store_true")
    parser.add_argument("--with",
                        dest="WITH",
                        help="Enable an optional dependency or option of the requested formulae "
                             "(e.g. --with foo adds with-foo); can be used multiple times",
                        action="append",
                        type=str,
                        default=[])
    parser.add_argument("--without",
                        dest="WITHOUT",
                        help="Decline optional and recommended dependencies on NAME everywhere; "
                             "can be used multiple times",
                        action="append",
                        type=str,
                        default=[])
    parser.add_argument("--include-test",
                        dest="INCLUDE_TEST",
                        help="Include test dependencies of the requested formulae",
                        action="store_true")
    parser.add_argument("--best-effort",
                        dest="BEST_EFFORT",
                        help="Drop unavailable dependencies with a warning instead of failing",
                        action="store_true")
    parser.add_argument("--keep-going",
                        dest="KEEP_GOING",
                        help="Skip requested formulae that cannot be resolved and continue with the rest",
                        action="store_true")
    parser.add_argument("--only-dependencies",
                        dest="ONLY_DEPENDENCIES",
                        help="Plan the dependencies of the requested formulae but not the formulae themselves",
                        action="store_true")
    parser.add_argument("--error-on-warnings",
                        dest="ERROR_ON_WARNINGS",
                        help="Exit with a non-zero status code if warnings or conflicts are present.",
                        action="store_true")


def build_parser():
    """Build the kegplan argument parser."""
    parser = argparse.ArgumentParser(
        prog="kegplan",
        description="kegplan - dependency resolution and installation planning for formulae",
        add_help=True,
    )
    parser.add_argument("--root",
                        dest="ROOT",
                        help="Installation root holding the Cellar (default: ~/.kegplan)",
                        action="store",
                        type=str)
    parser.add_argument("-F", "--formula-path",
                        dest="FORMULA_PATH",
                        help="Directory with formula files; can be used multiple times",
                        action="append",
                        type=str,
                        default=[])
    parser.add_argument("-j", "--jobs",
                        dest="JOBS",
                        help="Maximum number of concurrent downloads",
                        action="store",
                        type=int)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not output to console.",
                        action="store_true")

    sub = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    sub.required = True

    plan = sub.add_parser("plan", help="Show what installing NAMES would do")
    _add_resolution_args(plan)
    plan.add_argument("-o", "--output",
                      dest="OUTPUT",
                      help="Write the execution plan as JSON to this file",
                      action="store",
                      type=str)

    install = sub.add_parser("install", help="Resolve and install NAMES")
    _add_resolution_args(install)
    install.add_argument("-f", "--force",
                         dest="FORCE",
                         help="Install even when declared conflicts are reported",
                         action="store_true")
    install.add_argument("--reinstall",
                         dest="REINSTALL",
                         help="Reinstall the requested formulae even when they are up to date",
                         action="store_true")
    install.add_argument("--no-link",
                         dest="NO_LINK",
                         help="Do not link installed Kegs into opt/",
                         action="store_true")

    deps = sub.add_parser("deps", help="List the dependencies of NAMES in install order")
    _add_resolution_args(deps)
    deps.add_argument("--runtime",
                      dest="RUNTIME_ONLY",
                      help="Only show dependencies needed after installation",
                      action="store_true")

    uses = sub.add_parser("uses", help="List installed formulae that depend on NAME")
    uses.add_argument("NAME", type=str)

    sub.add_parser("missing", help="List installed formulae with missing runtime dependencies")
    sub.add_parser("outdated", help="List installed formulae with newer versions available")

    pin = sub.add_parser("pin", help="Prevent NAME from being upgraded")
    pin.add_argument("NAME", type=str)
    unpin = sub.add_parser("unpin", help="Allow NAME to be upgraded again")
    unpin.add_argument("NAME", type=str)

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
