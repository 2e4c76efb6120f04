"""kegplan - dependency resolution and installation planning for formulae.

    Returns:
        int: Exit code
"""
import json
import logging
import sys

from args import parse_args
from cli_config import apply_overrides
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes, load_config

from cellar import Cellar, CellarError, dependents, missing, outdated
from formula import FormulaRepository, FormulaSchemaError
from installer import (
    BottleFetcher,
    BottlePourer,
    ChecksumMismatch,
    FetchError,
    InstallFailed,
    OptLinker,
    PlanExecutor,
    ScriptBuilder,
)
from resolution import (
    ResolutionError,
    ResolutionFailed,
    ResolutionService,
    ResolveOptions,
    runtime_only,
)

logger = logging.getLogger(__name__)


class _Output:
    """stdout writer honouring --quiet."""

    def __init__(self, quiet=False):
        self.quiet = quiet

    def __call__(self, line=""):
        if not self.quiet:
            print(line)


def build_options(args, reinstall=False):
    """Translate resolution flags into ResolveOptions."""
    names = list(args.NAMES)
    force = {}
    if args.WITH:
        opts = frozenset(w if w.startswith(("with-", "without-")) else f"with-{w}" for w in args.WITH)
        force = {name: opts for name in names}
    return ResolveOptions(
        build_from_source=args.BUILD_FROM_SOURCE,
        head_requested=args.HEAD,
        skip_optional_names=frozenset(args.WITHOUT),
        force_options=force,
        include_test=args.INCLUDE_TEST,
        best_effort=args.BEST_EFFORT,
        keep_going=args.KEEP_GOING,
        only_dependencies=args.ONLY_DEPENDENCIES,
        reinstall_names=frozenset(names) if reinstall else frozenset(),
    )


def format_plan(plan):
    """Human readable lines describing an ExecutionPlan."""
    lines = []
    sections = (
        ("Installing", plan.to_install),
        ("Upgrading", plan.to_upgrade),
        ("Reinstalling", plan.to_reinstall),
    )
    for title, packages in sections:
        if packages:
            lines.append(f"==> {title} {len(packages)} formula(e):")
            for package in packages:
                how = "bottle" if package.pour_bottle else "source"
                lines.append(f"  {package.full_name} {package.pkg_version} ({how})")
    if plan.already_satisfied:
        names = ", ".join(p.full_name for p in plan.already_satisfied)
        lines.append(f"==> Already installed: {names}")
    if plan.pinned:
        lines.append("==> Pinned (not upgraded): " + ", ".join(p.full_name for p in plan.pinned))
    for conflict in plan.conflicts:
        lines.append(f"Conflict: {conflict.message}")
    for root, errors in plan.failed_roots.items():
        for err in errors:
            lines.append(f"Skipped {root}: {err.message}")
    if plan.is_empty and not lines:
        lines.append("==> Nothing to do")
    return lines


def export_json(plan, path):
    """Exports the execution plan to a JSON file.

    Args:
        plan (ExecutionPlan): Plan to export.
        path (str): File path to export the JSON.

    Returns:
        bool: Whether the file was written.
    """
    try:
        with open(path, "w", encoding="utf-8") as file:
            json.dump(plan.to_dict(), file, ensure_ascii=False, indent=4)
        logging.info("JSON file has been successfully exported at: %s", path)
        return True
    except OSError as e:
        logging.error("JSON file couldn't be written to disk: %s", e)
        return False


def _warnings_exit(args, plan):
    if (plan.warnings or plan.conflicts) and getattr(args, "ERROR_ON_WARNINGS", False):
        logging.error("Warnings present, exiting with non-zero status code.")
        return ExitCodes.EXIT_WARNINGS
    return ExitCodes.SUCCESS


def cmd_plan(args, service, out):
    plan = service.resolve(args.NAMES, build_options(args))
    for line in format_plan(plan):
        out(line)
    if getattr(args, "OUTPUT", None) and not export_json(plan, args.OUTPUT):
        return ExitCodes.FILE_ERROR
    return _warnings_exit(args, plan)


def cmd_install(args, service, out):
    plan = service.resolve(args.NAMES, build_options(args, reinstall=args.REINSTALL))
    for line in format_plan(plan):
        out(line)
    if plan.conflicts and not args.FORCE:
        logging.error("Refusing to install with conflicts; use --force to override.")
        return ExitCodes.RESOLUTION_ERROR

    cellar = service.cellar
    executor = PlanExecutor(
        cellar,
        BottleFetcher(cellar.download_dir(), service.platform),
        BottlePourer(),
        ScriptBuilder(),
        OptLinker(cellar.opt),
    )
    kegs = executor.execute(plan)
    for keg in kegs:
        out(f"==> Installed {keg} in {keg.path}")
    return _warnings_exit(args, plan)


def cmd_deps(args, service, out):
    options = build_options(args)
    builder = service.builder(options)
    callback = runtime_only if args.RUNTIME_ONLY else None
    graph = builder.expand(args.NAMES, callback)
    for root in graph.roots:
        package = graph.package(root)
        closure = builder.recursive_dependencies(package, callback)
        if len(graph.roots) > 1:
            out(f"{root}:")
        for dep in closure:
            out(("  " if len(graph.roots) > 1 else "") + dep.full_name)
    return ExitCodes.SUCCESS


def cmd_uses(args, service, out):
    for keg in dependents(service.cellar, args.NAME):
        out(keg.full_name)
    return ExitCodes.SUCCESS


def cmd_missing(args, service, out):
    gaps = missing(service.cellar)
    for name, deps in gaps.items():
        out(f"{name}: {' '.join(deps)}")
    return ExitCodes.EXIT_WARNINGS if gaps and getattr(args, "ERROR_ON_WARNINGS", False) else ExitCodes.SUCCESS


def cmd_outdated(args, service, out):
    for entry in outdated(service.cellar, service.repository):
        out(str(entry))
    return ExitCodes.SUCCESS


def cmd_pin(args, service, out):
    keg = service.cellar.pin(args.NAME)
    out(f"Pinned {keg}")
    return ExitCodes.SUCCESS


def cmd_unpin(args, service, out):
    service.cellar.unpin(args.NAME)
    out(f"Unpinned {args.NAME}")
    return ExitCodes.SUCCESS


COMMANDS = {
    "plan": cmd_plan,
    "install": cmd_install,
    "deps": cmd_deps,
    "uses": cmd_uses,
    "missing": cmd_missing,
    "outdated": cmd_outdated,
    "pin": cmd_pin,
    "unpin": cmd_unpin,
}


def run(args):
    """Run the parsed command and return its ExitCodes member."""
    out = _Output(getattr(args, "QUIET", False))
    try:
        repository = FormulaRepository.from_paths(Constants.FORMULA_PATHS)
    except FormulaSchemaError as exc:
        logging.error("%s", exc)
        return ExitCodes.FILE_ERROR
    service = ResolutionService(repository, Cellar(Constants.ROOT))

    try:
        return COMMANDS[args.COMMAND](args, service, out)
    except ResolutionFailed as exc:
        for err in exc.errors:
            logging.error("%s", err.message)
        return ExitCodes.RESOLUTION_ERROR
    except ResolutionError as exc:
        logging.error("%s", exc.message)
        return ExitCodes.RESOLUTION_ERROR
    except InstallFailed as exc:
        logging.error("%s", exc)
        if exc.completed:
            logging.info("Installed before the failure: %s", ", ".join(str(k) for k in exc.completed))
        if isinstance(exc.cause, FetchError) and not isinstance(exc.cause, ChecksumMismatch):
            return ExitCodes.CONNECTION_ERROR
        return ExitCodes.INSTALL_ERROR
    except CellarError as exc:
        logging.error("%s", exc)
        return ExitCodes.INSTALL_ERROR


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    load_config(getattr(args, "CONFIG", None) or "")
    apply_overrides(args)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )
    code = run(args)
    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action=args.COMMAND, outcome=code.name),
        )
    sys.exit(code.value)


if __name__ == "__main__":
    main()
