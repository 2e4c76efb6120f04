"""Installed-state reconciliation.

Compares a target installation order against the Kegs already in the
Cellar and computes the minimal set of work. The Cellar view is read-only.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from common.logging_utils import extra_context, is_debug_enabled

from .models import (
    ExecutionPlan,
    InstallOrder,
    Package,
    PlanAction,
    PlanEntry,
    ResolutionGraph,
    ResolveOptions,
)

logger = logging.getLogger(__name__)


def _installed(kegs: Mapping[str, object], package: Package):
    keg = kegs.get(package.full_name)
    if keg is None:
        keg = kegs.get(package.name)
    return keg


def compare_installed(keg, package: Package) -> int:
    """Compare an installed Keg with the package's target version.

    Returns -1 when the Keg is older, 0 when equal and 1 when newer. A higher
    ``version_scheme`` outranks any version of a lower scheme; within a
    scheme the version decides and the revision only breaks ties.
    """
    keg_scheme = getattr(keg, "version_scheme", 0) or 0
    if keg_scheme != package.version_scheme:
        return -1 if keg_scheme < package.version_scheme else 1
    if keg.pkg_version < package.pkg_version:
        return -1
    if keg.pkg_version > package.pkg_version:
        return 1
    return 0


def _option_names(options: Iterable[str]) -> set:
    return {o for o in options if o.startswith(("with-", "without-"))}


def _names_match(wanted: str, recorded: Iterable[str]) -> bool:
    short = wanted.rsplit("/", 1)[-1]
    return any(r == wanted or r.rsplit("/", 1)[-1] == short for r in recorded)


def incompatibility(keg, package: Package, runtime_dependencies: Sequence[str] = ()) -> Optional[str]:
    """Reason why an installed Keg at the target version cannot be reused, or None."""
    used = set(getattr(keg, "used_options", ()) or ())
    missing_opts = sorted(_option_names(package.options) - used)
    if missing_opts:
        return f"built without {', '.join(missing_opts)}"
    recorded = getattr(keg, "runtime_dependencies", None)
    if recorded is None:
        return None
    recorded_names = [d.full_name if hasattr(d, "full_name") else str(d) for d in recorded]
    missing_deps = [d for d in runtime_dependencies if not _names_match(d, recorded_names)]
    if missing_deps:
        return f"built without dependency on {', '.join(missing_deps)}"
    return None


def reconcile(
    target_order: Union[InstallOrder, Sequence[Package]],
    installed_kegs: Mapping[str, object],
    graph: Optional[ResolutionGraph] = None,
    options: Optional[ResolveOptions] = None,
) -> ExecutionPlan:
    """Partition ``target_order`` into install, upgrade, reinstall and satisfied.

    Args:
        target_order: Packages in installation order.
        installed_kegs: Installed Keg per name or full name; packages absent
            from the mapping are not installed.
        graph: The validated graph, used for runtime dependency checks and
            to record each entry's runtime dependencies.
        options: Resolve options (``reinstall_names``).

    Returns:
        An ExecutionPlan whose partitions and entries keep the relative order
        of ``target_order``.
    """
    options = options or ResolveOptions()
    packages: List[Package] = list(
        target_order.packages if isinstance(target_order, InstallOrder) else target_order
    )
    plan = ExecutionPlan(order=list(packages))

    for package in packages:
        runtime_deps = graph.runtime_dependencies_of(package.full_name) if graph is not None else []
        keg = _installed(installed_kegs, package)
        action: Optional[PlanAction] = None

        if keg is None:
            action = PlanAction.INSTALL
        elif package.is_head:
            if not getattr(keg, "is_head", False):
                action = PlanAction.UPGRADE
        elif getattr(keg, "is_head", False):
            # An installed HEAD build satisfies a stable request
            pass
        else:
            cmp = compare_installed(keg, package)
            if cmp < 0:
                if getattr(keg, "pinned", False):
                    plan.pinned.append(package)
                    plan.warnings.append(
                        f"{package.full_name} is pinned at {keg.pkg_version}; "
                        f"not upgrading to {package.pkg_version}"
                    )
                else:
                    action = PlanAction.UPGRADE
            elif cmp > 0:
                plan.warnings.append(
                    f"{package.full_name} {keg.pkg_version} is installed and newer than "
                    f"available {package.pkg_version}"
                )

        if action is None and keg is not None and package not in plan.pinned:
            if package.name in options.reinstall_names or package.full_name in options.reinstall_names:
                action = PlanAction.REINSTALL
            else:
                reason = incompatibility(keg, package, runtime_deps)
                if reason is not None:
                    logger.info("%s will be reinstalled: %s", package.full_name, reason)
                    action = PlanAction.REINSTALL

        if action is None:
            plan.already_satisfied.append(package)
            continue
        if action is PlanAction.INSTALL:
            plan.to_install.append(package)
        elif action is PlanAction.UPGRADE:
            plan.to_upgrade.append(package)
        else:
            plan.to_reinstall.append(package)
        plan.entries.append(
            PlanEntry(
                package=package,
                action=action,
                installed_version=keg.pkg_version if keg is not None else None,
                runtime_dependencies=runtime_deps,
            )
        )

    if is_debug_enabled(logger):
        logger.debug(
            "Reconciled install order",
            extra=extra_context(
                event="reconcile",
                component="reconciler",
                install=len(plan.to_install),
                upgrade=len(plan.to_upgrade),
                reinstall=len(plan.to_reinstall),
                satisfied=len(plan.already_satisfied),
            ),
        )
    return plan
