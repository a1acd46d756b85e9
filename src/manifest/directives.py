"""Package-manager specific manifest directives.

Each function edits the manifest mapping in place and only ever adds or
updates the keys it owns; unrelated content is left alone. Running a
function twice on the same manifest gives the same result.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping

from versioning.models import Manifest, PackageManagerKind

logger = logging.getLogger(__name__)


def _declared(manifest: Manifest) -> Dict[str, str]:
    deps: Dict[str, str] = {}
    for key in ("dependencies", "devDependencies"):
        section = manifest.get(key)
        if isinstance(section, dict):
            deps.update(section)
    return deps


def _section(parent: Manifest, key: str) -> Dict:
    value = parent.get(key)
    if not isinstance(value, dict):
        value = {}
        parent[key] = value
    return value


def _append_unique(items: List[str], values: Iterable[str]) -> None:
    for value in values:
        if value not in items:
            items.append(value)


def critical_present(manifest: Manifest, critical: Iterable[str]) -> List[str]:
    """Critical dependencies declared in dependencies or devDependencies."""
    declared = _declared(manifest)
    return [dep for dep in critical if declared.get(dep)]


def problematic_present(
    manifest: Manifest,
    problematic: Mapping[str, Mapping[str, str]],
) -> Dict[str, List[str]]:
    """Problematic packages present whose known peers are missing.

    Returns:
        package name -> list of absent peer names.
    """
    declared = _declared(manifest)
    found: Dict[str, List[str]] = {}
    for pkg, peers in problematic.items():
        if not declared.get(pkg):
            continue
        missing = [peer for peer in peers if not declared.get(peer)]
        if missing:
            found[pkg] = missing
    if found:
        logger.warning("Detected %d packages with potentially missing peer dependencies", len(found))
    return found


def apply_npm(manifest: Manifest) -> None:
    _section(manifest, "npmConfig")["legacy_peer_deps"] = True


def apply_yarn(manifest: Manifest, resolved: Mapping[str, str]) -> None:
    _section(manifest, "resolutions").update(resolved)


def apply_pnpm(
    manifest: Manifest,
    resolved: Mapping[str, str],
    critical: Iterable[str],
    problematic: Mapping[str, List[str]],
) -> None:
    """Add overrides, allowed versions for critical deps and ignore-missing rules."""
    pnpm = _section(manifest, "pnpm")
    _section(pnpm, "overrides").update(resolved)

    rules = _section(pnpm, "peerDependencyRules")
    allowed = _section(rules, "allowedVersions")
    critical_set = set(critical)
    for dep, version in resolved.items():
        if dep in critical_set:
            allowed[dep] = version

    ignore = rules.get("ignoreMissing")
    if not isinstance(ignore, list):
        ignore = []
        rules["ignoreMissing"] = ignore
    _append_unique(ignore, (f"{pkg} > {peer}" for pkg, peers in problematic.items() for peer in peers))


def apply_monorepo(manifest: Manifest, package_manager: PackageManagerKind, critical: Iterable[str]) -> None:
    """Hoisting rules for workspaces.

    pnpm gets ``hoistingLimits``; yarn projects with a ``workspaces`` field
    get a ``nohoist`` glob per critical dependency. A list-form
    ``workspaces`` is converted to the object form to hold ``nohoist``.
    """
    if package_manager is PackageManagerKind.PNPM:
        _section(manifest, "pnpm")["hoistingLimits"] = "workspaces"
        return

    if package_manager is not PackageManagerKind.YARN or not manifest.get("workspaces"):
        return

    workspaces = manifest["workspaces"]
    if isinstance(workspaces, list):
        workspaces = {"packages": workspaces}
        manifest["workspaces"] = workspaces
    elif not isinstance(workspaces, dict):
        logger.warning("Unsupported workspaces value %r; skipping nohoist", workspaces)
        return

    nohoist = workspaces.get("nohoist")
    if not isinstance(nohoist, list):
        nohoist = []
        workspaces["nohoist"] = nohoist
    _append_unique(nohoist, (f"**/{dep}/**" for dep in critical))


def apply_directives(
    manifest: Manifest,
    package_manager: PackageManagerKind,
    resolved: Mapping[str, str],
    critical: Iterable[str],
    problematic: Mapping[str, Mapping[str, str]],
    monorepo: bool,
) -> Dict[str, object]:
    """Apply every directive for ``package_manager``.

    Args:
        manifest: Manifest to edit in place (already merged).
        package_manager: Target package manager.
        resolved: Dependency name -> resolved version.
        critical: Known critical dependency names.
        problematic: Known problematic packages and their usual peers.
        monorepo: Whether workspace indicators were detected.

    Returns:
        Summary with the critical deps and problematic packages detected.
    """
    critical_deps = critical_present(manifest, critical)
    logger.info("Detected %d critical dependencies", len(critical_deps))
    missing = problematic_present(manifest, problematic)

    if package_manager is PackageManagerKind.NPM:
        apply_npm(manifest)
    elif package_manager is PackageManagerKind.YARN:
        apply_yarn(manifest, resolved)
    elif package_manager is PackageManagerKind.PNPM:
        apply_pnpm(manifest, resolved, critical, missing)

    if monorepo:
        logger.info("Detected monorepo structure, adding workspace configuration")
        apply_monorepo(manifest, package_manager, critical_deps)

    return {"critical": critical_deps, "problematic": missing}
