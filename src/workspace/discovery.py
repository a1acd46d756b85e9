"""Workspace member discovery.

Finds the package.json files that take part in a run: the root, plus every
member declared through ``workspaces`` globs, ``pnpm-workspace.yaml`` or
one of the conventional package directories. Directory scans and manifest
reads run concurrently and are joined before anything is returned.
"""

from __future__ import annotations

import asyncio
import glob
import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled
from manifest.errors import ManifestReadError
from manifest.reader import ManifestCache
from versioning.models import Manifest, PackageManagerKind, WorkspaceMember

logger = logging.getLogger(__name__)


def workspace_patterns(manifest: Manifest) -> List[str]:
    """Globs from the ``workspaces`` field (array or ``{packages: [...]}``)."""
    workspaces = manifest.get("workspaces")
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages")
    if not isinstance(workspaces, list):
        return []
    return [p for p in workspaces if isinstance(p, str) and p.strip()]


def pnpm_workspace_patterns(root: str) -> List[str]:
    """Globs from the ``packages`` list of pnpm-workspace.yaml, if present."""
    path = os.path.join(root, Constants.PNPM_WORKSPACE_FILE)
    if not os.path.isfile(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to parse %s: %s", path, e)
        return []
    packages = data.get("packages") if isinstance(data, dict) else None
    if not isinstance(packages, list):
        return []
    return [p for p in packages if isinstance(p, str) and p.strip()]


def detect_monorepo(root: str, manifest: Manifest) -> bool:
    """True when the project shows any monorepo indicator."""
    if manifest.get("workspaces"):
        return True
    if os.path.isfile(os.path.join(root, Constants.LERNA_FILE)):
        return True
    if os.path.isfile(os.path.join(root, Constants.PNPM_WORKSPACE_FILE)):
        return True
    for name in Constants.MONOREPO_DIRS:
        path = os.path.join(root, name)
        if os.path.isdir(path):
            try:
                if os.listdir(path):
                    return True
            except OSError:
                continue
    return False


def _has_manifest(path: str) -> bool:
    return os.path.isfile(os.path.join(path, Constants.PACKAGE_JSON_FILE))


def _expand_patterns(root: str, patterns: List[str]) -> List[str]:
    """Member directories matched by workspace globs; ``!`` patterns exclude."""
    included: List[str] = []
    excluded = set()
    for pattern in patterns:
        negate = pattern.startswith("!")
        pattern = pattern[1:] if negate else pattern
        pattern = pattern.rstrip("/")
        matches = sorted(glob.glob(os.path.join(root, pattern), recursive=True))
        for match in matches:
            if not os.path.isdir(match):
                continue
            path = os.path.abspath(match)
            if negate:
                excluded.add(path)
            elif _has_manifest(path):
                included.append(path)
    return [p for p in included if p not in excluded]


def _scan_directory(root: str, name: str) -> List[str]:
    """Immediate subdirectories of ``root/name`` that hold a package.json."""
    base = os.path.join(root, name)
    try:
        entries = sorted(os.scandir(base), key=lambda e: e.name)
    except OSError:
        return []  # Directory doesn't exist
    return [os.path.abspath(e.path) for e in entries if e.is_dir() and _has_manifest(e.path)]


async def _load_member(root: str, path: str, manifests: ManifestCache) -> Optional[WorkspaceMember]:
    manifest_path = os.path.join(path, Constants.PACKAGE_JSON_FILE)
    try:
        manifest = await manifests.aget(manifest_path)
    except ManifestReadError as e:
        logger.warning("Skipping workspace member %s: %s", path, e)
        return None
    rel = os.path.relpath(path, root).replace(os.sep, "/")
    name = manifest.get("name") or os.path.basename(path)
    return WorkspaceMember(path=rel, name=str(name), manifest=manifest)


async def discover_members(
    root: str,
    package_manager: PackageManagerKind,
    manifests: ManifestCache,
) -> List[WorkspaceMember]:
    """Discover every workspace member, the root last.

    Raises:
        ManifestReadError: If the root package.json cannot be read.
    """
    root = os.path.abspath(root)
    root_manifest = await manifests.aget(os.path.join(root, Constants.PACKAGE_JSON_FILE))
    root_member = WorkspaceMember(
        path=".",
        name=str(root_manifest.get("name") or "root"),
        manifest=root_manifest,
    )

    if root_manifest.get("workspaces"):
        logger.info("Detected workspaces configuration in package.json")
    elif package_manager is PackageManagerKind.PNPM and os.path.isfile(
        os.path.join(root, Constants.PNPM_WORKSPACE_FILE)
    ):
        logger.info("Detected pnpm workspaces configuration")
    else:
        return [root_member]

    patterns = workspace_patterns(root_manifest) + pnpm_workspace_patterns(root)
    scans = [asyncio.to_thread(_expand_patterns, root, patterns)]
    scans.extend(asyncio.to_thread(_scan_directory, root, name) for name in Constants.WORKSPACE_DIRS)
    found = await asyncio.gather(*scans)

    seen: Dict[str, Any] = {}
    for paths in found:
        for path in paths:
            if path != root:
                seen.setdefault(path, None)

    loaded = await asyncio.gather(*(_load_member(root, path, manifests) for path in seen))
    members = [m for m in loaded if m is not None]
    members.append(root_member)

    if is_debug_enabled(logger):
        logger.debug(
            "Workspace members discovered",
            extra=extra_context(
                event="discovery",
                component="workspace",
                count=len(members),
                paths=[m.path for m in members],
            ),
        )
    logger.info("Found %d packages in the workspace", len(members))
    return members
