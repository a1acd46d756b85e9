"""Package manager detection for a project directory."""

from __future__ import annotations

import logging
import os
import shutil
from typing import Callable, Optional

from constants import Constants
from versioning.models import PackageManagerKind

logger = logging.getLogger(__name__)

# Preference when nothing in the project points at a manager.
_INSTALLED_PRIORITY = [PackageManagerKind.NPM, PackageManagerKind.YARN, PackageManagerKind.PNPM]


def detect_package_manager(
    directory: str = ".",
    forced: Optional[str] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> PackageManagerKind:
    """Decide which package manager drives the project.

    Precedence:
        1. ``forced``, when it names a supported manager that is installed
        2. the first lockfile present (pnpm-lock.yaml, yarn.lock,
           package-lock.json) whose manager is installed
        3. the first installed of npm, yarn, pnpm
        4. npm

    Args:
        directory: Project directory holding package.json.
        forced: Manager requested by the user (e.g. from --pm).
        which: Binary lookup, injectable for tests.
    """
    if forced:
        try:
            kind = PackageManagerKind(forced.lower())
        except ValueError:
            logger.error("Unsupported package manager %r; falling back to auto-detection", forced)
        else:
            if which(kind.value):
                return kind
            logger.error(
                "Forced package manager %s is not installed or not in PATH; falling back to auto-detection",
                kind.value,
            )

    for lockfile, manager in Constants.LOCKFILE_MANAGERS:
        if os.path.isfile(os.path.join(directory, lockfile)):
            if which(manager):
                return PackageManagerKind(manager)
            logger.warning("Detected %s from %s, but it is not installed or not in PATH", manager, lockfile)

    for kind in _INSTALLED_PRIORITY:
        if which(kind.value):
            return kind

    return PackageManagerKind.NPM
