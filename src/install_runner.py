"""Package manager invocation.

Builds the install command run while package.json holds the resolved peer
versions, and passes any other command straight through to the manager.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from constants import ExitCodes
from versioning.models import PackageManagerKind

logger = logging.getLogger(__name__)

# Commands that trigger a resolve-and-install cycle; "" is a bare invocation.
INSTALL_COMMANDS = {
    PackageManagerKind.NPM: {"install", "i", ""},
    PackageManagerKind.YARN: {"add", "install", ""},
    PackageManagerKind.PNPM: {"add", "install", "i", ""},
}


class InstallError(Exception):
    """The package manager exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int):
        self.command = list(command)
        self.returncode = returncode
        super().__init__(f"{' '.join(self.command)} exited with status {returncode}")


@dataclass
class InstallCommand:
    """A package manager command line."""

    package_manager: PackageManagerKind
    args: List[str] = field(default_factory=list)

    @property
    def argv(self) -> List[str]:
        return [self.package_manager.value] + self.args

    def __str__(self) -> str:
        return " ".join(self.argv)


def is_install_command(command: Optional[str], package_manager: PackageManagerKind) -> bool:
    """True when ``command`` installs packages for ``package_manager``."""
    return (command or "") in INSTALL_COMMANDS.get(package_manager, set())


def build_install_command(
    package_manager: PackageManagerKind,
    packages: Sequence[str] = (),
    extra_args: Sequence[str] = (),
) -> InstallCommand:
    """Install command run against the temporary manifest.

    Lockfiles are never written, since they would capture the temporary
    versions rather than the project's own.
    """
    if package_manager is PackageManagerKind.NPM:
        args = ["install", "--no-package-lock"]
    else:
        args = ["add" if packages else "install", "--no-lockfile"]
    return InstallCommand(package_manager, args + list(packages) + list(extra_args))


def build_passthrough_command(
    package_manager: PackageManagerKind,
    command: str,
    packages: Sequence[str] = (),
    extra_args: Sequence[str] = (),
) -> InstallCommand:
    args = [command] if command else []
    return InstallCommand(package_manager, args + list(packages) + list(extra_args))


def run_command(
    command: InstallCommand,
    cwd: str = ".",
    run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> int:
    """Run ``command`` in ``cwd`` with inherited stdio.

    Returns:
        The process exit status.
    """
    logger.info("Running: %s", command)
    try:
        result = run(command.argv, cwd=cwd, check=False)  # noqa: S603
    except OSError as e:
        logger.error("Could not start %s: %s", command.package_manager.value, e)
        return ExitCodes.COMMAND_NOT_FOUND.value
    return result.returncode


def run_install(
    command: InstallCommand,
    cwd: str = ".",
    run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> None:
    """Run the install command.

    Raises:
        InstallError: If the package manager fails.
    """
    returncode = run_command(command, cwd=cwd, run=run)
    if returncode != 0:
        raise InstallError(command.argv, returncode)
    logger.info("Installation completed successfully")
