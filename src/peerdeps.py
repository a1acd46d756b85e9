"""peerdeps - resolve peer dependency conflicts before installing.

Collects peer requirements across the workspace, resolves one version per
dependency, temporarily writes them (plus package-manager directives) into
package.json, runs the install and restores the original manifest.
"""

import asyncio
import logging
import os
import sys
from typing import Dict, Tuple

from args import parse_args
from cli_config import RunConfig, apply_cli_overrides, load_config, resolve_registry_url
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes
from install_runner import (
    InstallError,
    build_install_command,
    build_passthrough_command,
    is_install_command,
    run_command,
    run_install,
)
from manifest.errors import ManifestError, ManifestReadError, StaleBackupError
from manifest.mutator import ManifestMutator
from manifest.reader import ManifestCache
from registry.npm import NpmRegistryClient
from resolution.report import build_report, export_json, log_report
from resolution.resolver import ConflictResolver, conflicting
from versioning.cache import VersionCache
from versioning.models import Manifest, PackageManagerKind, RequirementGroup, ResolutionOutcome
from workspace.collector import collect
from workspace.detect import detect_package_manager
from workspace.discovery import discover_members

logger = logging.getLogger(__name__)


def _needs_registry(groups: Dict[str, RequirementGroup]) -> bool:
    return any(len(group) > 1 for group in groups.values())


async def resolve_project(
    directory: str,
    package_manager: PackageManagerKind,
    config: RunConfig,
) -> Tuple[Dict[str, RequirementGroup], Dict[str, ResolutionOutcome], Manifest]:
    """Discover, collect and resolve peer requirements for a project.

    Returns:
        (requirement groups, outcomes, root manifest)

    Raises:
        ManifestReadError: If the root package.json cannot be read.
    """
    members = await discover_members(directory, package_manager, ManifestCache())
    root_manifest = members[-1].manifest
    groups = collect(members, ignore=config.ignore_packages)
    if not groups:
        logger.info("No peer dependencies found")
        return groups, {}, root_manifest

    logger.info("Found %d peer dependencies across %d packages", len(groups), len(members))

    base_url = Constants.REGISTRY_URL_NPM
    if _needs_registry(groups):
        base_url = await asyncio.to_thread(resolve_registry_url, config)
    async with NpmRegistryClient(
        base_url=base_url,
        cache=VersionCache(),
        timeout=config.timeout,
        retries=config.retries,
    ) as client:
        outcomes = await ConflictResolver(client).resolve_all(groups)

    if is_debug_enabled(logger):
        logger.debug(
            "Resolution finished",
            extra=extra_context(
                event="resolution_complete",
                component="cli",
                dependencies=len(outcomes),
                conflicts=len(conflicting(outcomes)),
                registry_stats=client.cache.stats(),
            ),
        )
    return groups, outcomes, root_manifest


def _restore(mutator: ManifestMutator) -> int:
    try:
        if mutator.restore():
            logger.info("Original package.json restored from backup")
        else:
            logger.info("No backup found at %s", mutator.backup_path)
    except ManifestError as e:
        logger.error("%s", e)
        return ExitCodes.FILE_ERROR.value
    return ExitCodes.SUCCESS.value


def run(args) -> int:
    """Run one CLI invocation and return its exit code."""
    directory = os.path.abspath(args.DIRECTORY)
    config = apply_cli_overrides(load_config(directory, args.CONFIG), args)
    mutator = ManifestMutator(
        os.path.join(directory, Constants.PACKAGE_JSON_FILE),
        critical_deps=config.critical_dependencies,
        problematic_packages=config.problematic_packages,
    )

    if args.COMMAND == "restore":
        return _restore(mutator)

    package_manager = detect_package_manager(directory, forced=config.package_manager)
    logger.info("Using %s as package manager", package_manager.value)

    if not is_install_command(args.COMMAND, package_manager):
        command = build_passthrough_command(package_manager, args.COMMAND, args.PACKAGES, args.EXTRA_ARGS)
        return run_command(command, cwd=directory)

    try:
        groups, outcomes, root_manifest = asyncio.run(resolve_project(directory, package_manager, config))
    except ManifestReadError as e:
        logger.error("%s", e)
        return ExitCodes.FILE_ERROR.value

    report = build_report(groups, outcomes)
    log_report(report)
    if args.REPORT:
        try:
            export_json(report, args.REPORT)
        except OSError as e:
            logger.error("Failed to write report %s: %s", args.REPORT, e)
            return ExitCodes.FILE_ERROR.value

    if args.DRY_RUN:
        logger.info("Dry run: package.json left unchanged, nothing installed")
        return ExitCodes.SUCCESS.value

    command = build_install_command(package_manager, args.PACKAGES, args.EXTRA_ARGS)
    try:
        with mutator.transaction(outcomes, root_manifest, package_manager):
            run_install(command, cwd=directory)
    except StaleBackupError as e:
        logger.error("%s", e)
        return ExitCodes.FILE_ERROR.value
    except InstallError as e:
        logger.error("Installation failed: %s", e)
        return ExitCodes.INSTALL_FAILED.value
    except ManifestError as e:
        logger.error("%s", e)
        return ExitCodes.FILE_ERROR.value
    return ExitCodes.SUCCESS.value


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main", command=args.COMMAND)
        )

    try:
        code = run(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        code = ExitCodes.INTERRUPTED.value
    sys.exit(code)


if __name__ == "__main__":
    main()
