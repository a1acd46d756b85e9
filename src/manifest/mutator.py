"""Temporary rewrite of package.json around an install.

The mutator copies the manifest to a sidecar backup, writes resolved peer
versions and package-manager directives into it, and puts the original
bytes back afterwards. The backup is the only record of the original
content, so it is never overwritten and only removed after a successful
restore.
"""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from constants import Constants, DEFAULT_CRITICAL_DEPENDENCIES, DEFAULT_PROBLEMATIC_PACKAGES
from resolution.resolver import resolved_versions
from versioning.models import Manifest, PackageManagerKind, ResolutionOutcome
from workspace.discovery import detect_monorepo
from .directives import apply_directives
from .errors import BackupError, ManifestWriteError, RestoreError, StaleBackupError

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """What ``apply`` wrote to the manifest."""

    manifest: Manifest
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    critical: List[str] = field(default_factory=list)
    problematic: Dict[str, List[str]] = field(default_factory=dict)
    monorepo: bool = False


def merge_resolved(manifest: Manifest, resolved: Mapping[str, str]) -> Dict[str, List[str]]:
    """Write resolved versions into the dependency sections in place.

    An entry already in ``dependencies`` is updated there, otherwise one in
    ``devDependencies`` is updated there; anything absent from both is added
    to ``devDependencies``. Entries are never moved between sections.

    Returns:
        {"added": [...], "updated": [...]} dependency names.
    """
    added: List[str] = []
    updated: List[str] = []
    deps = manifest.get("dependencies")
    deps = deps if isinstance(deps, dict) else {}
    dev = manifest.get("devDependencies")
    if not isinstance(dev, dict):
        dev = {}

    for dep, version in resolved.items():
        if dep in deps:
            target = deps
        elif dep in dev:
            target = dev
        else:
            dev[dep] = version
            added.append(dep)
            continue
        if target[dep] != version:
            target[dep] = version
            updated.append(dep)

    if dev or "devDependencies" in manifest:
        manifest["devDependencies"] = dev
    return {"added": added, "updated": updated}


def _has_trailing_newline(raw: bytes) -> bool:
    return raw.endswith(b"\n")


class ManifestMutator:
    """Backup, rewrite and restore one package.json."""

    def __init__(
        self,
        manifest_path: str,
        backup_path: Optional[str] = None,
        critical_deps: Optional[Sequence[str]] = None,
        problematic_packages: Optional[Mapping[str, Mapping[str, str]]] = None,
    ):
        """Initialize the mutator.

        Args:
            manifest_path: package.json to rewrite.
            backup_path: Sidecar backup path; defaults to
                ``<manifest_path>.backup``.
            critical_deps: Known critical dependency names.
            problematic_packages: Known problematic packages and their peers.
        """
        self.manifest_path = manifest_path
        self.backup_path = backup_path or manifest_path + Constants.BACKUP_SUFFIX
        self.critical_deps = list(critical_deps if critical_deps is not None else DEFAULT_CRITICAL_DEPENDENCIES)
        self.problematic_packages = dict(
            problematic_packages if problematic_packages is not None else DEFAULT_PROBLEMATIC_PACKAGES
        )

    @property
    def project_root(self) -> str:
        return os.path.dirname(os.path.abspath(self.manifest_path))

    def has_backup(self) -> bool:
        return os.path.exists(self.backup_path)

    def apply(
        self,
        outcomes: Mapping[str, ResolutionOutcome],
        manifest: Manifest,
        package_manager: PackageManagerKind,
    ) -> MutationResult:
        """Back up the manifest and write resolved versions and directives.

        ``manifest`` is the parsed root manifest; it is deep-copied and never
        modified.

        Raises:
            StaleBackupError: A backup from an earlier run is still present.
            BackupError: The backup could not be written. Nothing changed.
            ManifestWriteError: The new manifest could not be written. The
                backup is still on disk.

        Any other failure before the write removes the fresh backup and
        propagates.
        """
        raw = self._backup()
        try:
            return self._rewrite(raw, outcomes, manifest, package_manager)
        except ManifestWriteError:
            raise
        except Exception:
            self._discard_backup()
            raise

    def _rewrite(
        self,
        raw: bytes,
        outcomes: Mapping[str, ResolutionOutcome],
        manifest: Manifest,
        package_manager: PackageManagerKind,
    ) -> MutationResult:
        updated = copy.deepcopy(manifest)
        resolved = resolved_versions(outcomes)
        changes = merge_resolved(updated, resolved)
        if changes["added"]:
            logger.info("Added %d peer dependencies to devDependencies", len(changes["added"]))
        if changes["updated"]:
            logger.info("Updated %d existing dependency versions", len(changes["updated"]))

        monorepo = detect_monorepo(self.project_root, updated)
        detected = apply_directives(
            updated,
            package_manager,
            resolved,
            self.critical_deps,
            self.problematic_packages,
            monorepo,
        )

        self._write(updated, trailing_newline=_has_trailing_newline(raw))
        logger.info("Wrote temporary %s with peer dependency configuration", self.manifest_path)
        return MutationResult(
            manifest=updated,
            added=changes["added"],
            updated=changes["updated"],
            critical=detected["critical"],
            problematic=detected["problematic"],
            monorepo=monorepo,
        )

    def restore(self) -> bool:
        """Put the backed-up bytes back and delete the backup.

        Returns:
            True if a backup was restored, False if there was none.

        Raises:
            RestoreError: The manifest could not be restored; the backup is
                left on disk.
        """
        if not self.has_backup():
            logger.debug("No backup at %s; nothing to restore", self.backup_path)
            return False
        try:
            with open(self.backup_path, "rb") as fh:
                raw = fh.read()
            self._atomic_write(raw)
        except OSError as e:
            logger.error("Failed to restore %s from %s: %s", self.manifest_path, self.backup_path, e)
            raise RestoreError(self.manifest_path, self.backup_path, cause=e) from e
        try:
            os.remove(self.backup_path)
        except OSError as e:
            logger.error("Restored %s but could not remove %s: %s", self.manifest_path, self.backup_path, e)
            raise RestoreError(self.manifest_path, self.backup_path, cause=e) from e
        logger.info("Restored original %s", self.manifest_path)
        return True

    @contextlib.contextmanager
    def transaction(
        self,
        outcomes: Mapping[str, ResolutionOutcome],
        manifest: Manifest,
        package_manager: PackageManagerKind,
    ) -> Iterator[MutationResult]:
        """Apply, run the body, then always restore.

        If the body raised, a restore failure is logged and the body's error
        propagates. If the body succeeded, a restore failure is raised.
        """
        try:
            result = self.apply(outcomes, manifest, package_manager)
        except ManifestWriteError:
            self._restore_quietly()
            raise

        try:
            yield result
        except BaseException:
            self._restore_quietly()
            raise
        self.restore()

    def _restore_quietly(self) -> None:
        try:
            self.restore()
        except RestoreError as e:
            logger.error("%s; backup kept at %s", e, self.backup_path)

    def _backup(self) -> bytes:
        if self.has_backup():
            raise StaleBackupError(self.backup_path)
        try:
            with open(self.manifest_path, "rb") as fh:
                raw = fh.read()
            # "xb" so a backup that appeared meanwhile is never clobbered
            with open(self.backup_path, "xb") as fh:
                fh.write(raw)
        except FileExistsError as e:
            raise StaleBackupError(self.backup_path) from e
        except OSError as e:
            raise BackupError(self.backup_path, cause=e) from e
        logger.debug("Backed up %s to %s", self.manifest_path, self.backup_path)
        return raw

    def _discard_backup(self) -> None:
        # manifest untouched, the backup is redundant
        try:
            os.remove(self.backup_path)
        except OSError as e:
            logger.error("Could not remove backup %s: %s", self.backup_path, e)

    def _write(self, manifest: Manifest, trailing_newline: bool) -> None:
        text = json.dumps(manifest, indent=2, ensure_ascii=False)
        if trailing_newline:
            text += "\n"
        try:
            self._atomic_write(text.encode("utf-8"))
        except OSError as e:
            raise ManifestWriteError(self.manifest_path, cause=e) from e

    def _atomic_write(self, data: bytes) -> None:
        directory = os.path.dirname(os.path.abspath(self.manifest_path))
        fd, tmp_path = tempfile.mkstemp(prefix=".package.json.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            if os.path.exists(self.manifest_path):
                shutil.copymode(self.manifest_path, tmp_path)
            os.replace(tmp_path, self.manifest_path)
        except OSError:
            with contextlib.suppress(OSError):
                os.remove(tmp_path)
            raise
