"""Typed failures for manifest I/O.

Resolution problems never surface here; they are represented as an
``OutcomeKind``. These exceptions are for the file operations around the
install step, where the caller needs to know whether ``package.json`` was
already changed when things went wrong.
"""

from __future__ import annotations

from typing import Optional


class ManifestError(Exception):
    """A manifest read/write/backup/restore operation failed.

    Attributes:
        path: File the operation targeted.
        operation: Short operation name ("read", "backup", "write", "restore").
        cause: Underlying exception, if any.
        mutated: True when the manifest on disk may already hold resolved
            versions (a restore was or must be attempted).
    """

    def __init__(
        self,
        path: str,
        operation: str,
        cause: Optional[BaseException] = None,
        mutated: bool = False,
        message: Optional[str] = None,
    ):
        self.path = path
        self.operation = operation
        self.cause = cause
        self.mutated = mutated
        detail = message or (str(cause) if cause is not None else "failed")
        state = "after mutation" if mutated else "before mutation"
        super().__init__(f"{operation} {path} failed {state}: {detail}")


class ManifestReadError(ManifestError):
    """The manifest could not be read or parsed."""

    def __init__(self, path: str, cause: Optional[BaseException] = None, message: Optional[str] = None):
        super().__init__(path, "read", cause=cause, mutated=False, message=message)


class BackupError(ManifestError):
    """The backup could not be written; nothing was changed."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(path, "backup", cause=cause, mutated=False)


class StaleBackupError(ManifestError):
    """A backup from an interrupted run is still on disk.

    The manifest may still hold resolved versions from that run; restore
    before mutating again.
    """

    def __init__(self, path: str):
        super().__init__(
            path,
            "backup",
            mutated=False,
            message="a previous backup exists; run 'peerdeps restore' first",
        )


class ManifestWriteError(ManifestError):
    """Writing the mutated manifest failed."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(path, "write", cause=cause, mutated=True)


class RestoreError(ManifestError):
    """Restoring the backup failed; the backup file was kept."""

    def __init__(self, path: str, backup_path: str, cause: Optional[BaseException] = None):
        self.backup_path = backup_path
        super().__init__(path, "restore", cause=cause, mutated=True)
