"""
Error types for GitLedger.

Callers switch on the error kind; the underlying cause, when there is one,
is chained with ``raise ... from``.
"""

from typing import Optional, Sequence


class GitledgerError(Exception):
    """Base class for all GitLedger errors."""


class VcsOperationError(GitledgerError):
    """A version-control command failed."""

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = stderr


class CorruptWorkingCopyError(VcsOperationError):
    """The remote rejected a pull into an existing working copy."""


class EmptyHistoryError(GitledgerError):
    """History was requested from a repository without any revisions."""


class LineageMismatchError(GitledgerError):
    """The recorded initial fingerprint is not part of the repository history."""


class AlreadyExistsError(GitledgerError):
    """A clone was attempted into a directory that already holds a repository."""


class DescriptorNotFoundError(GitledgerError):
    """No stored backup matches the requested descriptor."""


class NoBackupFilesError(GitledgerError):
    """The revision for a backup carries no archive files."""


class RestoreTargetError(GitledgerError):
    """The restore target is not a writable directory."""


class SyncEngineError(GitledgerError):
    """Recovery was attempted and failed; the location is unusable for now."""
