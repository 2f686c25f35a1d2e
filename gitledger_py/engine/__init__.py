"""
Engine package for GitLedger.

This module provides the base classes for revision stores in GitLedger.
A revision store is a thin command interface over a version-control engine:
it carries no policy and never retries.
"""

import abc
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set


@dataclass(frozen=True)
class Revision:
    """Represents one commit in the repository history."""

    id: str
    time: datetime
    message: str = ""


@dataclass
class WorkingStatus:
    """Differences between the working tree and the last commit."""

    # Tracked paths deleted from the working tree
    missing: Set[str] = field(default_factory=set)
    # Tracked paths whose content changed
    modified: Set[str] = field(default_factory=set)
    # New paths, including ones matched by ignore rules
    untracked: Set[str] = field(default_factory=set)

    @property
    def to_add(self) -> List[str]:
        return sorted(self.modified | self.untracked)

    @property
    def to_remove(self) -> List[str]:
        return sorted(self.missing)

    def is_clean(self) -> bool:
        return not (self.missing or self.modified or self.untracked)


class BaseRevisionStore(abc.ABC):
    """Base class for revision stores bound to one working directory."""

    def __init__(self, work_dir: Path):
        self.work_dir = work_dir

    @abc.abstractmethod
    def clone(self, url: str) -> None:
        """Clone *url* into the working directory."""
        pass

    @abc.abstractmethod
    def is_empty(self) -> bool:
        """Return True when the repository has no revisions at all."""
        pass

    @abc.abstractmethod
    def point_head(self, branch: str) -> None:
        """Point an unborn HEAD at *branch* so the first commit lands there."""
        pass

    @abc.abstractmethod
    def checkout(self, name: str, detach: bool = False) -> None:
        """
        Check out a branch or revision.

        Args:
            name: Branch name or revision id
            detach: Check out *name* as a detached HEAD
        """
        pass

    @abc.abstractmethod
    def pull(self, remote: str, branch: str) -> None:
        """Fast-forward *branch* from *remote*."""
        pass

    @abc.abstractmethod
    def push(self, remote: str, refspec: str) -> None:
        """Push *refspec* to *remote*."""
        pass

    @abc.abstractmethod
    def remote_has_branch(self, remote: str, branch: str) -> bool:
        """Ask *remote* whether it has *branch* at all."""
        pass

    @abc.abstractmethod
    def has_unpushed_revisions(self, remote: str, branch: str) -> bool:
        """
        Check for local revisions on *branch* that *remote* has not seen.

        Compares against the remote-tracking ref of the last fetch or pull.
        """
        pass

    @abc.abstractmethod
    def add(self, path: str) -> None:
        """Stage *path* for the next commit."""
        pass

    @abc.abstractmethod
    def remove(self, path: str) -> None:
        """Stage the removal of the tracked *path*."""
        pass

    @abc.abstractmethod
    def commit(self, message: str) -> str:
        """
        Commit the staged changes.

        Returns:
            The id of the new revision
        """
        pass

    @abc.abstractmethod
    def status(self) -> WorkingStatus:
        """Compare the working tree against the last commit."""
        pass

    @abc.abstractmethod
    def log(self, ref: str = "HEAD") -> List[Revision]:
        """
        List the revisions reachable from *ref*, newest first.

        Raises:
            EmptyHistoryError: *ref* does not resolve to any revision
        """
        pass

    @abc.abstractmethod
    def read_file_at_revision(self, path: str, revision: str) -> Optional[bytes]:
        """
        Read *path* from the tree of *revision*.

        Returns:
            File contents, or None if the revision has no such file
        """
        pass

    def close(self) -> None:
        """Release any handle held on the working directory."""
        pass
