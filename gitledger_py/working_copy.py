"""
Local working copy lifecycle for GitLedger.

A working copy is the on-disk replica of one location's remote repository.
It is disposable: anything suspicious about it is fixed by deleting it and
cloning again.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Union

from gitledger_py.config import LocationConfig
from gitledger_py.engine import BaseRevisionStore
from gitledger_py.errors import (
    AlreadyExistsError,
    CorruptWorkingCopyError,
    VcsOperationError,
)

logger = logging.getLogger("gitledger.working_copy")

# On-disk layout inside the working copy
ARCHIVE_DIR = "archive"
DESCRIPTOR_FILE = "backup.pbobj"
METADATA_DIR = ".git"

REMOTE_NAME = "origin"

StoreFactory = Callable[[Path], BaseRevisionStore]


@dataclass
class WorkingCopy:
    """A local replica of a location's repository."""

    path: Path
    branch: str
    store: BaseRevisionStore
    # True while the repository has no revisions at all
    empty: bool = True
    # Local revisions on the branch have not reached the remote yet
    push_pending: bool = False

    @property
    def archive_dir(self) -> Path:
        return self.path / ARCHIVE_DIR

    @property
    def descriptor_path(self) -> Path:
        return self.path / DESCRIPTOR_FILE


class WorkingCopyManager:
    """Creates, opens, cleans and destroys working copies."""

    def __init__(self, store_factory: StoreFactory):
        self.store_factory = store_factory

    def exists(self, config: LocationConfig) -> bool:
        return (config.working_dir / METADATA_DIR).exists()

    def open(self, config: LocationConfig) -> WorkingCopy:
        """Open an existing working copy without touching the remote."""
        store = self.store_factory(config.working_dir)
        return WorkingCopy(
            path=config.working_dir,
            branch=config.branch,
            store=store,
            empty=store.is_empty(),
        )

    def clone(self, config: LocationConfig) -> WorkingCopy:
        """
        Clone the location's remote into its working directory.

        Raises:
            AlreadyExistsError: The working directory already holds a repository
        """
        if self.exists(config):
            raise AlreadyExistsError(
                f"Repository already exists in {config.working_dir}"
            )
        logger.info(f"Cloning the repository from {config.remote}")
        store = self.store_factory(config.working_dir)
        store.clone(config.remote_url)
        empty = store.is_empty()
        if empty:
            store.point_head(config.branch)
        return WorkingCopy(
            path=config.working_dir, branch=config.branch, store=store, empty=empty
        )

    def ensure_ready(self, config: LocationConfig) -> WorkingCopy:
        """
        Return a working copy that is on the tracked branch and up to date.

        An empty repository is returned as-is with ``empty`` set. A remote
        that does not have the tracked branch yet while the local copy does
        is not pulled from; the copy comes back with ``push_pending`` set.

        Raises:
            CorruptWorkingCopyError: The existing copy could not be brought
                up to date with the remote
        """
        if self.exists(config):
            logger.info("Repository directory exists, trying to pull")
            working_copy = self.open(config)
        else:
            working_copy = self.clone(config)

        if working_copy.empty:
            logger.info(f"{config.display_name} holds no backups yet")
            return working_copy

        store = working_copy.store
        try:
            store.checkout(config.branch)
            if store.remote_has_branch(REMOTE_NAME, config.branch):
                store.pull(REMOTE_NAME, config.branch)
                working_copy.push_pending = store.has_unpushed_revisions(
                    REMOTE_NAME, config.branch
                )
            else:
                logger.info(
                    f"{config.remote} has no branch {config.branch} yet, "
                    f"local backups are waiting to be pushed"
                )
                working_copy.push_pending = True
        except VcsOperationError as e:
            raise CorruptWorkingCopyError(
                f"Cannot update {working_copy.path} from {config.remote}: {e}",
                command=e.command,
                returncode=e.returncode,
                stderr=e.stderr,
            ) from e
        logger.info("Working copy is up to date.")
        return working_copy

    def awaiting_first_push(self, working_copy: WorkingCopy) -> bool:
        """True if the copy has revisions but the remote lacks the tracked branch."""
        if working_copy.empty:
            return False
        return not working_copy.store.remote_has_branch(
            REMOTE_NAME, working_copy.branch
        )

    def purge(self, target: Union[WorkingCopy, Path]) -> None:
        """Delete a working copy. Safe to call when there is nothing to delete."""
        if isinstance(target, WorkingCopy):
            target.store.close()
            path = target.path
        else:
            path = target
        if path.exists():
            logger.info(f"Deleting working copy at {path}")
            shutil.rmtree(path)

    def clean_working_tree(self, working_copy: WorkingCopy) -> None:
        """Delete everything in the working directory except git metadata."""
        logger.info("Cleaning up the working directory ...")
        for entry in working_copy.path.iterdir():
            if entry.name == METADATA_DIR:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
