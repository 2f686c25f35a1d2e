"""
Backup store orchestration for GitLedger.

The sync engine keeps one location's working copy trustworthy and implements
the store / list / retrieve protocol on top of it.

States::

    UNINITIALIZED --initialize--> CLONING --> EMPTY | READY
                                  RECOVERING --> CLONING

A working copy that fails lineage verification, or whose pull is rejected,
is deleted and cloned again. Recovery happens at most once per initialize;
a second failure is surfaced as SyncEngineError.
"""

import logging
import os
import shutil
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from gitledger_py.config import GitledgerConfig, LocationConfig
from gitledger_py.engine.git import GitRevisionStore
from gitledger_py.errors import (
    CorruptWorkingCopyError,
    DescriptorNotFoundError,
    EmptyHistoryError,
    GitledgerError,
    LineageMismatchError,
    NoBackupFilesError,
    RestoreTargetError,
    SyncEngineError,
    VcsOperationError,
)
from gitledger_py.index import BackupIndex, decode_descriptor, encode_descriptor
from gitledger_py.lineage import LineageVerifier
from gitledger_py.state import FingerprintStore
from gitledger_py.working_copy import (
    DESCRIPTOR_FILE,
    REMOTE_NAME,
    WorkingCopy,
    WorkingCopyManager,
)

logger = logging.getLogger("gitledger.sync")

MAX_RECOVERY_CYCLES = 1
COMMIT_MESSAGE_FORMAT = "Backup created %Y %m %d %H:%M"

Descriptor = Union[str, bytes]


class EngineState(Enum):
    """Lifecycle of a location's working copy."""

    UNINITIALIZED = "uninitialized"
    CLONING = "cloning"
    EMPTY = "empty"
    READY = "ready"
    RECOVERING = "recovering"


class SyncEngine:
    """Stores, lists and retrieves backups for one location.

    All public operations hold a per-instance lock; distinct locations use
    distinct engines and share nothing.
    """

    def __init__(
        self,
        config: LocationConfig,
        manager: WorkingCopyManager,
        verifier: Optional[LineageVerifier] = None,
        fingerprints: Optional[FingerprintStore] = None,
        strict_staging: bool = True,
    ):
        """
        Initialize the sync engine.

        Args:
            config: The location to operate on
            manager: Working copy manager bound to a revision store factory
            verifier: Lineage verifier (a default one is created if omitted)
            fingerprints: Where captured fingerprints are persisted
            strict_staging: Fail the store on the first add/remove error
                instead of logging it and carrying on
        """
        self.config = config
        self.manager = manager
        self.verifier = verifier or LineageVerifier()
        self.fingerprints = fingerprints
        self.strict_staging = strict_staging
        self.index = BackupIndex()
        self.state = EngineState.UNINITIALIZED
        self.working_copy: Optional[WorkingCopy] = None
        self._needs_recovery = False
        self._lock = threading.RLock()

    @classmethod
    def for_location(
        cls,
        location: LocationConfig,
        settings: GitledgerConfig,
        fingerprints: Optional[FingerprintStore] = None,
    ) -> "SyncEngine":
        """Build an engine backed by the git binary described in *settings*."""

        def store_factory(path: Path) -> GitRevisionStore:
            return GitRevisionStore(
                path,
                binary_path=settings.git_binary,
                author_name=settings.author_name,
                author_email=settings.author_email,
            )

        if fingerprints is not None and not location.initial_fingerprint:
            location = location.with_fingerprint(fingerprints.get(location.name))
        return cls(
            location,
            WorkingCopyManager(store_factory),
            fingerprints=fingerprints,
            strict_staging=settings.strict_staging,
        )

    @property
    def fingerprint(self) -> Optional[str]:
        return self.config.initial_fingerprint

    def initialize(self) -> EngineState:
        """
        Bring the working copy to a trusted, up-to-date state.

        Returns:
            EngineState.EMPTY or EngineState.READY

        Raises:
            LineageMismatchError: A fresh clone does not contain the recorded
                fingerprint
            SyncEngineError: The working copy could not be updated even after
                a reclone
        """
        with self._lock:
            self.index.clear()
            self._discard_untrusted_copy()

            working_copy = None
            for cycle in range(MAX_RECOVERY_CYCLES + 1):
                cloning = not self.manager.exists(self.config)
                if cloning:
                    self.state = EngineState.CLONING
                try:
                    working_copy = self.manager.ensure_ready(self.config)
                except CorruptWorkingCopyError as e:
                    logger.warning(f"Cannot pull! {e}")
                    self._purge()
                    if cycle == MAX_RECOVERY_CYCLES:
                        self.state = EngineState.UNINITIALIZED
                        raise SyncEngineError(
                            f"{self.config.display_name} is still unusable after "
                            f"a fresh clone: {e}"
                        ) from e
                    self.state = EngineState.RECOVERING
                    continue
                except GitledgerError:
                    self.state = EngineState.UNINITIALIZED
                    raise
                if cloning:
                    self._check_cloned_lineage(working_copy)
                break

            assert working_copy is not None
            self.working_copy = working_copy
            self._needs_recovery = False
            if working_copy.empty:
                self.state = EngineState.EMPTY
            else:
                self.state = EngineState.READY
                if working_copy.push_pending:
                    self._push(working_copy)
                # Only history the remote holds can become the fingerprint
                if not working_copy.push_pending:
                    self._capture_fingerprint(working_copy)
            logger.info(f"{self.config.display_name} is {self.state.value}")
            return self.state

    def _ensure_initialized(self) -> WorkingCopy:
        if (
            self.state not in (EngineState.EMPTY, EngineState.READY)
            or self.working_copy is None
        ):
            self.initialize()
        assert self.working_copy is not None
        return self.working_copy

    def _purge(self) -> None:
        if self.working_copy is not None:
            self.manager.purge(self.working_copy)
            self.working_copy = None
        else:
            self.manager.purge(self.config.working_dir)

    def _discard_untrusted_copy(self) -> None:
        """Delete a local copy that cannot be shown to match the recorded lineage."""
        if not self.manager.exists(self.config):
            return

        if self._needs_recovery:
            logger.info("Previous operation left the working copy inconsistent")
        elif not self.config.initial_fingerprint:
            if self._awaiting_first_push():
                logger.info("Keeping working copy, its backups were never pushed")
                return
            logger.info(
                "Initial fingerprint for this location is not defined. Cannot "
                "verify existing repository, repository will be cloned."
            )
        elif self._verify_local_copy():
            return

        self.state = EngineState.RECOVERING
        self._purge()

    def _awaiting_first_push(self) -> bool:
        try:
            working_copy = self.working_copy or self.manager.open(self.config)
            return self.manager.awaiting_first_push(working_copy)
        except GitledgerError as e:
            logger.warning(f"Cannot inspect existing working copy: {e}")
            return False

    def _verify_local_copy(self) -> bool:
        try:
            working_copy = self.working_copy or self.manager.open(self.config)
        except GitledgerError as e:
            logger.warning(f"Cannot open existing working copy: {e}")
            return False
        if self.verifier.verify(working_copy, self.config.initial_fingerprint):
            return True
        logger.info("Existing repository does not match expected initial commit.")
        return False

    def _check_cloned_lineage(self, working_copy: WorkingCopy) -> None:
        fingerprint = self.config.initial_fingerprint
        if not fingerprint or self.verifier.verify(working_copy, fingerprint):
            return
        self.working_copy = working_copy
        self._purge()
        self.state = EngineState.UNINITIALIZED
        raise LineageMismatchError(
            f"Remote of {self.config.display_name} does not contain the initial "
            f"revision {fingerprint}; reset the location to accept the new history"
        )

    def _capture_fingerprint(self, working_copy: WorkingCopy) -> None:
        if self.config.initial_fingerprint:
            return
        try:
            self.config = self.verifier.capture_fingerprint(working_copy, self.config)
        except EmptyHistoryError:
            return
        if self.fingerprints is not None and self.config.initial_fingerprint:
            self.fingerprints.record(self.config.name, self.config.initial_fingerprint)

    def store(self, archive_files: Iterable[Path], descriptor: Descriptor) -> str:
        """
        Commit a backup and push it to the remote.

        Args:
            archive_files: Files and directories to place under ``archive/``
            descriptor: The backup's descriptor blob

        Returns:
            The id of the revision holding the backup
        """
        files = [Path(f) for f in archive_files]
        for f in files:
            if not f.exists():
                raise FileNotFoundError(f"Archive file {f} does not exist")
        if isinstance(descriptor, bytes):
            blob = descriptor
        else:
            blob = encode_descriptor(descriptor)

        with self._lock:
            working_copy = self._ensure_initialized()
            self.index.clear()
            try:
                if self.state is EngineState.READY:
                    working_copy.store.checkout(working_copy.branch)
                self.manager.clean_working_tree(working_copy)
                self._copy_files(working_copy, files, blob)
                self._stage(working_copy)
                message = datetime.now().strftime(COMMIT_MESSAGE_FORMAT)
                logger.info("Committing...")
                revision = working_copy.store.commit(message)
            except (GitledgerError, OSError) as e:
                logger.error(
                    f"Could not store backup in {self.config.display_name}: {e}"
                )
                self._needs_recovery = True
                self.state = EngineState.UNINITIALIZED
                raise

            working_copy.empty = False
            self.state = EngineState.READY
            if self._push(working_copy):
                self._capture_fingerprint(working_copy)
            return revision

    def _copy_files(
        self, working_copy: WorkingCopy, files: List[Path], blob: bytes
    ) -> None:
        logger.info(
            f"Copying backup files to the working directory {working_copy.path}"
        )
        archive_dir = working_copy.archive_dir
        archive_dir.mkdir(parents=True, exist_ok=True)
        for f in files:
            if f.is_dir():
                shutil.copytree(f, archive_dir / f.name)
            else:
                shutil.copy2(f, archive_dir / f.name)
        working_copy.descriptor_path.write_bytes(blob)

    def _stage(self, working_copy: WorkingCopy) -> None:
        status = working_copy.store.status()
        if status.is_clean():
            logger.info("Nothing changed since the previous backup")
            return
        for path in status.to_remove:
            self._stage_one(working_copy.store.remove, path)
        for path in status.to_add:
            self._stage_one(working_copy.store.add, path)

    def _stage_one(self, operation: Callable[[str], None], path: str) -> None:
        try:
            operation(path)
        except VcsOperationError as e:
            if self.strict_staging:
                raise
            logger.warning(f"Could not stage {path}, continuing: {e}")

    def _push(self, working_copy: WorkingCopy) -> bool:
        branch = f"refs/heads/{working_copy.branch}"
        try:
            working_copy.store.push(REMOTE_NAME, f"{branch}:{branch}")
        except VcsOperationError as e:
            # The local commit stands; the next push carries it along
            logger.warning(f"Cannot push to the remote {self.config.remote}: {e}")
            working_copy.push_pending = True
            return False
        working_copy.push_pending = False
        return True

    def list_available(self) -> List[str]:
        """
        List the descriptors of every stored backup, oldest first.

        Rebuilds the backup index as a side effect.
        """
        with self._lock:
            working_copy = self._ensure_initialized()
            if self.state is EngineState.EMPTY:
                self.index.clear()
                return []
            try:
                revisions = working_copy.store.log(working_copy.branch)
            except EmptyHistoryError:
                self.index.clear()
                return []

            entries = []
            for revision in reversed(revisions):
                blob = working_copy.store.read_file_at_revision(
                    DESCRIPTOR_FILE, revision.id
                )
                if blob is None:
                    logger.debug(f"Revision {revision.id} holds no backup, skipping")
                    continue
                entries.append((decode_descriptor(blob), revision.id))
            self.index.rebuild(entries)
            logger.info(f"Found {len(self.index)} backups")
            return self.index.descriptors()

    def retrieve(self, descriptor: Descriptor) -> List[Path]:
        """
        Check out the revision that stored *descriptor*.

        Returns:
            The entries of the working copy's ``archive/`` directory

        Raises:
            DescriptorNotFoundError: No backup was stored under *descriptor*
            NoBackupFilesError: The backup's revision has no archive files
        """
        if isinstance(descriptor, bytes):
            key = decode_descriptor(descriptor)
        else:
            key = descriptor
        with self._lock:
            working_copy = self._ensure_initialized()
            if self.index.is_empty():
                self.list_available()
            revision = self.index.lookup(key)
            if revision is None:
                raise DescriptorNotFoundError(
                    f"No backup with descriptor {key!r} in {self.config.display_name}"
                )

            logger.info(f"Checking out commit {revision}")
            try:
                working_copy.store.checkout(revision, detach=True)
            except VcsOperationError:
                self._needs_recovery = True
                self.state = EngineState.UNINITIALIZED
                raise

            archive_dir = working_copy.archive_dir
            files = sorted(archive_dir.iterdir()) if archive_dir.is_dir() else []
            if not files:
                raise NoBackupFilesError(f"Revision {revision} holds no archive files")
            return files

    def restore(self, descriptor: Descriptor, target: Path) -> List[Path]:
        """
        Retrieve a backup and copy its archive files into *target*.

        Raises:
            RestoreTargetError: *target* is not a writable directory
        """
        target = Path(target)
        if not target.is_dir() or not os.access(target, os.W_OK):
            raise RestoreTargetError(f"The restore target {target} is not writable.")

        restored = []
        with self._lock:
            for f in self.retrieve(descriptor):
                dest = target / f.name
                if f.is_dir():
                    shutil.copytree(f, dest, dirs_exist_ok=True)
                else:
                    shutil.copy2(f, dest)
                restored.append(dest)
        logger.info(f"Restored {len(restored)} entries to {target}")
        return restored

    def verify(self) -> bool:
        """Check the current working copy against the recorded fingerprint."""
        with self._lock:
            working_copy = self._ensure_initialized()
            return self.verifier.verify(working_copy, self.config.initial_fingerprint)

    def delete_backup(self, descriptor: Descriptor) -> None:
        """History is append-only: backups are never removed from the ledger."""
        logger.info(
            f"Not deleting backup {descriptor!r}; {self.config.display_name} "
            f"keeps every backup"
        )

    def reset(self) -> None:
        """Forget the recorded fingerprint and delete the working copy."""
        with self._lock:
            self._purge()
            self.config = self.config.with_fingerprint(None)
            if self.fingerprints is not None:
                self.fingerprints.reset(self.config.name)
            self.index.clear()
            self._needs_recovery = False
            self.state = EngineState.UNINITIALIZED
