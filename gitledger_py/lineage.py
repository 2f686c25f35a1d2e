"""
Lineage verification for GitLedger.

A location remembers the oldest revision it has ever seen (its fingerprint).
Revision ids are content-derived and history only grows, so a working copy
whose history lacks that id has been replaced or rewritten.
"""

import logging
from typing import Optional

from gitledger_py.config import LocationConfig
from gitledger_py.errors import GitledgerError
from gitledger_py.working_copy import WorkingCopy

logger = logging.getLogger("gitledger.lineage")


class LineageVerifier:
    """Checks and captures location fingerprints."""

    def verify(self, working_copy: WorkingCopy, expected: Optional[str]) -> bool:
        """Return True only if *expected* is part of the tracked branch history."""
        if not expected:
            logger.info("No initial fingerprint recorded; nothing to verify against")
            return False

        logger.info("Comparing to the initial commit.")
        try:
            revisions = working_copy.store.log(working_copy.branch)
        except (GitledgerError, OSError) as e:
            logger.warning(f"Could not read history of {working_copy.path}: {e}")
            return False

        if any(revision.id == expected for revision in revisions):
            logger.info("Existing repository was successfully verified.")
            return True
        logger.warning(
            f"History of {working_copy.path} does not contain initial "
            f"revision {expected}"
        )
        return False

    def capture_fingerprint(
        self, working_copy: WorkingCopy, config: LocationConfig
    ) -> LocationConfig:
        """
        Record the oldest revision of the working copy as the fingerprint.

        A fingerprint that is already set is kept as-is.

        Raises:
            EmptyHistoryError: The working copy has no revisions yet
        """
        if config.initial_fingerprint:
            return config
        revisions = working_copy.store.log(working_copy.branch)
        fingerprint = revisions[-1].id
        logger.info(f"Initial fingerprint of {config.display_name} is {fingerprint}")
        return config.with_fingerprint(fingerprint)
