"""
Git engine implementation for GitLedger.

This module provides a wrapper around the git command-line tool,
handling subprocess calls and parsing of its machine-readable output.
"""

import logging
import os
import shlex
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from gitledger_py.engine import BaseRevisionStore, Revision, WorkingStatus
from gitledger_py.errors import EmptyHistoryError, VcsOperationError

logger = logging.getLogger("gitledger.engine.git")

# Field separator git emits for %x00 in --format strings
_SEP = "\x00"


class GitRevisionStore(BaseRevisionStore):
    """Git-backed revision store."""

    def __init__(
        self,
        work_dir: Path,
        binary_path: str = "git",
        author_name: str = "GitLedger",
        author_email: str = "gitledger@localhost",
    ):
        """
        Initialize the git revision store.

        Args:
            work_dir: Path of the working copy (cloned into if absent)
            binary_path: Path to the git binary
            author_name: Name recorded on backup commits
            author_email: Email recorded on backup commits
        """
        super().__init__(work_dir)
        self.binary_path = binary_path
        self.author_name = author_name
        self.author_email = author_email

    def _get_env(self) -> Dict[str, str]:
        """Get the environment variables for git commands."""
        env = os.environ.copy()
        # Never block on a credential prompt
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    def _base_command(self, in_repo: bool) -> List[str]:
        cmd = [
            self.binary_path,
            "-c",
            f"user.name={self.author_name}",
            "-c",
            f"user.email={self.author_email}",
            "-c",
            "commit.gpgsign=false",
            "-c",
            # Backups hold every file; the user's global ignore rules never apply
            f"core.excludesFile={os.devnull}",
        ]
        if in_repo:
            cmd += ["-C", str(self.work_dir)]
        return cmd

    def _run_command(
        self,
        args: List[str],
        check: bool = True,
        text: bool = True,
        in_repo: bool = True,
    ) -> Tuple[int, Union[str, bytes], str]:
        """
        Run a git command.

        Args:
            args: Command arguments
            check: Raise VcsOperationError on a non-zero exit code
            text: Decode stdout as text
            in_repo: Run the command against the working copy

        Returns:
            Tuple of (return_code, stdout, stderr)
        """
        cmd = self._base_command(in_repo) + args
        cmd_str = " ".join(shlex.quote(str(arg)) for arg in cmd)
        logger.debug(f"Running command: {cmd_str}")

        try:
            result = subprocess.run(
                cmd,
                env=self._get_env(),
                capture_output=True,
                text=text,
                check=False,
            )
        except OSError as e:
            raise VcsOperationError(
                f"Could not run {self.binary_path}: {e}", command=cmd
            ) from e

        stderr = result.stderr or ""
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        stdout = result.stdout if result.stdout is not None else ("" if text else b"")

        if check and result.returncode != 0:
            logger.error(f"Command failed: {cmd_str}")
            logger.error(f"Return code: {result.returncode}")
            logger.error(f"Stderr: {stderr}")
            raise VcsOperationError(
                f"git {args[0]} failed: {stderr.strip()}",
                command=cmd,
                returncode=result.returncode,
                stderr=stderr,
            )
        return result.returncode, stdout, stderr

    def clone(self, url: str) -> None:
        self.work_dir.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning {url} into {self.work_dir}")
        self._run_command(
            ["clone", "--quiet", "--origin", "origin", url, str(self.work_dir)],
            in_repo=False,
        )

    def is_empty(self) -> bool:
        _, stdout, _ = self._run_command(
            ["for-each-ref", "--count=1", "--format=%(refname)"]
        )
        return not str(stdout).strip()

    def point_head(self, branch: str) -> None:
        self._run_command(["symbolic-ref", "HEAD", f"refs/heads/{branch}"])

    def checkout(self, name: str, detach: bool = False) -> None:
        args = ["checkout", "--quiet"]
        if detach:
            # Retrieval wants the exact tree of the revision
            args += ["--force", "--detach"]
        args.append(name)
        logger.debug(f"Checking out {name}")
        self._run_command(args)

    def pull(self, remote: str, branch: str) -> None:
        self._run_command(["pull", "--quiet", "--ff-only", remote, branch])

    def push(self, remote: str, refspec: str) -> None:
        logger.info(f"Pushing {refspec} to {remote}")
        self._run_command(["push", "--quiet", remote, refspec])

    def remote_has_branch(self, remote: str, branch: str) -> bool:
        returncode, _, stderr = self._run_command(
            ["ls-remote", "--exit-code", "--heads", remote, f"refs/heads/{branch}"],
            check=False,
        )
        if returncode == 0:
            return True
        # --exit-code reports a missing ref as 2
        if returncode == 2:
            return False
        raise VcsOperationError(
            f"git ls-remote failed: {stderr.strip()}",
            returncode=returncode,
            stderr=stderr,
        )

    def has_unpushed_revisions(self, remote: str, branch: str) -> bool:
        _, stdout, _ = self._run_command(
            [
                "rev-list",
                "--count",
                f"refs/remotes/{remote}/{branch}..refs/heads/{branch}",
            ]
        )
        return int(str(stdout).strip() or "0") > 0

    def add(self, path: str) -> None:
        logger.info(f"Adding {path} to the repository")
        # Forced so paths matched by ignore rules inside the archive are kept
        self._run_command(["add", "--force", "--", path])

    def remove(self, path: str) -> None:
        logger.info(f"Removing {path} from the repository")
        self._run_command(["rm", "--quiet", "--", path])

    def commit(self, message: str) -> str:
        self._run_command(["commit", "--quiet", "--allow-empty", "-m", message])
        _, stdout, _ = self._run_command(["rev-parse", "HEAD"])
        revision = str(stdout).strip()
        logger.info(f"Created revision: {revision}")
        return revision

    def status(self) -> WorkingStatus:
        _, stdout, _ = self._run_command(
            [
                "status",
                "--porcelain=v1",
                "-z",
                "--untracked-files=all",
                "--ignored=matching",
            ]
        )
        return parse_porcelain_status(str(stdout))

    def log(self, ref: str = "HEAD") -> List[Revision]:
        returncode, _, _ = self._run_command(
            ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], check=False
        )
        if returncode != 0:
            raise EmptyHistoryError(f"{ref} has no revisions in {self.work_dir}")

        _, stdout, _ = self._run_command(
            ["log", "--format=%H%x00%ct%x00%s", ref, "--"]
        )
        return parse_log(str(stdout))

    def read_file_at_revision(self, path: str, revision: str) -> Optional[bytes]:
        spec = f"{revision}:{path}"
        returncode, _, _ = self._run_command(["cat-file", "-e", spec], check=False)
        if returncode != 0:
            return None
        _, stdout, _ = self._run_command(["cat-file", "blob", spec], text=False)
        return stdout if isinstance(stdout, bytes) else stdout.encode("utf-8")


def parse_log(output: str) -> List[Revision]:
    """Parse ``git log --format=%H%x00%ct%x00%s`` output into revisions."""
    revisions = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split(_SEP, 2)
        if len(parts) < 2:
            logger.warning(f"Skipping unparseable log line: {line!r}")
            continue
        revisions.append(
            Revision(
                id=parts[0],
                time=datetime.fromtimestamp(int(parts[1]), tz=timezone.utc),
                message=parts[2] if len(parts) > 2 else "",
            )
        )
    return revisions


def parse_porcelain_status(output: str) -> WorkingStatus:
    """Parse ``git status --porcelain=v1 -z`` output."""
    status = WorkingStatus()
    entries = output.split("\0")
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if len(entry) < 4:
            continue
        code, path = entry[:2], entry[3:]
        index_state, tree_state = code[0], code[1]
        if index_state in "RC":
            # Renames and copies carry the original path as the next entry
            i += 1
        if code in ("??", "!!"):
            status.untracked.add(path)
        elif tree_state == "D":
            status.missing.add(path)
        elif tree_state in "MT":
            status.modified.add(path)
    return status
