"""
Tests for the working copy manager.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gitledger_py.config import LocationConfig
from gitledger_py.errors import (
    AlreadyExistsError,
    CorruptWorkingCopyError,
    VcsOperationError,
)
from gitledger_py.working_copy import WorkingCopy, WorkingCopyManager


@pytest.fixture
def mock_store() -> MagicMock:
    store = MagicMock()
    store.is_empty.return_value = False
    store.remote_has_branch.return_value = True
    store.has_unpushed_revisions.return_value = False
    return store


@pytest.fixture
def manager(mock_store: MagicMock) -> WorkingCopyManager:
    return WorkingCopyManager(lambda path: mock_store)


@pytest.fixture
def location(tmp_path: Path) -> LocationConfig:
    return LocationConfig("offsite", str(tmp_path / "remote.git"), tmp_path / "wc")


def test_clone_when_absent(
    manager: WorkingCopyManager, mock_store: MagicMock, location: LocationConfig
) -> None:
    working_copy = manager.ensure_ready(location)

    mock_store.clone.assert_called_once_with(location.remote_url)
    mock_store.checkout.assert_called_once_with("master")
    mock_store.pull.assert_called_once_with("origin", "master")
    assert working_copy.empty is False
    assert working_copy.path == location.working_dir


def test_clone_of_empty_remote(
    manager: WorkingCopyManager, mock_store: MagicMock, location: LocationConfig
) -> None:
    """An empty remote is a valid state; HEAD is pinned to the tracked branch."""
    mock_store.is_empty.return_value = True

    working_copy = manager.ensure_ready(location)

    assert working_copy.empty is True
    mock_store.point_head.assert_called_once_with("master")
    mock_store.checkout.assert_not_called()
    mock_store.pull.assert_not_called()


def test_existing_copy_is_opened(
    manager: WorkingCopyManager, mock_store: MagicMock, location: LocationConfig
) -> None:
    (location.working_dir / ".git").mkdir(parents=True)

    manager.ensure_ready(location)

    mock_store.clone.assert_not_called()
    mock_store.pull.assert_called_once_with("origin", "master")


def test_remote_without_branch_means_push_pending(
    manager: WorkingCopyManager, mock_store: MagicMock, location: LocationConfig
) -> None:
    """Local backups that never reached the remote are kept, not pulled over."""
    (location.working_dir / ".git").mkdir(parents=True)
    mock_store.remote_has_branch.return_value = False

    working_copy = manager.ensure_ready(location)

    assert working_copy.push_pending is True
    mock_store.remote_has_branch.assert_called_once_with("origin", "master")
    mock_store.pull.assert_not_called()
    assert manager.awaiting_first_push(working_copy) is True


def test_unpushed_revisions_are_flagged(
    manager: WorkingCopyManager, mock_store: MagicMock, location: LocationConfig
) -> None:
    (location.working_dir / ".git").mkdir(parents=True)
    mock_store.has_unpushed_revisions.return_value = True

    working_copy = manager.ensure_ready(location)

    mock_store.pull.assert_called_once_with("origin", "master")
    assert working_copy.push_pending is True
    assert manager.awaiting_first_push(working_copy) is False


def test_empty_copy_never_awaits_push(
    manager: WorkingCopyManager, mock_store: MagicMock, tmp_path: Path
) -> None:
    working_copy = WorkingCopy(tmp_path, "master", mock_store, empty=True)

    assert manager.awaiting_first_push(working_copy) is False
    mock_store.remote_has_branch.assert_not_called()


def test_pull_failure_is_corruption(
    manager: WorkingCopyManager, mock_store: MagicMock, location: LocationConfig
) -> None:
    (location.working_dir / ".git").mkdir(parents=True)
    mock_store.pull.side_effect = VcsOperationError(
        "git pull failed", returncode=1, stderr="fatal: Not possible to fast-forward"
    )

    with pytest.raises(CorruptWorkingCopyError) as excinfo:
        manager.ensure_ready(location)

    assert excinfo.value.returncode == 1
    assert "fast-forward" in excinfo.value.stderr


def test_clone_refuses_existing_repository(
    manager: WorkingCopyManager, mock_store: MagicMock, location: LocationConfig
) -> None:
    (location.working_dir / ".git").mkdir(parents=True)

    with pytest.raises(AlreadyExistsError):
        manager.clone(location)
    mock_store.clone.assert_not_called()


def test_purge_is_idempotent(
    manager: WorkingCopyManager, mock_store: MagicMock, location: LocationConfig
) -> None:
    (location.working_dir / ".git").mkdir(parents=True)
    working_copy = WorkingCopy(location.working_dir, "master", mock_store)

    manager.purge(working_copy)
    manager.purge(working_copy)
    manager.purge(location.working_dir)

    assert not location.working_dir.exists()
    mock_store.close.assert_called()


def test_clean_working_tree_keeps_metadata(
    manager: WorkingCopyManager, mock_store: MagicMock, tmp_path: Path
) -> None:
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("ref: refs/heads/master\n")
    (tmp_path / "archive" / "nested").mkdir(parents=True)
    (tmp_path / "archive" / "nested" / "a.txt").write_text("a")
    (tmp_path / "backup.pbobj").write_text("desc")

    manager.clean_working_tree(WorkingCopy(tmp_path, "master", mock_store))

    assert [p.name for p in tmp_path.iterdir()] == [".git"]
    assert (tmp_path / ".git" / "HEAD").exists()
