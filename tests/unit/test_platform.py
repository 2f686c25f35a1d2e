"""Tests for the platform helpers module."""

import os
from pathlib import Path
from unittest.mock import patch

from gitledger_py.platform import (
    default_data_dir,
    default_state_dir,
    is_linux,
    is_macos,
)


class TestIsMacos:
    def test_true_on_darwin(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "darwin"
            assert is_macos() is True

    def test_false_on_linux(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "linux"
            assert is_macos() is False


class TestIsLinux:
    def test_true_on_linux(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "linux"
            assert is_linux() is True

    def test_false_on_darwin(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "darwin"
            assert is_linux() is False


class TestDefaultDataDir:
    def test_macos(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "darwin"
            assert default_data_dir() == (
                Path.home() / "Library" / "Application Support" / "gitledger"
            )

    def test_linux_xdg(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "linux"
            with patch.dict(os.environ, {"XDG_DATA_HOME": "/data"}):
                assert default_data_dir() == Path("/data/gitledger")

    def test_linux_fallback(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "linux"
            with patch.dict(os.environ, {"HOME": str(Path.home())}, clear=True):
                assert default_data_dir() == (
                    Path.home() / ".local" / "share" / "gitledger"
                )


class TestDefaultStateDir:
    def test_linux_xdg(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "linux"
            with patch.dict(os.environ, {"XDG_STATE_HOME": "/state"}):
                assert default_state_dir() == Path("/state/gitledger")

    def test_macos(self) -> None:
        with patch("gitledger_py.platform.sys") as mock_sys:
            mock_sys.platform = "darwin"
            assert default_state_dir().parts[-2:] == ("gitledger", "state")
