"""
Platform detection helpers for GitLedger.

Centralizes macOS vs Linux differences so the rest of the codebase
can call simple functions instead of scattering ``sys.platform`` checks.
"""

import os
import sys
from pathlib import Path


def is_macos() -> bool:
    """Return True when running on macOS."""
    return sys.platform == "darwin"


def is_linux() -> bool:
    """Return True when running on Linux."""
    return sys.platform.startswith("linux")


def default_data_dir() -> Path:
    """Return the directory that holds local working copies."""
    if is_macos():
        return Path.home() / "Library" / "Application Support" / "gitledger"
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "gitledger"
    return Path.home() / ".local" / "share" / "gitledger"


def default_state_dir() -> Path:
    """Return the directory that holds persisted location state."""
    if is_macos():
        return Path.home() / "Library" / "Application Support" / "gitledger" / "state"
    xdg = os.environ.get("XDG_STATE_HOME")
    if xdg:
        return Path(xdg) / "gitledger"
    return Path.home() / ".local" / "state" / "gitledger"
