"""
Configuration file support for GitLedger.

Loads settings from ``~/.config/gitledger/config.yaml`` (or
``$XDG_CONFIG_HOME/gitledger/config.yaml``) and exposes them as typed
dataclasses that the CLI can merge with command-line flags.
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from gitledger_py.platform import default_data_dir

logger = logging.getLogger("gitledger.config")

DEFAULT_BRANCH = "master"

# user@host:path, as accepted by git for ssh remotes
_SCP_LIKE = re.compile(r"^[\w.-]+@[\w.-]+:")


def default_config_path() -> Path:
    """Return the default configuration file path.

    Uses ``$XDG_CONFIG_HOME/gitledger/config.yaml`` when set, otherwise
    falls back to ``~/.config/gitledger/config.yaml``.
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "gitledger" / "config.yaml"
    return Path.home() / ".config" / "gitledger" / "config.yaml"


@dataclass(frozen=True)
class LocationConfig:
    """One backup destination.

    ``initial_fingerprint`` is the oldest revision seen the first time the
    destination held any history; it is set once and only cleared by an
    explicit reset.
    """

    name: str
    remote: str
    working_dir: Path
    branch: str = DEFAULT_BRANCH
    enabled: bool = True
    initial_fingerprint: Optional[str] = None

    @property
    def remote_url(self) -> str:
        """The remote address as git expects it; bare paths become file:// URLs."""
        if "://" in self.remote or _SCP_LIKE.match(self.remote):
            return self.remote
        return Path(self.remote).expanduser().resolve().as_uri()

    @property
    def display_name(self) -> str:
        return f"GIT Location: {self.remote}"

    def with_fingerprint(self, fingerprint: Optional[str]) -> "LocationConfig":
        return replace(self, initial_fingerprint=fingerprint)


@dataclass
class GitledgerConfig:
    """Top-level configuration loaded from the YAML file."""

    workdir_root: Path = field(default_factory=default_data_dir)
    git_binary: str = "git"
    author_name: str = "GitLedger"
    author_email: str = "gitledger@localhost"
    strict_staging: bool = True
    locations: List[LocationConfig] = field(default_factory=list)

    def get_location(self, name: str) -> Optional[LocationConfig]:
        for location in self.locations:
            if location.name == name:
                return location
        return None

    def make_location(
        self, name: str, remote: str, branch: str = DEFAULT_BRANCH
    ) -> LocationConfig:
        """Build an ad-hoc location whose working copy lives under workdir_root."""
        return LocationConfig(
            name=name,
            remote=remote,
            working_dir=self.workdir_root / name,
            branch=branch,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GitledgerConfig":
        """Construct a ``GitledgerConfig`` from a parsed YAML dictionary."""
        if not isinstance(data, dict):
            return cls()

        defaults = cls()
        workdir_root = (
            Path(data["workdir_root"]).expanduser()
            if data.get("workdir_root")
            else defaults.workdir_root
        )

        locations: List[LocationConfig] = []
        seen = set()
        for entry in data.get("locations", []) or []:
            if not isinstance(entry, dict) or not entry.get("remote"):
                logger.warning("Skipping invalid locations entry: %s", entry)
                continue
            name = str(entry.get("name") or f"location-{len(locations) + 1}")
            if name in seen:
                logger.warning("Skipping duplicate location name: %s", name)
                continue
            seen.add(name)
            working_dir = (
                Path(entry["working_dir"]).expanduser()
                if entry.get("working_dir")
                else workdir_root / name
            )
            locations.append(
                LocationConfig(
                    name=name,
                    remote=str(entry["remote"]),
                    working_dir=working_dir,
                    branch=str(entry.get("branch") or DEFAULT_BRANCH),
                    enabled=bool(entry.get("enabled", True)),
                )
            )

        return cls(
            workdir_root=workdir_root,
            git_binary=str(data.get("git_binary") or defaults.git_binary),
            author_name=str(data.get("author_name") or defaults.author_name),
            author_email=str(data.get("author_email") or defaults.author_email),
            strict_staging=bool(data.get("strict_staging", True)),
            locations=locations,
        )

    @classmethod
    def from_file(cls, path: Path) -> "GitledgerConfig":
        """Read a YAML file and return a ``GitledgerConfig``.

        Returns an empty default config on any error.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f.read())
            if data is None:
                return cls()
            return cls.from_dict(data)
        except (IOError, yaml.YAMLError) as e:
            logger.error("Failed to load config from %s: %s", path, e)
            return cls()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "GitledgerConfig":
        """Main entry point: load config from *config_path* or the default location.

        Returns an empty config if the file does not exist.
        """
        path = config_path or default_config_path()
        if not path.exists():
            return cls()
        return cls.from_file(path)
