"""
Persisted per-location state for GitLedger.

The only state that outlives a run is each location's initial fingerprint,
kept as a small JSON document under the platform state directory.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import orjson  # High-performance JSON parser

from gitledger_py.platform import default_state_dir

logger = logging.getLogger("gitledger.state")


class FingerprintStore:
    """Maps location names to their recorded initial fingerprints."""

    def __init__(self, path: Optional[Path] = None):
        self.path = path or default_state_dir() / "fingerprints.json"

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            logger.error(f"Failed to read fingerprints from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed fingerprint file {self.path}")
            return {}
        return {str(k): str(v) for k, v in data.items() if v}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        options = orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS
        tmp.write_bytes(orjson.dumps(data, option=options))
        tmp.replace(self.path)

    def get(self, name: str) -> Optional[str]:
        return self._read().get(name)

    def record(self, name: str, fingerprint: str) -> bool:
        """
        Record the fingerprint for *name* unless one is already recorded.

        Returns:
            True if the fingerprint was written, False if one already existed
        """
        data = self._read()
        existing = data.get(name)
        if existing:
            if existing != fingerprint:
                logger.warning(
                    f"Refusing to replace fingerprint {existing} of {name} "
                    f"with {fingerprint}"
                )
            return False
        data[name] = fingerprint
        self._write(data)
        logger.info(f"Recorded initial fingerprint {fingerprint} for {name}")
        return True

    def reset(self, name: str) -> None:
        data = self._read()
        if data.pop(name, None) is not None:
            self._write(data)
            logger.info(f"Cleared initial fingerprint for {name}")
