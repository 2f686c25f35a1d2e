"""
Descriptor to revision index for GitLedger.

The index is a cache derived from history. It is always rebuilt as a whole
and never patched in place.
"""

from typing import Dict, Iterable, List, Optional, Tuple

ENCODING = "utf-8"
# Lossless for any byte blob
ERRORS = "surrogateescape"


def decode_descriptor(blob: bytes) -> str:
    return blob.decode(ENCODING, errors=ERRORS)


def encode_descriptor(descriptor: str) -> bytes:
    return descriptor.encode(ENCODING, errors=ERRORS)


class BackupIndex:
    """Maps descriptor strings to the revision that stored them."""

    def __init__(self) -> None:
        self._revisions: Dict[str, str] = {}
        self._order: List[str] = []

    def rebuild(self, entries: Iterable[Tuple[str, str]]) -> None:
        """
        Replace the index with *entries*.

        Args:
            entries: (descriptor, revision id) pairs, oldest first. A repeated
                descriptor keeps its first position and its newest revision.
        """
        revisions: Dict[str, str] = {}
        order: List[str] = []
        for descriptor, revision in entries:
            if descriptor not in revisions:
                order.append(descriptor)
            # Later entries win: retrieving a re-stored descriptor yields its
            # most recent contents
            revisions[descriptor] = revision
        self._revisions, self._order = revisions, order

    def clear(self) -> None:
        self.rebuild([])

    def lookup(self, descriptor: str) -> Optional[str]:
        return self._revisions.get(descriptor)

    def descriptors(self) -> List[str]:
        return list(self._order)

    def is_empty(self) -> bool:
        return not self._revisions

    def __len__(self) -> int:
        return len(self._revisions)
