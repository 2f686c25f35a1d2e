"""
GitLedger - backup snapshots kept as commits in a git repository.

Every backup is one commit; history is the ledger.
"""

from importlib.metadata import version as _version

__version__ = _version("gitledger")
