"""
Single-asset token ledger.

Balances and allowances over a pluggable key-value store, with a transfer
engine that enforces conservation of supply, non-negative balances and
allowance ceilings. Everything else (message parsing, address formats,
event transport, authorization) is a collaborator.

    from ledger.config import load, open_engine
    engine = open_engine(load(db={"uri": "memory://"}))

Only re-exports the version here to keep import-time side effects near zero.
"""

from __future__ import annotations

from .version import __version__


def get_version() -> str:
    """Return the version string for this package."""
    return __version__


__all__ = ["__version__", "get_version"]
