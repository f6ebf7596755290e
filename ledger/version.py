"""
Version helpers for the ledger package.

Resolution order:
    1) LEDGER_VERSION env var (authoritative override)
    2) installed distribution metadata ("ledger-core")
    3) DEFAULT_VERSION

No external dependencies; safe to import early.
"""

from __future__ import annotations

import os
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _dist_version
from typing import Optional

DIST_NAME = "ledger-core"
DEFAULT_VERSION = "0.1.0"


def _installed_version() -> Optional[str]:
    try:
        return _dist_version(DIST_NAME)
    except PackageNotFoundError:
        return None


def resolve_version() -> str:
    env = os.getenv("LEDGER_VERSION")
    if env:
        return env.strip()
    return _installed_version() or DEFAULT_VERSION


__version__ = resolve_version()


if __name__ == "__main__":
    print(__version__)
