from __future__ import annotations

"""
ledger.db
=========

Thin facade for the key–value backends the ledger store sits on.

Backends
--------
- SQLite (default, always available)
- RocksDB (optional; used when python-rocksdb is installed)

URIs
----
- "sqlite:///path/to/ledger.db"    → SQLite file
- "sqlite:///:memory:"             → in-memory SQLite
- "rocksdb:///path/to/dir"         → RocksDB directory (SQLite fallback if missing)
- "memory://"                      → alias of "sqlite:///:memory:"
- Bare path ending in ".db"        → SQLite file

Example
-------
>>> from ledger.db import open_kv
>>> kv = open_kv("memory://")
>>> with kv.batch() as b:
...     b.put(b"bal:key", b"hello")
>>> kv.get(b"bal:key")
b'hello'
"""

from typing import Tuple

from . import rocksdb as _rocks_backend
from . import sqlite as _sqlite_backend
from .kv import KV, Batch, Prefix, ReadOnlyKV, iter_prefixed


def prefer_rocks() -> bool:
    """Return True if the RocksDB backend is importable."""
    return _rocks_backend._ROCKS_OK


def _parse_uri(uri: str) -> Tuple[str, str]:
    """
    Parse a DB URI into (backend, path_or_target).

    Returns:
        ("sqlite", path) or ("rocksdb", path) or ("memory", "")
    """
    u = uri.strip()
    if u.startswith("sqlite:///"):
        return ("sqlite", u[len("sqlite:///") :])
    if u.startswith("rocksdb:///"):
        return ("rocksdb", u[len("rocksdb:///") :])
    if u.startswith("memory://"):
        return ("memory", "")
    if u.endswith(".db"):
        return ("sqlite", u)
    raise ValueError(f"Unsupported DB URI: {uri!r}")


def open_kv(uri: str, create: bool = True) -> KV:
    """
    Open a KV database by URI. See module docstring for supported forms.

    Raises:
        ValueError for invalid URIs.
        DatabaseError if the backend cannot be opened.
    """
    backend, target = _parse_uri(uri)

    if backend == "memory":
        return _sqlite_backend.open_sqlite_kv(":memory:", create=True)

    if backend == "sqlite":
        return _sqlite_backend.open_sqlite_kv(target or ":memory:", create=create)

    return _rocks_backend.open_rocksdb_kv(target or "./ledger.rocks", create=create)


__all__ = [
    "KV",
    "ReadOnlyKV",
    "Batch",
    "Prefix",
    "iter_prefixed",
    "open_kv",
    "prefer_rocks",
]
