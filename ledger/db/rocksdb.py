from __future__ import annotations

"""
RocksDB KV backend (optional)
=============================

Used when python-rocksdb is installed (`pip install ledger-core[rocksdb]`).
Without it, `open_rocksdb_kv` opens a SQLite file next to the requested
directory instead, unless `fallback_to_sqlite=False`.

A batch stages its writes in a `WriteBatch` and in an overlay that `get`,
`has` and `iter_prefix` consult while the batch is open, so the ledger sees
the same read-your-writes behavior it gets from SQLite. Nothing reaches the
database until the batch commits.
"""

import os
from typing import Dict, Iterator, Optional, Tuple, Union

try:
    import rocksdb  # type: ignore
    _ROCKS_OK = True
except ImportError:
    rocksdb = None  # type: ignore
    _ROCKS_OK = False

from ..errors import DatabaseError
from .kv import KV, Batch
from .sqlite import open_sqlite_kv

_DELETED = None


class RocksBatch(Batch):
    __slots__ = ("_kv", "_wb", "staged", "_open")

    def __init__(self, kv: "RocksKV") -> None:
        self._kv = kv
        self._wb = rocksdb.WriteBatch()  # type: ignore[union-attr]
        self.staged: Dict[bytes, Optional[bytes]] = {}
        self._open = False

    def __enter__(self) -> "RocksBatch":
        if self._open or self._kv.active is not None:
            raise RuntimeError("batch already open (nested batches not supported)")
        self._open = True
        self._kv.active = self
        return self

    def put(self, key: bytes, value: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._wb.put(key, value)
        self.staged[key] = value

    def delete(self, key: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._wb.delete(key)
        self.staged[key] = _DELETED

    def commit(self) -> None:
        if not self._open:
            return
        try:
            self._kv.db.write(self._wb)
        except Exception as e:  # python-rocksdb raises its own error types
            raise DatabaseError("rocksdb write failed").with_cause(e) from e
        finally:
            self._reset()

    def rollback(self) -> None:
        if self._open:
            self._reset()

    def _reset(self) -> None:
        self._wb = rocksdb.WriteBatch()  # type: ignore[union-attr]
        self.staged = {}
        self._open = False
        self._kv.active = None

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return None


class RocksKV(KV):
    """KV over an open `rocksdb.DB` handle."""

    def __init__(self, db: "rocksdb.DB") -> None:  # type: ignore[name-defined]
        self.db = db
        self.active: Optional[RocksBatch] = None

    # --- ReadOnlyKV ---

    def get(self, key: bytes) -> Optional[bytes]:
        if self.active is not None and key in self.active.staged:
            return self.active.staged[key]
        v = self.db.get(key)
        return None if v is None else bytes(v)

    def has(self, key: bytes) -> bool:
        return self.get(key) is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        merged: Dict[bytes, Optional[bytes]] = {}
        it = self.db.iteritems()
        it.seek(prefix)
        for k, v in it:
            if not k.startswith(prefix):
                break
            merged[bytes(k)] = bytes(v)
        if self.active is not None:
            merged.update((k, v) for k, v in self.active.staged.items() if k.startswith(prefix))
        for k in sorted(merged):
            v = merged[k]
            if v is not _DELETED:
                yield k, v

    def close(self) -> None:
        # python-rocksdb closes the database when the handle is collected
        self.db = None

    # --- KV ---

    def put(self, key: bytes, value: bytes) -> None:
        self.db.put(key, value)

    def delete(self, key: bytes) -> None:
        self.db.delete(key)

    def batch(self) -> Batch:
        return RocksBatch(self)


def _options() -> "rocksdb.Options":  # type: ignore[name-defined]
    opts = rocksdb.Options()  # type: ignore[union-attr]
    opts.create_if_missing = True
    opts.max_open_files = 256
    opts.table_factory = rocksdb.BlockBasedTableFactory(  # type: ignore[union-attr]
        block_cache=rocksdb.LRUCache(64 * 1024 * 1024),  # type: ignore[union-attr]
        filter_policy=rocksdb.BloomFilterPolicy(10),  # type: ignore[union-attr]
    )
    return opts


def open_rocksdb_kv(
    path: Union[str, "os.PathLike[str]"],
    *,
    create: bool = True,
    fallback_to_sqlite: bool = True,
) -> KV:
    """
    Open a RocksDB KV at directory `path`.

    When RocksDB is unavailable or fails to open and `fallback_to_sqlite` is
    set, returns a SQLite KV at `path + ".sqlite"` instead.
    """
    db_path = os.fspath(path)

    if not _ROCKS_OK:
        if fallback_to_sqlite:
            return open_sqlite_kv(db_path + ".sqlite", create=create)
        raise DatabaseError("RocksDB backend unavailable; install python-rocksdb", retryable=False, path=db_path)

    if create:
        os.makedirs(os.path.abspath(db_path), exist_ok=True)
    elif not os.path.isdir(db_path):
        raise DatabaseError("rocksdb directory not found", retryable=False, path=db_path)

    try:
        db = rocksdb.DB(db_path, _options())  # type: ignore[union-attr]
    except Exception as e:  # python-rocksdb raises its own error types
        if fallback_to_sqlite:
            return open_sqlite_kv(db_path + ".sqlite", create=create)
        raise DatabaseError("failed to open RocksDB", retryable=False, path=db_path).with_cause(e) from e

    return RocksKV(db)


__all__ = [
    "open_rocksdb_kv",
    "RocksKV",
    "RocksBatch",
]
