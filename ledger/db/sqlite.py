from __future__ import annotations

"""
SQLite KV backend
=================

Default ledger backend on the stdlib `sqlite3` module: one table of BLOB keys
and values, `kv(k BLOB PRIMARY KEY, v BLOB NOT NULL)`, ordered by memcmp.

- Prefix scans are a bounded range (`_prefix_hi`) plus a
  `substr(k, 1, len(prefix)) = prefix` guard, so a prefix ending in 0xFF
  still scans correctly.
- The connection runs in autocommit; a batch is one explicit
  `BEGIN IMMEDIATE … COMMIT` on the same connection, so reads made while it
  is open see its writes, and an exception inside the `with` rolls it back.
- sqlite3 failures surface as `DatabaseError` (retryable unless the file is
  missing).
"""

import os
import sqlite3
from typing import Any, Iterator, Optional, Tuple, Union

from ..errors import DatabaseError
from .kv import KV, Batch

PathLike = Union[str, "os.PathLike[str]"]

PRAGMAS = (
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),  # durable enough with WAL
    ("temp_store", "MEMORY"),
    ("cache_size", -64 * 1024),  # KiB when negative
)

_UPSERT = "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v"


def _exec(conn: sqlite3.Connection, sql: str, args: Tuple[Any, ...] = ()) -> sqlite3.Cursor:
    try:
        return conn.execute(sql, args)
    except sqlite3.Error as e:
        raise DatabaseError("sqlite statement failed", statement=sql.split(" ", 1)[0]).with_cause(e) from e


def _prefix_hi(prefix: bytes) -> Optional[bytes]:
    """
    Smallest byte string above every key that starts with `prefix`;
    None when the prefix is empty or all 0xFF.

    >>> _prefix_hi(b"ab\\x01"), _prefix_hi(b"\\xff\\xff")
    (b'ab\\x02', None)
    """
    p = bytearray(prefix)
    while p:
        if p[-1] != 0xFF:
            p[-1] += 1
            return bytes(p)
        p.pop()
    return None


class SQLiteBatch(Batch):
    __slots__ = ("_conn", "_open")

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._open = False

    def __enter__(self) -> "SQLiteBatch":
        if self._open:
            raise RuntimeError("batch already open (nested batches not supported)")
        _exec(self._conn, "BEGIN IMMEDIATE")
        self._open = True
        return self

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("batch not open")

    def put(self, key: bytes, value: bytes) -> None:
        self._require_open()
        _exec(self._conn, _UPSERT, (memoryview(key), memoryview(value)))

    def delete(self, key: bytes) -> None:
        self._require_open()
        _exec(self._conn, "DELETE FROM kv WHERE k = ?", (memoryview(key),))

    def commit(self) -> None:
        if self._open:
            self._open = False
            _exec(self._conn, "COMMIT")

    def rollback(self) -> None:
        if self._open:
            self._open = False
            _exec(self._conn, "ROLLBACK")

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        if exc_type is None:
            try:
                self.commit()
            except DatabaseError:
                # COMMIT failed; the transaction is still open on the connection
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise
        else:
            self.rollback()
        return None


def _open_connection(path: PathLike, *, create: bool = True) -> sqlite3.Connection:
    path_str = os.fspath(path)
    if not create and path_str != ":memory:" and not os.path.exists(path_str):
        raise DatabaseError("sqlite database not found", retryable=False, path=path_str)

    try:
        conn = sqlite3.connect(
            path_str,
            isolation_level=None,  # autocommit; batches BEGIN explicitly
            check_same_thread=False,
        )
    except sqlite3.Error as e:
        raise DatabaseError("failed to open sqlite database", path=path_str).with_cause(e) from e

    for name, value in PRAGMAS:
        _exec(conn, f"PRAGMA {name}={value}")
    _exec(conn, "CREATE TABLE IF NOT EXISTS kv (k BLOB PRIMARY KEY, v BLOB NOT NULL)")
    return conn


class SQLiteKV(KV):
    """SQLite-backed KV. Construct with `open_sqlite_kv(path)`."""

    __slots__ = ("_conn",)

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # --- ReadOnlyKV ---

    def get(self, key: bytes) -> Optional[bytes]:
        row = _exec(self._conn, "SELECT v FROM kv WHERE k = ?", (memoryview(key),)).fetchone()
        return None if row is None else bytes(row[0])

    def has(self, key: bytes) -> bool:
        row = _exec(self._conn, "SELECT 1 FROM kv WHERE k = ? LIMIT 1", (memoryview(key),)).fetchone()
        return row is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        hi = _prefix_hi(prefix)
        if hi is None:
            sql = "SELECT k, v FROM kv WHERE substr(k, 1, ?) = ? ORDER BY k"
            args: Tuple[Any, ...] = (len(prefix), memoryview(prefix))
        else:
            sql = "SELECT k, v FROM kv WHERE k >= ? AND k < ? AND substr(k, 1, ?) = ? ORDER BY k"
            args = (memoryview(prefix), memoryview(hi), len(prefix), memoryview(prefix))

        # Materialized, so callers may write while iterating.
        rows = _exec(self._conn, sql, args).fetchall()
        for k, v in rows:
            yield bytes(k), bytes(v)

    def close(self) -> None:
        self._conn.close()

    # --- KV ---

    def put(self, key: bytes, value: bytes) -> None:
        _exec(self._conn, _UPSERT, (memoryview(key), memoryview(value)))

    def delete(self, key: bytes) -> None:
        _exec(self._conn, "DELETE FROM kv WHERE k = ?", (memoryview(key),))

    def batch(self) -> Batch:
        return SQLiteBatch(self._conn)


def open_sqlite_kv(path: PathLike, *, create: bool = True) -> SQLiteKV:
    """
    Open (or create) a SQLite KV at `path` (":memory:" for a private
    in-memory database). With `create=False` a missing file raises
    DatabaseError instead of being created.
    """
    return SQLiteKV(_open_connection(path, create=create))


__all__ = [
    "SQLiteKV",
    "SQLiteBatch",
    "open_sqlite_kv",
]
