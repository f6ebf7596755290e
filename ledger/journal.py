"""
ledger.journal: staged writes for a single ledger operation.

The engine reads and writes amounts through a Journal instead of the store.
Reads consult the staged writes first and fall back to the store, so a
read-modify-write sequence behaves exactly as if it wrote through (a
self-transfer reads back its own debit). Nothing reaches storage until
`commit()`, which flushes every staged write in one KV batch, in the order
the writes were first staged.

An operation that raises before `commit()` simply drops its journal.
"""

from __future__ import annotations

from typing import Dict, Iterator, Tuple

from .store import LedgerKey, LedgerStore


class Journal:
    __slots__ = ("_store", "_writes")

    def __init__(self, store: LedgerStore) -> None:
        self._store = store
        self._writes: Dict[LedgerKey, int] = {}

    def read(self, key: LedgerKey) -> int:
        if key in self._writes:
            return self._writes[key]
        return self._store.read_amount(key)

    def write(self, key: LedgerKey, value: int) -> None:
        self._writes[key] = value

    def pending(self) -> Iterator[Tuple[LedgerKey, int]]:
        return iter(self._writes.items())

    def __len__(self) -> int:
        return len(self._writes)

    def commit(self) -> int:
        """Flush staged writes atomically; return how many keys were written."""
        n = len(self._writes)
        if n == 0:
            return 0
        with self._store.batch() as b:
            for key, value in self._writes.items():
                self._store.write_amount(key, value, batch=b)
        self._writes = {}
        return n

    def discard(self) -> None:
        self._writes = {}


__all__ = ["Journal"]
