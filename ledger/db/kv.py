from __future__ import annotations

"""
Key-value interface and ledger key namespaces
=============================================

Backend-agnostic KV protocols the ledger store is written against, and the
namespaces its keys live under:

- BALANCES   (b"bal:")   : account            → u128 balance
- ALLOWANCES (b"allow:") : (owner, spender)   → u128 allowance
- META       (b"meta:")  : schema version, total supply

No I/O here; `ledger.db.sqlite` and `ledger.db.rocksdb` implement the
protocols.

Composite keys
--------------
`Prefix.key(*parts)` appends each part as `uvarint(len(part)) | part`. With
every part length-prefixed, distinct part tuples never encode to the same
key, even when their concatenations are equal:

>>> ALLOWANCES.key(b"ab", b"c") == ALLOWANCES.key(b"a", b"bc")
False
>>> ALLOWANCES.split(ALLOWANCES.key(b"ab", b"c"))
(b'ab', b'c')

Batches
-------
`KV.batch()` returns a context manager; its writes land together on a clean
exit and are discarded if an exception escapes:

>>> with kv.batch() as b:
...     b.put(BALANCES.key(addr), value)
...     b.put(META.key(b"total_supply"), total)
"""

from typing import Iterable, Iterator, Optional, Protocol, Tuple, Union, runtime_checkable

Part = Union[bytes, bytearray, memoryview, str]

NS_SEP = b":"


# ---------------------------------------------------------------------------
# Namespaces
# ---------------------------------------------------------------------------


def _uvarint(n: int) -> bytes:
    """Unsigned LEB128."""
    if n < 0:
        raise ValueError("length must be non-negative")
    out = bytearray()
    while n >= 0x80:
        out.append((n & 0x7F) | 0x80)
        n >>= 7
    out.append(n)
    return bytes(out)


def _read_uvarint(buf: bytes, off: int) -> Tuple[int, int]:
    n = shift = 0
    while off < len(buf):
        byte = buf[off]
        off += 1
        n |= (byte & 0x7F) << shift
        if byte < 0x80:
            return n, off
        shift += 7
    raise ValueError("truncated uvarint")


def _as_bytes(p: Part) -> bytes:
    if isinstance(p, str):
        return p.encode("utf-8")
    if isinstance(p, (bytes, bytearray, memoryview)):
        return bytes(p)
    raise TypeError(f"key parts must be bytes or str, got {type(p).__name__}")


class Prefix:
    """A key namespace: raw prefix bytes ending in `NS_SEP`."""

    __slots__ = ("_raw",)

    def __init__(self, ns: Part) -> None:
        raw = _as_bytes(ns).rstrip(NS_SEP)
        if not raw:
            raise ValueError("namespace must be non-empty")
        self._raw = raw + NS_SEP

    @property
    def raw(self) -> bytes:
        return self._raw

    def key(self, *parts: Part) -> bytes:
        out = bytearray(self._raw)
        for p in parts:
            pb = _as_bytes(p)
            out += _uvarint(len(pb))
            out += pb
        return bytes(out)

    def split(self, key: bytes) -> Tuple[bytes, ...]:
        """Inverse of `key()`."""
        if not key.startswith(self._raw):
            raise ValueError(f"key is not under {self!r}")
        parts = []
        off = len(self._raw)
        while off < len(key):
            n, off = _read_uvarint(key, off)
            if off + n > len(key):
                raise ValueError("key part length exceeds buffer")
            parts.append(key[off:off + n])
            off += n
        return tuple(parts)

    def __repr__(self) -> str:
        return f"Prefix({self._raw!r})"


BALANCES = Prefix(b"bal")
ALLOWANCES = Prefix(b"allow")
META = Prefix(b"meta")


# ---------------------------------------------------------------------------
# Fixed-width integers
# ---------------------------------------------------------------------------


def _be(n: int, width: int) -> bytes:
    if not 0 <= n < (1 << (8 * width)):
        raise ValueError(f"{n} does not fit in {width} bytes")
    return n.to_bytes(width, "big")


def be_u32(n: int) -> bytes:
    return _be(n, 4)


def be_u128(n: int) -> bytes:
    return _be(n, 16)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]:
        """Value for `key`, or None."""
        ...

    def has(self, key: bytes) -> bool: ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """(key, value) pairs under `prefix`, in ascending byte order of key."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class Batch(Protocol):
    """
    Write batch used as a context manager. Clean exit commits every staged
    write atomically; an escaping exception rolls all of them back.
    """

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def put(self, key: bytes, value: bytes) -> None:
        """Insert or overwrite."""
        ...

    def delete(self, key: bytes) -> None:
        """Remove `key`; no-op if absent."""
        ...

    def batch(self) -> Batch: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def iter_prefixed(kv: ReadOnlyKV, prefix: Union[Prefix, bytes]) -> Iterator[Tuple[bytes, bytes]]:
    return kv.iter_prefix(prefix.raw if isinstance(prefix, Prefix) else prefix)


def put_many(kv: KV, items: Iterable[Tuple[bytes, bytes]]) -> None:
    """Write `items` in one batch."""
    with kv.batch() as b:
        for k, v in items:
            b.put(k, v)


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "Prefix",
    "BALANCES",
    "ALLOWANCES",
    "META",
    "NS_SEP",
    "be_u32",
    "be_u128",
    "iter_prefixed",
    "put_many",
]
