"""
Ledger store (balances, allowances, supply) on top of the KV interface
======================================================================

Typed view over the generic KV backends. Keys are a small tagged union, each
tag under its own namespace, every part length-prefixed:

    BalanceKey(account)          -> BALANCES.key(account)          -> u128
    AllowanceKey(owner, spender) -> ALLOWANCES.key(owner, spender) -> u128
    MetaKey(name)                -> META.key(name)                 -> raw

Values use `ledger.codec` (fixed 16-byte big-endian). Absent entries read as 0.
The store performs no policy checks on values; that is the engine's job.

The schema marker is written on first open of an empty database and checked
on every later open.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

from .codec import (CODEC_VERSION, decode_amount, decode_version,
                    encode_amount, encode_version)
from .db.kv import ALLOWANCES, BALANCES, KV, META, Batch
from .errors import DecodeError, InvalidAddress

Address = bytes


# ---------------------------------------------------------------------------
# Structured keys
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BalanceKey:
    account: Address

    def encode(self) -> bytes:
        return BALANCES.key(self.account)


@dataclass(frozen=True)
class AllowanceKey:
    owner: Address
    spender: Address

    def encode(self) -> bytes:
        return ALLOWANCES.key(self.owner, self.spender)


@dataclass(frozen=True)
class MetaKey:
    name: bytes

    def encode(self) -> bytes:
        return META.key(self.name)


LedgerKey = Union[BalanceKey, AllowanceKey, MetaKey]

K_SCHEMA = MetaKey(b"schema")
K_TOTAL_SUPPLY = MetaKey(b"total_supply")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class LedgerStore:
    """
    Balance/allowance view on a KV.

    Holds a reference to the KV; callers own its lifetime. Setters accept an
    optional open batch; reads always go to the KV, which exposes a batch's
    staged writes to reads on the same store.
    """

    def __init__(self, kv: KV, *, address_len: Optional[int] = None) -> None:
        self.kv = kv
        self.address_len = address_len
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        key = K_SCHEMA.encode()
        raw = self.kv.get(key)
        if raw is None:
            self.kv.put(key, encode_version())
            return
        version = decode_version(raw, key=key)
        if version != CODEC_VERSION:
            raise DecodeError(
                key,
                expected=CODEC_VERSION,
                got=version,
                message="unsupported ledger schema version",
            )

    def schema_version(self) -> int:
        key = K_SCHEMA.encode()
        raw = self.kv.get(key)
        return CODEC_VERSION if raw is None else decode_version(raw, key=key)

    def check_address(self, addr: Address) -> Address:
        """Return `addr` as bytes if it is a well-formed canonical address."""
        if not isinstance(addr, (bytes, bytearray)) or len(addr) == 0:
            raise InvalidAddress(addr, self.address_len)
        if self.address_len is not None and len(addr) != self.address_len:
            raise InvalidAddress(addr, self.address_len)
        return bytes(addr)

    # --- raw amount access (used by the engine's journal) ---

    def read_amount(self, key: LedgerKey) -> int:
        k = key.encode()
        return decode_amount(self.kv.get(k), key=k)

    def write_amount(self, key: LedgerKey, value: int, batch: Optional[Batch] = None) -> None:
        k = key.encode()
        v = encode_amount(value)
        if batch is None:
            self.kv.put(k, v)
        else:
            batch.put(k, v)

    # --- balances ---

    def get_balance(self, account: Address) -> int:
        return self.read_amount(BalanceKey(account))

    def set_balance(self, account: Address, value: int, batch: Optional[Batch] = None) -> None:
        self.write_amount(BalanceKey(account), value, batch=batch)

    def iter_balances(self) -> Iterator[Tuple[Address, int]]:
        """Live iterator over (account, balance) in key order."""
        for k, v in self.kv.iter_prefix(BALANCES.raw):
            (account,) = BALANCES.split(k)
            yield account, decode_amount(v, key=k)

    def sum_balances(self) -> int:
        return sum(bal for _, bal in self.iter_balances())

    # --- allowances ---

    def get_allowance(self, owner: Address, spender: Address) -> int:
        return self.read_amount(AllowanceKey(owner, spender))

    def set_allowance(
        self, owner: Address, spender: Address, value: int, batch: Optional[Batch] = None
    ) -> None:
        self.write_amount(AllowanceKey(owner, spender), value, batch=batch)

    def iter_allowances(self, owner: Optional[Address] = None) -> Iterator[Tuple[Address, Address, int]]:
        """
        Iterate allowance entries as (owner, spender, allowance).

        With `owner` set, only that owner's entries are scanned.
        """
        prefix = ALLOWANCES.raw if owner is None else ALLOWANCES.key(owner)
        for k, v in self.kv.iter_prefix(prefix):
            o, s = ALLOWANCES.split(k)
            yield o, s, decode_amount(v, key=k)

    # --- supply ---

    def get_total_supply(self) -> int:
        return self.read_amount(K_TOTAL_SUPPLY)

    def set_total_supply(self, value: int, batch: Optional[Batch] = None) -> None:
        self.write_amount(K_TOTAL_SUPPLY, value, batch=batch)

    # --- batching & close ---

    def batch(self) -> Batch:
        return self.kv.batch()

    def close(self) -> None:
        self.kv.close()


__all__ = [
    "Address",
    "BalanceKey",
    "AllowanceKey",
    "MetaKey",
    "LedgerKey",
    "LedgerStore",
]
