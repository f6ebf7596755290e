"""
ledger.address
==============

Translation between human-facing address strings and the canonical byte form
the store keys on.

The engine works only with canonical bytes. The handler resolves every
human address through an `AddressResolver` before touching the ledger, so a
resolution failure never has side effects.

Bundled resolver
----------------
`HexAddressResolver(length=20)` accepts lowercase/uppercase hex with or
without a ``0x`` prefix and renders canonical bytes back as ``0x``-prefixed
lowercase hex.

>>> r = HexAddressResolver(length=2)
>>> r.canonicalize("0xBEEF")
b'\\xbe\\xef'
>>> r.humanize(b"\\xbe\\xef")
'0xbeef'
"""

from __future__ import annotations

import string
from typing import Protocol, runtime_checkable

from .errors import AddressResolutionError

DEFAULT_ADDRESS_LEN = 20

_HEXDIGITS = frozenset(string.hexdigits)


@runtime_checkable
class AddressResolver(Protocol):
    def canonicalize(self, human: str) -> bytes: ...

    def humanize(self, canonical: bytes) -> str: ...


def strip0x(s: str) -> str:
    return s[2:] if s.startswith(("0x", "0X")) else s


def to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


class HexAddressResolver:
    """Fixed-length hex addresses."""

    __slots__ = ("length",)

    def __init__(self, length: int = DEFAULT_ADDRESS_LEN) -> None:
        if length <= 0:
            raise ValueError("address length must be positive")
        self.length = length

    def canonicalize(self, human: str) -> bytes:
        if not isinstance(human, str):
            raise AddressResolutionError(repr(human), "address must be a string")
        h = strip0x(human.strip())
        if not h:
            raise AddressResolutionError(human, "empty address")
        if not _HEXDIGITS.issuperset(h):
            raise AddressResolutionError(human, "non-hex characters")
        if len(h) != 2 * self.length:
            raise AddressResolutionError(
                human, f"expected {self.length} bytes, got {len(h) / 2:g}"
            )
        return bytes.fromhex(h)

    def humanize(self, canonical: bytes) -> str:
        return to_hex(canonical)

    def __repr__(self) -> str:
        return f"HexAddressResolver(length={self.length})"


__all__ = [
    "DEFAULT_ADDRESS_LEN",
    "AddressResolver",
    "HexAddressResolver",
    "strip0x",
    "to_hex",
]
