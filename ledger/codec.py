"""
Fixed-width amount codec
------------------------

Balances, allowances and the total supply are stored as unsigned 128-bit
integers, big-endian, exactly `AMOUNT_WIDTH` bytes. The layout is tied to
`CODEC_VERSION`, which the store records once per database under
`META.key(b"schema")`.

Decoding is strict: a value of any other width is storage corruption or a
schema mismatch and raises DecodeError carrying the offending key.
"""

from __future__ import annotations

from typing import Final, Optional

from .db.kv import be_u32, be_u128
from .errors import ArithmeticOverflow, DecodeError
from .math import U128_MAX

CODEC_VERSION: Final[int] = 1
AMOUNT_WIDTH: Final[int] = 16


def encode_amount(value: int) -> bytes:
    if value < 0 or value > U128_MAX:
        raise ArithmeticOverflow("encode", value=value, amount=0, limit=U128_MAX)
    return be_u128(value)


def decode_amount(raw: Optional[bytes], *, key: bytes = b"") -> int:
    """Decode a stored amount. `None` (absent key) decodes to 0."""
    if raw is None:
        return 0
    if len(raw) != AMOUNT_WIDTH:
        raise DecodeError(key, expected=AMOUNT_WIDTH, got=len(raw))
    return int.from_bytes(raw, "big")


def encode_version(version: int = CODEC_VERSION) -> bytes:
    return be_u32(version)


def decode_version(raw: bytes, *, key: bytes = b"") -> int:
    if len(raw) != 4:
        raise DecodeError(key, expected=4, got=len(raw), message="schema marker has unexpected width")
    return int.from_bytes(raw, "big")


__all__ = [
    "CODEC_VERSION",
    "AMOUNT_WIDTH",
    "encode_amount",
    "decode_amount",
    "encode_version",
    "decode_version",
]
