"""
ledger.handler
==============

Caller-facing entry points. The authenticated caller arrives as an `Env`;
every other party is a human-facing address string that is resolved to
canonical bytes before the engine is called. All addresses are resolved
up front, so a resolution failure aborts with no storage reads or writes.

    env = Env(sender="0x…")
    try_transfer(engine, env, recipient="0x…", amount=10)
"""

from __future__ import annotations

from dataclasses import dataclass

from .address import DEFAULT_ADDRESS_LEN, AddressResolver, HexAddressResolver
from .engine import Response, TransferEngine


@dataclass(frozen=True)
class Env:
    """Identity of the already-authenticated caller."""

    sender: str


def _resolver(engine: TransferEngine) -> AddressResolver:
    if engine.resolver is not None:
        return engine.resolver
    return HexAddressResolver(engine.store.address_len or DEFAULT_ADDRESS_LEN)


def try_transfer(engine: TransferEngine, env: Env, recipient: str, amount: int) -> Response:
    r = _resolver(engine)
    sender = r.canonicalize(env.sender)
    to = r.canonicalize(recipient)
    return engine.transfer(sender, to, amount)


def try_transfer_from(
    engine: TransferEngine, env: Env, owner: str, recipient: str, amount: int
) -> Response:
    """Spend `owner`'s tokens under the allowance granted to the caller."""
    r = _resolver(engine)
    spender = r.canonicalize(env.sender)
    ow = r.canonicalize(owner)
    to = r.canonicalize(recipient)
    return engine.delegated_transfer(spender, ow, to, amount)


def try_approve(engine: TransferEngine, env: Env, spender: str, amount: int) -> Response:
    r = _resolver(engine)
    owner = r.canonicalize(env.sender)
    sp = r.canonicalize(spender)
    return engine.approve(owner, sp, amount)


def query_balance(engine: TransferEngine, address: str) -> int:
    return engine.balance_of(_resolver(engine).canonicalize(address))


def query_allowance(engine: TransferEngine, owner: str, spender: str) -> int:
    r = _resolver(engine)
    ow = r.canonicalize(owner)
    sp = r.canonicalize(spender)
    return engine.allowance(ow, sp)


def query_total_supply(engine: TransferEngine) -> int:
    return engine.total_supply()


__all__ = [
    "Env",
    "try_transfer",
    "try_transfer_from",
    "try_approve",
    "query_balance",
    "query_allowance",
    "query_total_supply",
]
