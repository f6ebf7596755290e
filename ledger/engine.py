"""
ledger.engine: the transfer engine.

Every mutating operation follows the same shape:

    validate inputs → stage reads/writes in a Journal → check everything
    → commit once → emit one event → return a Response

A check that fails raises before the journal is committed, so a failed
operation leaves storage exactly as it found it. Delegated transfers stage
the allowance decrement and the balance move in the same journal, so either
both land or neither does.

The engine performs no authorization. `mint` and `burn` are privileged
primitives; callers decide who may reach them.

Usage
-----
    from ledger.db import open_kv
    from ledger.store import LedgerStore
    from ledger.engine import TransferEngine

    engine = TransferEngine(LedgerStore(open_kv("memory://")))
    engine.mint(alice, 100)
    engine.transfer(alice, bob, 40)
    engine.balance_of(bob)  # 40
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .address import AddressResolver, to_hex
from .errors import ArithmeticUnderflow, InsufficientAllowance, InsufficientFunds, LedgerError
from .events import EventEmitter, NullEmitter
from .journal import Journal
from .logging import get_logger, trace_scope, with_fields
from .math import require_u128, u128_add, u128_sub
from .store import K_TOTAL_SUPPLY, Address, AllowanceKey, BalanceKey, LedgerStore

ACTION_TRANSFER = "transfer"
ACTION_TRANSFER_FROM = "transfer_from"
ACTION_APPROVE = "approve"
ACTION_MINT = "mint"
ACTION_BURN = "burn"


@dataclass(frozen=True)
class Response:
    """Result of a successful operation: its action and the emitted attributes."""

    action: str
    attributes: Tuple[Tuple[str, str], ...]

    def as_dict(self) -> Dict[str, str]:
        return dict(self.attributes)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.as_dict().get(key, default)


class TransferEngine:
    """
    Enforces conservation, non-negativity and allowance ceilings over a
    LedgerStore.

    Parameters
    ----------
    store : LedgerStore
        Backing store. The engine never caches reads.
    emitter : EventEmitter | None
        Receives one attribute mapping per successful operation.
    resolver : AddressResolver | None
        Used only to render accounts in events; hex otherwise.
    """

    def __init__(
        self,
        store: LedgerStore,
        emitter: Optional[EventEmitter] = None,
        resolver: Optional[AddressResolver] = None,
    ) -> None:
        self.store = store
        self.emitter: EventEmitter = emitter if emitter is not None else NullEmitter()
        self.resolver = resolver
        self._log = with_fields(get_logger(__name__), component="engine")

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def transfer(self, sender: Address, recipient: Address, amount: int) -> Response:
        """Move `amount` from `sender` to `recipient`."""

        def op() -> Response:
            s = self.store.check_address(sender)
            r = self.store.check_address(recipient)
            amt = require_u128(amount)
            j = Journal(self.store)
            self._move(j, s, r, amt)
            j.commit()
            return self._emit(
                ACTION_TRANSFER,
                ("sender", self._render(s)),
                ("recipient", self._render(r)),
                ("amount", str(amt)),
            )

        return self._run(ACTION_TRANSFER, op)

    def delegated_transfer(
        self, spender: Address, owner: Address, recipient: Address, amount: int
    ) -> Response:
        """
        Move `amount` from `owner` to `recipient` on behalf of `spender`,
        consuming the same amount of the (owner, spender) allowance.
        """

        def op() -> Response:
            sp = self.store.check_address(spender)
            ow = self.store.check_address(owner)
            r = self.store.check_address(recipient)
            amt = require_u128(amount)
            j = Journal(self.store)

            akey = AllowanceKey(ow, sp)
            allowance = j.read(akey)
            if allowance < amt:
                raise InsufficientAllowance(ow, sp, allowance, amt)
            if amt:
                j.write(akey, allowance - amt)

            self._move(j, ow, r, amt)
            j.commit()
            return self._emit(
                ACTION_TRANSFER_FROM,
                ("spender", self._render(sp)),
                ("sender", self._render(ow)),
                ("owner", self._render(ow)),
                ("recipient", self._render(r)),
                ("amount", str(amt)),
            )

        return self._run(ACTION_TRANSFER_FROM, op)

    def approve(self, owner: Address, spender: Address, amount: int) -> Response:
        """Set the (owner, spender) allowance to exactly `amount`. Zero revokes."""

        def op() -> Response:
            ow = self.store.check_address(owner)
            sp = self.store.check_address(spender)
            amt = require_u128(amount)
            j = Journal(self.store)
            j.write(AllowanceKey(ow, sp), amt)
            j.commit()
            return self._emit(
                ACTION_APPROVE,
                ("owner", self._render(ow)),
                ("spender", self._render(sp)),
                ("amount", str(amt)),
            )

        return self._run(ACTION_APPROVE, op)

    def mint(self, to: Address, amount: int) -> Response:
        """Credit `to` and the total supply."""

        def op() -> Response:
            acct = self.store.check_address(to)
            amt = require_u128(amount)
            j = Journal(self.store)

            if amt:
                bkey = BalanceKey(acct)
                j.write(bkey, u128_add(j.read(bkey), amt, operation="mint", account=acct))
                supply = j.read(K_TOTAL_SUPPLY)
                j.write(K_TOTAL_SUPPLY, u128_add(supply, amt, operation="mint.supply"))

            j.commit()
            return self._emit(ACTION_MINT, ("to", self._render(acct)), ("amount", str(amt)))

        return self._run(ACTION_MINT, op)

    def burn(self, from_: Address, amount: int) -> Response:
        """Debit `from_` and the total supply. Fails if the balance cannot cover it."""

        def op() -> Response:
            acct = self.store.check_address(from_)
            amt = require_u128(amount)
            j = Journal(self.store)

            bkey = BalanceKey(acct)
            balance = j.read(bkey)
            if balance < amt:
                raise ArithmeticUnderflow("burn", value=balance, amount=amt, account=acct)
            if amt:
                j.write(bkey, u128_sub(balance, amt, operation="burn", account=acct))
                # Saturating; balances set directly on the store are not in the supply.
                supply = j.read(K_TOTAL_SUPPLY)
                j.write(K_TOTAL_SUPPLY, max(supply - amt, 0))

            j.commit()
            return self._emit(ACTION_BURN, ("from", self._render(acct)), ("amount", str(amt)))

        return self._run(ACTION_BURN, op)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def balance_of(self, account: Address) -> int:
        return self.store.get_balance(self.store.check_address(account))

    def allowance(self, owner: Address, spender: Address) -> int:
        return self.store.get_allowance(
            self.store.check_address(owner), self.store.check_address(spender)
        )

    def total_supply(self) -> int:
        return self.store.get_total_supply()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _move(self, j: Journal, sender: Address, recipient: Address, amount: int) -> None:
        skey = BalanceKey(sender)
        balance = j.read(skey)
        if balance < amount:
            raise InsufficientFunds(sender, balance, amount)
        if not amount:
            return
        j.write(skey, balance - amount)

        # Read after the debit is staged; a self-transfer sees its own debit.
        rkey = BalanceKey(recipient)
        j.write(rkey, u128_add(j.read(rkey), amount, operation="transfer.credit", account=recipient))

    def _render(self, account: Address) -> str:
        if self.resolver is not None:
            return self.resolver.humanize(account)
        return to_hex(account)

    def _emit(self, action: str, *attrs: Tuple[str, str]) -> Response:
        attributes = (("action", action),) + attrs
        self.emitter.emit(dict(attributes))
        return Response(action=action, attributes=attributes)

    def _run(self, action: str, op: Callable[[], Response]) -> Response:
        with trace_scope(action=action):
            try:
                resp = op()
            except LedgerError as err:
                level = logging.WARNING if err.retryable else logging.ERROR
                self._log.log(level, "%s rejected: %s", action, err.code_str, extra={"error": err.to_dict()})
                raise
            self._log.debug("%s applied", action, extra=_log_fields(resp))
            return resp


def _log_fields(resp: Response) -> Dict[str, Any]:
    return {f"evt_{k}": v for k, v in resp.attributes if k != "action"}


__all__ = [
    "ACTION_TRANSFER",
    "ACTION_TRANSFER_FROM",
    "ACTION_APPROVE",
    "ACTION_MINT",
    "ACTION_BURN",
    "Response",
    "TransferEngine",
]
