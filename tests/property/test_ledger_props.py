"""
Property tests for the transfer engine.

Random sequences of transfer / delegated transfer / approve / mint / burn run
against a fresh in-memory ledger and a plain-dict model side by side:

- the engine accepts exactly the operations the model accepts, and raises
  the same error kind otherwise
- after every step: sum of balances == stored total supply, no entry is
  negative, and storage matches the model
- a rejected operation leaves storage byte-for-byte unchanged
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple, Type

from hypothesis import given
from hypothesis import strategies as st

from ledger.db import open_kv
from ledger.db.kv import ALLOWANCES, BALANCES, META
from ledger.engine import TransferEngine
from ledger.errors import (ArithmeticOverflow, ArithmeticUnderflow, InsufficientAllowance, InsufficientFunds,
                           LedgerError)
from ledger.math import U128_MAX
from ledger.store import LedgerStore

ACCOUNTS = [bytes([i]) * 20 for i in (0x11, 0x22, 0x33, 0x44)]

ACCT = st.sampled_from(ACCOUNTS)
SMALL = st.integers(min_value=0, max_value=1_000)
HUGE = st.sampled_from([U128_MAX, U128_MAX - 1, 1 << 127])
AMOUNT = st.one_of(SMALL, SMALL, SMALL, HUGE)

OPS = st.one_of(
    st.tuples(st.just("transfer"), ACCT, ACCT, AMOUNT),
    st.tuples(st.just("delegated_transfer"), ACCT, ACCT, ACCT, AMOUNT),
    st.tuples(st.just("approve"), ACCT, ACCT, AMOUNT),
    st.tuples(st.just("mint"), ACCT, AMOUNT),
    st.tuples(st.just("burn"), ACCT, AMOUNT),
)


class Model:
    def __init__(self) -> None:
        self.balances: Dict[bytes, int] = {}
        self.allowances: Dict[Tuple[bytes, bytes], int] = {}
        self.supply = 0

    def bal(self, a: bytes) -> int:
        return self.balances.get(a, 0)

    def apply(self, op: tuple) -> Optional[Type[LedgerError]]:
        """Apply `op`; return the error kind the engine must raise, or None."""
        name, *args = op
        if name == "transfer":
            s, r, amt = args
            return self._move(s, r, amt)
        if name == "delegated_transfer":
            sp, ow, r, amt = args
            if self.allowances.get((ow, sp), 0) < amt:
                return InsufficientAllowance
            before = dict(self.balances)
            err = self._move(ow, r, amt)
            if err is not None:
                self.balances = before
                return err
            self.allowances[(ow, sp)] = self.allowances.get((ow, sp), 0) - amt
            return None
        if name == "approve":
            ow, sp, amt = args
            self.allowances[(ow, sp)] = amt
            return None
        if name == "mint":
            to, amt = args
            if self.bal(to) + amt > U128_MAX or self.supply + amt > U128_MAX:
                return ArithmeticOverflow
            if amt == 0:
                return None
            self.balances[to] = self.bal(to) + amt
            self.supply += amt
            return None
        if name == "burn":
            frm, amt = args
            if self.bal(frm) < amt:
                return ArithmeticUnderflow
            if amt == 0:
                return None
            self.balances[frm] = self.bal(frm) - amt
            self.supply -= amt
            return None
        raise AssertionError(name)

    def _move(self, s: bytes, r: bytes, amt: int) -> Optional[Type[LedgerError]]:
        if self.bal(s) < amt:
            return InsufficientFunds
        if amt == 0:
            return None
        after_debit = self.bal(s) - amt
        credited = (after_debit if s == r else self.bal(r)) + amt
        if credited > U128_MAX:
            return ArithmeticOverflow
        self.balances[s] = after_debit
        self.balances[r] = credited
        return None


def _run(engine: TransferEngine, op: tuple) -> None:
    name, *args = op
    getattr(engine, name)(*args)


def _dump(store: LedgerStore) -> List[Tuple[bytes, bytes]]:
    return [entry for ns in (BALANCES, ALLOWANCES, META) for entry in store.kv.iter_prefix(ns.raw)]


@given(st.lists(OPS, min_size=1, max_size=40))
def test_engine_matches_model_and_conserves_supply(ops: List[tuple]) -> None:
    kv = open_kv("memory://")
    try:
        store = LedgerStore(kv, address_len=20)
        engine = TransferEngine(store)
        model = Model()

        for op in ops:
            expected = model.apply(op)
            before = _dump(store)
            if expected is None:
                _run(engine, op)
            else:
                try:
                    _run(engine, op)
                except LedgerError as err:
                    assert type(err) is expected, (op, err)
                else:
                    raise AssertionError(f"{op} should have raised {expected.__name__}")
                assert _dump(store) == before

            balances = dict(store.iter_balances())
            assert all(v >= 0 for v in balances.values())
            assert sum(balances.values()) == store.get_total_supply() == model.supply
            assert balances == model.balances
            for (ow, sp), v in model.allowances.items():
                assert store.get_allowance(ow, sp) == v
    finally:
        kv.close()


@given(ACCT, ACCT, SMALL, SMALL)
def test_transfer_conserves_pairwise_sum(a: bytes, b: bytes, start: int, amount: int) -> None:
    kv = open_kv("memory://")
    try:
        engine = TransferEngine(LedgerStore(kv))
        engine.mint(a, start)
        before = engine.balance_of(a) + (engine.balance_of(b) if a != b else 0)
        try:
            engine.transfer(a, b, amount)
        except InsufficientFunds:
            assert amount > start
        after = engine.balance_of(a) + (engine.balance_of(b) if a != b else 0)
        assert before == after
    finally:
        kv.close()


@given(ACCT, ACCT, st.lists(AMOUNT, min_size=1, max_size=5))
def test_approve_last_write_wins(owner: bytes, spender: bytes, amounts: List[int]) -> None:
    kv = open_kv("memory://")
    try:
        engine = TransferEngine(LedgerStore(kv))
        for amt in amounts:
            engine.approve(owner, spender, amt)
        assert engine.allowance(owner, spender) == amounts[-1]
    finally:
        kv.close()
