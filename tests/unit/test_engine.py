from __future__ import annotations

import logging

import pytest

from ledger.db.kv import KV
from ledger.engine import Response, TransferEngine
from ledger.errors import (ArithmeticOverflow, ArithmeticUnderflow, DecodeError, InsufficientAllowance,
                           InsufficientFunds, InvalidAddress, InvalidAmount, LedgerErrorCode)
from ledger.events import RecordingEmitter
from ledger.math import U128_MAX
from ledger.store import BalanceKey, LedgerStore

from tests.helpers import ALICE, ALICE_HEX, BOB, BOB_HEX, CAROL, CAROL_HEX, DAVE, DAVE_HEX


def snapshot(store: LedgerStore):
    return (
        list(store.iter_balances()),
        list(store.iter_allowances()),
        store.get_total_supply(),
    )


# ---------------------------------------------------------------------------
# transfer
# ---------------------------------------------------------------------------

def test_transfer_whole_balance(engine: TransferEngine):
    engine.mint(ALICE, 100)
    engine.transfer(ALICE, BOB, 100)
    assert engine.balance_of(ALICE) == 0
    assert engine.balance_of(BOB) == 100
    assert engine.total_supply() == 100


def test_transfer_insufficient_funds_leaves_state(engine: TransferEngine, store: LedgerStore, emitter: RecordingEmitter):
    engine.mint(ALICE, 50)
    before = snapshot(store)
    emitter.clear()

    with pytest.raises(InsufficientFunds) as ei:
        engine.transfer(ALICE, BOB, 100)

    err = ei.value
    assert err.code == LedgerErrorCode.INSUFFICIENT_FUNDS
    assert err.data == {"account": ALICE_HEX, "balance": 50, "required": 100}
    assert err.retryable
    assert snapshot(store) == before
    assert emitter.events == []


def test_self_transfer_is_value_noop(engine: TransferEngine):
    engine.mint(ALICE, 10)
    engine.transfer(ALICE, ALICE, 10)
    assert engine.balance_of(ALICE) == 10
    with pytest.raises(InsufficientFunds):
        engine.transfer(ALICE, ALICE, 11)
    assert engine.balance_of(ALICE) == 10


def test_zero_transfer_still_emits(engine: TransferEngine, store: LedgerStore, emitter: RecordingEmitter):
    resp = engine.transfer(ALICE, BOB, 0)
    assert resp.get("amount") == "0"
    assert emitter.actions() == ["transfer"]
    assert engine.balance_of(ALICE) == 0
    assert list(store.iter_balances()) == []


def test_zero_amounts_create_no_entries(engine: TransferEngine, store: LedgerStore, emitter: RecordingEmitter):
    engine.mint(ALICE, 0)
    engine.burn(BOB, 0)
    engine.delegated_transfer(CAROL, ALICE, DAVE, 0)
    assert emitter.actions() == ["mint", "burn", "transfer_from"]
    assert snapshot(store) == ([], [], 0)


def test_transfer_credit_overflow_writes_nothing(engine: TransferEngine, store: LedgerStore):
    store.set_balance(BOB, U128_MAX)
    engine.mint(ALICE, 1)
    before = snapshot(store)

    with pytest.raises(ArithmeticOverflow) as ei:
        engine.transfer(ALICE, BOB, 1)

    assert ei.value.data["operation"] == "transfer.credit"
    assert ei.value.data["account"] == BOB_HEX
    assert snapshot(store) == before


def test_transfer_event_and_response(engine: TransferEngine, emitter: RecordingEmitter):
    engine.mint(ALICE, 5)
    resp = engine.transfer(ALICE, BOB, 5)

    expected = {"action": "transfer", "sender": ALICE_HEX, "recipient": BOB_HEX, "amount": "5"}
    assert isinstance(resp, Response)
    assert resp.action == "transfer"
    assert resp.as_dict() == expected
    assert emitter.last().as_dict() == expected


# ---------------------------------------------------------------------------
# delegated_transfer
# ---------------------------------------------------------------------------

def test_delegated_transfer_consumes_allowance(engine: TransferEngine):
    engine.approve(ALICE, CAROL, 30)
    engine.mint(ALICE, 100)

    engine.delegated_transfer(CAROL, ALICE, DAVE, 30)

    assert engine.allowance(ALICE, CAROL) == 0
    assert engine.balance_of(ALICE) == 70
    assert engine.balance_of(DAVE) == 30

    with pytest.raises(InsufficientAllowance) as ei:
        engine.delegated_transfer(CAROL, ALICE, DAVE, 1)
    assert ei.value.data == {"owner": ALICE_HEX, "spender": CAROL_HEX, "allowance": 0, "required": 1}


def test_delegated_transfer_is_atomic_on_insufficient_funds(engine: TransferEngine, store: LedgerStore):
    engine.approve(ALICE, CAROL, 50)
    engine.mint(ALICE, 10)
    before = snapshot(store)

    with pytest.raises(InsufficientFunds):
        engine.delegated_transfer(CAROL, ALICE, DAVE, 30)

    assert engine.allowance(ALICE, CAROL) == 50
    assert snapshot(store) == before


def test_delegated_transfer_is_atomic_on_overflow(engine: TransferEngine, store: LedgerStore):
    engine.approve(ALICE, CAROL, 5)
    engine.mint(ALICE, 5)
    store.set_balance(DAVE, U128_MAX)

    with pytest.raises(ArithmeticOverflow):
        engine.delegated_transfer(CAROL, ALICE, DAVE, 5)

    assert engine.allowance(ALICE, CAROL) == 5
    assert engine.balance_of(ALICE) == 5


def test_delegated_transfer_partial_allowance(engine: TransferEngine):
    engine.approve(ALICE, CAROL, 30)
    engine.mint(ALICE, 100)
    engine.delegated_transfer(CAROL, ALICE, BOB, 10)
    engine.delegated_transfer(CAROL, ALICE, BOB, 20)
    assert engine.allowance(ALICE, CAROL) == 0
    assert engine.balance_of(BOB) == 30


def test_delegated_transfer_to_owner(engine: TransferEngine):
    engine.approve(ALICE, CAROL, 10)
    engine.mint(ALICE, 10)
    engine.delegated_transfer(CAROL, ALICE, ALICE, 10)
    assert engine.balance_of(ALICE) == 10
    assert engine.allowance(ALICE, CAROL) == 0


def test_delegated_transfer_event(engine: TransferEngine, emitter: RecordingEmitter):
    engine.approve(ALICE, CAROL, 3)
    engine.mint(ALICE, 3)
    engine.delegated_transfer(CAROL, ALICE, DAVE, 3)
    assert emitter.last().as_dict() == {
        "action": "transfer_from",
        "spender": CAROL_HEX,
        "sender": ALICE_HEX,
        "owner": ALICE_HEX,
        "recipient": DAVE_HEX,
        "amount": "3",
    }


def test_allowance_is_directional(engine: TransferEngine):
    engine.approve(ALICE, CAROL, 10)
    engine.mint(CAROL, 10)
    with pytest.raises(InsufficientAllowance):
        engine.delegated_transfer(ALICE, CAROL, BOB, 1)


# ---------------------------------------------------------------------------
# approve
# ---------------------------------------------------------------------------

def test_approve_is_absolute_and_idempotent(engine: TransferEngine, store: LedgerStore):
    engine.approve(ALICE, BOB, 40)
    once = snapshot(store)
    engine.approve(ALICE, BOB, 40)
    assert snapshot(store) == once

    engine.approve(ALICE, BOB, 7)
    assert engine.allowance(ALICE, BOB) == 7
    engine.approve(ALICE, BOB, 0)
    assert engine.allowance(ALICE, BOB) == 0


def test_approve_needs_no_balance(engine: TransferEngine, emitter: RecordingEmitter):
    engine.approve(ALICE, BOB, U128_MAX)
    assert engine.allowance(ALICE, BOB) == U128_MAX
    assert emitter.last().as_dict() == {
        "action": "approve",
        "owner": ALICE_HEX,
        "spender": BOB_HEX,
        "amount": str(U128_MAX),
    }


# ---------------------------------------------------------------------------
# mint / burn
# ---------------------------------------------------------------------------

def test_mint_then_burn(engine: TransferEngine, store: LedgerStore, emitter: RecordingEmitter):
    engine.mint(ALICE, 1000)
    assert engine.total_supply() == 1000
    engine.burn(ALICE, 1000)
    assert engine.balance_of(ALICE) == 0
    assert engine.total_supply() == 0
    assert [e.as_dict() for e in emitter.events] == [
        {"action": "mint", "to": ALICE_HEX, "amount": "1000"},
        {"action": "burn", "from": ALICE_HEX, "amount": "1000"},
    ]

    before = snapshot(store)
    with pytest.raises(ArithmeticUnderflow) as ei:
        engine.burn(ALICE, 1)
    assert ei.value.data == {"operation": "burn", "value": 0, "amount": 1, "account": ALICE_HEX}
    assert snapshot(store) == before


def test_burn_balance_set_directly_on_store(engine: TransferEngine, store: LedgerStore):
    store.set_balance(ALICE, 100)
    engine.burn(ALICE, 100)
    assert engine.balance_of(ALICE) == 0
    assert engine.total_supply() == 0


def test_burn_supply_debit_saturates(engine: TransferEngine, store: LedgerStore):
    engine.mint(ALICE, 10)
    store.set_balance(BOB, 50)
    engine.burn(BOB, 30)
    assert engine.balance_of(BOB) == 20
    assert engine.total_supply() == 0
    assert engine.balance_of(ALICE) == 10


def test_mint_supply_overflow_writes_nothing(engine: TransferEngine, store: LedgerStore):
    engine.mint(ALICE, U128_MAX)
    before = snapshot(store)
    with pytest.raises(ArithmeticOverflow) as ei:
        engine.mint(BOB, 1)
    assert ei.value.data["operation"] == "mint.supply"
    assert snapshot(store) == before


def test_mint_balance_overflow(engine: TransferEngine, store: LedgerStore):
    store.set_balance(ALICE, U128_MAX)
    with pytest.raises(ArithmeticOverflow) as ei:
        engine.mint(ALICE, 1)
    assert ei.value.data["operation"] == "mint"
    assert engine.total_supply() == 0


def test_supply_tracks_sum_of_balances(engine: TransferEngine, store: LedgerStore):
    engine.mint(ALICE, 70)
    engine.mint(BOB, 30)
    engine.transfer(ALICE, CAROL, 20)
    engine.approve(BOB, CAROL, 10)
    engine.delegated_transfer(CAROL, BOB, DAVE, 10)
    engine.burn(CAROL, 5)
    assert store.sum_balances() == engine.total_supply() == 95


# ---------------------------------------------------------------------------
# Input validation & storage faults
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("amount", [-1, U128_MAX + 1, True, 1.5, "10", None])
def test_invalid_amounts(engine: TransferEngine, store: LedgerStore, amount):
    engine.mint(ALICE, 10)
    before = snapshot(store)
    for call in (
        lambda: engine.transfer(ALICE, BOB, amount),
        lambda: engine.delegated_transfer(CAROL, ALICE, BOB, amount),
        lambda: engine.approve(ALICE, BOB, amount),
        lambda: engine.mint(ALICE, amount),
        lambda: engine.burn(ALICE, amount),
    ):
        with pytest.raises(InvalidAmount):
            call()
    assert snapshot(store) == before


def test_invalid_address(engine: TransferEngine):
    with pytest.raises(InvalidAddress) as ei:
        engine.transfer(ALICE, b"\x01" * 19, 0)
    assert ei.value.data["expected_len"] == 20
    with pytest.raises(InvalidAddress):
        engine.balance_of(b"")


def test_corrupt_balance_aborts_transfer(engine: TransferEngine, kv: KV, store: LedgerStore):
    engine.mint(ALICE, 10)
    kv.put(BalanceKey(BOB).encode(), b"\x00" * 8)
    with pytest.raises(DecodeError):
        engine.transfer(ALICE, BOB, 1)
    assert engine.balance_of(ALICE) == 10
    assert kv.get(BalanceKey(BOB).encode()) == b"\x00" * 8


# ---------------------------------------------------------------------------
# Rendering & logging
# ---------------------------------------------------------------------------

class _UpperResolver:
    def canonicalize(self, human: str) -> bytes:
        return bytes.fromhex(human[2:])

    def humanize(self, canonical: bytes) -> str:
        return "0X" + canonical.hex().upper()


def test_accounts_rendered_through_resolver(store: LedgerStore):
    em = RecordingEmitter()
    eng = TransferEngine(store, emitter=em, resolver=_UpperResolver())
    eng.mint(ALICE, 1)
    assert em.last().as_dict()["to"] == "0X" + "AA" * 20


def test_accounts_rendered_as_hex_without_resolver(store: LedgerStore):
    eng = TransferEngine(store)
    resp = eng.mint(ALICE, 1)
    assert resp.get("to") == ALICE_HEX


def test_failures_are_logged_and_reraised(engine: TransferEngine, ledger_logs: pytest.LogCaptureFixture):
    with pytest.raises(InsufficientFunds):
        engine.transfer(ALICE, BOB, 1)
    with pytest.raises(InvalidAmount):
        engine.transfer(ALICE, BOB, -1)

    rejected = [r for r in ledger_logs.records if r.name == "ledger.engine" and "rejected" in r.getMessage()]
    assert [r.levelno for r in rejected] == [logging.WARNING, logging.ERROR]
    assert rejected[0].error["code"] == "LEDGER/INSUFFICIENT_FUNDS"
    assert rejected[0].component == "engine"


def test_success_logged_at_debug(engine: TransferEngine, ledger_logs: pytest.LogCaptureFixture):
    engine.mint(ALICE, 2)
    applied = [r for r in ledger_logs.records if r.getMessage() == "mint applied"]
    assert len(applied) == 1
    assert applied[0].levelno == logging.DEBUG
    assert applied[0].evt_amount == "2"
