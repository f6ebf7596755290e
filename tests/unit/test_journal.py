from __future__ import annotations

import pytest

from ledger.errors import ArithmeticOverflow
from ledger.journal import Journal
from ledger.math import U128_MAX
from ledger.store import K_TOTAL_SUPPLY, AllowanceKey, BalanceKey, LedgerStore

from tests.helpers import ALICE, BOB


def test_reads_see_staged_writes(store: LedgerStore):
    store.set_balance(ALICE, 10)
    j = Journal(store)
    j.write(BalanceKey(ALICE), 4)
    assert j.read(BalanceKey(ALICE)) == 4
    # nothing reached storage yet
    assert store.get_balance(ALICE) == 10


def test_commit_flushes_once_and_resets(store: LedgerStore):
    j = Journal(store)
    j.write(BalanceKey(ALICE), 1)
    j.write(AllowanceKey(ALICE, BOB), 2)
    j.write(K_TOTAL_SUPPLY, 1)
    j.write(BalanceKey(ALICE), 3)  # last write wins
    assert len(j) == 3

    assert j.commit() == 3
    assert len(j) == 0
    assert store.get_balance(ALICE) == 3
    assert store.get_allowance(ALICE, BOB) == 2
    assert store.get_total_supply() == 1
    assert j.commit() == 0


def test_discard(store: LedgerStore):
    j = Journal(store)
    j.write(BalanceKey(ALICE), 1)
    j.discard()
    assert list(j.pending()) == []
    j.commit()
    assert store.get_balance(ALICE) == 0


def test_unencodable_write_rolls_back_whole_batch(store: LedgerStore):
    j = Journal(store)
    j.write(BalanceKey(ALICE), 5)
    j.write(BalanceKey(BOB), U128_MAX + 1)
    with pytest.raises(ArithmeticOverflow):
        j.commit()
    assert store.get_balance(ALICE) == 0
