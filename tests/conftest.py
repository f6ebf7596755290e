"""
Shared pytest fixtures:
- In-memory and file-backed KV stores
- LedgerStore / TransferEngine wired with a recording emitter
- Hex address resolver for 20-byte accounts (see tests/helpers.py)
- Isolation of LEDGER_* environment variables and logging context
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator

import pytest

from ledger.address import HexAddressResolver
from ledger.db import open_kv
from ledger.db.kv import KV
from ledger.engine import TransferEngine
from ledger.events import RecordingEmitter
from ledger.logging import clear_context
from ledger.store import LedgerStore


# ---------- ENVIRONMENT ----------

@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop LEDGER_* variables from the outer environment and reset log context."""
    for k in list(os.environ):
        if k.startswith("LEDGER_"):
            monkeypatch.delenv(k, raising=False)
    clear_context()
    yield
    clear_context()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Per-test data directory, also exported as LEDGER_DATA_DIR."""
    monkeypatch.setenv("LEDGER_DATA_DIR", str(tmp_path))
    return tmp_path


# ---------- STORAGE ----------

@pytest.fixture
def kv() -> Iterator[KV]:
    db = open_kv("memory://")
    yield db
    db.close()


@pytest.fixture
def file_kv(tmp_path: Path) -> Iterator[KV]:
    db = open_kv(f"sqlite:///{tmp_path / 'ledger.db'}")
    yield db
    db.close()


@pytest.fixture
def store(kv: KV) -> LedgerStore:
    return LedgerStore(kv, address_len=20)


# ---------- ENGINE ----------

@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def resolver() -> HexAddressResolver:
    return HexAddressResolver(20)


@pytest.fixture
def engine(store: LedgerStore, emitter: RecordingEmitter, resolver: HexAddressResolver) -> TransferEngine:
    return TransferEngine(store, emitter=emitter, resolver=resolver)


@pytest.fixture
def ledger_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG, logger="ledger")
    return caplog
