"""Well-known accounts shared by the ledger tests (canonical bytes + hex)."""
from __future__ import annotations

ALICE = b"\xaa" * 20
BOB = b"\xbb" * 20
CAROL = b"\xcc" * 20
DAVE = b"\xdd" * 20

ALICE_HEX = "0x" + "aa" * 20
BOB_HEX = "0x" + "bb" * 20
CAROL_HEX = "0x" + "cc" * 20
DAVE_HEX = "0x" + "dd" * 20
