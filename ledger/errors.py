"""
ledger.errors
-------------

A small, consistent error system for the ledger core.

Design goals
------------
- One root `LedgerError` with machine-friendly `code` and context `data`.
- Concrete subclasses for each failure kind the engine and store raise.
- Helpers to enrich errors with contextual fields without mutating them.
- Safe JSON representation (`to_dict`) suitable for logs.
- Clear separation of *retryable* vs *permanent* failures.

Every failure aborts the whole ledger operation with no storage writes.
Nothing here is retried internally; `retryable` is a hint for the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

# ---------------------------------------------------------------------------
# Error codes & classes
# ---------------------------------------------------------------------------


class Severity(IntEnum):
    """Severity hint for operators (mirrors stdlib logging levels)."""

    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


class LedgerErrorCode(str, Enum):
    INTERNAL = "LEDGER/INTERNAL"

    # Caller-recoverable
    INSUFFICIENT_FUNDS = "LEDGER/INSUFFICIENT_FUNDS"
    INSUFFICIENT_ALLOWANCE = "LEDGER/INSUFFICIENT_ALLOWANCE"

    # Arithmetic
    ARITHMETIC_OVERFLOW = "LEDGER/ARITHMETIC_OVERFLOW"
    ARITHMETIC_UNDERFLOW = "LEDGER/ARITHMETIC_UNDERFLOW"

    # Input validation
    INVALID_AMOUNT = "LEDGER/INVALID_AMOUNT"
    INVALID_ADDRESS = "LEDGER/INVALID_ADDRESS"
    ADDRESS_RESOLUTION = "LEDGER/ADDRESS_RESOLUTION"

    # Storage
    DECODE = "LEDGER/DECODE"
    DB = "LEDGER/DB"

    # Startup
    CONFIG = "LEDGER/CONFIG"


@dataclass(eq=False)
class LedgerError(Exception):
    """
    Root error for ledger components.

    Attributes
    ----------
    code: str
        Machine-stable error code (see LedgerErrorCode).
    message: str
        Human hint suitable for logs.
    data: dict
        Kind-specific context (accounts, amounts, keys). JSON-safe.
    severity: Severity
        Severity hint (default ERROR).
    retryable: bool
        Whether the caller may succeed by retrying (possibly with other inputs).
    cause: Optional[BaseException]
        Wrapped original exception; not part of the public shape.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    severity: Severity = Severity.ERROR
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code_str}: {self.message}")

    @property
    def code_str(self) -> str:
        return self.code.value if isinstance(self.code, Enum) else str(self.code)

    # ---------------- Public API ----------------

    def with_context(self, **ctx: Any) -> "LedgerError":
        """Return a *new* error with extra context merged (does not mutate)."""
        clone = self._clone()
        clone.data = {**self.data, **_jsonmap(ctx)}
        return clone

    def with_cause(self, exc: BaseException) -> "LedgerError":
        """Attach/replace the causal exception (returns a new instance)."""
        clone = self._clone()
        clone.cause = exc
        return clone

    def _clone(self) -> "LedgerError":
        # Subclass __init__ signatures differ, so bypass them.
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone.data = dict(self.data)
        clone.args = self.args
        return clone

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """JSON-safe shape suitable for logs."""
        out = {
            "code": self.code_str,
            "message": self.message,
            "data": _coerce_json(self.data),
            "severity": int(self.severity),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:
        parts = [f"{self.code_str}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


# --- Caller-recoverable ------------------------------------------------------


class InsufficientFunds(LedgerError):
    def __init__(self, account: bytes, balance: int, required: int) -> None:
        super().__init__(
            code=LedgerErrorCode.INSUFFICIENT_FUNDS,
            message="insufficient funds",
            data=_jsonmap({"account": account, "balance": balance, "required": required}),
            severity=Severity.WARNING,
            retryable=True,
        )


class InsufficientAllowance(LedgerError):
    def __init__(self, owner: bytes, spender: bytes, allowance: int, required: int) -> None:
        super().__init__(
            code=LedgerErrorCode.INSUFFICIENT_ALLOWANCE,
            message="insufficient allowance",
            data=_jsonmap(
                {
                    "owner": owner,
                    "spender": spender,
                    "allowance": allowance,
                    "required": required,
                }
            ),
            severity=Severity.WARNING,
            retryable=True,
        )


# --- Arithmetic --------------------------------------------------------------


class ArithmeticOverflow(LedgerError):
    def __init__(self, operation: str, value: int, amount: int, limit: int, **data: Any) -> None:
        super().__init__(
            code=LedgerErrorCode.ARITHMETIC_OVERFLOW,
            message=f"arithmetic overflow in {operation}",
            data=_jsonmap(
                {"operation": operation, "value": value, "amount": amount, "limit": limit, **data}
            ),
        )


class ArithmeticUnderflow(LedgerError):
    def __init__(self, operation: str, value: int, amount: int, **data: Any) -> None:
        super().__init__(
            code=LedgerErrorCode.ARITHMETIC_UNDERFLOW,
            message=f"arithmetic underflow in {operation}",
            data=_jsonmap({"operation": operation, "value": value, "amount": amount, **data}),
        )


# --- Input validation --------------------------------------------------------


class InvalidAmount(LedgerError):
    def __init__(self, amount: Any, reason: str = "amount must be an integer in [0, 2**128-1]") -> None:
        super().__init__(
            code=LedgerErrorCode.INVALID_AMOUNT,
            message=reason,
            data=_jsonmap({"amount": amount}),
        )


class InvalidAddress(LedgerError):
    def __init__(self, address: Any, expected_len: Optional[int] = None) -> None:
        super().__init__(
            code=LedgerErrorCode.INVALID_ADDRESS,
            message="invalid canonical address",
            data=_jsonmap({"address": address, "expected_len": expected_len}),
        )


class AddressResolutionError(LedgerError):
    def __init__(self, address: str, reason: str) -> None:
        super().__init__(
            code=LedgerErrorCode.ADDRESS_RESOLUTION,
            message="address resolution failed",
            data={"address": address, "reason": reason},
        )


# --- Storage -----------------------------------------------------------------


class DecodeError(LedgerError):
    def __init__(self, key: bytes, expected: Any, got: Any, message: str = "stored value has unexpected width") -> None:
        super().__init__(
            code=LedgerErrorCode.DECODE,
            message=message,
            data=_jsonmap({"key": key, "expected": expected, "got": got}),
            severity=Severity.CRITICAL,
        )


class DatabaseError(LedgerError):
    def __init__(self, message: str = "database error", retryable: bool = True, **data: Any) -> None:
        super().__init__(
            code=LedgerErrorCode.DB,
            message=message,
            data=_jsonmap(data),
            retryable=retryable,
        )


# --- Startup -----------------------------------------------------------------


class ConfigError(LedgerError):
    def __init__(self, message: str = "invalid configuration", **data: Any) -> None:
        super().__init__(
            code=LedgerErrorCode.CONFIG,
            message=message,
            data=_jsonmap(data),
        )


class InternalError(LedgerError):
    def __init__(self, message: str = "internal error", **data: Any) -> None:
        super().__init__(
            code=LedgerErrorCode.INTERNAL, message=message, data=_jsonmap(data)
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

T = TypeVar("T", bound=LedgerError)


def wrap(exc: BaseException, *, as_: Type[T] = InternalError, **ctx: Any) -> LedgerError:
    """
    Wrap any exception into a LedgerError subclass, attaching context.
    If `exc` is already a LedgerError, returns a context-enriched copy.
    """
    if isinstance(exc, LedgerError):
        return exc.with_context(**ctx)
    err = as_("wrapped exception", **ctx)  # type: ignore[call-arg]
    return err.with_cause(exc)


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    # Keep JSON primitives; hex-encode bytes; stringify the rest.
    if isinstance(v, dict):
        return {k: _coerce_json(x) for k, x in v.items()}
    if v is None or isinstance(v, (bool, int, float, str, list)):
        return v
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    return str(v)


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "Severity",
    "LedgerErrorCode",
    "LedgerError",
    "InsufficientFunds",
    "InsufficientAllowance",
    "ArithmeticOverflow",
    "ArithmeticUnderflow",
    "InvalidAmount",
    "InvalidAddress",
    "AddressResolutionError",
    "DecodeError",
    "DatabaseError",
    "ConfigError",
    "InternalError",
    "wrap",
]
