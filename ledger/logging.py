"""
ledger.logging
--------------

Stdlib logging with structured output for the ledger.

- `JSONFormatter`: one JSON object per line (services, files)
- `TextFormatter`: `ts | LEVEL | logger | context extras | message`, colored on a TTY
- Context fields (trace_id, component, action, ...) carried in a `ContextVar`
  and stamped on every line logged inside the scope
- Bytes render as 0x-hex, datetimes as ISO-8601, paths as str

Usage
-----
    from ledger import logging as llog

    llog.configure(json=False, level="INFO")  # once at process start
    log = llog.get_logger(__name__)

    with llog.trace_scope(action="transfer"):
        log.info("applied", extra={"amount": 10})
"""

from __future__ import annotations

import datetime as _dt
import io
import json
import logging
import os
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

# ----------------------------
# Context
# ----------------------------

_CTX: ContextVar[Dict[str, Any]] = ContextVar("ledger_log_context", default={})

# Shown first, in this order, by the text formatter.
DEFAULT_CONTEXT_KEYS = ("trace_id", "component", "action")

# Attributes every LogRecord carries; anything else on a record is an extra.
_STD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def context() -> Dict[str, Any]:
    """Copy of the active context."""
    return dict(_CTX.get())


def bind(**fields: Any) -> None:
    _CTX.set({**_CTX.get(), **{k: _jsonable(v) for k, v in fields.items()}})


def unbind(*keys: str) -> None:
    _CTX.set({k: v for k, v in _CTX.get().items() if k not in keys})


def clear_context() -> None:
    _CTX.set({})


def short_uuid() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def trace_scope(trace_id: Optional[str] = None, **fields: Any) -> Iterator[str]:
    """
    Bind a trace_id (and `fields`) until the scope exits, then restore the
    previous context. Nested scopes keep the enclosing trace_id unless one is
    passed explicitly.
    """
    token = _CTX.set(dict(_CTX.get()))
    tid = trace_id or _CTX.get().get("trace_id") or short_uuid()
    try:
        bind(trace_id=tid, **fields)
        yield tid
    finally:
        _CTX.reset(token)


# ----------------------------
# Formatting helpers
# ----------------------------


def _jsonable(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return "0x" + bytes(v).hex()
    if isinstance(v, _dt.datetime):
        return (v if v.tzinfo else v.replace(tzinfo=_dt.timezone.utc)).isoformat()
    if isinstance(v, _dt.date):
        return v.isoformat()
    if is_dataclass(v) and not isinstance(v, type):
        return asdict(v)
    return str(v)


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _STD_ATTRS and not k.startswith("_")}


def _now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def _exc_text(record: logging.LogRecord) -> Optional[str]:
    if not record.exc_info:
        return None
    return "".join(traceback.format_exception(*record.exc_info)).rstrip()


def _is_tty(stream: Any) -> bool:
    try:
        return bool(stream.isatty()) and "NO_COLOR" not in os.environ
    except (AttributeError, ValueError):
        return False


_RESET = "\x1b[0m"
_DIM = "\x1b[90m"
_CYAN = "\x1b[36m"
_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1m\x1b[35m",
}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        out: Dict[str, Any] = {
            "ts": _now(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        out.update(context())
        for k, v in _record_extras(record).items():
            out.setdefault(k, _jsonable(v))
        err = _exc_text(record)
        if err:
            out["err"] = err
        return json.dumps(out, default=str, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    """
    One line per record:
      2026-01-05T12:34:56.789+00:00 | INFO  | ledger.engine | trace_id=ab12 action=mint evt_amount=5 | mint applied
    """

    def __init__(self, stream: Any) -> None:
        super().__init__()
        self._color = _is_tty(stream)

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self._color and text else text

    def format(self, record: logging.LogRecord) -> str:
        ctx = context()
        fields = [f"{k}={ctx[k]}" for k in DEFAULT_CONTEXT_KEYS if ctx.get(k) is not None]
        fields += [
            f"{k}={_jsonable(v)}"
            for k, v in _record_extras(record).items()
            if k not in ctx and k not in DEFAULT_CONTEXT_KEYS
        ]

        level = self._paint(f"{record.levelname:<5}", _LEVEL_COLORS.get(record.levelno, ""))
        parts = [self._paint(_now(), _DIM), level, self._paint(record.name, _CYAN)]
        if fields:
            parts.append(" ".join(fields))
        parts.append(record.getMessage())

        line = " | ".join(parts)
        err = _exc_text(record)
        return f"{line}\n{err}" if err else line


# ----------------------------
# Public setup API
# ----------------------------


def configure(
    *,
    json: Optional[bool] = None,
    level: str | int = "INFO",
    stream: io.TextIOBase = sys.stderr,  # type: ignore[assignment]
    file_path: Optional[Path | str] = None,
    propagate_existing: bool = False,
) -> None:
    """
    Install handlers on the root logger.

    json=None picks JSON from LEDGER_LOG_FORMAT=json|text, else JSON unless
    `stream` is a TTY. `file_path` adds a JSON file handler (parent dirs are
    created). Existing root handlers are removed unless `propagate_existing`.
    """
    use_json = json if json is not None else _format_from_env()
    if use_json is None:
        use_json = not _is_tty(stream)
    lvl = _level(level)

    root = logging.getLogger()
    root.setLevel(lvl)
    if not propagate_existing:
        for h in list(root.handlers):
            root.removeHandler(h)

    console = logging.StreamHandler(stream)
    console.setLevel(lvl)
    console.setFormatter(JSONFormatter() if use_json else TextFormatter(stream))
    root.addHandler(console)

    if file_path:
        p = Path(file_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(p, encoding="utf-8")
        fh.setLevel(lvl)
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)


def setup_logging(
    *,
    level: str | int = "INFO",
    fmt: str = "json",
    file: Optional[Path | str] = None,
    stream: io.TextIOBase = sys.stderr,  # type: ignore[assignment]
) -> None:
    """configure() from a format name; LEDGER_LOG_FORMAT wins over `fmt`."""
    env = _format_from_env()
    configure(
        json=env if env is not None else fmt.strip().lower() == "json",
        level=level,
        stream=stream,
        file_path=file,
    )


def configure_from_config(cfg: Any) -> None:
    """Apply `LedgerConfig.logging`."""
    setup_logging(level=cfg.logging.level, fmt=cfg.logging.format, file=cfg.logging.file)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "ledger")


def with_fields(logger: logging.Logger, **fields: Any) -> "ContextAdapter":
    """Adapter that adds `fields` to every record it logs."""
    return ContextAdapter(logger, {k: _jsonable(v) for k, v in fields.items()})


class ContextAdapter(logging.LoggerAdapter):
    """Merges the adapter's fields with call-site `extra=` (call site wins)."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


# ----------------------------
# Internals
# ----------------------------


def _level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def _format_from_env() -> Optional[bool]:
    fmt = os.environ.get("LEDGER_LOG_FORMAT", "").strip().lower()
    return {"json": True, "text": False}.get(fmt)


__all__ = [
    "context",
    "bind",
    "unbind",
    "clear_context",
    "trace_scope",
    "short_uuid",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "setup_logging",
    "configure_from_config",
    "get_logger",
    "with_fields",
    "ContextAdapter",
]
