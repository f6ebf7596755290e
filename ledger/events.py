"""
ledger.events
=============

Event emitter collaborators. The engine emits one flat `str -> str` mapping
per successful operation, e.g.

    {"action": "transfer", "sender": "0x…", "recipient": "0x…", "amount": "100"}

Emitters are for observability only; nothing in the engine depends on what
they do with the record.

- `EventEmitter`    : protocol the engine consumes
- `RecordingEmitter`: in-memory list (tests, embedding hosts)
- `LoggingEmitter`  : one structured log line per event
- `NullEmitter`     : drops everything
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .logging import get_logger

MAX_ATTR_KEY_LEN = 64


@runtime_checkable
class EventEmitter(Protocol):
    def emit(self, attributes: Mapping[str, str]) -> None: ...


@dataclass(frozen=True)
class Event:
    """An emitted record, attributes kept in emission order."""

    attributes: Tuple[Tuple[str, str], ...]

    @property
    def action(self) -> Optional[str]:
        return self.as_dict().get("action")

    def as_dict(self) -> Dict[str, str]:
        return dict(self.attributes)


def _check_attributes(attributes: Mapping[str, str]) -> Tuple[Tuple[str, str], ...]:
    out = []
    for k, v in attributes.items():
        if not isinstance(k, str) or not k or len(k) > MAX_ATTR_KEY_LEN:
            raise TypeError(f"event attribute key must be a non-empty str, got {k!r}")
        if not isinstance(v, str):
            raise TypeError(f"event attribute {k!r} must be str, got {type(v).__name__}")
        out.append((k, v))
    return tuple(out)


@dataclass
class RecordingEmitter:
    events: List[Event] = field(default_factory=list)

    def emit(self, attributes: Mapping[str, str]) -> None:
        self.events.append(Event(_check_attributes(attributes)))

    def actions(self) -> List[Optional[str]]:
        return [e.action for e in self.events]

    def last(self) -> Optional[Event]:
        return self.events[-1] if self.events else None

    def clear(self) -> None:
        self.events.clear()


class LoggingEmitter:
    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self._log = logger or get_logger("ledger.events")
        self._level = level

    def emit(self, attributes: Mapping[str, str]) -> None:
        attrs = dict(_check_attributes(attributes))
        # "action" lands in the message; the rest become structured extras.
        action = attrs.pop("action", "event")
        self._log.log(self._level, action, extra={f"evt_{k}": v for k, v in attrs.items()})


class NullEmitter:
    def emit(self, attributes: Mapping[str, str]) -> None:
        return None


__all__ = [
    "EventEmitter",
    "Event",
    "RecordingEmitter",
    "LoggingEmitter",
    "NullEmitter",
]
