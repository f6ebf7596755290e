"""
Ledger configuration loader.

Goals
-----
- Zero external deps (stdlib only).
- Layered config with clear precedence:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (LEDGER_*)
    3) Config file (TOML or JSON)
    4) Built-in defaults (lowest)
- Typed dataclasses with validation; failures raise ConfigError.

Covered concerns:
  - database URI (sqlite / rocksdb / memory)
  - logging level, format and optional file
  - canonical address length
"""

from __future__ import annotations

import json
import os
import platform
import sys
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

# ------------------------------
# Defaults & helpers
# ------------------------------

DEFAULT_DB_FILENAME = "ledger.db"
DEFAULT_ADDRESS_LEN = 20
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "text"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
_LOG_FORMATS = {"json", "text"}


def _expand(p: str | Path) -> Path:
    return Path(p).expanduser().resolve()


def _os_default_data_root() -> Path:
    system = platform.system()
    if system == "Darwin":
        return _expand("~/Library/Application Support")
    if system == "Windows":
        appdata = os.environ.get("APPDATA") or os.environ.get("LOCALAPPDATA")
        if appdata:
            return _expand(appdata)
        return _expand("~\\AppData\\Roaming")
    xdg = os.environ.get("XDG_DATA_HOME")
    return _expand(xdg) if xdg else _expand("~/.local/share")


def _default_data_dir() -> Path:
    override = os.environ.get("LEDGER_DATA_DIR")
    if override:
        return _expand(override)
    return _os_default_data_root() / "ledger"


def _env_int(name: str) -> int:
    v = os.environ[name]
    try:
        return int(v, 0)
    except ValueError as e:
        raise ConfigError(f"{name} must be int", value=v).with_cause(e) from e


# ------------------------------
# Typed configuration model
# ------------------------------

@dataclass
class DBConfig:
    uri: str  # sqlite:////abs/path/ledger.db | rocksdb:///dir | memory://

    @staticmethod
    def sqlite_default(data_dir: Optional[Path] = None) -> "DBConfig":
        dbfile = (data_dir or _default_data_dir()) / DEFAULT_DB_FILENAME
        # Four slashes for an absolute path with sqlite:
        return DBConfig(uri=f"sqlite:///{dbfile}")

    def sqlite_path(self) -> Optional[Path]:
        """Filesystem path of a file-backed SQLite URI, else None."""
        if self.uri.startswith("sqlite:///"):
            p = self.uri[len("sqlite:///"):]
            return None if p in ("", ":memory:") else Path(p)
        if self.uri.endswith(".db") and "://" not in self.uri:
            return Path(self.uri)
        return None


@dataclass
class LoggingConfig:
    level: str = DEFAULT_LOG_LEVEL
    format: str = DEFAULT_LOG_FORMAT  # "json" | "text"
    file: Optional[str] = None


@dataclass
class LedgerConfig:
    db: DBConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    address_len: int = DEFAULT_ADDRESS_LEN

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ------------------------------
# File loader (TOML / JSON)
# ------------------------------

def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("config file not found", path=str(path))
    suffix = path.suffix.lower()
    try:
        with path.open("rb") as f:
            if suffix in {".toml", ".tml"}:
                return tomllib.load(f)
            if suffix == ".json":
                return json.load(f)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise ConfigError("config file is malformed", path=str(path)).with_cause(e) from e
    raise ConfigError(f"unsupported config format: {suffix}; use .toml or .json", path=str(path))


def _merge_dict(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dict merge: values in b override a."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


# ------------------------------
# Main loader
# ------------------------------

def load(config_file: Optional[str | Path] = None, **overrides: Any) -> LedgerConfig:
    """
    Load the ledger configuration.

    Precedence: overrides > env > file > defaults.

    Parameters
    ----------
    config_file : str | Path | None
        Optional TOML or JSON file with keys:
          db:      { uri }
          logging: { level, format, file }
          address_len
    overrides : Any
        Keyword overrides, e.g. load(db={"uri": "memory://"}, address_len=32)
    """
    # 1) Defaults
    base: Dict[str, Any] = {
        "db": asdict(DBConfig.sqlite_default()),
        "logging": asdict(LoggingConfig()),
        "address_len": DEFAULT_ADDRESS_LEN,
    }

    # 2) File
    if config_file:
        base = _merge_dict(base, _load_file(_expand(config_file)))

    # 3) Env
    if "LEDGER_DB_URI" in os.environ:
        base["db"]["uri"] = os.environ["LEDGER_DB_URI"].strip()
    if "LEDGER_LOG_LEVEL" in os.environ:
        base["logging"]["level"] = os.environ["LEDGER_LOG_LEVEL"].strip()
    if "LEDGER_LOG_FORMAT" in os.environ:
        base["logging"]["format"] = os.environ["LEDGER_LOG_FORMAT"].strip()
    if "LEDGER_LOG_FILE" in os.environ:
        base["logging"]["file"] = os.environ["LEDGER_LOG_FILE"].strip() or None
    if "LEDGER_ADDRESS_LEN" in os.environ:
        base["address_len"] = _env_int("LEDGER_ADDRESS_LEN")

    # 4) Overrides (highest)
    if overrides:
        base = _merge_dict(base, overrides)

    try:
        cfg = LedgerConfig(
            db=DBConfig(uri=str(base["db"]["uri"])),
            logging=LoggingConfig(
                level=str(base["logging"]["level"]).upper(),
                format=str(base["logging"]["format"]).lower(),
                file=base["logging"].get("file"),
            ),
            address_len=int(base["address_len"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError("invalid configuration shape").with_cause(e) from e

    _validate_config(cfg)
    return cfg


def _validate_db_uri(uri: str) -> None:
    if uri.startswith(("sqlite:///", "rocksdb:///", "memory://")):
        return
    if uri.endswith(".db") and "://" not in uri:
        return
    raise ConfigError(
        "unsupported DB URI; use sqlite:///path/to.db, rocksdb:///path or memory://",
        uri=uri,
    )


def _validate_config(cfg: LedgerConfig) -> None:
    _validate_db_uri(cfg.db.uri)
    if cfg.logging.level not in _LOG_LEVELS:
        raise ConfigError("unknown log level", level=cfg.logging.level)
    if cfg.logging.format not in _LOG_FORMATS:
        raise ConfigError("log format must be json or text", format=cfg.logging.format)
    if not (1 <= cfg.address_len <= 255):
        raise ConfigError("address_len must be in 1..255", address_len=cfg.address_len)


# ------------------------------
# Wiring
# ------------------------------

def open_engine(cfg: LedgerConfig, emitter: Any = None) -> Any:
    """
    Open the configured KV and return a ready `TransferEngine`
    (hex addresses of `cfg.address_len` bytes).
    """
    from .address import HexAddressResolver
    from .db import open_kv
    from .engine import TransferEngine
    from .store import LedgerStore

    path = cfg.db.sqlite_path()
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)

    kv = open_kv(cfg.db.uri)
    store = LedgerStore(kv, address_len=cfg.address_len)
    return TransferEngine(store, emitter=emitter, resolver=HexAddressResolver(cfg.address_len))


# ------------------------------
# CLI helper
# ------------------------------

def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def main(argv: List[str] | None = None) -> int:
    """
    CLI usage:

        python -m ledger.config                      # load defaults/env; print JSON
        python -m ledger.config path/to/ledger.toml  # load file; print JSON
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    path = argv[0] if argv else None
    try:
        cfg = load(path)
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2
    _print_json(cfg.to_dict())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
