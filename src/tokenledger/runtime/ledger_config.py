# src/tokenledger/runtime/ledger_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

Json = Dict[str, Any]

# db_path value that keeps the Store in memory only.
MEMORY_DB = ":memory:"


def _as_int(v: Any, default: int) -> int:
    if v is None or (isinstance(v, str) and not v.strip()):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"expected an integer, got {v!r}") from e


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_hosts(v: Any) -> Tuple[str, ...]:
    # A JSON list, or a comma-separated string from the environment.
    if v is None:
        return ()
    items = v.split(",") if isinstance(v, str) else v
    if not isinstance(items, (list, tuple)):
        raise ValueError(f"expected a list of hosts, got {v!r}")
    out = []
    for h in items:
        s = str(h).strip().lower()
        if s and s not in out:
            out.append(s)
    return tuple(out)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class LedgerConfig:
    ledger_id: str
    mode: str  # "dev" | "test" | "prod"

    # SQLite file for the Store and nonces; MEMORY_DB disables persistence.
    db_path: str
    keyring_path: str

    require_signatures: bool
    check_invariants: bool
    max_batch_items: int

    api_host: str
    api_port: int

    log_level: str

    # Hosts that http(s) BALANCE_OF callbacks may target; empty means none.
    callback_allow_hosts: Tuple[str, ...] = ()

    @property
    def persistent(self) -> bool:
        return self.db_path.strip() != MEMORY_DB


_ALLOWED_MODES = {"dev", "test", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_ledger_config(cfg: LedgerConfig) -> None:
    """Fail-fast validation of operator config."""
    if not isinstance(cfg.ledger_id, str) or not cfg.ledger_id.strip():
        raise ValueError("ledger_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if mode == "prod" and not cfg.require_signatures:
        raise ValueError("require_signatures cannot be disabled in prod mode")

    if mode == "prod" and not cfg.keyring_path.strip():
        raise ValueError("keyring_path is required in prod mode")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if int(cfg.max_batch_items) <= 0:
        raise ValueError(f"max_batch_items must be > 0; got: {cfg.max_batch_items}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if str(cfg.log_level).strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_ALLOWED_LOG_LEVELS)}; got: {cfg.log_level!r}")

    for h in cfg.callback_allow_hosts:
        if "/" in h or ":" in h:
            raise ValueError(f"callback_allow_hosts entries are bare host names; got: {h!r}")

    if cfg.keyring_path.strip() and not Path(cfg.keyring_path).is_file():
        raise ValueError(f"keyring_path does not exist or is not a file: {cfg.keyring_path!r}")


def default_ledger_config() -> LedgerConfig:
    # Production-safe defaults: running without explicit config must not
    # drop into a permissive posture.
    return LedgerConfig(
        ledger_id="tokenledger-dev",
        mode="prod",
        db_path="./data/tokenledger.db",
        keyring_path="",
        require_signatures=True,
        check_invariants=True,
        max_batch_items=1_000,
        api_host="0.0.0.0",
        api_port=8000,
        log_level="INFO",
    )


def _config_from_mapping(raw: Mapping[str, Any]) -> LedgerConfig:
    d = default_ledger_config()
    return LedgerConfig(
        ledger_id=_as_str(raw.get("ledger_id"), d.ledger_id).strip(),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        keyring_path=str(raw.get("keyring_path") or d.keyring_path),
        require_signatures=_as_bool(raw.get("require_signatures"), d.require_signatures),
        check_invariants=_as_bool(raw.get("check_invariants"), d.check_invariants),
        max_batch_items=_as_int(raw.get("max_batch_items"), d.max_batch_items),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
        callback_allow_hosts=_as_hosts(raw.get("callback_allow_hosts")),
    )


def read_ledger_config_file(path: str) -> LedgerConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("ledger config must be a JSON object")
    cfg = _config_from_mapping(raw)
    validate_ledger_config(cfg)
    return cfg


_ENV_KEYS = (
    "ledger_id",
    "mode",
    "db_path",
    "keyring_path",
    "require_signatures",
    "check_invariants",
    "max_batch_items",
    "api_host",
    "api_port",
    "log_level",
    "callback_allow_hosts",
)


def ledger_config_from_env(environ: Optional[Mapping[str, str]] = None) -> LedgerConfig:
    """Read TOKENLEDGER_<FIELD> variables; unset fields keep their defaults."""
    env = os.environ if environ is None else environ
    raw: Json = {}
    for k in _ENV_KEYS:
        v = env.get(f"TOKENLEDGER_{k.upper()}")
        if v is not None:
            raw[k] = v
    cfg = _config_from_mapping(raw)
    validate_ledger_config(cfg)
    return cfg


def load_ledger_config(*, config_path: Optional[str] = None) -> LedgerConfig:
    p = config_path or os.environ.get("TOKENLEDGER_CONFIG_PATH")
    if p:
        return read_ledger_config_file(p)
    return ledger_config_from_env()


__all__ = [
    "MEMORY_DB",
    "LedgerConfig",
    "validate_ledger_config",
    "default_ledger_config",
    "read_ledger_config_file",
    "ledger_config_from_env",
    "load_ledger_config",
]
