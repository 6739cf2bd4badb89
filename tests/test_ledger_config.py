from __future__ import annotations

import json
from pathlib import Path

import pytest

from tokenledger.runtime.executor_boot import build_executor
from tokenledger.runtime.ledger_config import (
    MEMORY_DB,
    default_ledger_config,
    ledger_config_from_env,
    load_ledger_config,
    read_ledger_config_file,
    validate_ledger_config,
)
from tokenledger.testing.sigtools import keyring_for


def test_defaults_are_production_safe() -> None:
    d = default_ledger_config()
    assert d.mode == "prod"
    assert d.require_signatures is True
    assert d.check_invariants is True

    # prod without a keyring cannot verify anything: refuse.
    with pytest.raises(ValueError):
        validate_ledger_config(d)


def test_env_config_dev() -> None:
    cfg = ledger_config_from_env(
        {
            "TOKENLEDGER_LEDGER_ID": "ledger-x",
            "TOKENLEDGER_MODE": "dev",
            "TOKENLEDGER_DB_PATH": MEMORY_DB,
            "TOKENLEDGER_REQUIRE_SIGNATURES": "0",
            "TOKENLEDGER_MAX_BATCH_ITEMS": "7",
            "TOKENLEDGER_API_PORT": "9001",
            "TOKENLEDGER_LOG_LEVEL": "debug",
        }
    )
    assert cfg.ledger_id == "ledger-x"
    assert cfg.require_signatures is False
    assert cfg.max_batch_items == 7
    assert cfg.api_port == 9001
    assert cfg.log_level == "DEBUG"
    assert cfg.persistent is False


def test_prod_cannot_disable_signatures(tmp_path: Path) -> None:
    kr = tmp_path / "keyring.json"
    kr.write_text(json.dumps(keyring_for(["alice"])), encoding="utf-8")
    env = {"TOKENLEDGER_MODE": "prod", "TOKENLEDGER_KEYRING_PATH": str(kr)}

    assert ledger_config_from_env(env).require_signatures is True

    with pytest.raises(ValueError):
        ledger_config_from_env(dict(env, TOKENLEDGER_REQUIRE_SIGNATURES="false"))


@pytest.mark.parametrize(
    "override",
    [
        {"TOKENLEDGER_MODE": "staging"},
        {"TOKENLEDGER_API_PORT": "70000"},
        {"TOKENLEDGER_MAX_BATCH_ITEMS": "0"},
        {"TOKENLEDGER_LOG_LEVEL": "LOUD"},
        {"TOKENLEDGER_KEYRING_PATH": "/nonexistent/keyring.json"},
        {"TOKENLEDGER_API_PORT": "eighty"},
        {"TOKENLEDGER_CALLBACK_ALLOW_HOSTS": "http://hooks.example"},
        {"TOKENLEDGER_CALLBACK_ALLOW_HOSTS": "hooks.example:8080"},
    ],
)
def test_invalid_config_fails_fast(override) -> None:
    env = {"TOKENLEDGER_MODE": "dev"}
    env.update(override)
    with pytest.raises(ValueError):
        ledger_config_from_env(env)


def test_config_file_wins_over_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / "ledger.json"
    p.write_text(json.dumps({"ledger_id": "from-file", "mode": "test", "db_path": MEMORY_DB}), encoding="utf-8")

    monkeypatch.setenv("TOKENLEDGER_CONFIG_PATH", str(p))
    monkeypatch.setenv("TOKENLEDGER_LEDGER_ID", "from-env")

    cfg = load_ledger_config()
    assert cfg.ledger_id == "from-file"
    assert cfg.mode == "test"


def test_config_file_must_be_object(tmp_path: Path) -> None:
    p = tmp_path / "ledger.json"
    p.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        read_ledger_config_file(str(p))


def test_build_executor_from_config(tmp_path: Path) -> None:
    kr = tmp_path / "keyring.json"
    kr.write_text(json.dumps(keyring_for(["alice"])), encoding="utf-8")
    cfg = ledger_config_from_env(
        {
            "TOKENLEDGER_LEDGER_ID": "booted",
            "TOKENLEDGER_MODE": "prod",
            "TOKENLEDGER_DB_PATH": str(tmp_path / "data" / "ledger.db"),
            "TOKENLEDGER_KEYRING_PATH": str(kr),
        }
    )

    ex = build_executor(cfg)
    assert ex.ledger_id == "booted"
    assert ex.require_signatures is True
    assert "alice" in ex.keyring
    assert (tmp_path / "data" / "ledger.db").is_file()


def test_callback_allow_hosts_from_env() -> None:
    env = {"TOKENLEDGER_MODE": "dev", "TOKENLEDGER_DB_PATH": MEMORY_DB}
    assert ledger_config_from_env(env).callback_allow_hosts == ()

    cfg = ledger_config_from_env(dict(env, TOKENLEDGER_CALLBACK_ALLOW_HOSTS="a.example, B.example,a.example"))
    assert cfg.callback_allow_hosts == ("a.example", "b.example")

    ex = build_executor(cfg)
    assert ex.callbacks.accepts("https://b.example/hook") is True
    assert ex.callbacks.accepts("http://127.0.0.1:8000/admin/reset") is False
