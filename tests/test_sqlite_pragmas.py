from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from tokenledger.runtime.sqlite_db import SqliteDB, SqliteLedgerStore


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOKENLEDGER_MODE", "prod")
    monkeypatch.delenv("TOKENLEDGER_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("TOKENLEDGER_SQLITE_BUSY_TIMEOUT_MS", "1234")

    db = SqliteDB(path=str(tmp_path / "ledger.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"
        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2
        # MEMORY corresponds to 2
        assert int(_pragma(con, "temp_store")) == 2
        assert int(_pragma(con, "busy_timeout")) == 1234


def test_sqlite_synchronous_normal_outside_prod(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOKENLEDGER_MODE", "dev")
    monkeypatch.delenv("TOKENLEDGER_SQLITE_SYNCHRONOUS", raising=False)

    db = SqliteDB(path=str(tmp_path / "ledger.db"))
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1


def test_schema_version_mismatch_fails_closed(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "ledger.db"))
    db.init_schema()
    with db.write_tx() as con:
        con.execute("UPDATE meta SET value='999' WHERE key='schema_version';")

    with pytest.raises(RuntimeError):
        db.init_schema()


def test_write_tx_rolls_back_on_error(tmp_path: Path) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=str(tmp_path / "ledger.db")))
    store.write({"token_count": 0}, nonces={"alice": 1})

    db = SqliteDB(path=str(tmp_path / "ledger.db"))
    with pytest.raises(ValueError):
        with db.write_tx() as con:
            con.execute("UPDATE nonces SET last_nonce=7 WHERE signer='alice';")
            raise ValueError("abort")

    assert store.read_nonces() == {"alice": 1}


def test_store_and_nonces_round_trip(tmp_path: Path) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=str(tmp_path / "ledger.db")))
    assert store.exists() is False
    with pytest.raises(FileNotFoundError):
        store.read()

    st = {"ledger": {"1": {"bob": 3}}, "token_count": 1}
    store.write(st, nonces={"alice": 4})
    store.write_nonce("bob", 9)

    assert store.exists() is True
    assert store.read() == st
    assert store.read_nonces() == {"alice": 4, "bob": 9}
