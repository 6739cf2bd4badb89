# src/tokenledger/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # No default=str: a non-JSON value in the Store is a bug and must fail here.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);",
    """
    CREATE TABLE IF NOT EXISTS ledger_state (
      id INTEGER PRIMARY KEY CHECK (id = 1),
      token_count INTEGER NOT NULL,
      state_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    "CREATE TABLE IF NOT EXISTS nonces (signer TEXT PRIMARY KEY, last_nonce INTEGER NOT NULL);",
)

_UPSERT_NONCE = (
    "INSERT INTO nonces(signer, last_nonce) VALUES(?, ?) "
    "ON CONFLICT(signer) DO UPDATE SET last_nonce=excluded.last_nonce;"
)


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite file holding the committed Store and the host nonce map.

    Connections are never shared: every read or write opens its own, so the
    HTTP worker threads can read while the executor writes.

    SQLite allows one writer at a time; BEGIN IMMEDIATE can transiently fail with
    "database is locked" when another process holds the file, so write_tx()
    retries with bounded backoff.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """FULL in prod, NORMAL otherwise. TOKENLEDGER_SQLITE_SYNCHRONOUS overrides."""
        mode = (os.environ.get("TOKENLEDGER_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("TOKENLEDGER_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("TOKENLEDGER_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # BEGIN/COMMIT are issued explicitly
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        journal = str(row[0]).strip().lower() if row is not None else ""
        if journal and journal != "wal":
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{journal}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("TOKENLEDGER_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            for ddl in _SCHEMA:
                con.execute(ddl)

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction with bounded retry on writer-lock contention.

        Retries BEGIN IMMEDIATE with exponential backoff and jitter until
        TOKENLEDGER_SQLITE_WRITE_DEADLINE_MS, then raises. Any exception inside
        the block rolls back.
        """
        deadline_ms = max(250, _env_int("TOKENLEDGER_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms
        base_sleep = 0.005
        max_sleep = 0.25

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    time.sleep(sleep_s * (0.5 + random.random()))
                    attempt += 1

            try:
                yield con
                con.execute("COMMIT;")
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteLedgerStore:
    """Committed Store snapshot plus the per-signer nonce map.

    The snapshot is a single row; the nonce map is one row per signer. write()
    puts both in the same SQLite transaction, so a restart never sees a Store
    whose nonce was not consumed (or the reverse).
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def bind_ledger_id(self, ledger_id: str) -> None:
        """Record ledger_id on first use; refuse a database that belongs to another ledger."""
        want = str(ledger_id or "").strip()
        if not want:
            raise ValueError("ledger_id is required")
        with self._db.write_tx() as con:
            row = con.execute("SELECT value FROM meta WHERE key='ledger_id' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('ledger_id', ?);", (want,))
                return
            have = str(row["value"])
            if have != want:
                raise RuntimeError(f"sqlite ledger_id mismatch: have={have} want={want}")

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite ledger_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("ledger_state is not a JSON object")
            return st

    def read_nonces(self) -> Dict[str, int]:
        with self._db.connection() as con:
            rows = con.execute("SELECT signer, last_nonce FROM nonces;").fetchall()
            return {str(r["signer"]): int(r["last_nonce"]) for r in rows}

    def write(self, st: Json, *, nonces: Optional[Mapping[str, int]] = None) -> None:
        """Overwrite the snapshot and upsert the given nonces atomically."""
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        payload = _canon_json(st)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO ledger_state(id, token_count, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  token_count=excluded.token_count,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (int(st.get("token_count", 0)), payload, _now_ms()),
            )
            for signer, last in (nonces or {}).items():
                con.execute(_UPSERT_NONCE, (str(signer), int(last)))

    def write_nonce(self, signer: str, last_nonce: int) -> None:
        """Consume a nonce without touching the Store (rejected operations)."""
        with self._db.write_tx() as con:
            con.execute(_UPSERT_NONCE, (str(signer), int(last_nonce)))
