from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, Mapping, Optional, Tuple

from tokenledger.api.structured_logging import log_event
from tokenledger.ledger.state import LedgerView
from tokenledger.runtime.callbacks import CallbackRouter
from tokenledger.runtime.domain_dispatch import apply_tx
from tokenledger.runtime.errors import ApplyError
from tokenledger.runtime.metrics import inc_counter, set_gauge
from tokenledger.runtime.sigverify import Keyring, normalize_keyring
from tokenledger.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from tokenledger.runtime import state_invariants
from tokenledger.runtime.state_invariants import ensure_state, initial_state
from tokenledger.runtime.tx_admission import DEFAULT_MAX_BATCH_ITEMS, admit_tx
from tokenledger.runtime.tx_admission_types import TxEnvelope
from tokenledger.runtime.tx_id import compute_tx_id_from_dict, compute_tx_id_from_envelope

Json = Dict[str, Any]


class ExecutorError(RuntimeError):
    pass


class LedgerExecutor:
    """Single-writer host around the token ledger core.

    Every operation runs against a deep copy of the committed Store. Only a copy
    that applied cleanly (and passed the invariant check, when enabled) is
    persisted and swapped in, so a failing operation never leaves partial writes.

    With db_path set, the Store and the per-signer nonce map live in SQLite and
    survive a restart. Without it the executor is purely in-memory.
    """

    def __init__(
        self,
        *,
        ledger_id: str,
        db_path: Optional[str] = None,
        keyring: Optional[Keyring] = None,
        require_signatures: bool = False,
        check_invariants: bool = True,
        callbacks: Optional[CallbackRouter] = None,
        max_batch_items: int = DEFAULT_MAX_BATCH_ITEMS,
    ) -> None:
        self.ledger_id = str(ledger_id or "").strip()
        if not self.ledger_id:
            raise ExecutorError("ledger_id is required")

        self.keyring: Dict[str, list] = normalize_keyring(dict(keyring or {}))
        self.require_signatures = bool(require_signatures)
        self.check_invariants = bool(check_invariants)
        self.max_batch_items = int(max_batch_items)
        self.callbacks = callbacks if callbacks is not None else CallbackRouter()

        self._lock = threading.Lock()
        self._log = logging.getLogger("tokenledger.executor")

        self._store: Optional[SqliteLedgerStore] = None
        self._nonces: Dict[str, int] = {}

        if db_path:
            self._store = SqliteLedgerStore(db=SqliteDB(path=str(db_path)))
            try:
                self._store.bind_ledger_id(self.ledger_id)
            except RuntimeError as e:
                raise ExecutorError(f"{e}. Refuse to start.") from e

            if self._store.exists():
                self.state = self._store.read()
                self._nonces = self._store.read_nonces()
            else:
                self.state = initial_state()
                self._store.write(self.state)
        else:
            self.state = initial_state()

        ensure_state(self.state)
        if self.check_invariants:
            try:
                state_invariants.check_invariants(self.state)
            except ApplyError as e:
                raise ExecutorError(f"persisted Store violates invariants: {e.details}. Refuse to start.") from e

        set_gauge("token_count", int(self.state.get("token_count", 0)))

    # ----------------------------
    # Read access
    # ----------------------------

    def read_state(self) -> Json:
        return self.state

    def snapshot(self) -> Json:
        with self._lock:
            return copy.deepcopy(self.state)

    def view(self) -> LedgerView:
        with self._lock:
            return LedgerView.from_ledger(self.state)

    def last_nonce(self, signer: str) -> int:
        return int(self._nonces.get(str(signer or ""), 0))

    def next_nonce(self, signer: str) -> int:
        return self.last_nonce(signer) + 1

    # ----------------------------
    # Execution
    # ----------------------------

    def _apply_and_commit(self, env: TxEnvelope, *, consume_nonce: bool) -> Tuple[Json, Optional[Json]]:
        working: Json = copy.deepcopy(self.state)
        result = apply_tx(working, env)
        if self.check_invariants:
            state_invariants.check_invariants(working)

        nonces: Dict[str, int] = {}
        if consume_nonce:
            nonces[env.signer] = int(env.nonce)

        if self._store is not None:
            self._store.write(working, nonces=nonces)

        self.state = working
        self._nonces.update(nonces)
        set_gauge("token_count", int(working.get("token_count", 0)))

        effect = result.get("callback") if isinstance(result, dict) else None
        return result, effect if isinstance(effect, dict) else None

    def _consume_nonce(self, env: TxEnvelope) -> None:
        if self._store is not None:
            self._store.write_nonce(env.signer, int(env.nonce))
        self._nonces[env.signer] = int(env.nonce)

    def _record_accept(self, tx_id: str, env: TxEnvelope) -> None:
        inc_counter("tx_accepted")
        log_event(
            self._log,
            "tx_applied",
            ledger_id=self.ledger_id,
            tx_id=tx_id,
            tx_type=env.tx_type,
            signer=env.signer,
            nonce=int(env.nonce),
        )

    def _record_reject(self, tx_id: str, tx_type: str, signer: str, *, stage: str, code: str, reason: str) -> None:
        inc_counter("tx_rejected")
        inc_counter(f"tx_rejected_{code}")
        log_event(
            self._log,
            "tx_rejected",
            ledger_id=self.ledger_id,
            tx_id=tx_id,
            tx_type=tx_type,
            signer=signer,
            stage=stage,
            code=code,
            reason=reason,
        )

    def close(self) -> None:
        """Stop the callback worker. Queued HTTP deliveries get a short grace period."""
        self.callbacks.drain(timeout_s=2.0)
        self.callbacks.stop()

    def _deliver(self, effect: Optional[Json]) -> None:
        if effect is not None:
            self.callbacks.deliver(effect)

    def execute(self, env: Any) -> Json:
        """Apply one envelope atomically, bypassing admission and nonces.

        Raises ApplyError with the committed Store untouched. The callback
        effect of a successful BALANCE_OF is delivered after commit.
        """
        env_obj = TxEnvelope.from_json(env)
        tx_id = compute_tx_id_from_envelope(self.ledger_id, env_obj)
        with self._lock:
            try:
                result, effect = self._apply_and_commit(env_obj, consume_nonce=False)
            except ApplyError as e:
                self._record_reject(tx_id, env_obj.tx_type, env_obj.signer, stage="apply", code=e.code, reason=e.reason)
                raise
            self._record_accept(tx_id, env_obj)
        self._deliver(effect)
        return result

    def submit_tx(self, tx: Any) -> Json:
        """Admit, execute and commit one signed envelope. Returns a receipt, never raises ApplyError.

        A nonce that passed admission is consumed even when apply rejects the
        operation, so a failing envelope cannot be replayed.
        """
        if not isinstance(tx, Mapping):
            self._record_reject("", "", "", stage="admission", code="bad_shape", reason="envelope_not_object")
            return {"ok": False, "tx_id": "", "error": "bad_shape", "reason": "envelope_not_object", "details": None}

        tx = dict(tx)
        tx_id = compute_tx_id_from_dict(self.ledger_id, tx)
        signer = str(tx.get("signer") or "")
        tx_type = str(tx.get("tx_type") or "").strip().upper()

        effect: Optional[Json] = None
        with self._lock:
            ok, rej = admit_tx(
                tx,
                keyring=self.keyring,
                require_signatures=self.require_signatures,
                next_nonce=self.next_nonce(signer) if signer else None,
                max_batch_items=self.max_batch_items,
                callback_allowed=self.callbacks.accepts,
            )
            if not ok:
                self._record_reject(tx_id, tx_type, signer, stage="admission", code=rej.code, reason=rej.reason)
                return rej.receipt(tx_id)

            env = TxEnvelope.from_json(tx)
            try:
                result, effect = self._apply_and_commit(env, consume_nonce=True)
            except ApplyError as e:
                self._consume_nonce(env)
                self._record_reject(tx_id, env.tx_type, env.signer, stage="apply", code=e.code, reason=e.reason)
                return {"ok": False, "tx_id": tx_id, "error": e.code, "reason": e.reason, "details": e.details}

            self._record_accept(tx_id, env)

        self._deliver(effect)
        return {"ok": True, "tx_id": tx_id, "tx_type": env.tx_type, "result": result}


__all__ = ["LedgerExecutor", "ExecutorError"]
