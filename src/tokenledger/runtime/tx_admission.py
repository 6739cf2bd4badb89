from __future__ import annotations

import json
from typing import Any, Callable, Dict, Mapping, Optional

from tokenledger.runtime.sigverify import Keyring, verify_tx_signature
from tokenledger.runtime.supported_txs import SUPPORTED_TX_TYPES
from tokenledger.runtime.tx_admission_types import TxEnvelope, TxVerdict
from tokenledger.runtime.tx_schema import batch_items, validate_payload

Json = Dict[str, Any]

DEFAULT_MAX_TX_BYTES = 256 * 1024
DEFAULT_MAX_BATCH_ITEMS = 1_000


def _json_size_bytes(obj: Any) -> int:
    try:
        return len(json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def admit_tx(
    tx: Any,
    *,
    keyring: Optional[Keyring] = None,
    require_signatures: bool = True,
    next_nonce: Optional[int] = None,
    max_batch_items: int = DEFAULT_MAX_BATCH_ITEMS,
    max_tx_bytes: int = DEFAULT_MAX_TX_BYTES,
    callback_allowed: Optional[Callable[[Any], bool]] = None,
) -> TxVerdict:
    """Decide whether an envelope may be executed.

    Checks are ordered cheapest first. Nothing here reads the Store: token
    existence, balances and authorization are apply-time concerns.

    next_nonce:
      - None disables the nonce check (trusted in-process callers)
      - otherwise the envelope nonce must equal it exactly

    callback_allowed:
      - None accepts any BALANCE_OF callback target
      - otherwise the target must satisfy it (`callback_not_allowed`)
    """
    if not isinstance(tx, Mapping):
        return TxVerdict.reject("bad_shape", "envelope_not_object", None)

    env_size = _json_size_bytes(dict(tx))
    if env_size < 0:
        return TxVerdict.reject("bad_shape", "envelope_not_json", None)
    if env_size > int(max_tx_bytes):
        return TxVerdict.reject(
            "tx_too_large",
            "tx_envelope_exceeds_size_limit",
            {"bytes": int(env_size), "max_bytes": int(max_tx_bytes)},
        )

    nonce_raw = tx.get("nonce", 0)
    if isinstance(nonce_raw, bool) or not isinstance(nonce_raw, int) or nonce_raw < 0:
        return TxVerdict.reject("bad_shape", "nonce_must_be_nonnegative_int", {"nonce": nonce_raw})

    tx_type = str(tx.get("tx_type") or "").strip().upper()
    signer = tx.get("signer")
    if not tx_type:
        return TxVerdict.reject("bad_shape", "missing_tx_type", None)
    if not isinstance(signer, str) or not signer:
        return TxVerdict.reject("bad_shape", "missing_signer", None)

    if tx_type not in SUPPORTED_TX_TYPES:
        return TxVerdict.reject("unsupported_tx", "tx_type_not_supported", {"tx_type": tx_type})

    ok, code, reason, details = validate_payload(tx_type=tx_type, payload=tx.get("payload"))
    if not ok:
        return TxVerdict.reject(code, reason, details)

    env = TxEnvelope.from_json(dict(tx))

    n_items = batch_items(env.tx_type, env.payload)
    if n_items > int(max_batch_items):
        return TxVerdict.reject(
            "batch_too_large",
            "batch_exceeds_item_limit",
            {"items": int(n_items), "max_items": int(max_batch_items)},
        )

    if env.tx_type == "BALANCE_OF" and callback_allowed is not None:
        target = env.payload.get("callback")
        if not callback_allowed(target):
            return TxVerdict.reject("callback_not_allowed", "callback_target_not_allowed", {"callback": target})

    if next_nonce is not None and int(env.nonce) != int(next_nonce):
        return TxVerdict.reject(
            "bad_nonce",
            "nonce_not_next",
            {"signer": env.signer, "nonce": int(env.nonce), "expected": int(next_nonce)},
        )

    if require_signatures and not verify_tx_signature(keyring or {}, dict(tx)):
        return TxVerdict.reject("bad_signature", "signature_invalid_or_missing", {"signer": env.signer})

    return TxVerdict.admit()


__all__ = ["admit_tx", "DEFAULT_MAX_BATCH_ITEMS", "DEFAULT_MAX_TX_BYTES"]
