"""Content hash identifying one envelope on one ledger.

The id covers `ledger_id` plus the envelope identity (tx_type, signer, nonce,
payload). The signature is left out so re-encoding it never changes the id.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Mapping

from tokenledger.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _digest(ledger_id: str, identity: Json) -> str:
    body = dict(identity)
    body["ledger_id"] = str(ledger_id)
    blob = json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


def compute_tx_id_from_envelope(ledger_id: str, env: TxEnvelope) -> str:
    return _digest(ledger_id, env.identity())


def compute_tx_id_from_dict(ledger_id: str, tx: Mapping[str, Any]) -> str:
    """Same id for a raw envelope that has not been admitted yet. Malformed fields hash as empty."""
    try:
        nonce = int(tx.get("nonce") or 0)
    except (TypeError, ValueError):
        nonce = 0
    payload = tx.get("payload")
    identity: Json = {
        "tx_type": str(tx.get("tx_type") or "").strip().upper(),
        "signer": str(tx.get("signer") or ""),
        "nonce": nonce,
        "payload": payload if isinstance(payload, dict) else {},
    }
    return _digest(ledger_id, identity)


__all__ = ["compute_tx_id_from_envelope", "compute_tx_id_from_dict"]
