# src/tokenledger/runtime/sigverify.py

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from tokenledger.crypto.sig import tx_message_from_dict, verify_ed25519_signature

Json = Dict[str, Any]
Keyring = Mapping[str, List[str]]


def _add_pubkey(out: List[str], seen: set[str], pk: Any) -> None:
    """Add a pubkey to out (deduped) if it's a non-empty string."""
    if not isinstance(pk, str):
        return
    pk2 = pk.strip()
    if not pk2 or pk2 in seen:
        return
    seen.add(pk2)
    out.append(pk2)


def normalize_keyring(raw: Any) -> Dict[str, List[str]]:
    """Normalize a keyring mapping of account -> pubkey(s).

    Accepted per-account shapes: a single pubkey string, or a list of them.
    Anything else is dropped.
    """
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, List[str]] = {}
    for acct, keys in raw.items():
        if not isinstance(acct, str) or not acct:
            continue
        found: List[str] = []
        seen: set[str] = set()
        if isinstance(keys, str):
            _add_pubkey(found, seen, keys)
        elif isinstance(keys, list):
            for pk in keys:
                _add_pubkey(found, seen, pk)
        if found:
            out[acct] = found
    return out


def load_keyring(path: Optional[str]) -> Dict[str, List[str]]:
    """Read a JSON keyring file. Missing path means an empty keyring.

    A path that is set but unreadable or malformed is an operator error and raises.
    """
    if not path:
        return {}
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("keyring must be a JSON object of account -> pubkeys")
    return normalize_keyring(raw)


def verify_tx_signature(keyring: Keyring, tx: Json) -> bool:
    """Verify tx signature against the signer's registered keys.

    Fail-closed: a signer with no keys, or a tx with no sig, never verifies.

    NOTE: This function is pure (no I/O).
    """
    if not isinstance(tx, dict):
        return False

    signer = tx.get("signer")
    if not isinstance(signer, str) or not signer:
        return False

    sig = tx.get("sig")
    if not isinstance(sig, str) or not sig.strip():
        return False

    keys = list(keyring.get(signer, []) or [])
    if not keys:
        return False

    try:
        msg = tx_message_from_dict(tx)
    except (TypeError, ValueError):
        return False

    for pk in keys:
        if verify_ed25519_signature(message=msg, sig=sig, pubkey=pk):
            return True
    return False


__all__ = ["Keyring", "normalize_keyring", "load_keyring", "verify_tx_signature"]
