"""Deterministic Ed25519 keys for tests and local tooling.

Never use these keys for a real ledger: anyone can derive them from the label.
"""

from __future__ import annotations

import hashlib
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from tokenledger.crypto.sig import public_key_hex, tx_message_from_dict

Json = Dict[str, Any]


def deterministic_ed25519_keypair(*, label: str) -> Tuple[str, Ed25519PrivateKey]:
    """(pubkey_hex, private_key) derived from sha256 of a stable label."""
    seed = hashlib.sha256(f"tokenledger-test-ed25519:{label or ''}".encode("utf-8")).digest()
    sk = Ed25519PrivateKey.from_private_bytes(seed)
    return public_key_hex(sk), sk


def keyring_for(accounts: Iterable[str]) -> Dict[str, List[str]]:
    return {str(a): [deterministic_ed25519_keypair(label=a)[0]] for a in accounts}


def sign_tx_dict(tx: Json, *, label: Optional[str] = None) -> Json:
    """Copy of tx signed (hex) with the key for `label`, else for tx['signer']."""
    if not isinstance(tx, dict):
        raise TypeError("tx must be a dict")
    _, sk = deterministic_ed25519_keypair(label=label or str(tx.get("signer") or ""))
    out = dict(tx)
    out["sig"] = sk.sign(tx_message_from_dict(tx)).hex()
    return out
