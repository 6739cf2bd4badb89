# src/tokenledger/crypto/sig.py
"""Ed25519 signing over canonical envelope bytes.

Keys and signatures travel as text: hex, or base64 / base64url.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict, Mapping

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

Json = Dict[str, Any]

SEED_BYTES = 32


def decode_key_material(text: str) -> bytes:
    s = str(text or "").strip()
    if not s:
        raise ValueError("empty key material")
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    s = s.replace("-", "+").replace("_", "/")
    try:
        return base64.b64decode(s + "=" * (-len(s) % 4), validate=True)
    except binascii.Error as e:
        raise ValueError("key material is neither hex nor base64") from e


def canonical_tx_message(*, tx_type: str, signer: str, nonce: int, payload: Json) -> bytes:
    """Bytes that a caller signs. Sorted keys, compact separators, UTF-8."""
    body = {
        "tx_type": str(tx_type),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def tx_message_from_dict(tx: Mapping[str, Any]) -> bytes:
    """canonical_tx_message for a raw envelope; `sig` and unknown keys are ignored."""
    return canonical_tx_message(
        tx_type=str(tx.get("tx_type") or "").strip(),
        signer=str(tx.get("signer") or ""),
        nonce=int(tx.get("nonce") or 0),
        payload=tx.get("payload") if isinstance(tx.get("payload"), dict) else {},
    )


def load_signing_key(privkey: str) -> Ed25519PrivateKey:
    raw = decode_key_material(privkey)
    # A 64-byte expanded key carries the seed in its first half.
    seed = raw[:SEED_BYTES] if len(raw) == 2 * SEED_BYTES else raw
    if len(seed) != SEED_BYTES:
        raise ValueError(f"ed25519 private key must be a {SEED_BYTES}-byte seed")
    return Ed25519PrivateKey.from_private_bytes(seed)


def public_key_hex(key: Ed25519PrivateKey) -> str:
    return key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        Ed25519PublicKey.from_public_bytes(decode_key_material(pubkey)).verify(decode_key_material(sig), message)
    except (InvalidSignature, ValueError):
        return False
    return True


def sign_tx_envelope_dict(*, tx: Json, privkey: str, encoding: str = "hex") -> Json:
    """Copy of tx with `sig` set. encoding is "hex" or "b64"."""
    if encoding not in {"hex", "b64", "base64"}:
        raise ValueError(f"unsupported signature encoding: {encoding!r}")
    raw_sig = load_signing_key(privkey).sign(tx_message_from_dict(tx))
    out = dict(tx)
    out["sig"] = raw_sig.hex() if encoding == "hex" else base64.b64encode(raw_sig).decode("ascii")
    return out


__all__ = [
    "canonical_tx_message",
    "tx_message_from_dict",
    "load_signing_key",
    "public_key_hex",
    "verify_ed25519_signature",
    "sign_tx_envelope_dict",
]
