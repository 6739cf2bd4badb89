# src/tokenledger/runtime/apply/_payload.py
from __future__ import annotations

from typing import Any, Dict, List

from tokenledger.runtime.errors import ApplyError

Json = Dict[str, Any]


def as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def req_str(d: Json, key: str, *, tx_type: str) -> str:
    # Accounts are opaque: compared byte for byte, never trimmed or case-folded.
    s = d.get(key)
    if not isinstance(s, str) or not s:
        raise ApplyError("invalid_payload", f"missing_{key.rstrip('_')}", {"tx_type": tx_type})
    return s


def req_nat(d: Json, key: str, *, tx_type: str) -> int:
    """Require a non-negative int. Bools and floats are rejected, not coerced."""
    v = d.get(key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise ApplyError("invalid_payload", f"bad_{key}", {"tx_type": tx_type, key: v})
    if v < 0:
        raise ApplyError("invalid_payload", f"negative_{key}", {"tx_type": tx_type, key: v})
    return int(v)


def req_list(d: Json, key: str, *, tx_type: str) -> List[Any]:
    v = d.get(key)
    if not isinstance(v, list):
        raise ApplyError("invalid_payload", f"missing_{key}", {"tx_type": tx_type})
    return v
