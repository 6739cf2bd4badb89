# src/tokenledger/runtime/apply/operators.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple

from tokenledger.ledger.operators import add_operator, remove_operator
from tokenledger.runtime.apply._payload import as_dict, req_list, req_nat, req_str
from tokenledger.runtime.errors import ApplyError, NotOwner
from tokenledger.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]

_KINDS = ("add_operator", "remove_operator")


def _unpack(update: Any, index: int) -> Tuple[str, Json]:
    """Read one FA2 variant instruction: {"add_operator": {...}} or {"remove_operator": {...}}."""
    d = as_dict(update)
    kinds = [k for k in _KINDS if k in d]
    if len(d) != 1 or len(kinds) != 1:
        raise ApplyError("invalid_payload", "bad_operator_update", {"index": index, "keys": sorted(d.keys())})
    kind = kinds[0]
    return kind, as_dict(d[kind])


def update_operators(state: Json, caller: str, updates: List[Any]) -> List[Json]:
    """Apply add/remove instructions left to right; returns what was applied.

    Only the owner of the holdings may change its operator set.
    """
    applied: List[Json] = []
    for i, raw in enumerate(updates):
        kind, body = _unpack(raw, i)
        owner = req_str(body, "owner", tx_type="UPDATE_OPERATORS")
        operator = req_str(body, "operator", tx_type="UPDATE_OPERATORS")
        token_id = req_nat(body, "token_id", tx_type="UPDATE_OPERATORS")

        if str(caller) != owner:
            raise NotOwner({"token_id": token_id, "owner": owner, "caller": str(caller), "index": i})

        if kind == "add_operator":
            add_operator(state, token_id, owner, operator)
        else:
            remove_operator(state, token_id, owner, operator)
        applied.append({"op": kind, "token_id": token_id, "owner": owner, "operator": operator})
    return applied


def _apply_update_operators(state: Json, env: TxEnvelope) -> Json:
    updates = req_list(as_dict(env.payload), "updates", tx_type=env.tx_type)
    applied = update_operators(state, env.signer, updates)
    return {"applied": "UPDATE_OPERATORS", "updates": len(applied)}


OPERATOR_TX_TYPES: Set[str] = {"UPDATE_OPERATORS"}


def apply_operators(state: Json, env: TxEnvelope) -> Optional[Json]:
    if str(env.tx_type).strip().upper() not in OPERATOR_TX_TYPES:
        return None
    return _apply_update_operators(state, env)


__all__ = ["OPERATOR_TX_TYPES", "apply_operators", "update_operators"]
