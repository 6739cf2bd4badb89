# src/tokenledger/runtime/apply/query.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from tokenledger.ledger.store import balance_of, token_exists
from tokenledger.runtime.apply._payload import as_dict, req_list, req_nat, req_str
from tokenledger.runtime.errors import ApplyError
from tokenledger.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def batch_balances(state: Json, requests: List[Any]) -> List[Json]:
    """Resolve balances in request order. An unknown token aborts the whole batch."""
    out: List[Json] = []
    for raw in requests:
        req = as_dict(raw)
        owner = req_str(req, "owner", tx_type="BALANCE_OF")
        token_id = req_nat(req, "token_id", tx_type="BALANCE_OF")
        token_exists(state, token_id)
        out.append(
            {
                "request": {"owner": owner, "token_id": token_id},
                "balance": balance_of(state, token_id, owner),
            }
        )
    return out


def _apply_balance_of(state: Json, env: TxEnvelope) -> Json:
    payload = as_dict(env.payload)
    requests = req_list(payload, "requests", tx_type=env.tx_type)
    callback = payload.get("callback")
    if not isinstance(callback, str) or not callback:
        raise ApplyError("invalid_payload", "missing_callback", {"tx_type": env.tx_type})

    responses = batch_balances(state, requests)

    # The one outbound effect of this tx; the executor delivers it after commit.
    return {
        "applied": "BALANCE_OF",
        "callback": {"target": callback, "payload": responses},
    }


QUERY_TX_TYPES: Set[str] = {"BALANCE_OF"}


def apply_query(state: Json, env: TxEnvelope) -> Optional[Json]:
    if str(env.tx_type).strip().upper() not in QUERY_TX_TYPES:
        return None
    return _apply_balance_of(state, env)


__all__ = ["QUERY_TX_TYPES", "apply_query", "batch_balances"]
