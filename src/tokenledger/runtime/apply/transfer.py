# src/tokenledger/runtime/apply/transfer.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from tokenledger.ledger.authorization import is_authorized
from tokenledger.ledger.store import credit, debit, token_exists
from tokenledger.runtime.apply._payload import as_dict, req_list, req_nat, req_str
from tokenledger.runtime.errors import ApplyError
from tokenledger.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def transfer_batch(state: Json, caller: str, transfers: List[Any]) -> int:
    """Apply transfers left to right, leg by leg. Returns the number of legs applied.

    Each leg sees balances written by the legs before it, so the order is part of
    the semantics. Any raised error leaves `state` partially written; the caller
    must discard it.
    """
    legs = 0
    for i, raw in enumerate(transfers):
        if not isinstance(raw, dict):
            raise ApplyError("invalid_payload", "transfer_not_object", {"index": i})
        frm = req_str(raw, "from_", tx_type="TRANSFER")
        for tx in req_list(raw, "txs", tx_type="TRANSFER"):
            leg = as_dict(tx)
            to = req_str(leg, "to_", tx_type="TRANSFER")
            token_id = req_nat(leg, "token_id", tx_type="TRANSFER")
            amount = req_nat(leg, "amount", tx_type="TRANSFER")

            token_exists(state, token_id)
            is_authorized(state, caller, frm, token_id)
            debit(state, token_id, amount, frm)
            credit(state, token_id, amount, to)
            legs += 1
    return legs


def _apply_transfer(state: Json, env: TxEnvelope) -> Json:
    transfers = req_list(as_dict(env.payload), "transfers", tx_type=env.tx_type)
    legs = transfer_batch(state, env.signer, transfers)
    return {"applied": "TRANSFER", "transfers": len(transfers), "legs": legs}


TRANSFER_TX_TYPES: Set[str] = {"TRANSFER"}


def apply_transfer(state: Json, env: TxEnvelope) -> Optional[Json]:
    """
    Returns:
      - dict: applied result
      - None: tx_type not in the transfer domain
    """
    if str(env.tx_type).strip().upper() not in TRANSFER_TX_TYPES:
        return None
    return _apply_transfer(state, env)


__all__ = ["TRANSFER_TX_TYPES", "apply_transfer", "transfer_batch"]
