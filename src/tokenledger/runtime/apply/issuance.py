# src/tokenledger/runtime/apply/issuance.py
from __future__ import annotations

from typing import Any, Dict, Optional, Set

from tokenledger.ledger.store import credit, token_key
from tokenledger.runtime.apply._payload import as_dict, req_nat, req_str
from tokenledger.runtime.errors import ApplyError, NotOwner, SupplyExhausted, UndefinedToken
from tokenledger.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def create_token(state: Json, creator: str, *, name: str, decimals: int, supply: int) -> int:
    """Register a new token class and return its id.

    The creator is captured once here and is the only account ever allowed to mint.
    """
    token_id = int(state.get("token_count", 0) or 0) + 1
    k = token_key(token_id)

    state.setdefault("token_metadata", {})[k] = {
        "token_id": token_id,
        "name": str(name),
        "decimals": int(decimals),
        "creator": str(creator),
    }
    state.setdefault("total_supply", {})[k] = int(supply)
    state.setdefault("available_supply", {})[k] = int(supply)
    state["token_count"] = token_id
    return token_id


def mint_token(state: Json, caller: str, *, token_id: int, amount: int, destination: str) -> int:
    """Mint from the remaining supply. Returns the available supply left.

    Checks run in a fixed order and the first failure wins:
    undefined token, then creator, then remaining supply.
    """
    k = token_key(token_id)

    meta = state.get("token_metadata", {}).get(k)
    if not isinstance(meta, dict):
        raise UndefinedToken({"token_id": int(token_id)})

    if str(caller) != str(meta.get("creator")):
        raise NotOwner({"token_id": int(token_id), "caller": str(caller)})

    available = int(state.get("available_supply", {}).get(k, 0))
    if available < int(amount):
        raise SupplyExhausted({"token_id": int(token_id), "available": available, "amount": int(amount)})

    state["available_supply"][k] = available - int(amount)
    credit(state, token_id, amount, destination)
    return available - int(amount)


def _apply_create_token(state: Json, env: TxEnvelope) -> Json:
    payload = as_dict(env.payload)
    name = payload.get("name")
    if not isinstance(name, str):
        raise ApplyError("invalid_payload", "bad_name", {"tx_type": env.tx_type})
    decimals = req_nat(payload, "decimals", tx_type=env.tx_type)
    supply = req_nat(payload, "supply", tx_type=env.tx_type)

    token_id = create_token(state, env.signer, name=name, decimals=decimals, supply=supply)
    return {"applied": "CREATE_TOKEN", "token_id": token_id, "creator": env.signer, "supply": supply}


def _apply_mint_token(state: Json, env: TxEnvelope) -> Json:
    payload = as_dict(env.payload)
    token_id = req_nat(payload, "token_id", tx_type=env.tx_type)
    amount = req_nat(payload, "amount", tx_type=env.tx_type)
    destination = req_str(payload, "destination", tx_type=env.tx_type)

    left = mint_token(state, env.signer, token_id=token_id, amount=amount, destination=destination)
    return {
        "applied": "MINT_TOKEN",
        "token_id": token_id,
        "amount": amount,
        "destination": destination,
        "available_supply": left,
    }


ISSUANCE_TX_TYPES: Set[str] = {"CREATE_TOKEN", "MINT_TOKEN"}


def apply_issuance(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = str(env.tx_type).strip().upper()
    if t not in ISSUANCE_TX_TYPES:
        return None

    if t == "CREATE_TOKEN":
        return _apply_create_token(state, env)

    if t == "MINT_TOKEN":
        return _apply_mint_token(state, env)

    return None


__all__ = ["ISSUANCE_TX_TYPES", "apply_issuance", "create_token", "mint_token"]
