# src/tokenledger/ledger/authorization.py
from __future__ import annotations

from typing import Any, Dict

from tokenledger.ledger.store import token_key
from tokenledger.runtime.errors import NotFound, NotOperator

Json = Dict[str, Any]


def is_authorized(state: Json, caller: str, owner: str, token_id: Any) -> bool:
    """Return True if `caller` may move `owner`'s holdings of `token_id`.

    Fail-fast: a missing operator entry raises NotFound and a non-member caller
    raises NotOperator. There is no silent "deny" outcome.
    """
    if str(caller) == str(owner):
        return True

    by_owner = state.get("operators", {}).get(token_key(token_id))
    ops = by_owner.get(str(owner)) if isinstance(by_owner, dict) else None
    if ops is None:
        raise NotFound({"token_id": int(token_id), "owner": str(owner)})

    if str(caller) not in ops:
        raise NotOperator({"token_id": int(token_id), "owner": str(owner), "caller": str(caller)})
    return True


__all__ = ["is_authorized"]
