# src/tokenledger/ledger/operators.py
"""Operator registry primitives.

Operators are kept per (token_id, owner) as a JSON list with set semantics:
newest first, never duplicated. Entries are never deleted once created, so an
owner whose operators were all removed still has an (empty) entry.
"""

from __future__ import annotations

from typing import Any, Dict, List

from tokenledger.ledger.store import token_key
from tokenledger.runtime.errors import NotFound

Json = Dict[str, Any]


def _registry(state: Json) -> Json:
    reg = state.get("operators")
    if not isinstance(reg, dict):
        reg = {}
        state["operators"] = reg
    return reg


def add_operator(state: Json, token_id: Any, owner: str, operator: str) -> List[str]:
    by_owner = _registry(state).setdefault(token_key(token_id), {})
    ops = by_owner.get(str(owner))
    if not isinstance(ops, list):
        ops = []
    op = str(operator)
    if op not in ops:
        ops = [op] + ops
    by_owner[str(owner)] = ops
    return ops


def remove_operator(state: Json, token_id: Any, owner: str, operator: str) -> List[str]:
    by_owner = _registry(state).get(token_key(token_id))
    ops = by_owner.get(str(owner)) if isinstance(by_owner, dict) else None
    if ops is None:
        raise NotFound({"token_id": int(token_id), "owner": str(owner), "operator": str(operator)})

    op = str(operator)
    kept = [o for o in ops if o != op]
    by_owner[str(owner)] = kept
    return kept


__all__ = ["add_operator", "remove_operator"]
