# src/tokenledger/ledger/store.py
from __future__ import annotations

"""Ledger Store primitives.

The Store is the JSON-like aggregate owned by the executor:

    {
      "ledger":           {"<token_id>": {"<account>": int}},
      "operators":        {"<token_id>": {"<owner>": ["<operator>", ...]}},
      "total_supply":     {"<token_id>": int},
      "available_supply": {"<token_id>": int},
      "token_metadata":   {"<token_id>": {"token_id", "name", "decimals", "creator"}},
      "token_count":      int,
    }

Token ids are stored as decimal strings so the snapshot round-trips through
canonical JSON unchanged. Every function here takes the state dict explicitly;
nothing is cached between calls.
"""

from typing import Any, Dict

from tokenledger.runtime.errors import InsufficientBalance, UndefinedToken

Json = Dict[str, Any]

STORE_MAPS = ("ledger", "operators", "total_supply", "available_supply", "token_metadata")


def token_key(token_id: Any) -> str:
    """Normalize a token id into its storage key."""
    return str(int(token_id))


def _map(state: Json, name: str) -> Json:
    m = state.get(name)
    if not isinstance(m, dict):
        m = {}
        state[name] = m
    return m


def balance_of(state: Json, token_id: Any, account: str) -> int:
    """Return the stored balance, or 0 when no entry exists."""
    holders = state.get("ledger", {}).get(token_key(token_id))
    if not isinstance(holders, dict):
        return 0
    return int(holders.get(str(account), 0))


def credit(state: Json, token_id: Any, amount: int, account: str) -> None:
    # No supply bound here: mint/transfer callers enforce their own limits.
    holders = _map(state, "ledger").setdefault(token_key(token_id), {})
    acct = str(account)
    holders[acct] = int(holders.get(acct, 0)) + int(amount)


def debit(state: Json, token_id: Any, amount: int, account: str) -> None:
    current = balance_of(state, token_id, account)
    amt = int(amount)
    if current < amt:
        raise InsufficientBalance(
            {"token_id": int(token_id), "account": str(account), "balance": current, "amount": amt}
        )
    holders = _map(state, "ledger").setdefault(token_key(token_id), {})
    holders[str(account)] = current - amt


def token_exists(state: Json, token_id: Any) -> bool:
    """Guard: raise UndefinedToken unless `token_id` has a total supply record."""
    if token_key(token_id) not in state.get("total_supply", {}):
        raise UndefinedToken({"token_id": int(token_id)})
    return True


__all__ = ["STORE_MAPS", "token_key", "balance_of", "credit", "debit", "token_exists"]
