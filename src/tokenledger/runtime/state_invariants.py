# src/tokenledger/runtime/state_invariants.py
from __future__ import annotations

"""Store normalization and global invariant checks.

The Store is a nested JSON-like dict that is mutated deterministically by the
apply/* modules. This module is the single place that:

  - validates the state is dict-like and creates the Store containers
  - verifies the cross-map invariants after an operation, before commit

`check_invariants` is run by the executor on the working copy, so a violation
aborts the operation exactly like a domain failure does.
"""

from collections.abc import MutableMapping
from typing import Any, Dict, List

from tokenledger.ledger.store import STORE_MAPS
from tokenledger.runtime.errors import ApplyError

Json = Dict[str, Any]


class InvariantViolation(ApplyError):
    def __init__(self, problems: List[str]) -> None:
        super().__init__("invariant_violation", "store_invariants_broken", {"problems": list(problems)})


def initial_state() -> Json:
    return {
        "ledger": {},
        "operators": {},
        "total_supply": {},
        "available_supply": {},
        "token_metadata": {},
        "token_count": 0,
    }


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains the Store containers.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st is not a MutableMapping or a container has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for name in STORE_MAPS:
        v = st.get(name)
        if v is None:
            st[name] = {}
        elif not isinstance(v, dict):
            # Fail closed: do not attempt to coerce arbitrary types.
            raise TypeError(f"state[{name!r}] must be dict, got {type(v)}")

    tc = st.get("token_count")
    if tc is None:
        st["token_count"] = 0
    elif isinstance(tc, bool) or not isinstance(tc, int):
        raise TypeError(f"state['token_count'] must be int, got {type(tc)}")

    return st  # type: ignore[return-value]


def _is_nat(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and v >= 0


def find_violations(st: Json) -> List[str]:
    problems: List[str] = []

    meta = st.get("token_metadata", {})
    total = st.get("total_supply", {})
    avail = st.get("available_supply", {})
    ledger = st.get("ledger", {})
    token_count = int(st.get("token_count", 0) or 0)

    for k, holders in ledger.items():
        if k not in meta:
            problems.append(f"ledger entry for undefined token {k}")
        if not isinstance(holders, dict):
            problems.append(f"ledger[{k}] is not a map")
            continue
        for acct, bal in holders.items():
            if not _is_nat(bal):
                problems.append(f"balance ledger[{k}][{acct}] is not a natural number: {bal!r}")

    for k in meta.keys():
        t = total.get(k)
        a = avail.get(k)
        if not _is_nat(t) or not _is_nat(a):
            problems.append(f"supply for token {k} missing or negative")
            continue
        if a > t:
            problems.append(f"available_supply[{k}]={a} exceeds total_supply[{k}]={t}")
        holders = ledger.get(k, {})
        circulating = sum(v for v in holders.values() if _is_nat(v)) if isinstance(holders, dict) else 0
        if circulating + a != t:
            problems.append(f"token {k}: circulating {circulating} + available {a} != total {t}")

    ids = [int(k) for k in meta.keys()]
    expected = max(ids) if ids else 0
    if token_count != expected:
        problems.append(f"token_count={token_count} but highest token id is {expected}")

    return problems


def check_invariants(st: Json) -> None:
    problems = find_violations(st)
    if problems:
        raise InvariantViolation(problems)


__all__ = ["InvariantViolation", "initial_state", "ensure_state", "find_violations", "check_invariants"]
