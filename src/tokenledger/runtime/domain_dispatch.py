# src/tokenledger/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from tokenledger.runtime.errors import ApplyError
from tokenledger.runtime.state_invariants import ensure_state
from tokenledger.runtime.tx_admission_types import TxEnvelope

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from tokenledger.runtime.apply.issuance import apply_issuance
from tokenledger.runtime.apply.operators import apply_operators
from tokenledger.runtime.apply.query import apply_query
from tokenledger.runtime.apply.transfer import apply_transfer

Json = Dict[str, Any]
ApplyFn = Callable[[Json, Any], Optional[Json]]


def _tx_type(env: Any) -> str:
    if isinstance(env, dict):
        return str(env.get("tx_type", "") or "").strip().upper()
    return str(getattr(env, "tx_type", "") or "").strip().upper()


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_transfer,
    apply_operators,
    apply_issuance,
    apply_query,
)


def apply_tx(state: Json, env: Any) -> Json:
    """Dispatch an envelope to the first domain applier that claims it.

    `state` is mutated in place. On any raised ApplyError the state may hold
    partial writes; callers that need all-or-nothing semantics pass a copy.
    """

    ensure_state(state)

    # Tests and some tools pass raw dict envelopes. Normalize to TxEnvelope so
    # domain appliers can rely on attribute access.
    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    t = _tx_type(env_norm)
    if not t:
        raise ApplyError("invalid_tx", "missing_tx_type", {"tx_type": t})

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm)
        except ApplyError:
            raise
        except Exception as e:
            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})
