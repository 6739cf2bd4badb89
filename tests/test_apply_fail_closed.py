# tests/test_apply_fail_closed.py
from __future__ import annotations

import pytest

from tokenledger.runtime.domain_dispatch import apply_tx
from tokenledger.runtime.errors import ApplyError
from tokenledger.runtime.supported_txs import READ_ONLY_TX_TYPES, SUPPORTED_TX_TYPES
from tokenledger.runtime.tx_admission_types import TxEnvelope


def test_supported_tx_types_are_the_ledger_operations() -> None:
    assert SUPPORTED_TX_TYPES == {"TRANSFER", "UPDATE_OPERATORS", "CREATE_TOKEN", "MINT_TOKEN", "BALANCE_OF"}
    assert READ_ONLY_TX_TYPES == {"BALANCE_OF"}


def test_apply_fails_closed_for_unimplemented_tx_types() -> None:
    env = TxEnvelope(tx_type="BURN_TOKEN", signer="alice", nonce=1, payload={}, sig="deadbeef")

    with pytest.raises(ApplyError) as e:
        apply_tx({}, env)

    err = e.value
    assert err.code == "tx_unimplemented"
    assert err.reason == "tx_type_not_implemented"


def test_apply_rejects_missing_tx_type() -> None:
    with pytest.raises(ApplyError) as e:
        apply_tx({}, {"signer": "alice", "payload": {}})
    assert e.value.code == "invalid_tx"
    assert e.value.reason == "missing_tx_type"


def test_foreign_exceptions_are_wrapped_as_domain_error(monkeypatch: pytest.MonkeyPatch) -> None:
    from tokenledger.runtime import domain_dispatch

    def _explode(state, env):
        raise KeyError("boom")

    monkeypatch.setattr(domain_dispatch, "_APPLIERS", (_explode,))

    with pytest.raises(ApplyError) as e:
        apply_tx({}, {"tx_type": "TRANSFER", "signer": "alice", "payload": {}})
    assert e.value.code == "domain_error"
    assert e.value.reason == "KeyError"
    assert e.value.details["domain"] == "_explode"


def test_apply_rejects_non_mapping_state() -> None:
    with pytest.raises(TypeError):
        apply_tx([], {"tx_type": "TRANSFER", "signer": "alice", "payload": {}})


def test_lowercase_tx_type_is_normalized() -> None:
    st: dict = {}
    out = apply_tx(st, {"tx_type": "create_token", "signer": "alice", "payload": {"name": "C", "decimals": 0, "supply": 1}})
    assert out["token_id"] == 1
