from __future__ import annotations

import copy
import json
from typing import Any, List

import pytest

from tokenledger.runtime import metrics
from tokenledger.runtime.callbacks import CallbackRouter
from tokenledger.runtime.errors import ApplyError, UndefinedToken
from tokenledger.runtime.executor import LedgerExecutor


def _env(tx_type: str, signer: str, payload: dict) -> dict:
    return {"tx_type": tx_type, "signer": signer, "nonce": 0, "payload": payload}


def _ledger_with_holders(router: CallbackRouter) -> LedgerExecutor:
    ex = LedgerExecutor(ledger_id="query-test", callbacks=router)
    ex.execute(_env("CREATE_TOKEN", "alice", {"name": "Coin", "decimals": 0, "supply": 1000}))
    ex.execute(_env("MINT_TOKEN", "alice", {"token_id": 1, "amount": 400, "destination": "bob"}))
    return ex


def test_balance_of_delivers_responses_in_request_order() -> None:
    router = CallbackRouter()
    got: List[Any] = []
    router.register("wallet", got.append)
    ex = _ledger_with_holders(router)
    before = copy.deepcopy(ex.read_state())

    out = ex.execute(
        _env(
            "BALANCE_OF",
            "carol",
            {"requests": [{"owner": "carol", "token_id": 1}, {"owner": "bob", "token_id": 1}], "callback": "wallet"},
        )
    )

    expected = [
        {"request": {"owner": "carol", "token_id": 1}, "balance": 0},
        {"request": {"owner": "bob", "token_id": 1}, "balance": 400},
    ]
    assert out == {"applied": "BALANCE_OF", "callback": {"target": "wallet", "payload": expected}}
    assert got == [expected]
    # Queries never touch the Store.
    assert ex.read_state() == before
    assert metrics.snapshot()["counters"]["callbacks_delivered"] == 1


def test_balance_of_empty_request_list_still_calls_back() -> None:
    router = CallbackRouter()
    got: List[Any] = []
    router.register("wallet", got.append)
    ex = _ledger_with_holders(router)

    ex.execute(_env("BALANCE_OF", "carol", {"requests": [], "callback": "wallet"}))
    assert got == [[]]


def test_undefined_token_aborts_whole_query_without_callback() -> None:
    router = CallbackRouter()
    got: List[Any] = []
    router.register("wallet", got.append)
    ex = _ledger_with_holders(router)

    with pytest.raises(UndefinedToken):
        ex.execute(
            _env(
                "BALANCE_OF",
                "carol",
                {"requests": [{"owner": "bob", "token_id": 1}, {"owner": "bob", "token_id": 5}], "callback": "wallet"},
            )
        )
    assert got == []


def test_missing_callback_is_invalid_payload() -> None:
    ex = LedgerExecutor(ledger_id="query-test")
    with pytest.raises(ApplyError) as e:
        ex.execute(_env("BALANCE_OF", "carol", {"requests": []}))
    assert e.value.reason == "missing_callback"


def test_failing_handler_is_logged_not_raised() -> None:
    router = CallbackRouter()

    def _boom(_responses: Any) -> None:
        raise RuntimeError("wallet offline")

    router.register("wallet", _boom)
    ex = _ledger_with_holders(router)

    out = ex.execute(_env("BALANCE_OF", "carol", {"requests": [{"owner": "bob", "token_id": 1}], "callback": "wallet"}))
    assert out["applied"] == "BALANCE_OF"
    assert metrics.snapshot()["counters"]["callbacks_failed"] == 1


def test_unknown_target_is_dropped() -> None:
    router = CallbackRouter()
    assert router.deliver({"target": "nowhere", "payload": []}) is False
    assert metrics.snapshot()["counters"]["callbacks_failed"] == 1


def test_unregister_stops_delivery() -> None:
    router = CallbackRouter()
    got: List[Any] = []
    router.register("wallet", got.append)
    assert router.deliver({"target": "wallet", "payload": [1]}) is True
    router.unregister("wallet")
    assert router.deliver({"target": "wallet", "payload": [2]}) is False
    assert got == [[1]]


def test_register_rejects_empty_target() -> None:
    router = CallbackRouter()
    with pytest.raises(ValueError):
        router.register("  ", lambda _r: None)


class _FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status = status

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None


def _capture_posts(monkeypatch: pytest.MonkeyPatch, status: int = 200) -> List[Any]:
    from tokenledger.runtime import callbacks as callbacks_mod

    posted: List[Any] = []

    def _urlopen(req, timeout=None):
        posted.append((req.full_url, json.loads(req.data.decode("utf-8")), timeout))
        return _FakeResponse(status)

    monkeypatch.setattr(callbacks_mod.urllib.request, "urlopen", _urlopen)
    return posted


def test_http_callback_on_loopback_is_rejected_at_admission(monkeypatch: pytest.MonkeyPatch) -> None:
    posted = _capture_posts(monkeypatch)
    ex = LedgerExecutor(ledger_id="query-test")
    ex.execute(_env("CREATE_TOKEN", "alice", {"name": "Coin", "decimals": 0, "supply": 10}))

    tx = {
        "tx_type": "BALANCE_OF",
        "signer": "mallory",
        "nonce": 1,
        "payload": {"requests": [{"owner": "alice", "token_id": 1}], "callback": "http://127.0.0.1:8000/admin/reset"},
    }
    r = ex.submit_tx(tx)

    assert r["ok"] is False
    assert r["error"] == "callback_not_allowed"
    assert ex.next_nonce("mallory") == 1
    assert ex.callbacks.drain(timeout_s=2.0) is True
    assert posted == []


def test_refused_http_target_is_never_contacted(monkeypatch: pytest.MonkeyPatch) -> None:
    posted = _capture_posts(monkeypatch)
    router = CallbackRouter(allow_hosts=["hooks.example"])

    assert router.deliver({"target": "http://169.254.169.254/latest/meta-data", "payload": []}) is False
    assert router.deliver({"target": "file:///etc/passwd", "payload": []}) is False
    assert router.drain(timeout_s=2.0) is True
    assert posted == []
    assert metrics.snapshot()["counters"]["callbacks_failed"] == 2


def test_accepts_only_registered_or_allowed_hosts() -> None:
    router = CallbackRouter(allow_hosts=["Hooks.Example"])
    router.register("wallet", lambda _r: None)

    assert router.accepts("wallet") is True
    assert router.accepts("https://hooks.example/balances") is True
    assert router.accepts("http://HOOKS.example:8443/b") is True
    assert router.accepts("http://127.0.0.1/hook") is False
    assert router.accepts("http://hooks.example.evil/b") is False
    assert router.accepts("ftp://hooks.example/b") is False
    assert router.accepts("nowhere") is False
    assert router.accepts("") is False
    assert router.accepts(None) is False


def test_http_delivery_runs_off_the_caller_thread(monkeypatch: pytest.MonkeyPatch) -> None:
    posted = _capture_posts(monkeypatch)
    router = CallbackRouter(allow_hosts=["hooks.example"], http_timeout_s=3.0)
    ex = _ledger_with_holders(router)

    out = ex.execute(
        _env("BALANCE_OF", "carol", {"requests": [{"owner": "bob", "token_id": 1}], "callback": "https://hooks.example/b"})
    )
    assert out["applied"] == "BALANCE_OF"
    assert router.drain(timeout_s=5.0) is True

    expected = [{"request": {"owner": "bob", "token_id": 1}, "balance": 400}]
    assert posted == [("https://hooks.example/b", {"ok": True, "responses": expected}, 3.0)]
    assert metrics.snapshot()["counters"]["callbacks_delivered"] == 1
    ex.close()


def test_http_delivery_failure_is_counted(monkeypatch: pytest.MonkeyPatch) -> None:
    from tokenledger.runtime import callbacks as callbacks_mod

    def _unreachable(req, timeout=None):
        raise callbacks_mod.urllib.error.URLError("connection refused")

    monkeypatch.setattr(callbacks_mod.urllib.request, "urlopen", _unreachable)
    router = CallbackRouter(allow_hosts=["hooks.example"])

    assert router.deliver({"target": "https://hooks.example/b", "payload": [1]}) is True
    assert router.drain(timeout_s=5.0) is True
    router.stop()

    counters = metrics.snapshot()["counters"]
    assert counters["callbacks_failed"] == 1
    assert counters.get("callbacks_delivered", 0) == 0


def test_accounts_are_not_trimmed() -> None:
    router = CallbackRouter()
    got: List[Any] = []
    router.register(" wallet", got.append)
    ex = _ledger_with_holders(router)
    ex.execute(_env("MINT_TOKEN", "alice", {"token_id": 1, "amount": 7, "destination": "bob "}))

    v = ex.view()
    assert v.balance_of(1, "bob") == 400
    assert v.balance_of(1, "bob ") == 7

    ex.execute(_env("BALANCE_OF", "carol", {"requests": [{"owner": "bob ", "token_id": 1}], "callback": " wallet"}))
    assert got == [[{"request": {"owner": "bob ", "token_id": 1}, "balance": 7}]]
