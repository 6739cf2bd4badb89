from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient


class _FakeExecutor(SimpleNamespace):
    """Minimal executor stub for API lifecycle tests."""


def test_create_app_boot_runtime_false_does_not_attach_executor() -> None:
    from tokenledger.api.app import create_app

    app = create_app(boot_runtime=False)
    assert getattr(app.state, "executor", None) is None

    # App should still be startable for route/middleware tests.
    with TestClient(app) as client:
        r = client.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["ready"] is False


def test_create_app_boot_runtime_true_attaches_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    from tokenledger.api import app as api_app

    closed = []

    def _fake_build_executor():
        return _FakeExecutor(ledger_id="ledger-test", close=lambda: closed.append(True))

    monkeypatch.setattr(api_app, "build_executor", _fake_build_executor)

    app = api_app.create_app(boot_runtime=True)
    assert getattr(app.state, "executor", None) is not None
    assert getattr(app.state.executor, "ledger_id", "") == "ledger-test"

    with TestClient(app) as _client:
        assert closed == []
    assert closed == [True]


def test_docs_disabled_in_prod(monkeypatch: pytest.MonkeyPatch) -> None:
    from tokenledger.api.app import create_app

    monkeypatch.setenv("TOKENLEDGER_MODE", "prod")
    c = TestClient(create_app(boot_runtime=False))
    assert c.get("/docs").status_code == 404

    monkeypatch.setenv("TOKENLEDGER_MODE", "dev")
    c = TestClient(create_app(boot_runtime=False))
    assert c.get("/openapi.json").status_code == 200


def test_request_id_header_is_echoed() -> None:
    from tokenledger.api.app import create_app

    c = TestClient(create_app(boot_runtime=False))
    r = c.get("/v1/health", headers={"x-request-id": "req-123"})
    assert r.headers.get("x-request-id") == "req-123"
