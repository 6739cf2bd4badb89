from __future__ import annotations

import pytest

from tokenledger.runtime import metrics
from tokenledger.runtime.executor import LedgerExecutor


def test_counters_and_prometheus_format() -> None:
    metrics.inc_counter("tx_accepted")
    metrics.inc_counter("tx_accepted", 2)
    metrics.inc_counter("tx_rejected_schema:validation_error")
    metrics.set_gauge("token_count", 4)

    snap = metrics.snapshot()
    assert snap["counters"]["tx_accepted"] == 3
    assert snap["counters"]["tx_rejected_schema_validation_error"] == 1
    assert snap["gauges"]["token_count"] == 4

    text = metrics.format_prometheus()
    assert "tokenledger_tx_accepted 3" in text
    assert "tokenledger_token_count 4" in text
    assert "# TYPE tokenledger_token_count gauge" in text
    assert text.endswith("\n")


def test_executor_tracks_token_count_gauge() -> None:
    ex = LedgerExecutor(ledger_id="gauge")
    ex.execute({"tx_type": "CREATE_TOKEN", "signer": "a", "payload": {"name": "A", "decimals": 0, "supply": 1}})
    ex.execute({"tx_type": "CREATE_TOKEN", "signer": "a", "payload": {"name": "B", "decimals": 0, "supply": 1}})
    assert metrics.snapshot()["gauges"]["token_count"] == 2


@pytest.mark.parametrize("raw,expected", [("1", True), ("on", True), ("", False), ("0", False)])
def test_metrics_enabled_flag(monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("TOKENLEDGER_METRICS_ENABLED", raw)
    assert metrics.metrics_enabled() is expected
