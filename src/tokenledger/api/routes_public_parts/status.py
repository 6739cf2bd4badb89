# src/tokenledger/api/routes_public_parts/status.py
from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from tokenledger.api.errors import ApiError
from tokenledger.runtime.metrics import format_prometheus, metrics_enabled

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health(request: Request) -> Json:
    """Liveness, plus readiness once an executor is attached."""
    ex = getattr(request.app.state, "executor", None)
    out: Json = {
        "ok": True,
        "service": "tokenledger",
        "mode": (os.environ.get("TOKENLEDGER_MODE") or "prod").strip().lower(),
        "ts_ms": int(time.time() * 1000),
        "ready": ex is not None,
    }
    if ex is not None:
        st = ex.read_state()
        out["ledger_id"] = ex.ledger_id
        out["token_count"] = int(st.get("token_count", 0))
    return out


@router.get("/metrics", response_class=PlainTextResponse)
def metrics() -> str:
    # Off unless TOKENLEDGER_METRICS_ENABLED is set.
    if not metrics_enabled():
        raise ApiError.not_found("not_found", "metrics are disabled")
    return format_prometheus()
