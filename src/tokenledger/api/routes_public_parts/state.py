# src/tokenledger/api/routes_public_parts/state.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from tokenledger.api.routes_public_parts.common import _executor

router = APIRouter()

Json = Dict[str, Any]


@router.get("/state/snapshot")
def state_snapshot(request: Request) -> Json:
    """Return the committed Store.

    Grows with the number of holders; operators may disable it at the edge.
    """
    ex = _executor(request)
    return {"ok": True, "ledger_id": ex.ledger_id, "state": ex.snapshot()}
