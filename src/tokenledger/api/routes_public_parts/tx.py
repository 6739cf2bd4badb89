from __future__ import annotations

import json
from typing import Any, Dict

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from tokenledger.api.errors import ApiError
from tokenledger.api.routes_public_parts.common import _executor

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
async def tx_submit(request: Request) -> Json:
    """Submit one signed envelope and run it to completion.

    Returns the receipt { ok, tx_id, tx_type, result }. A rejected envelope
    (admission or apply) is a 403 carrying the ledger error code; the receipt
    is echoed under error.details.
    """
    ex = _executor(request)

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ApiError.bad_request("bad_request", "Body must be JSON", {"error": str(e)}) from e
    if not isinstance(body, dict):
        raise ApiError.bad_request("bad_request", "Body must be a tx envelope object", {})

    # submit_tx takes the executor lock and writes SQLite; keep it off the event loop.
    receipt = await run_in_threadpool(ex.submit_tx, body)
    if not receipt.get("ok"):
        raise ApiError.rejected(receipt)
    return receipt


@router.get("/tx/nonce/{signer}")
def tx_next_nonce(request: Request, signer: str) -> Json:
    """Nonce the signer must use for its next envelope."""
    ex = _executor(request)
    s = str(signer)
    return {"ok": True, "signer": s, "last_nonce": ex.last_nonce(s), "next_nonce": ex.next_nonce(s)}
