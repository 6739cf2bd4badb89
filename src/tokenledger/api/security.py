from __future__ import annotations

import os
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tokenledger.api.errors import ApiError
from tokenledger.runtime.metrics import inc_counter

DEFAULT_MAX_REQUEST_BYTES = 1_000_000

# Read-only surfaces never carry a body worth limiting.
_EXEMPT_PREFIXES: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health")


def _max_request_bytes() -> int:
    raw = (os.environ.get("TOKENLEDGER_MAX_REQUEST_BYTES") or "").strip()
    return int(raw) if raw.isdigit() else DEFAULT_MAX_REQUEST_BYTES


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Turn away oversized request bodies with 413 `tx_too_large` before any route runs.

    Configure:
      TOKENLEDGER_MAX_REQUEST_BYTES (default: 1_000_000)
      TOKENLEDGER_SIZE_LIMIT_DISABLE=1 to disable (only when enforced at the edge)
    """

    def __init__(self, app, *, max_bytes: Optional[int] = None) -> None:
        super().__init__(app)
        off = (os.environ.get("TOKENLEDGER_SIZE_LIMIT_DISABLE") or "").strip().lower()
        self._enabled = off not in {"1", "true", "yes", "y", "on"}
        self._max_bytes = int(max_bytes) if max_bytes is not None else _max_request_bytes()

    def _reject(self, size: int) -> JSONResponse:
        inc_counter("http_rejected_too_large")
        err = ApiError(413, "tx_too_large", "Request body too large", {"bytes": size, "max_bytes": self._max_bytes})
        return JSONResponse(status_code=err.status_code, content=err.to_json())

    async def dispatch(self, request: Request, call_next):
        path = request.url.path or ""
        if not self._enabled or path.startswith(_EXEMPT_PREFIXES):
            return await call_next(request)

        declared = (request.headers.get("content-length") or "").strip()
        if declared.isdigit() and int(declared) > self._max_bytes:
            return self._reject(int(declared))

        # Chunked uploads carry no Content-Length; cap the buffered body too.
        if request.method.upper() in {"POST", "PUT", "PATCH"}:
            body = await request.body()
            if len(body) > self._max_bytes:
                return self._reject(len(body))

        return await call_next(request)
