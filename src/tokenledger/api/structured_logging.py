# src/tokenledger/api/structured_logging.py
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

Json = Dict[str, Any]

_CONFIGURED_FLAG = "_tokenledger_configured"
_HEADER_SUBSET = ("user-agent", "content-type", "content-length", "x-forwarded-for")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dumps(obj: Json) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


class JsonLineFormatter(logging.Formatter):
    """Pass log_event lines through; wrap any other record as a JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if getattr(record, "jsonl", False) and not record.exc_info:
            return msg
        out: Json = {
            "ts_ms": int(record.created * 1000),
            "level": record.levelname,
            "logger": record.name,
            "message": msg,
        }
        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        return _dumps(out)


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Route stdlib logging to stderr as JSON lines.

    Level from the argument, else TOKENLEDGER_LOG_LEVEL (default INFO). Later
    calls only adjust the level.
    """
    name = (level_name or os.environ.get("TOKENLEDGER_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, _CONFIGURED_FLAG, False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLineFormatter())
    root.handlers = [handler]
    setattr(root, _CONFIGURED_FLAG, True)


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit one JSON line {"ts_ms", "event", **fields} at INFO."""
    payload: Json = dict(fields)
    payload["ts_ms"] = _now_ms()
    payload["event"] = event
    logger.info(_dumps(payload), extra={"jsonl": True})


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, tagged with a request id.

    An incoming x-request-id is reused and echoed; otherwise one is minted.

    Controls:
      - TOKENLEDGER_LOG_REQUESTS=0 to disable (default on)
      - TOKENLEDGER_LOG_REQUEST_HEADERS=1 to include a small header subset
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        on = (os.environ.get("TOKENLEDGER_LOG_REQUESTS") or "1").strip().lower()
        headers = (os.environ.get("TOKENLEDGER_LOG_REQUEST_HEADERS") or "").strip().lower()
        self._enabled = on not in {"0", "false", "no", "n", "off"}
        self._log_headers = headers in {"1", "true", "yes", "y", "on"}
        self._logger = logging.getLogger("tokenledger.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        fields: Json = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path or "",
            "client": request.client.host if request.client else "",
            "status": 500,
            "error": None,
        }
        if self._log_headers:
            fields["headers"] = {k: request.headers[k] for k in _HEADER_SUBSET if request.headers.get(k)}

        started = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            fields["error"] = str(e)
            raise
        else:
            fields["status"] = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        finally:
            fields["duration_ms"] = int((time.monotonic() - started) * 1000)
            log_event(self._logger, "http_request", **fields)
