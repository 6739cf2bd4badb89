from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from tokenledger.api.errors import ApiError
from tokenledger.ledger.state import LedgerView
from tokenledger.runtime.errors import UndefinedToken

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _view(request: Request) -> LedgerView:
    return _executor(request).view()


def _undefined_token(e: UndefinedToken) -> ApiError:
    return ApiError.not_found(e.code, "token is not defined", dict(e.details or {}))
