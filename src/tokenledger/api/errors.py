from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

Json = Dict[str, Any]


class ApiError(Exception):
    """HTTP-facing error rendered as {"ok": false, "error": {code, message, details}}."""

    def __init__(self, status_code: int, code: str, message: str, details: Optional[Json] = None) -> None:
        super().__init__(message)
        self.status_code = int(status_code)
        self.code = str(code)
        self.message = str(message)
        self.details: Json = dict(details or {})

    @classmethod
    def bad_request(cls, code: str, message: str, details: Optional[Json] = None) -> "ApiError":
        return cls(400, code, message, details)

    @classmethod
    def not_found(cls, code: str, message: str, details: Optional[Json] = None) -> "ApiError":
        return cls(404, code, message, details)

    @classmethod
    def internal(cls, code: str, message: str, details: Optional[Json] = None) -> "ApiError":
        return cls(500, code, message, details)

    @classmethod
    def rejected(cls, receipt: Mapping[str, Any]) -> "ApiError":
        # Admission and apply rejections alike: 403 with the ledger error code,
        # the full receipt echoed for the client.
        return cls(
            403,
            str(receipt.get("error") or "tx_rejected"),
            str(receipt.get("reason") or "tx rejected"),
            {"receipt": dict(receipt)},
        )

    def to_json(self) -> Json:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}


async def api_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, ApiError):
        raise exc
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())
