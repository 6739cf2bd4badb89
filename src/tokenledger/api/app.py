from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tokenledger.api.errors import ApiError, api_error_handler
from tokenledger.api.routes_public import public_router
from tokenledger.api.security import RequestSizeLimitMiddleware
from tokenledger.api.structured_logging import RequestLogMiddleware, configure_structured_logging, log_event
from tokenledger.runtime.executor_boot import build_executor as _build_executor


def build_executor():
    """Build a LedgerExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `tokenledger.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load ledger config and attach app.state.executor
      - False: no executor; for unit tests of middleware and routing
    """
    mode = os.environ.get("TOKENLEDGER_MODE", "prod").strip().lower()
    configure_structured_logging()
    log = logging.getLogger("tokenledger.api")

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        ex = getattr(app.state, "executor", None)
        log_event(log, "api_start", mode=mode, ledger_id=getattr(ex, "ledger_id", None))
        yield
        if ex is not None:
            ex.close()
        log_event(log, "api_stop", mode=mode)

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(
            title="Token Ledger API",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=_lifespan,
        )
    else:
        app = FastAPI(title="Token Ledger API", lifespan=_lifespan)

    app.state.executor = build_executor() if boot_runtime else None

    app.add_exception_handler(ApiError, api_error_handler)

    # --- Middleware ---
    # Added last runs first: request logging wraps the size limiter.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    # --- Routers ---
    app.include_router(public_router)

    return app
