# src/tokenledger/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from tokenledger.api.routes_public_parts.state import router as state_router
from tokenledger.api.routes_public_parts.status import router as status_router
from tokenledger.api.routes_public_parts.tokens import router as tokens_router
from tokenledger.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(status_router, prefix="/v1", tags=["status"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
public_router.include_router(tokens_router, prefix="/v1", tags=["tokens"])
public_router.include_router(state_router, prefix="/v1", tags=["state"])
