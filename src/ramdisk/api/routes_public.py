# src/ramdisk/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from ramdisk.api.routes_public_parts.accounts import router as accounts_router
from ramdisk.api.routes_public_parts.files import router as files_router
from ramdisk.api.routes_public_parts.health import router as health_router
from ramdisk.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])

# Read-only inspection
public_router.include_router(files_router, prefix="/v1", tags=["files"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
