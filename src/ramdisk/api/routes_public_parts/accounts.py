from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from ramdisk.api.routes_public_parts.common import _executor

router = APIRouter()

Json = Dict[str, Any]


@router.get("/accounts/{account}/ram")
def account_ram(account: str, request: Request) -> Json:
    ex = _executor(request)
    return {"ok": True, "account": account, "ram_bytes": int(ex.ram_usage(account))}


@router.get("/accounts/{account}/nonce")
def account_nonce(account: str, request: Request) -> Json:
    ex = _executor(request)
    return {"ok": True, "account": account, "nonce": int(ex.account_nonce(account))}
