from __future__ import annotations

import time
from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    ex = getattr(request.app.state, "executor", None)
    return {
        "ok": True,
        "ts_ms": _now_ms(),
        "executor_ready": ex is not None,
        "chain_id": str(getattr(ex, "chain_id", "") or ""),
    }
