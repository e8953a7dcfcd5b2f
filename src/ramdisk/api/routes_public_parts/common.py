from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from ramdisk.api.errors import ApiError
from ramdisk.runtime.errors import (
    ALREADY_EXISTS,
    AUCTION_OPEN,
    INVALID_ARGUMENT,
    NOT_FOUND,
    NOT_OWNER,
    PERMISSION_DENIED,
    SUFFIX_NOT_OWNED,
)

Json = Dict[str, Any]

# Contract failure kind -> HTTP status.
_APPLY_STATUS = {
    INVALID_ARGUMENT: 400,
    ALREADY_EXISTS: 409,
    NOT_FOUND: 404,
    NOT_OWNER: 403,
    PERMISSION_DENIED: 403,
    AUCTION_OPEN: 409,
    SUFFIX_NOT_OWNED: 403,
}

# Admission reject code -> HTTP status (default 400).
_ADMISSION_STATUS = {
    "unknown_signer": 403,
    "bad_nonce": 409,
}


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def submit_result_error(res: Json) -> ApiError:
    """Turn a failed executor.submit_tx() result into an ApiError."""
    code = str(res.get("error") or "bad_request")
    reason = str(res.get("reason") or code)
    details = dict(res.get("details") or {})
    if res.get("tx_id"):
        details.setdefault("tx_id", res.get("tx_id"))
    status = _APPLY_STATUS.get(code) or _ADMISSION_STATUS.get(code, 400)
    return ApiError(status, code, reason, details)
