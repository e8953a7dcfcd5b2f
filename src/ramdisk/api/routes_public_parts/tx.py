from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import ValidationError

from ramdisk.api.errors import ApiError
from ramdisk.api.routes_public_parts.common import _executor, submit_result_error
from ramdisk.api.schemas import TxSubmitRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
async def tx_submit(request: Request) -> Json:
    """Submit one signed contract call.

    Returns:
      { ok, tx_id, seq, result } on success.
      Contract and admission failures map to 4xx with error.code set to the
      failure kind (e.g. not_owner, auction_open, bad_nonce).
    """
    ex = _executor(request)

    try:
        body = await request.json()
    except ValueError:
        raise ApiError.bad_request("bad_request", "Body must be valid JSON", {})
    if not isinstance(body, dict):
        raise ApiError.bad_request("bad_request", "Body must be a tx envelope object", {})

    try:
        req = TxSubmitRequest.model_validate(body)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        raise ApiError.bad_request("bad_shape", "envelope_fields_invalid", {"errors": errors})

    res = ex.submit_tx(req.to_envelope())
    if not res.get("ok"):
        raise submit_result_error(res)
    return res
