from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from ramdisk.api.errors import ApiError
from ramdisk.api.routes_public_parts.common import _executor
from ramdisk.ledger.types import UINT64_MAX

router = APIRouter()

Json = Dict[str, Any]


@router.get("/files/{filename}")
def get_file(filename: str, request: Request) -> Json:
    rec = _executor(request).get_file(filename)
    if rec is None:
        raise ApiError.not_found("not_found", "file_does_not_exist", {"filename": filename})
    return {"ok": True, "file": rec}


@router.get("/files/{filename}/nodes")
def list_nodes(filename: str, request: Request) -> Json:
    ex = _executor(request)
    if ex.get_file(filename) is None:
        raise ApiError.not_found("not_found", "file_does_not_exist", {"filename": filename})
    ids = ex.node_ids(filename)
    # Ids span the full uint64 range; send them as strings for JS clients.
    return {"ok": True, "filename": filename, "count": len(ids), "node_ids": [str(i) for i in ids]}


@router.get("/files/{filename}/nodes/{nodeid}")
def get_node(filename: str, nodeid: str, request: Request) -> Json:
    try:
        nid = int(nodeid)
    except ValueError:
        raise ApiError.bad_request("invalid_argument", "nodeid_not_integer", {"nodeid": nodeid})
    if nid < 0 or nid > UINT64_MAX:
        raise ApiError.bad_request("invalid_argument", "nodeid_out_of_range", {"nodeid": nodeid})

    node = _executor(request).get_node(filename, nid)
    if node is None:
        raise ApiError.not_found("not_found", "node_does_not_exist", {"filename": filename, "nodeid": nodeid})
    return {"ok": True, "filename": filename, "node": node}
