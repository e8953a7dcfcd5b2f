# src/ramdisk/runtime/apply/ranges.py
from __future__ import annotations

"""ramdisk.runtime.apply.ranges

Bulk node deletion.

  delnodes(startid, endid)  every existing node with startid <= id <= endid;
                            gaps are skipped
  delnodec(startid, count)  the contiguous run startid, startid+1, ...;
                            stops at the first missing id

Both walk the file's ordered node index and are unbounded per call: the host's
per-call budget is the only ceiling, so callers split very large deletions.
"""

from typing import Any, Dict, Optional

from ramdisk.ledger.types import UINT64_MAX
from ramdisk.runtime.apply.context import ApplyContext
from ramdisk.runtime.apply.files import auth_and_find_file
from ramdisk.runtime.store import next_node_id
from ramdisk.runtime.tx_admission_types import TxEnvelope
from ramdisk.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


def delete_node_range(ctx: ApplyContext, owner: str, filename: str, startid: int, endid: int) -> Json:
    filename = auth_and_find_file(ctx, owner, filename).filename

    store = ctx.store
    deleted = 0
    nid = store.lower_bound(filename, int(startid))
    while nid is not None and nid <= int(endid):
        store.erase_node(filename, nid)
        deleted += 1
        nid = next_node_id(store, filename, nid)

    return {
        "applied": "delnodes",
        "filename": filename,
        "startid": int(startid),
        "endid": int(endid),
        "nodes_deleted": deleted,
    }


def delete_node_run(ctx: ApplyContext, owner: str, filename: str, startid: int, count: int) -> Json:
    filename = auth_and_find_file(ctx, owner, filename).filename

    store = ctx.store
    limit = int(count) if ctx.delnodec_enforce_count else None
    deleted = 0
    expected = int(startid)
    nid = store.lower_bound(filename, expected)
    while nid is not None and nid == expected:
        if limit is not None and deleted >= limit:
            break
        store.erase_node(filename, nid)
        deleted += 1
        if expected >= UINT64_MAX:
            break
        expected += 1
        nid = store.lower_bound(filename, expected)

    return {
        "applied": "delnodec",
        "filename": filename,
        "startid": int(startid),
        "count": int(count),
        "count_enforced": limit is not None,
        "nodes_deleted": deleted,
    }


def apply_ranges(ctx: ApplyContext, env: TxEnvelope) -> Optional[Json]:
    t = str(getattr(env, "action", "") or "").strip().lower()

    if t == "delnodes":
        p = parse_payload(t, env.payload)
        return delete_node_range(ctx, p.owner, p.filename, p.startid, p.endid)
    if t == "delnodec":
        p = parse_payload(t, env.payload)
        return delete_node_run(ctx, p.owner, p.filename, p.startid, p.count)

    return None
