# src/ramdisk/runtime/apply/nodes.py
from __future__ import annotations

"""ramdisk.runtime.apply.nodes

Node store apply semantics: upsert and delete single nodes of an existing
file. Nodes have no ownership of their own; the file's owner controls them.

No size limit is enforced here. Admission caps node data at max_node_bytes.
"""

from typing import Any, Dict, Optional

from ramdisk.ledger.types import NodeRecord
from ramdisk.runtime.apply.context import ApplyContext
from ramdisk.runtime.apply.files import auth_and_find_file
from ramdisk.runtime.tx_admission_types import TxEnvelope
from ramdisk.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


def set_node(ctx: ApplyContext, owner: str, filename: str, nodeid: int, data: bytes) -> Json:
    filename = auth_and_find_file(ctx, owner, filename).filename

    existing = ctx.store.get_node(filename, nodeid)
    if existing is None:
        ctx.store.insert_node(filename, NodeRecord(id=int(nodeid), data=bytes(data), payer=owner))
        created = True
    else:
        # Overwrite in place; the row stays billed to its original payer.
        ctx.store.set_node_data(filename, nodeid, bytes(data))
        created = False

    return {
        "applied": "setnode",
        "filename": filename,
        "nodeid": int(nodeid),
        "size": len(data),
        "created": created,
    }


def delete_node(ctx: ApplyContext, owner: str, filename: str, nodeid: int) -> Json:
    filename = auth_and_find_file(ctx, owner, filename).filename
    removed = ctx.store.erase_node(filename, nodeid)
    return {"applied": "delnode", "filename": filename, "nodeid": int(nodeid), "deleted": bool(removed)}


def apply_nodes(ctx: ApplyContext, env: TxEnvelope) -> Optional[Json]:
    t = str(getattr(env, "action", "") or "").strip().lower()

    if t == "setnode":
        p = parse_payload(t, env.payload)
        return set_node(ctx, p.owner, p.filename, p.nodeid, p.data_bytes)
    if t == "delnode":
        p = parse_payload(t, env.payload)
        return delete_node(ctx, p.owner, p.filename, p.nodeid)

    return None
