# src/ramdisk/runtime/apply/files.py
from __future__ import annotations

"""ramdisk.runtime.apply.files

File registry apply semantics.

Key invariants:
  - zero or one File record per file name; the record is the whole scope
  - ownership is exclusive and never transferred; it can only be given up
    for good via setimmutable (owner -> Immutable)
  - every mutating action except create goes through auth_and_find_file()
"""

from typing import Any, Dict, Optional

from ramdisk.ledger.names import Name
from ramdisk.ledger.types import IMMUTABLE, Account, FileRecord, owner_is
from ramdisk.runtime.apply.context import ApplyContext
from ramdisk.runtime.apply.naming import FULL_NAME_LENGTH, authorize_filename
from ramdisk.runtime.errors import (
    ALREADY_EXISTS,
    INVALID_ARGUMENT,
    NOT_FOUND,
    NOT_OWNER,
    PERMISSION_DENIED,
    ApplyError,
)
from ramdisk.runtime.tx_admission_types import TxEnvelope
from ramdisk.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


def _filename(raw: str) -> Name:
    try:
        return Name.from_str(str(raw or "").strip())
    except ValueError as e:
        raise ApplyError(INVALID_ARGUMENT, "invalid_filename", {"filename": raw}) from e


def _require_auth(ctx: ApplyContext, owner: str) -> None:
    if not ctx.auth.authenticate(owner):
        raise ApplyError(PERMISSION_DENIED, "missing_authority", {"owner": owner})


def auth_and_find_file(ctx: ApplyContext, owner: str, filename: str) -> FileRecord:
    """Shared gate for every mutating action on an existing file.

    Order: file exists -> caller is `owner` -> `owner` is the recorded owner.
    An Immutable file never matches, so it rejects every caller here.
    """
    fname = str(_filename(filename))
    rec = ctx.store.get_file(fname)
    if rec is None:
        raise ApplyError(NOT_FOUND, "file_does_not_exist", {"filename": fname})

    _require_auth(ctx, owner)

    if not owner_is(rec.owner, owner):
        raise ApplyError(
            NOT_OWNER,
            "not_file_owner",
            {"filename": fname, "owner": owner, "immutable": rec.immutable},
        )
    return rec


def create_file(ctx: ApplyContext, owner: str, filename: str) -> Json:
    fname = _filename(filename)
    fnlen = fname.length()
    if fnlen < 1 or fnlen > FULL_NAME_LENGTH:
        raise ApplyError(INVALID_ARGUMENT, "invalid_filename", {"filename": filename, "length": fnlen})

    _require_auth(ctx, owner)

    if ctx.store.get_file(str(fname)) is not None:
        raise ApplyError(ALREADY_EXISTS, "file_exists", {"filename": str(fname)})

    decision = authorize_filename(ctx, owner, fname)

    ctx.store.insert_file(FileRecord(filename=str(fname), owner=Account(owner), payer=owner))
    return {"applied": "create", "filename": str(fname), "owner": owner, "naming": decision}


def reset_file(ctx: ApplyContext, owner: str, filename: str) -> Json:
    filename = auth_and_find_file(ctx, owner, filename).filename
    removed = ctx.store.clear_nodes(filename)
    return {"applied": "reset", "filename": filename, "nodes_deleted": int(removed)}


def delete_file(ctx: ApplyContext, owner: str, filename: str) -> Json:
    filename = auth_and_find_file(ctx, owner, filename).filename
    ctx.store.erase_file(filename)
    removed = ctx.store.clear_nodes(filename)
    return {"applied": "del", "filename": filename, "nodes_deleted": int(removed)}


def set_immutable(ctx: ApplyContext, owner: str, filename: str) -> Json:
    filename = auth_and_find_file(ctx, owner, filename).filename
    ctx.store.set_file_owner(filename, IMMUTABLE)
    return {"applied": "setimmutable", "filename": filename}


# ---------------------------------------------------------------------------
# Dispatcher entrypoint
# ---------------------------------------------------------------------------

def apply_files(ctx: ApplyContext, env: TxEnvelope) -> Optional[Json]:
    t = str(getattr(env, "action", "") or "").strip().lower()

    if t == "create":
        p = parse_payload(t, env.payload)
        return create_file(ctx, p.owner, p.filename)
    if t == "reset":
        p = parse_payload(t, env.payload)
        return reset_file(ctx, p.owner, p.filename)
    if t == "del":
        p = parse_payload(t, env.payload)
        return delete_file(ctx, p.owner, p.filename)
    if t == "setimmutable":
        p = parse_payload(t, env.payload)
        return set_immutable(ctx, p.owner, p.filename)

    return None
