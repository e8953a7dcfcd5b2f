# src/ramdisk/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying action envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from ramdisk.runtime.apply.context import ApplyContext
from ramdisk.runtime.domain_dispatch import apply_tx
from ramdisk.runtime.errors import ApplyError
from ramdisk.runtime.sigverify import Authenticator
from ramdisk.runtime.store import ContractStore

Json = Dict[str, Any]


def apply_tx_atomic(
    store: ContractStore,
    env: Any,
    *,
    auth: Authenticator,
    registry: str = "eosio",
    delnodec_enforce_count: bool = False,
    on_commit: Optional[Callable[[ContractStore, Json], None]] = None,
) -> Json:
    """Apply one call with all-or-nothing semantics.

    On success every write of the call is committed together (plus whatever
    on_commit(store, meta) writes, e.g. nonce + receipt).

    On ApplyError (or any other exception) the store transaction is rolled
    back and nothing of the call is retained.
    """
    with store.transaction():
        ctx = ApplyContext(
            store=store,
            auth=auth,
            registry=str(registry),
            delnodec_enforce_count=bool(delnodec_enforce_count),
        )
        meta = apply_tx(ctx, env)
        if on_commit is not None:
            on_commit(store, meta)
        return meta


__all__ = ["ApplyError", "apply_tx", "apply_tx_atomic", "Json"]
