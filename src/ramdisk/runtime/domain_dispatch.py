# src/ramdisk/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from ramdisk.runtime.apply.context import ApplyContext
from ramdisk.runtime.apply.files import apply_files
from ramdisk.runtime.apply.nodes import apply_nodes
from ramdisk.runtime.apply.ranges import apply_ranges
from ramdisk.runtime.errors import ApplyError
from ramdisk.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]
ApplyFn = Callable[[ApplyContext, TxEnvelope], Optional[Json]]


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_files,
    apply_nodes,
    apply_ranges,
)


def apply_tx(ctx: ApplyContext, env: Any) -> Json:
    """Dispatch an envelope to the first applier that claims its action."""

    # Tests and tools pass raw dict envelopes; appliers rely on attribute access.
    env_norm: TxEnvelope = TxEnvelope.from_json(env)

    t = env_norm.action
    if not t:
        raise ApplyError("invalid_tx", "missing_action", {"action": t})

    for fn in _APPLIERS:
        try:
            out = fn(ctx, env_norm)
        except ApplyError:
            raise
        except Exception as e:
            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"action": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError("tx_unimplemented", "action_not_implemented", {"action": t})
