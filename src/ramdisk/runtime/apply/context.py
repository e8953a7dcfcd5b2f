from __future__ import annotations

from dataclasses import dataclass

from ramdisk.runtime.sigverify import Authenticator
from ramdisk.runtime.store import ContractStore


@dataclass(frozen=True)
class ApplyContext:
    """Everything one contract call may touch.

    store:          host storage, already inside the call's transaction
    auth:           caller authentication for this call
    registry:       account that hosts the name-auction registry
    delnodec_enforce_count:
                    False -> delnodec stops only at the first id gap
                    True  -> it also stops after `count` deletions
    """

    store: ContractStore
    auth: Authenticator
    registry: str = "eosio"
    delnodec_enforce_count: bool = False
