# src/ramdisk/runtime/executor_boot.py

from __future__ import annotations

from typing import Optional

from ramdisk.runtime.chain_config import ChainConfig, load_chain_config
from ramdisk.runtime.executor import RamdiskExecutor


def build_executor(cfg: Optional[ChainConfig] = None) -> RamdiskExecutor:
    """
    Build a RamdiskExecutor from an explicit chain config or, if omitted,
    from RAMDISK_CHAIN_CONFIG_PATH / RAMDISK_* environment variables.

    This keeps the API stable for `ramdisk.api.app`, which calls build_executor()
    with no args in production.
    """
    return RamdiskExecutor(cfg=cfg or load_chain_config())
