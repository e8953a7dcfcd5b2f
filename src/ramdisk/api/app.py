from __future__ import annotations

import os
from typing import Optional

from fastapi import FastAPI

from ramdisk.api.errors import ApiError, api_error_handler
from ramdisk.api.routes_public import public_router
from ramdisk.api.security import RequestSizeLimitMiddleware
from ramdisk.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from ramdisk.runtime.chain_config import ChainConfig, default_chain_config, load_chain_config
from ramdisk.runtime.executor_boot import build_executor as _build_executor


def build_executor(cfg: Optional[ChainConfig] = None):
    """Build a RamdiskExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `ramdisk.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor(cfg)


def create_app(*, boot_runtime: bool = True, cfg: Optional[ChainConfig] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load chain config + attach executor
      - False: keep lightweight for unit tests / import-time validation

    cfg: explicit chain config; otherwise loaded from file/env when booting.
    """
    if cfg is None:
        cfg = load_chain_config() if boot_runtime else default_chain_config()

    configure_structured_logging(cfg.log_level)
    mode = (os.environ.get("RAMDISK_MODE") or cfg.mode).strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="Ramdisk Contract API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Ramdisk Contract API")

    app.state.cfg = cfg
    app.state.executor = build_executor(cfg) if boot_runtime else None

    app.add_exception_handler(ApiError, api_error_handler)

    # --- Middleware ---
    # Admission applies the exact envelope cap; this only bounds raw JSON bodies.
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=2 * int(cfg.max_tx_bytes))
    app.add_middleware(RequestLogMiddleware)

    # --- Routers ---
    app.include_router(public_router)

    return app
