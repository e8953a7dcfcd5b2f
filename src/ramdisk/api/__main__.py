# src/ramdisk/api/__main__.py
from __future__ import annotations

import uvicorn

from ramdisk.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so RAMDISK_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from ramdisk.api.app import create_app
    from ramdisk.runtime.chain_config import load_chain_config

    cfg = load_chain_config()
    uvicorn.run(create_app(cfg=cfg), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
