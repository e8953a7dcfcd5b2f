# src/ramdisk/runtime/apply/__init__.py
"""Contract apply modules.

Each module implements deterministic state transitions for a subset of the
ramdisk actions and exposes one apply_* entrypoint that returns None for
actions it does not claim.

NOTE: Keep this package import-safe (no imports of domain_dispatch here).
"""

from __future__ import annotations

__all__ = [
    "context",
    "naming",
    "files",
    "nodes",
    "ranges",
]
