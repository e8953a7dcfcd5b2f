from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Contract failure codes. Every one of them aborts the whole call.
INVALID_ARGUMENT = "invalid_argument"
ALREADY_EXISTS = "already_exists"
NOT_FOUND = "not_found"
NOT_OWNER = "not_owner"
PERMISSION_DENIED = "permission_denied"
AUCTION_OPEN = "auction_open"
SUFFIX_NOT_OWNED = "suffix_not_owned"


@dataclass
class ApplyError(Exception):
    """Canonical error type for contract apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"
