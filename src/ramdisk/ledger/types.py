# src/ramdisk/ledger/types.py
from __future__ import annotations

"""Ledger-resident record types for the ramdisk contract.

Owner is a tagged variant rather than a magic account value:

    Owner = Account(name) | Immutable

Immutable is the one-way "no owner" state. No caller can authenticate as it,
so every ownership check against an Immutable file fails.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

Json = Dict[str, Any]

UINT64_MAX = (1 << 64) - 1


@dataclass(frozen=True, slots=True)
class Account:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class Immutable:
    def __str__(self) -> str:
        return ""


IMMUTABLE = Immutable()

Owner = Union[Account, Immutable]


def owner_to_json(owner: Owner) -> Optional[str]:
    """Persisted form: the account name, or None for Immutable."""
    if isinstance(owner, Account):
        return owner.name
    return None


def owner_from_json(raw: Any) -> Owner:
    if isinstance(raw, str) and raw.strip():
        return Account(raw.strip())
    return IMMUTABLE


def owner_is(owner: Owner, account: str) -> bool:
    return isinstance(owner, Account) and owner.name == account


@dataclass(frozen=True, slots=True)
class FileRecord:
    filename: str
    owner: Owner
    payer: str

    @property
    def immutable(self) -> bool:
        return isinstance(self.owner, Immutable)

    def to_json(self) -> Json:
        return {
            "filename": self.filename,
            "owner": owner_to_json(self.owner),
            "immutable": self.immutable,
            "payer": self.payer,
        }


@dataclass(frozen=True, slots=True)
class NodeRecord:
    id: int
    data: bytes = field(default=b"", repr=False)
    payer: str = ""

    def to_json(self) -> Json:
        return {
            "id": int(self.id),
            "data": self.data.hex(),
            "size": len(self.data),
            "payer": self.payer,
        }


@dataclass(frozen=True, slots=True)
class NameBid:
    """Read-only view of one name-auction registry entry.

    high_bid >= 0 means the auction is still open; a negative value marks it
    settled (the winner has been decided).
    """

    newname: str
    high_bidder: str
    high_bid: int
    last_bid_time_ms: int = 0

    @property
    def is_open(self) -> bool:
        return int(self.high_bid) >= 0

