# src/ramdisk/runtime/apply/naming.py
from __future__ import annotations

"""ramdisk.runtime.apply.naming

First-come-first-served file naming, interlocked with the name-auction
registry.

Rules (checked once, at create time):
  - full-length (12 char) undotted names are free for anyone
  - dotted names and short names need naming authority over their suffix:
      * open auction on the suffix      -> auction_open (nobody may claim)
      * settled auction on the suffix   -> only the winning bidder
      * never bid on                    -> the account named like the suffix,
                                           or anyone if the name is undotted
                                           and no such account exists yet

Short names carry an invisible trailing dot in the network's naming scheme,
which is why they are treated like dotted names.
"""

from ramdisk.ledger.names import Name
from ramdisk.runtime.apply.context import ApplyContext
from ramdisk.runtime.errors import AUCTION_OPEN, SUFFIX_NOT_OWNED, ApplyError

FULL_NAME_LENGTH = 12

# Decision labels (recorded in receipts).
NOT_REQUIRED = "not_required"
BID_WINNER = "bid_winner"
SUFFIX_ACCOUNT = "suffix_account"
UNREGISTERED_NAME = "unregistered_name"


def authorization_required(filename: Name) -> bool:
    suffix = filename.suffix()
    is_short = filename.length() < FULL_NAME_LENGTH
    return suffix != filename or is_short


def authorize_filename(ctx: ApplyContext, owner: str, filename: Name) -> str:
    """Decide whether `owner` may claim `filename`.

    Returns the decision label, raises ApplyError otherwise. Only reads the
    registry; never writes to it.
    """
    if not authorization_required(filename):
        return NOT_REQUIRED

    suffix = filename.suffix()
    suffix_s = str(suffix)

    bid = ctx.store.get_name_bid(ctx.registry, suffix_s)
    if bid is not None:
        if bid.is_open:
            raise ApplyError(
                AUCTION_OPEN,
                "suffix_auction_open",
                {"filename": str(filename), "suffix": suffix_s},
            )
        if bid.high_bidder != owner:
            raise ApplyError(
                SUFFIX_NOT_OWNED,
                "suffix_winning_bid_not_owned",
                {"filename": str(filename), "suffix": suffix_s, "owner": owner},
            )
        return BID_WINNER

    if owner == suffix_s:
        return SUFFIX_ACCOUNT

    if suffix == filename and not ctx.store.account_exists(suffix_s):
        return UNREGISTERED_NAME

    raise ApplyError(
        SUFFIX_NOT_OWNED,
        "suffix_account_not_owned",
        {"filename": str(filename), "suffix": suffix_s, "owner": owner},
    )
