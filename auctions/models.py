"""
auctions/models.py -- Domain dataclasses for auctions and their bid ledger.

These are pure data containers. The rules that act on them live in
auctions/guard.py, auctions/bidding.py and auctions/lifecycle.py; the store
enforces the ledger's append-only shape on every write.

Separation of concerns: these dataclasses are the auction core's domain
truth. api/models.py owns the HTTP contract and maps to and from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any


class _Unset:
    """Marker for a patch field the caller did not send."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class Bid:
    """One entry in an auction's ledger.

    Entries are immutable once written. The first entry of every ledger is
    the opening bid, attributed to the owner.
    """

    bidder: str
    amount: float
    placed_at: str  # ISO 8601, UTC


@dataclass
class Auction:
    """A listed item and its bid ledger.

    current_bid always equals bid_history[-1].amount. min_bid is the opening
    bid captured at creation and never changes; neither does owner.

    version is the optimistic-concurrency token. It is 0 before the record is
    written and is bumped by the store on every committed write.
    """

    id: str
    owner: str
    current_bid: float
    min_bid: float
    title: str | None = None
    description: str | None = None
    image_ref: str | None = None
    validity_days: int | None = None
    bid_history: list[Bid] = field(default_factory=list)
    created_at: str = ""  # ISO 8601, set by store on insert
    version: int = 0


@dataclass
class AuctionDraft:
    """Caller-supplied fields for a new auction.

    current_bid becomes both the opening current_bid and the immutable
    min_bid. The owner is not part of the draft -- it is the authenticated
    caller, passed separately to create_auction().
    """

    current_bid: float
    title: str | None = None
    description: str | None = None
    image_ref: str | None = None
    validity_days: int | None = None


@dataclass
class AuctionPatch:
    """Owner-supplied partial update (merge-patch semantics).

    Every field defaults to UNSET. A field left UNSET keeps the stored
    value; any other value, including 0, "" and None, is applied. None is
    accepted for the display fields (clears them) but rejected for
    current_bid and validity_days by the lifecycle coordinator.
    """

    title: Any = UNSET
    description: Any = UNSET
    image_ref: Any = UNSET
    current_bid: Any = UNSET
    validity_days: Any = UNSET

    def present(self) -> dict[str, Any]:
        """Return {field_name: value} for every field the caller sent."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}
