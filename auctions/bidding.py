"""
auctions/bidding.py -- Bid acceptance and the ledger read path.

place_bid() is the only code path that appends a third-party bid to an
auction's ledger. The acceptance test (amount strictly above current_bid)
runs inside AuctionStore.update(), so it is evaluated against the same state
the write is conditioned on. When a concurrent writer wins the race the store
re-runs the test against the new state: a bid that was valid against a stale
current_bid is rejected, never silently accepted.

Ties lose. A bid equal to current_bid raises BidTooLow, as does anything
lower. min_bid needs no separate check: it equals the opening bid and
current_bid never decreases.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from auctions.errors import AuctionNotFound, AuctionValidationError, BidTooLow, Forbidden
from auctions.guard import is_owner
from auctions.models import Auction, Bid
from auctions.store import AuctionStore

logger = logging.getLogger("auctionhouse.bidding")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_amount(amount: float) -> None:
    """Raise AuctionValidationError for amounts no auction can accept.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise AuctionValidationError(f"Amount must be a number, got {type(amount).__name__}.")
    if not math.isfinite(amount) or amount <= 0:
        raise AuctionValidationError(f"Amount must be a positive finite number, got {amount}.")


class BiddingEngine:
    """Validates and applies bids against the latest stored auction state.

    Usage:
        engine = BiddingEngine(store)
        auction, bid = engine.place_bid(auction_id, "bidder@example.com", 60)
        history = engine.get_bid_history(auction_id)
    """

    def __init__(self, store: AuctionStore, allow_owner_bids: bool = True) -> None:
        self._store = store
        self._allow_owner_bids = allow_owner_bids

    def place_bid(
        self,
        auction_id: str,
        bidder: str,
        amount: float,
        placed_at: Optional[str] = None,
    ) -> tuple[Auction, Bid]:
        """Accept a bid strictly above current_bid, or reject it without writing.

        Returns (updated auction, appended bid). Raises AuctionNotFound,
        BidTooLow (with the current bid), Forbidden (owner bidding while
        allow_owner_bids is off), or AuctionValidationError.
        """
        validate_amount(amount)
        amount = float(amount)

        def accept(auction: Auction) -> Auction:
            if not self._allow_owner_bids and is_owner(auction, bidder):
                raise Forbidden(auction.id, bidder, "bid on")
            if amount <= auction.current_bid:
                raise BidTooLow(auction.id, amount, auction.current_bid)
            bid = Bid(bidder=bidder, amount=amount, placed_at=placed_at or _now_iso())
            return replace(auction, current_bid=amount, bid_history=[*auction.bid_history, bid])

        try:
            updated = self._store.update(auction_id, accept)
        except BidTooLow as exc:
            logger.info(
                "Bid rejected on auction %s: %.2f <= current %.2f",
                auction_id,
                exc.amount,
                exc.current_bid,
            )
            raise

        bid = updated.bid_history[-1]
        logger.info(
            "Bid accepted on auction %s: %.2f (ledger length %d)",
            auction_id,
            bid.amount,
            len(updated.bid_history),
        )
        return updated, bid

    def get_bid_history(self, auction_id: str) -> list[Bid]:
        """Return the auction's ledger, oldest entry first. Raises AuctionNotFound."""
        auction = self._store.get(auction_id)
        if auction is None:
            raise AuctionNotFound(auction_id)
        return list(auction.bid_history)
