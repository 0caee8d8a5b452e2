"""
auctions/lifecycle.py -- Create, update, delete and read auctions.

AuctionCoordinator composes the ownership guard with the auction store. The
guard runs inside the store's serialized update/delete, never before it, so a
check and the write it permits always see the same version of the record.

Owners are checked against a UserDirectory -- anything with an
exists(identity) method. In the running app that is auth.store.UserStore;
the core never imports auth/.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Protocol

from auctions.bidding import validate_amount
from auctions.errors import AuctionNotFound, AuctionValidationError, BidTooLow, OwnerNotFound
from auctions.guard import authorize
from auctions.models import Auction, AuctionDraft, AuctionPatch, Bid
from auctions.store import AuctionStore

logger = logging.getLogger("auctionhouse.lifecycle")

# Patch fields that may be explicitly cleared with None.
_NULLABLE_FIELDS = {"title", "description", "image_ref"}


class UserDirectory(Protocol):
    def exists(self, identity: str) -> bool: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _validate_validity_days(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise AuctionValidationError(f"validity_days must be a non-negative integer, got {value!r}.")


def _validate_draft(draft: AuctionDraft) -> None:
    bid = draft.current_bid
    if isinstance(bid, bool) or not isinstance(bid, (int, float)) or not math.isfinite(bid) or bid < 0:
        raise AuctionValidationError(f"Opening bid must be a non-negative finite number, got {bid!r}.")
    if draft.validity_days is not None:
        _validate_validity_days(draft.validity_days)


def _validate_patch(patch: AuctionPatch, auction: Auction) -> dict[str, Any]:
    """Return the fields present in patch after checking each one.

    A current_bid equal to the stored one passes as a no-op even when it is
    not a valid bid amount (an auction opened at 0).
    """
    present = patch.present()
    for name, value in present.items():
        if value is None and name not in _NULLABLE_FIELDS:
            raise AuctionValidationError(f"{name} cannot be cleared.")
    if "validity_days" in present:
        _validate_validity_days(present["validity_days"])
    if "current_bid" in present:
        bid = present["current_bid"]
        if isinstance(bid, bool) or bid != auction.current_bid:
            validate_amount(bid)
        present["current_bid"] = float(present["current_bid"])
    return present


class AuctionCoordinator:
    """Owner-facing lifecycle operations.

    Usage:
        coordinator = AuctionCoordinator(store, user_store)
        auction = coordinator.create_auction(AuctionDraft(current_bid=50, title="Lamp"), "ann@example.com")
        coordinator.update_auction(auction.id, "ann@example.com", AuctionPatch(title="Brass lamp"))
        coordinator.delete_auction(auction.id, "ann@example.com")
    """

    def __init__(self, store: AuctionStore, users: UserDirectory) -> None:
        self._store = store
        self._users = users

    def create_auction(self, draft: AuctionDraft, owner: str) -> Auction:
        """Create an auction owned by owner, seeded with its opening bid.

        Raises OwnerNotFound if owner is not a registered user,
        AuctionValidationError for a malformed draft.
        """
        _validate_draft(draft)
        if not self._users.exists(owner):
            raise OwnerNotFound(owner)
        opening = float(draft.current_bid)
        auction = self._store.create(
            Auction(
                id="",
                owner=owner,
                title=draft.title,
                description=draft.description,
                image_ref=draft.image_ref,
                current_bid=opening,
                min_bid=opening,
                validity_days=draft.validity_days,
                bid_history=[Bid(bidder=owner, amount=opening, placed_at=_now_iso())],
            )
        )
        logger.info("Auction %s created (opening bid %.2f)", auction.id, opening)
        return auction

    def update_auction(self, auction_id: str, requester: str, patch: AuctionPatch) -> Auction:
        """Apply the fields present in patch. Only the owner may do this.

        A present current_bid above the stored one is recorded in the ledger
        as a bid by the owner, so current_bid always matches the ledger. An
        equal value changes nothing; a lower one raises BidTooLow.
        """
        sent = sorted(patch.present())

        def apply(auction: Auction) -> Auction:
            # Ownership first: a non-owner gets Forbidden whatever they sent.
            authorize(auction, requester, "update")
            present = _validate_patch(patch, auction)
            changes = {name: value for name, value in present.items() if name != "current_bid"}
            new_bid = present.get("current_bid")
            if new_bid is not None and new_bid != auction.current_bid:
                if new_bid < auction.current_bid:
                    raise BidTooLow(auction.id, new_bid, auction.current_bid)
                changes["current_bid"] = new_bid
                changes["bid_history"] = [
                    *auction.bid_history,
                    Bid(bidder=requester, amount=new_bid, placed_at=_now_iso()),
                ]
            return replace(auction, **changes)

        updated = self._store.update(auction_id, apply)
        logger.info("Auction %s updated (fields: %s)", auction_id, ", ".join(sent) or "none")
        return updated

    def delete_auction(self, auction_id: str, requester: str) -> None:
        """Delete the auction and its ledger. Only the owner may do this."""
        self._store.delete(auction_id, check=lambda auction: authorize(auction, requester, "delete"))
        logger.info("Auction %s deleted", auction_id)

    def list_auctions(self) -> list[Auction]:
        return self._store.list_all()

    def get_auction(self, auction_id: str) -> Auction:
        auction = self._store.get(auction_id)
        if auction is None:
            raise AuctionNotFound(auction_id)
        return auction
