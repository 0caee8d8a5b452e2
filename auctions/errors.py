"""
auctions/errors.py -- Result kinds for the auction core.

Every operation returns its value on success and raises one of these on any
other outcome. The HTTP layer maps each class to a status code and error
code in one place (api/main.py); nothing below api/ knows about HTTP.
"""

from __future__ import annotations


class AuctionError(Exception):
    """Base class for every auction core outcome other than success."""


class AuctionNotFound(AuctionError):
    def __init__(self, auction_id: str) -> None:
        super().__init__(f"Auction {auction_id} not found.")
        self.auction_id = auction_id


class Forbidden(AuctionError):
    """The requester is not allowed to perform this action on the auction."""

    def __init__(self, auction_id: str, requester: str, action: str = "modify") -> None:
        super().__init__(f"You don't have permission to {action} auction {auction_id}.")
        self.auction_id = auction_id
        self.requester = requester
        self.action = action


class BidTooLow(AuctionError):
    """A business rejection, not a fault. current_bid tells the caller what to beat."""

    def __init__(self, auction_id: str, amount: float, current_bid: float) -> None:
        super().__init__(f"Bid amount {amount} must be higher than the current bid {current_bid}.")
        self.auction_id = auction_id
        self.amount = amount
        self.current_bid = current_bid


class OwnerNotFound(AuctionError):
    def __init__(self, owner: str) -> None:
        super().__init__("No registered user matches the auction owner.")
        self.owner = owner


class AuctionValidationError(AuctionError):
    """Input that cannot form a valid auction or bid (non-finite amount, negative days...)."""


class ConcurrentModification(AuctionError):
    """Every optimistic-concurrency attempt on one auction lost to another writer."""

    def __init__(self, auction_id: str, attempts: int) -> None:
        super().__init__(f"Auction {auction_id} kept changing; gave up after {attempts} attempts.")
        self.auction_id = auction_id
        self.attempts = attempts


class StoreUnavailable(AuctionError):
    """The database could not be reached or refused the operation."""
