"""
auctions/guard.py -- Ownership check for auction mutations.

Pure functions, no I/O. The lifecycle coordinator calls authorize() inside
the store's serialized update/delete so the check always sees the same state
the write is based on.
"""

from __future__ import annotations

from auctions.errors import Forbidden
from auctions.models import Auction


def is_owner(auction: Auction, requester: str) -> bool:
    """Return True if requester is the identity that created the auction."""
    return requester == auction.owner


def authorize(auction: Auction, requester: str, action: str = "modify") -> None:
    """Raise Forbidden unless requester owns the auction.

    action only shapes the error message ("update", "delete", ...).
    """
    if not is_owner(auction, requester):
        raise Forbidden(auction.id, requester, action)
