"""
auth/models.py -- Domain dataclass for registered accounts.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in auctions/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or auctions/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    email is the account's stable identity. The auction core stores it as
    Auction.owner and Bid.bidder and never interprets it beyond equality.

    hashed_password is a bcrypt hash; the plaintext is never stored.
    """

    email: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None
    is_active: bool = True
