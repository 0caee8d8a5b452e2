"""
API request and response models for auctionhouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auctions/models.py,
which own the internal domain representation. Route handlers map between the
two.

Separation of concerns: auctions/ models = domain truth; api/ models = API contract.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auctions.models import Auction, AuctionPatch, Bid

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@" with something on both sides. The account email
# is an identity token, not a mailbox we deliver to.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    context carries structured values a client can act on, e.g.
    {"current_bid": 60.0} on a bid_too_low rejection.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    context: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    # bcrypt ignores everything past 72 bytes
    password: str = Field(min_length=8, max_length=72)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    # Same normalization as SignupRequest, so the email that signed up logs in.
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    email: str


class UserResponse(BaseModel):
    """Public view of an account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    is_active: bool
    created_at: str


# ---------------------------------------------------------------------------
# Auctions -- requests
# ---------------------------------------------------------------------------


class AuctionCreate(BaseModel):
    """Request body for POST /api/v1/auctions.

    The owner is the authenticated caller; it is not accepted from the body.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    current_bid: float = Field(ge=0, allow_inf_nan=False, description="Opening bid; also stored as min_bid.")
    image_ref: Optional[str] = Field(default=None, max_length=2048)
    validity_days: Optional[int] = Field(default=None, ge=0)


class AuctionUpdate(BaseModel):
    """Request body for PATCH /api/v1/auctions/{auction_id}.

    Merge-patch: only keys present in the JSON body are applied. Sending
    "title": "" sets an empty title; omitting "title" leaves it alone.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    # ge=0 so an auction opened at 0 can resend its current bid; the core
    # rejects any other non-positive amount.
    current_bid: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    image_ref: Optional[str] = Field(default=None, max_length=2048)
    validity_days: Optional[int] = Field(default=None, ge=0)

    def to_patch(self) -> AuctionPatch:
        """Build a domain patch from the fields the client actually sent."""
        return AuctionPatch(**{name: getattr(self, name) for name in self.model_fields_set})


class BidCreate(BaseModel):
    """Request body for POST /api/v1/auctions/{auction_id}/bids."""

    amount: float = Field(gt=0, allow_inf_nan=False)


# ---------------------------------------------------------------------------
# Auctions -- responses
# ---------------------------------------------------------------------------


class BidRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    bidder: str
    amount: float
    placed_at: str

    @classmethod
    def from_bid(cls, bid: Bid) -> "BidRow":
        return cls(bidder=bid.bidder, amount=bid.amount, placed_at=bid.placed_at)


class AuctionSummaryRow(BaseModel):
    """One row in the GET /auctions list -- no ledger detail."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: Optional[str]
    current_bid: float
    min_bid: float
    image_ref: Optional[str]
    owner: str
    validity_days: Optional[int]
    bid_count: int
    created_at: str

    @classmethod
    def from_auction(cls, auction: Auction) -> "AuctionSummaryRow":
        return cls(
            id=auction.id,
            title=auction.title,
            current_bid=auction.current_bid,
            min_bid=auction.min_bid,
            image_ref=auction.image_ref,
            owner=auction.owner,
            validity_days=auction.validity_days,
            # The opening entry is not a bid anyone placed.
            bid_count=len(auction.bid_history) - 1,
            created_at=auction.created_at,
        )


class AuctionResponse(BaseModel):
    """Full auction detail including the ledger."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: Optional[str]
    description: Optional[str]
    current_bid: float
    min_bid: float
    image_ref: Optional[str]
    owner: str
    validity_days: Optional[int]
    created_at: str
    bid_history: list[BidRow] = Field(default_factory=list)

    @classmethod
    def from_auction(cls, auction: Auction) -> "AuctionResponse":
        """Factory Method: the domain -> transport mapping lives beside the model."""
        return cls(
            id=auction.id,
            title=auction.title,
            description=auction.description,
            current_bid=auction.current_bid,
            min_bid=auction.min_bid,
            image_ref=auction.image_ref,
            owner=auction.owner,
            validity_days=auction.validity_days,
            created_at=auction.created_at,
            bid_history=[BidRow.from_bid(b) for b in auction.bid_history],
        )


class BidPlacedResponse(BaseModel):
    """Response for an accepted bid: the bid plus the auction as it now stands."""

    model_config = ConfigDict(frozen=True)

    message: str = "Bid placed successfully"
    bid: BidRow
    auction: AuctionResponse


class BidHistoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    auction_id: str
    bid_history: list[BidRow]
