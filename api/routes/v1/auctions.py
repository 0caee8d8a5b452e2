"""
api/routes/v1/auctions.py -- Auction and bidding routes for the auctionhouse REST API.

Routes:
  POST   /auctions                      -- create auction (owner = caller)
  GET    /auctions                      -- list all auctions (public)
  GET    /auctions/{auction_id}         -- auction detail + ledger (public)
  PATCH  /auctions/{auction_id}         -- merge-patch update (owner only)
  DELETE /auctions/{auction_id}         -- delete auction + ledger (owner only)
  POST   /auctions/{auction_id}/bids    -- place a bid (any signed-in user)
  GET    /auctions/{auction_id}/bids    -- bid history, oldest first (public)

Identity:
  The caller's identity is the authenticated account's email. It is never
  read from the request body, so a client cannot act as another owner or
  bid under another name.

Errors:
  Handlers do not catch auction core exceptions. AuctionNotFound, Forbidden,
  BidTooLow and the rest propagate to the handler registered in api/main.py,
  which maps each to its status code and error envelope.
"""

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    AuctionCreate,
    AuctionResponse,
    AuctionSummaryRow,
    AuctionUpdate,
    BidCreate,
    BidHistoryResponse,
    BidPlacedResponse,
    BidRow,
)
from auctions.bidding import BiddingEngine
from auctions.lifecycle import AuctionCoordinator
from auctions.models import AuctionDraft
from auth.dependencies import get_current_user
from auth.models import User

# Auth policy:
# - reads (GET) are public
# - every write requires a signed-in user; ownership is enforced by the core
router = APIRouter()


# ---------------------------------------------------------------------------
# POST /auctions -- create an auction
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/auctions", response_model=AuctionResponse, status_code=201)
def create_auction(
    request: Request,
    body: AuctionCreate,
    current_user: User = Depends(get_current_user),
) -> AuctionResponse:
    """List a new item. The opening bid is also recorded as min_bid and as the first ledger entry."""
    coordinator: AuctionCoordinator = request.app.state.coordinator
    draft = AuctionDraft(
        title=body.title,
        description=body.description,
        current_bid=body.current_bid,
        image_ref=body.image_ref,
        validity_days=body.validity_days,
    )
    auction = coordinator.create_auction(draft, current_user.email)
    return AuctionResponse.from_auction(auction)


# ---------------------------------------------------------------------------
# GET /auctions -- list all auctions
# ---------------------------------------------------------------------------


@limiter.limit("60/minute")
@router.get("/auctions", response_model=list[AuctionSummaryRow])
def list_auctions(request: Request) -> list[AuctionSummaryRow]:
    """Return every auction with its current bid and bid count."""
    coordinator: AuctionCoordinator = request.app.state.coordinator
    return [AuctionSummaryRow.from_auction(a) for a in coordinator.list_auctions()]


# ---------------------------------------------------------------------------
# GET /auctions/{auction_id} -- auction detail
# ---------------------------------------------------------------------------


@limiter.limit("60/minute")
@router.get("/auctions/{auction_id}", response_model=AuctionResponse)
def get_auction(request: Request, auction_id: str) -> AuctionResponse:
    coordinator: AuctionCoordinator = request.app.state.coordinator
    return AuctionResponse.from_auction(coordinator.get_auction(auction_id))


# ---------------------------------------------------------------------------
# PATCH /auctions/{auction_id} -- owner update
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.patch("/auctions/{auction_id}", response_model=AuctionResponse)
def update_auction(
    request: Request,
    auction_id: str,
    body: AuctionUpdate,
    current_user: User = Depends(get_current_user),
) -> AuctionResponse:
    """Apply only the fields present in the body. Owner only.

    A current_bid above the stored one is recorded in the ledger as the
    owner's bid; a lower one is rejected with bid_too_low.
    """
    coordinator: AuctionCoordinator = request.app.state.coordinator
    auction = coordinator.update_auction(auction_id, current_user.email, body.to_patch())
    return AuctionResponse.from_auction(auction)


# ---------------------------------------------------------------------------
# DELETE /auctions/{auction_id} -- owner delete
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.delete("/auctions/{auction_id}", status_code=204)
def delete_auction(
    request: Request,
    auction_id: str,
    current_user: User = Depends(get_current_user),
) -> Response:
    """Delete the auction and its whole ledger. Owner only."""
    coordinator: AuctionCoordinator = request.app.state.coordinator
    coordinator.delete_auction(auction_id, current_user.email)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# POST /auctions/{auction_id}/bids -- place a bid
# ---------------------------------------------------------------------------


@limiter.limit("60/minute")
@router.post("/auctions/{auction_id}/bids", response_model=BidPlacedResponse, status_code=201)
def place_bid(
    request: Request,
    auction_id: str,
    body: BidCreate,
    current_user: User = Depends(get_current_user),
) -> BidPlacedResponse:
    """Bid strictly above the current bid.

    A tie or lower amount returns 400 bid_too_low with the current bid in
    error.context.current_bid so the client can retry higher.
    """
    engine: BiddingEngine = request.app.state.bidding
    auction, bid = engine.place_bid(auction_id, current_user.email, body.amount)
    return BidPlacedResponse(bid=BidRow.from_bid(bid), auction=AuctionResponse.from_auction(auction))


# ---------------------------------------------------------------------------
# GET /auctions/{auction_id}/bids -- bid history
# ---------------------------------------------------------------------------


@limiter.limit("60/minute")
@router.get("/auctions/{auction_id}/bids", response_model=BidHistoryResponse)
def get_bid_history(request: Request, auction_id: str) -> BidHistoryResponse:
    """Return the auction's ledger in chronological order, opening bid first."""
    engine: BiddingEngine = request.app.state.bidding
    history = engine.get_bid_history(auction_id)
    return BidHistoryResponse(auction_id=auction_id, bid_history=[BidRow.from_bid(b) for b in history])
