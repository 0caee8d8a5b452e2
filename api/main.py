"""
api/main.py -- FastAPI application entry point for auctionhouse.

Run with:      python main.py serve
               uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan opens the stores and builds the auction core on startup, and closes
the stores on shutdown. Nothing holds a database connection at import time:
every component gets its store passed in.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auctions import router as auctions_router
from api.routes.v1.auth import router as auth_router
from auctions.bidding import BiddingEngine
from auctions.errors import (
    AuctionError,
    AuctionNotFound,
    AuctionValidationError,
    BidTooLow,
    ConcurrentModification,
    Forbidden,
    OwnerNotFound,
    StoreUnavailable,
)
from auctions.lifecycle import AuctionCoordinator
from auctions.store import AuctionStore
from auth.store import UserStore
from core.config import get_settings

API_VERSION = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, _settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("auctionhouse.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores, build the auction core, and tear both down symmetrically.

    Startup order matters: the coordinator needs both stores (auctions and
    the user directory), and the bidding engine shares the auction store with
    the coordinator so both go through the same per-auction locks.
    """
    logger.info("auctionhouse API starting up")
    # Empty URL settings fall back to the SQLite file beside each store module.
    store_args = [_settings.auction_db_url] if _settings.auction_db_url else []
    auction_store = AuctionStore(*store_args, max_attempts=_settings.bid_max_attempts)
    user_store = UserStore(_settings.auth_db_url) if _settings.auth_db_url else UserStore()
    app.state.auction_store = auction_store
    app.state.user_store = user_store
    app.state.coordinator = AuctionCoordinator(auction_store, user_store)
    app.state.bidding = BiddingEngine(auction_store, allow_owner_bids=_settings.allow_owner_bids)
    logger.info("Stores initialized (allow_owner_bids=%s)", _settings.allow_owner_bids)

    yield

    auction_store.close()
    user_store.close()
    logger.info("auctionhouse API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Auction System API",
    description="Accounts, auction listings, and bidding with an append-only bid history.",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/api-docs",
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["User"])
app.include_router(auctions_router, prefix="/api/v1", tags=["Auction"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Auction core result kind -> (HTTP status, error code). Looked up along the
# exception's MRO so a subclass inherits its parent's mapping.
_AUCTION_ERRORS: dict[type[AuctionError], tuple[int, str]] = {
    AuctionNotFound: (404, "auction_not_found"),
    Forbidden: (403, "forbidden"),
    BidTooLow: (400, "bid_too_low"),
    OwnerNotFound: (404, "owner_not_found"),
    AuctionValidationError: (422, "validation_error"),
    ConcurrentModification: (409, "conflict"),
    StoreUnavailable: (503, "store_unavailable"),
}


@app.exception_handler(AuctionError)
async def auction_error_handler(request: Request, exc: AuctionError) -> JSONResponse:
    """Translate an auction core outcome into its HTTP response."""
    status_code, code = 500, "internal_error"
    for cls in type(exc).__mro__:
        if cls in _AUCTION_ERRORS:
            status_code, code = _AUCTION_ERRORS[cls]
            break
    context = None
    if isinstance(exc, BidTooLow):
        context = {"current_bid": exc.current_bid}
    if isinstance(exc, StoreUnavailable):
        logger.warning("Store unavailable on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=str(exc), context=context)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or path params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail. When detail is already a dict, use it directly as the error field.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


def _database_status(request: Request) -> str:
    try:
        with request.app.state.auction_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check: auction database unreachable")
        return "error"
    return "ok"


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and per-component status."""
    database = _database_status(request)
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": database},
    )
