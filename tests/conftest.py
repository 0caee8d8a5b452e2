"""
tests/conftest.py -- Shared test fixtures for auctionhouse unit and integration tests.

This module provides:
  - memory_url(): a fresh named shared-memory SQLite URL per call
  - store / users / coordinator / engine: isolated auction core for unit tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient with an owner and a bidder account for API tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any api/auth/core import:
  DEBUG=true                -- get_settings() auto-generates SECRET_KEY
  ALLOWED_HOSTS=testserver  -- TestClient's Host header passes TrustedHostMiddleware
  RATE_LIMIT_ENABLED=false  -- limits would trip across a module's requests
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auctions.bidding import BiddingEngine
from auctions.lifecycle import AuctionCoordinator
from auctions.store import AuctionStore
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password

OWNER = "owner@example.com"
BIDDER = "bidder@example.com"
PASSWORD = "testpass123"


def memory_url(prefix: str) -> str:
    """Return a named shared-memory SQLite URL no other test uses."""
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Unit fixtures -- one fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AuctionStore, None, None]:
    s = AuctionStore(memory_url("auctions"))
    yield s
    s.close()


@pytest.fixture
def users() -> Generator[UserStore, None, None]:
    """UserStore with OWNER and BIDDER registered."""
    s = UserStore(memory_url("auth"))
    for email in (OWNER, BIDDER):
        s.create_user(User(email=email, hashed_password=hash_password(PASSWORD)))
    yield s
    s.close()


@pytest.fixture
def coordinator(store: AuctionStore, users: UserStore) -> AuctionCoordinator:
    return AuctionCoordinator(store, users)


@pytest.fixture
def engine(store: AuctionStore) -> BiddingEngine:
    return BiddingEngine(store)


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, auction_store: AuctionStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the SQLite files beside the packages.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auction_store = auction_store
        app.state.coordinator = AuctionCoordinator(auction_store, user_store)
        app.state.bidding = BiddingEngine(auction_store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, owner_token, bidder_token) for API integration tests.

    Both accounts exist before the client starts: OWNER creates auctions,
    BIDDER bids on them. Tokens go in the Authorization header.
    """
    user_store = UserStore(memory_url("test_auth_api"))
    auction_store = AuctionStore(memory_url("test_auctions_api"))

    tokens = []
    for email in (OWNER, BIDDER):
        uid = user_store.create_user(User(email=email, hashed_password=hash_password(PASSWORD)))
        tokens.append(create_access_token(user_id=uid, email=email, expire_seconds=3600))

    app.router.lifespan_context = _patch_lifespan(user_store, auction_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, tokens[0], tokens[1]

    user_store.close()
    auction_store.close()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
