"""
tests/test_api_routes.py -- Integration tests for the auction and auth API routes.

These tests exercise the full stack: FastAPI routing -> auth dependency injection
-> AuctionCoordinator/BiddingEngine/UserStore -> exception handlers -> response
model serialization. Unit testing individual route functions would miss
middleware, dependency injection, and the error envelope mapping.

Coverage:
  - Auth failures: 401 on every write route without a token
  - Auth routes: signup 201 / 409, login 200 / 401, me 200
  - Auction happy path: create 201, list 200, detail 200, patch 200, delete 204
  - Bidding: 400 bid_too_low with context.current_bid, 201 on a higher bid,
    history grows by one, 404 after delete
  - Ownership: 403 forbidden for non-owner patch and delete
  - Request validation: 422 envelope for bad bodies

Fixtures used (from conftest.py):
  - api_client: (client, owner_token, bidder_token)
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import BIDDER, OWNER, PASSWORD, bearer

Client = tuple[TestClient, str, str]


def _create(client: TestClient, token: str, **overrides) -> dict:
    body = {"title": "Brass lamp", "description": "Working.", "current_bid": 50, "validity_days": 7}
    body.update(overrides)
    resp = client.post("/api/v1/auctions", json=body, headers=bearer(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestApiAuthFailure:
    """Unauthenticated requests to protected API routes must return 401."""

    def test_create_unauthenticated(self, api_client: Client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/auctions", json={"current_bid": 10})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_bid_unauthenticated(self, api_client: Client) -> None:
        client, token, _ = api_client
        auction = _create(client, token)
        resp = client.post(f"/api/v1/auctions/{auction['id']}/bids", json={"amount": 60})
        assert resp.status_code == 401

    def test_patch_and_delete_unauthenticated(self, api_client: Client) -> None:
        client, token, _ = api_client
        auction = _create(client, token)
        assert client.patch(f"/api/v1/auctions/{auction['id']}", json={"title": "x"}).status_code == 401
        assert client.delete(f"/api/v1/auctions/{auction['id']}").status_code == 401

    def test_garbage_token(self, api_client: Client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/auth/me", headers=bearer("not-a-jwt"))
        assert resp.status_code == 401

    def test_me_unauthenticated(self, api_client: Client) -> None:
        client, _, _ = api_client
        assert client.get("/api/v1/auth/me").status_code == 401


class TestApiAuthRoutes:
    def test_me(self, api_client: Client) -> None:
        client, token, _ = api_client
        resp = client.get("/api/v1/auth/me", headers=bearer(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["email"] == OWNER
        assert "hashed_password" not in data

    def test_signup_then_duplicate(self, api_client: Client) -> None:
        client, _, _ = api_client
        body = {"email": "carol@example.com", "password": "carolpass123"}
        resp = client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 201, resp.text
        assert resp.json()["email"] == "carol@example.com"

        resp = client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "no-at-sign", "password": "longenough1"},
            {"email": "dave@example.com", "password": "short"},
        ],
    )
    def test_signup_validation(self, api_client: Client, body: dict) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_login_valid(self, api_client: Client) -> None:
        client, _, _ = api_client
        try:
            resp = client.post("/api/v1/auth/login", json={"email": OWNER, "password": PASSWORD})
            assert resp.status_code == 200, resp.text
            data = resp.json()
            assert data["access_token"]
            assert data["token_type"] == "bearer"
            assert data["email"] == OWNER
            assert resp.headers["Cache-Control"] == "no-store"
            assert "access_token" in resp.cookies
        finally:
            # The cookie outranks the Authorization header; later tests
            # must authenticate by their bearer tokens only.
            client.cookies.clear()

    def test_login_with_padded_email_used_at_signup(self, api_client: Client) -> None:
        client, _, _ = api_client
        body = {"email": "  erin@example.com ", "password": "erinpass123"}
        assert client.post("/api/v1/auth/signup", json=body).status_code == 201
        try:
            resp = client.post("/api/v1/auth/login", json=body)
            assert resp.status_code == 200, resp.text
            assert resp.json()["email"] == "erin@example.com"
        finally:
            client.cookies.clear()

    def test_login_wrong_password(self, api_client: Client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/auth/login", json={"email": OWNER, "password": "wrongpass"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_login_unknown_email_same_error(self, api_client: Client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "nobody@example.com", "password": "whatever1"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_logout(self, api_client: Client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200


class TestApiAuctionRoutes:
    def test_create(self, api_client: Client) -> None:
        client, token, _ = api_client
        data = _create(client, token)
        assert data["owner"] == OWNER
        assert data["current_bid"] == 50
        assert data["min_bid"] == 50
        assert len(data["bid_history"]) == 1
        assert data["bid_history"][0]["bidder"] == OWNER

    def test_owner_comes_from_token_not_body(self, api_client: Client) -> None:
        client, _, bidder_token = api_client
        resp = client.post(
            "/api/v1/auctions",
            json={"current_bid": 5, "owner": OWNER},
            headers=bearer(bidder_token),
        )
        assert resp.status_code == 201
        assert resp.json()["owner"] == BIDDER

    def test_create_negative_opening_bid(self, api_client: Client) -> None:
        client, token, _ = api_client
        resp = client.post("/api/v1/auctions", json={"current_bid": -1}, headers=bearer(token))
        assert resp.status_code == 422

    def test_list_is_public(self, api_client: Client) -> None:
        client, token, _ = api_client
        created = _create(client, token, title="Listed lamp")
        resp = client.get("/api/v1/auctions")
        assert resp.status_code == 200
        rows = {row["id"]: row for row in resp.json()}
        assert rows[created["id"]]["title"] == "Listed lamp"
        assert rows[created["id"]]["bid_count"] == 0

    def test_detail_is_public(self, api_client: Client) -> None:
        client, token, _ = api_client
        created = _create(client, token)
        resp = client.get(f"/api/v1/auctions/{created['id']}")
        assert resp.status_code == 200
        assert resp.json() == created

    def test_detail_not_found(self, api_client: Client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/auctions/" + "0" * 32)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "auction_not_found"

    def test_patch_merges_present_fields(self, api_client: Client) -> None:
        client, token, _ = api_client
        created = _create(client, token)
        resp = client.patch(
            f"/api/v1/auctions/{created['id']}",
            json={"title": "Renamed", "validity_days": 0},
            headers=bearer(token),
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["title"] == "Renamed"
        assert data["validity_days"] == 0
        assert data["description"] == created["description"]

    def test_patch_unknown_field_rejected(self, api_client: Client) -> None:
        client, token, _ = api_client
        created = _create(client, token)
        resp = client.patch(f"/api/v1/auctions/{created['id']}", json={"owner": BIDDER}, headers=bearer(token))
        assert resp.status_code == 422

    def test_patch_non_owner_forbidden(self, api_client: Client) -> None:
        client, token, bidder_token = api_client
        created = _create(client, token)
        resp = client.patch(f"/api/v1/auctions/{created['id']}", json={"title": "Mine now"}, headers=bearer(bidder_token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"
        assert client.get(f"/api/v1/auctions/{created['id']}").json()["title"] == created["title"]

    def test_patch_lower_current_bid(self, api_client: Client) -> None:
        client, token, _ = api_client
        created = _create(client, token)
        resp = client.patch(f"/api/v1/auctions/{created['id']}", json={"current_bid": 10}, headers=bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["context"]["current_bid"] == 50

    def test_patch_zero_current_bid_on_zero_opened_auction(self, api_client: Client) -> None:
        client, token, _ = api_client
        created = _create(client, token, current_bid=0)
        resp = client.patch(f"/api/v1/auctions/{created['id']}", json={"current_bid": 0}, headers=bearer(token))
        assert resp.status_code == 200, resp.text
        assert resp.json()["bid_history"] == created["bid_history"]

    def test_delete_non_owner_forbidden(self, api_client: Client) -> None:
        client, token, bidder_token = api_client
        created = _create(client, token)
        resp = client.delete(f"/api/v1/auctions/{created['id']}", headers=bearer(bidder_token))
        assert resp.status_code == 403

    def test_delete(self, api_client: Client) -> None:
        client, token, _ = api_client
        created = _create(client, token)
        resp = client.delete(f"/api/v1/auctions/{created['id']}", headers=bearer(token))
        assert resp.status_code == 204
        assert client.get(f"/api/v1/auctions/{created['id']}").status_code == 404


class TestApiBidRoutes:
    def test_bid_scenario(self, api_client: Client) -> None:
        """Opening 50: a 50 bid is too low, a 60 bid wins, history has two entries."""
        client, token, bidder_token = api_client
        auction_id = _create(client, token)["id"]
        url = f"/api/v1/auctions/{auction_id}/bids"

        resp = client.post(url, json={"amount": 50}, headers=bearer(bidder_token))
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "bid_too_low"
        assert error["context"]["current_bid"] == 50

        resp = client.post(url, json={"amount": 60}, headers=bearer(bidder_token))
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["bid"] == {**data["bid"], "bidder": BIDDER, "amount": 60}
        assert data["auction"]["current_bid"] == 60

        history = client.get(url).json()["bid_history"]
        assert [b["amount"] for b in history] == [50, 60]

    def test_history_not_found(self, api_client: Client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/auctions/missing/bids")
        assert resp.status_code == 404

    def test_bid_after_delete(self, api_client: Client) -> None:
        client, token, bidder_token = api_client
        auction_id = _create(client, token)["id"]
        client.delete(f"/api/v1/auctions/{auction_id}", headers=bearer(token))
        resp = client.post(f"/api/v1/auctions/{auction_id}/bids", json={"amount": 99}, headers=bearer(bidder_token))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "auction_not_found"

    @pytest.mark.parametrize("body", [{"amount": 0}, {"amount": -5}, {"amount": "lots"}, {}])
    def test_bid_validation(self, api_client: Client, body: dict) -> None:
        client, token, bidder_token = api_client
        auction_id = _create(client, token)["id"]
        resp = client.post(f"/api/v1/auctions/{auction_id}/bids", json=body, headers=bearer(bidder_token))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_bid_count_in_listing(self, api_client: Client) -> None:
        client, token, bidder_token = api_client
        auction_id = _create(client, token)["id"]
        for amount in (55, 60):
            client.post(f"/api/v1/auctions/{auction_id}/bids", json={"amount": amount}, headers=bearer(bidder_token))
        rows = {row["id"]: row for row in client.get("/api/v1/auctions").json()}
        assert rows[auction_id]["bid_count"] == 2
        assert rows[auction_id]["current_bid"] == 60
