#!/usr/bin/env python3
"""
auctionhouse -- Auction listings and bidding with an append-only bid history.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py list
  python main.py list --json
  python main.py history 3f2c9e1a...
  python main.py history 3f2c9e1a... --json

Environment variables:
  AUCTION_DB_URL  SQLAlchemy URL of the auction store (default: SQLite file
                  beside the auctions package).
  SECRET_KEY      JWT signing key; required unless DEBUG=true.
"""

import argparse
import json
from dataclasses import asdict
from typing import Optional

from auctions.models import Auction
from auctions.store import AuctionStore
from core.config import get_settings


def _open_store(db_url: Optional[str]) -> AuctionStore:
    url = db_url or get_settings().auction_db_url
    return AuctionStore(url) if url else AuctionStore()


def _print_auctions(auctions: list[Auction]) -> None:
    if not auctions:
        print("  No auctions listed.")
        return
    print(f"  {'ID':<32}  {'CURRENT':>10}  {'BIDS':>4}  {'OWNER':<24}  TITLE")
    print("  " + "─" * 90)
    for a in auctions:
        print(
            f"  {a.id:<32}  {a.current_bid:>10.2f}  {len(a.bid_history) - 1:>4}  "
            f"{a.owner:<24}  {a.title or '(untitled)'}"
        )


def _print_history(auction: Auction) -> None:
    print(f"\n  {auction.title or '(untitled)'} -- {auction.id}")
    print(f"  Owner: {auction.owner}   Opening bid: {auction.min_bid:.2f}")
    print("  " + "─" * 60)
    for seq, bid in enumerate(auction.bid_history):
        marker = "opening" if seq == 0 else f"#{seq}"
        print(f"  {marker:>8}  {bid.amount:>10.2f}  {bid.bidder:<24}  {bid.placed_at}")
    print()


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    store = _open_store(args.db_url)
    try:
        auctions = store.list_all()
    finally:
        store.close()

    if args.json:
        rows = [
            {
                "id": a.id,
                "title": a.title,
                "owner": a.owner,
                "current_bid": a.current_bid,
                "min_bid": a.min_bid,
                "bid_count": len(a.bid_history) - 1,
                "created_at": a.created_at,
            }
            for a in auctions
        ]
        print(json.dumps(rows, indent=2))
    else:
        _print_auctions(auctions)
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    store = _open_store(args.db_url)
    try:
        auction = store.get(args.auction_id)
    finally:
        store.close()

    if auction is None:
        print(f"  [!] Auction '{args.auction_id}' not found.")
        return 1

    if args.json:
        print(
            json.dumps(
                {"auction_id": auction.id, "bid_history": [asdict(b) for b in auction.bid_history]},
                indent=2,
            )
        )
    else:
        _print_history(auction)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="auctionhouse",
        description="Auction listings and bidding with an append-only bid history.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py list --json
  python main.py history 3f2c9e1a0b7d4c6e8f10a2b3c4d5e6f7
        """,
    )
    parser.add_argument(
        "--db-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy URL of the auction store (overrides AUCTION_DB_URL)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the REST API under uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=cmd_serve)

    listing = sub.add_parser("list", help="Print all auctions")
    listing.add_argument("--json", action="store_true", help="Output structured JSON")
    listing.set_defaults(func=cmd_list)

    history = sub.add_parser("history", help="Print the bid history of one auction")
    history.add_argument("auction_id", metavar="AUCTION_ID")
    history.add_argument("--json", action="store_true", help="Output structured JSON")
    history.set_defaults(func=cmd_history)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
