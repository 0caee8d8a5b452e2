"""
auctions/store.py -- SQLAlchemy-backed persistence layer for auctions.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auctions/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. AuctionStore is the repository; the
_row_to_* functions are the mappers. Route handlers and the engine never
touch SQL directly.

Ledger layout: each Auction row owns an ordered run of rows in `bids`,
numbered by seq (0 = opening bid). Auction.bid_history is that run, read back
in seq order. The ledger is append-only: update() refuses any new state whose
history is not the stored history plus new entries at the end.

Serialization: update() and delete() run read -> mutator/check -> write under
a per-auction KeyedLock, and the write itself is conditional on the version
read (UPDATE ... WHERE version = :seen). A version miss means another process
wrote first; the whole read -> mutator -> write cycle is re-run against the
fresh state, up to max_attempts times. Row update and ledger append commit in
one transaction.

Reads: get() and list_all() are one joined SELECT each. A single statement
sees a single committed state, so a reader never pairs an auction row with a
ledger from a different write.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = AuctionStore()                               # SQLite default
    store = AuctionStore("postgresql://user:pw@host/db") # PostgreSQL
    auction = store.create(Auction(id="", owner=..., ...))
    store.update(auction.id, lambda a: replace(a, title="New title"))
    store.delete(auction.id)
    store.close()
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from auctions.errors import AuctionNotFound, AuctionValidationError, ConcurrentModification, StoreUnavailable
from auctions.locks import KeyedLock
from auctions.models import Auction, Bid

logger = logging.getLogger("auctionhouse.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'auctionhouse.db'}"
_DEFAULT_MAX_ATTEMPTS = 5

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_auctions = Table(
    "auctions",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("owner", String(255), nullable=False),
    Column("title", String(255)),
    Column("description", Text),
    Column("image_ref", Text),
    Column("current_bid", Float, nullable=False),
    Column("min_bid", Float, nullable=False),
    Column("validity_days", Integer),
    Column("created_at", String(32), nullable=False),
    Column("version", Integer, nullable=False, server_default="1"),
)

_bids = Table(
    "bids",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("auction_id", String(32), nullable=False),
    Column("seq", Integer, nullable=False),  # position in the ledger, 0 = opening bid
    Column("bidder", String(255), nullable=False),
    Column("amount", Float, nullable=False),
    Column("placed_at", String(32), nullable=False),
    UniqueConstraint("auction_id", "seq", name="uq_auction_bid_seq"),
)

# Fields a write may change on the auction row. id, owner, min_bid and
# created_at are fixed at insert.
_MUTABLE_COLUMNS = ("title", "description", "image_ref", "current_bid", "validity_days")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _check_ledger(auction: Auction) -> None:
    """Raise AuctionValidationError unless the ledger is non-empty and ends at current_bid."""
    if not auction.bid_history:
        raise AuctionValidationError("An auction must carry at least its opening bid.")
    if auction.bid_history[-1].amount != auction.current_bid:
        raise AuctionValidationError(
            f"current_bid {auction.current_bid} does not match the latest ledger entry "
            f"{auction.bid_history[-1].amount}."
        )


def _check_transition(current: Auction, updated: Auction) -> None:
    """Reject a new state that rewrites history or touches immutable fields.

    Raises ValueError: a mutator that does this is a programming error, not a
    caller mistake.
    """
    for name in ("id", "owner", "min_bid", "created_at"):
        if getattr(updated, name) != getattr(current, name):
            raise ValueError(f"Auction.{name} is immutable.")
    stored = len(current.bid_history)
    if updated.bid_history[:stored] != current.bid_history:
        raise ValueError("The bid ledger is append-only; existing entries cannot change.")
    _check_ledger(updated)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuctionStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL, max_attempts: int = _DEFAULT_MAX_ATTEMPTS) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync route handlers in a thread pool, so a pooled
            # connection may be used from a thread other than its creator.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        self.max_attempts = max_attempts
        self._locks = KeyedLock()
        with self._connect() as conn:
            metadata.create_all(conn)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Yield a connection; driver-level failures surface as StoreUnavailable.

        Leaving the block without commit() rolls the transaction back.
        """
        try:
            with self.engine.connect() as conn:
                yield conn
        except OperationalError as exc:
            logger.error("Auction store operation failed: %s", exc.orig)
            raise StoreUnavailable("The auction store is unavailable.") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, auction_id: str) -> Optional[Auction]:
        """Fetch one auction with its full ledger. Returns None if not found.

        Row and ledger come from one statement, so they always belong to the
        same committed state.
        """
        with self._connect() as conn:
            rows = conn.execute(
                _joined_select().where(_auctions.c.id == auction_id).order_by(_bids.c.seq)
            ).fetchall()
        auctions = _rows_to_auctions(rows)
        return auctions[0] if auctions else None

    def list_all(self) -> list[Auction]:
        """Return every auction with its ledger, oldest first.

        One joined statement regardless of auction count, grouped in Python.
        A single statement reads a single snapshot, so no auction in the
        result mixes states.
        """
        with self._connect() as conn:
            rows = conn.execute(
                _joined_select().order_by(_auctions.c.created_at, _auctions.c.id, _bids.c.seq)
            ).fetchall()
        return _rows_to_auctions(rows)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, auction: Auction) -> Auction:
        """Insert a new auction with its opening ledger and return the stored record.

        The id is generated here; any id on the argument is ignored. The
        auction row and every ledger entry are written in one transaction.
        """
        _check_ledger(auction)
        stored = replace(auction, id=uuid.uuid4().hex, created_at=_now_iso(), version=1)
        with self._connect() as conn:
            conn.execute(
                _auctions.insert().values(
                    id=stored.id,
                    owner=stored.owner,
                    title=stored.title,
                    description=stored.description,
                    image_ref=stored.image_ref,
                    current_bid=stored.current_bid,
                    min_bid=stored.min_bid,
                    validity_days=stored.validity_days,
                    created_at=stored.created_at,
                    version=stored.version,
                )
            )
            _insert_bids(conn, stored.id, stored.bid_history, start=0)
            conn.commit()
        return stored

    def update(self, auction_id: str, mutator: Callable[[Auction], Auction]) -> Auction:
        """Apply mutator to the latest state of one auction and persist the result.

        mutator receives a private copy of the stored auction and returns the
        new state. It may raise to abort; nothing is written in that case and
        the exception propagates. It may run more than once if another
        process writes the same auction concurrently, each time against the
        fresh state.

        Returns the stored auction. Raises AuctionNotFound if the auction does
        not exist (or is deleted between attempts), ConcurrentModification if
        every attempt lost a version race.
        """
        with self._locks.hold(auction_id):
            for attempt in range(1, self.max_attempts + 1):
                current = self.get(auction_id)
                if current is None:
                    raise AuctionNotFound(auction_id)
                updated = mutator(copy.deepcopy(current))
                _check_transition(current, updated)
                if updated == current:
                    return current
                if self._write(current, updated):
                    return replace(updated, version=current.version + 1)
                logger.warning(
                    "Version conflict on auction %s (attempt %d/%d); retrying against fresh state",
                    auction_id,
                    attempt,
                    self.max_attempts,
                )
        raise ConcurrentModification(auction_id, self.max_attempts)

    def delete(self, auction_id: str, check: Optional[Callable[[Auction], None]] = None) -> None:
        """Delete one auction and its ledger in a single transaction.

        check, if given, receives the latest stored state under the same
        serialization as update() and may raise to abort the delete.
        """
        with self._locks.hold(auction_id):
            for attempt in range(1, self.max_attempts + 1):
                current = self.get(auction_id)
                if current is None:
                    raise AuctionNotFound(auction_id)
                if check is not None:
                    check(current)
                with self._connect() as conn:
                    result = conn.execute(
                        _auctions.delete().where(
                            (_auctions.c.id == auction_id) & (_auctions.c.version == current.version)
                        )
                    )
                    if result.rowcount == 1:
                        conn.execute(_bids.delete().where(_bids.c.auction_id == auction_id))
                        conn.commit()
                        return
                    conn.rollback()
                logger.warning(
                    "Version conflict deleting auction %s (attempt %d/%d)",
                    auction_id,
                    attempt,
                    self.max_attempts,
                )
        raise ConcurrentModification(auction_id, self.max_attempts)

    def _write(self, current: Auction, updated: Auction) -> bool:
        """Conditionally write updated over current. Returns False on a version miss."""
        new_bids = updated.bid_history[len(current.bid_history) :]
        with self._connect() as conn:
            result = conn.execute(
                _auctions.update()
                .where((_auctions.c.id == current.id) & (_auctions.c.version == current.version))
                .values(
                    **{name: getattr(updated, name) for name in _MUTABLE_COLUMNS},
                    version=current.version + 1,
                )
            )
            if result.rowcount != 1:
                conn.rollback()
                return False
            try:
                _insert_bids(conn, current.id, new_bids, start=len(current.bid_history))
            except IntegrityError:
                # (auction_id, seq) already taken: someone appended without
                # going through the version check. Treat as a lost race.
                conn.rollback()
                return False
            conn.commit()
        return True

    def close(self) -> None:
        self.engine.dispose()


def _insert_bids(conn: Connection, auction_id: str, bids: list[Bid], start: int) -> None:
    if not bids:
        return
    conn.execute(
        _bids.insert(),
        [
            {
                "auction_id": auction_id,
                "seq": seq,
                "bidder": bid.bidder,
                "amount": bid.amount,
                "placed_at": bid.placed_at,
            }
            for seq, bid in enumerate(bids, start=start)
        ],
    )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _joined_select():
    """auctions LEFT JOIN bids; bid columns are prefixed to keep them apart from the auction's."""
    return select(
        _auctions,
        _bids.c.seq.label("bid_seq"),
        _bids.c.bidder.label("bid_bidder"),
        _bids.c.amount.label("bid_amount"),
        _bids.c.placed_at.label("bid_placed_at"),
    ).select_from(_auctions.outerjoin(_bids, _bids.c.auction_id == _auctions.c.id))


def _rows_to_auctions(rows) -> list[Auction]:
    """Fold joined rows (ordered by auction, then seq) into Auctions."""
    auctions: dict[str, Auction] = {}
    for row in rows:
        auction = auctions.get(row.id)
        if auction is None:
            auction = auctions[row.id] = _row_to_auction(row, [])
        if row.bid_seq is not None:
            auction.bid_history.append(_row_to_bid(row))
    return list(auctions.values())


def _row_to_bid(row) -> Bid:
    return Bid(bidder=row.bid_bidder, amount=row.bid_amount, placed_at=row.bid_placed_at)


def _row_to_auction(row, bids: list[Bid]) -> Auction:
    return Auction(
        id=row.id,
        owner=row.owner,
        title=row.title,
        description=row.description,
        image_ref=row.image_ref,
        current_bid=row.current_bid,
        min_bid=row.min_bid,
        validity_days=row.validity_days,
        bid_history=bids,
        created_at=row.created_at,
        version=row.version,
    )
