"""
Adapter: SQL ledger store.

Implements LedgerStore port on top of a SQLAlchemy engine.
Availability decrements and bid acceptance are single compare-and-set
UPDATE statements executed in the same database transaction as the
corresponding INSERT, so concurrent writers can never oversell fractions
or both win the highest bid.
"""

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator, Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from fracart.domain.marketplace.entities import (
    Artwork,
    ArtworkStatus,
    Auction,
    AuctionStatus,
    Bid,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from fracart.domain.marketplace.errors import (
    ArtworkNotFoundError,
    AuctionNotFoundError,
    ConflictError,
    InsufficientFractionsError,
)
from fracart.domain.marketplace.filters import (
    ArtworkFilter,
    ArtworkSort,
    TransactionFilter,
    TransactionOrder,
)
from fracart.domain.marketplace.ports import LedgerStore
from fracart.domain.marketplace.rules import (
    check_bid,
    check_bid_not_stale,
    consumes_fractions,
    validate_new_artwork,
    validate_transaction,
)

logger = logging.getLogger(__name__)

ARTWORK_COLUMNS = (
    "id, title, description, owner_user_id, price_amount, price_denom, "
    "fractions_total, fractions_available, status, created_at"
)
TRANSACTION_COLUMNS = (
    "id, buyer_user_id, seller_user_id, artwork_id, amount, currency, "
    "transaction_type, status, fraction_units, metadata, created_at"
)
AUCTION_COLUMNS = (
    "id, artwork_id, seller_user_id, start_price, reserve_price, status, "
    "starts_at, ends_at, current_bid, bid_count, created_at"
)

ARTWORK_ORDER = {
    ArtworkSort.NEWEST: "created_at DESC, id",
    ArtworkSort.OLDEST: "created_at ASC, id",
    ArtworkSort.PRICE_LOW: "price_amount ASC, id",
    ArtworkSort.PRICE_HIGH: "price_amount DESC, id",
    ArtworkSort.TITLE: "LOWER(title) ASC, id",
}


# ── Conversions ──────────────────────────────────────────────────────


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def _uuid(value: Any) -> Optional[UUID]:
    return None if value is None else UUID(str(value))


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_artwork(row) -> Artwork:
    return Artwork(
        id=_uuid(row.id),
        title=row.title,
        description=row.description,
        owner_user_id=_uuid(row.owner_user_id),
        price_amount=_decimal(row.price_amount),
        price_denom=row.price_denom,
        fractions_total=int(row.fractions_total),
        fractions_available=int(row.fractions_available),
        status=ArtworkStatus(row.status),
        created_at=_parse_ts(row.created_at),
    )


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        id=_uuid(row.id),
        buyer_user_id=_uuid(row.buyer_user_id),
        seller_user_id=_uuid(row.seller_user_id),
        artwork_id=_uuid(row.artwork_id),
        amount=_decimal(row.amount),
        currency=row.currency,
        kind=TransactionKind(row.transaction_type),
        status=TransactionStatus(row.status),
        fraction_units=int(row.fraction_units),
        metadata=json.loads(row.metadata or "{}"),
        created_at=_parse_ts(row.created_at),
    )


def _row_to_auction(row) -> Auction:
    return Auction(
        id=_uuid(row.id),
        artwork_id=_uuid(row.artwork_id),
        seller_user_id=_uuid(row.seller_user_id),
        start_price=_decimal(row.start_price),
        reserve_price=_decimal(row.reserve_price),
        status=AuctionStatus(row.status),
        starts_at=_parse_ts(row.starts_at),
        ends_at=_parse_ts(row.ends_at),
        current_bid=_decimal(row.current_bid),
        bid_count=int(row.bid_count),
        created_at=_parse_ts(row.created_at),
    )


def _row_to_bid(row) -> Bid:
    return Bid(
        id=_uuid(row.id),
        auction_id=_uuid(row.auction_id),
        bidder_user_id=_uuid(row.bidder_user_id),
        amount=_decimal(row.amount),
        created_at=_parse_ts(row.created_at),
    )


# ── Query object ─────────────────────────────────────────────────────


class _SqlTransactionQuery:
    """Lazy, restartable transaction query.

    Nothing is read until iteration starts; each iteration runs the
    query again against the current committed state.
    """

    def __init__(self, engine: Engine, txn_filter: TransactionFilter) -> None:
        self._engine = engine
        self._filter = txn_filter

    def _build(self) -> tuple[str, dict[str, Any]]:
        f = self._filter
        query = f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE 1=1"
        params: dict[str, Any] = {}

        if f.buyer_id is not None:
            query += " AND buyer_user_id = :buyer_id"
            params["buyer_id"] = str(f.buyer_id)
        if f.seller_id is not None:
            query += " AND seller_user_id = :seller_id"
            params["seller_id"] = str(f.seller_id)
        if f.participant_id is not None:
            query += " AND (buyer_user_id = :participant_id OR seller_user_id = :participant_id)"
            params["participant_id"] = str(f.participant_id)
        if f.artwork_id is not None:
            query += " AND artwork_id = :artwork_id"
            params["artwork_id"] = str(f.artwork_id)
        if f.status is not None:
            query += " AND status = :status"
            params["status"] = f.status.value
        if f.kind is not None:
            query += " AND transaction_type = :kind"
            params["kind"] = f.kind.value

        column = "amount" if f.order_by is TransactionOrder.AMOUNT else "created_at"
        direction = "DESC" if f.descending else "ASC"
        query += f" ORDER BY {column} {direction}, id {direction}"

        if f.limit is not None:
            query += " LIMIT :limit"
            params["limit"] = f.limit
        return query, params

    def __iter__(self) -> Iterator[Transaction]:
        query, params = self._build()
        with self._engine.connect() as conn:
            rows = conn.execute(text(query), params).fetchall()
        return iter([_row_to_transaction(row) for row in rows])


# ── Adapter ──────────────────────────────────────────────────────────


class SqlLedgerStore(LedgerStore):
    """SQL implementation of the ledger store.

    Implements the LedgerStore port defined in the domain layer.
    Call ``ensure_schema`` from the database module before first use.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Artworks
    # ------------------------------------------------------------------

    def create_artwork(self, artwork: Artwork) -> Artwork:
        validate_new_artwork(artwork)
        stored = replace(artwork, fractions_available=artwork.fractions_total)
        query = text(
            f"""
            INSERT INTO artworks ({ARTWORK_COLUMNS})
            VALUES (:id, :title, :description, :owner_user_id, :price_amount,
                    :price_denom, :fractions_total, :fractions_available,
                    :status, :created_at)
            """
        )
        with self._engine.begin() as conn:
            conn.execute(
                query,
                {
                    "id": str(stored.id),
                    "title": stored.title,
                    "description": stored.description,
                    "owner_user_id": str(stored.owner_user_id),
                    "price_amount": _money(stored.price_amount),
                    "price_denom": stored.price_denom,
                    "fractions_total": stored.fractions_total,
                    "fractions_available": stored.fractions_available,
                    "status": stored.status.value,
                    "created_at": _ts(stored.created_at),
                },
            )
        logger.debug("Created artwork %s", stored.id)
        return stored

    def get_artwork(self, artwork_id: UUID) -> Optional[Artwork]:
        with self._engine.connect() as conn:
            return self._fetch_artwork(conn, artwork_id)

    def list_artworks(self, artwork_filter: ArtworkFilter) -> list[Artwork]:
        query = f"SELECT {ARTWORK_COLUMNS} FROM artworks WHERE 1=1"
        params: dict[str, Any] = {}

        if artwork_filter.search:
            query += (
                " AND (LOWER(title) LIKE :pattern ESCAPE '\\'"
                " OR LOWER(COALESCE(description, '')) LIKE :pattern ESCAPE '\\')"
            )
            params["pattern"] = f"%{_escape_like(artwork_filter.search.lower())}%"
        if artwork_filter.status is not None:
            query += " AND status = :status"
            params["status"] = artwork_filter.status.value
        if artwork_filter.min_price is not None:
            query += " AND price_amount >= :min_price"
            params["min_price"] = _money(artwork_filter.min_price)
        if artwork_filter.max_price is not None:
            query += " AND price_amount <= :max_price"
            params["max_price"] = _money(artwork_filter.max_price)

        query += f" ORDER BY {ARTWORK_ORDER[artwork_filter.sort]}"

        with self._engine.connect() as conn:
            rows = conn.execute(text(query), params).fetchall()
        return [_row_to_artwork(row) for row in rows]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def record_transaction(self, txn: Transaction) -> Transaction:
        validate_transaction(txn)
        with self._engine.begin() as conn:
            if consumes_fractions(txn):
                self._decrement_fractions(conn, txn)
            elif self._fetch_artwork(conn, txn.artwork_id) is None:
                raise ArtworkNotFoundError(str(txn.artwork_id))

            conn.execute(
                text(
                    f"""
                    INSERT INTO transactions ({TRANSACTION_COLUMNS})
                    VALUES (:id, :buyer_user_id, :seller_user_id, :artwork_id,
                            :amount, :currency, :transaction_type, :status,
                            :fraction_units, :metadata, :created_at)
                    """
                ),
                {
                    "id": str(txn.id),
                    "buyer_user_id": str(txn.buyer_user_id),
                    "seller_user_id": str(txn.seller_user_id) if txn.seller_user_id else None,
                    "artwork_id": str(txn.artwork_id),
                    "amount": _money(txn.amount),
                    "currency": txn.currency,
                    "transaction_type": txn.kind.value,
                    "status": txn.status.value,
                    "fraction_units": txn.fraction_units,
                    "metadata": json.dumps(txn.metadata, default=str, sort_keys=True),
                    "created_at": _ts(txn.created_at),
                },
            )

        logger.debug("Recorded %s transaction %s", txn.kind.value, txn.id)
        return txn

    def query_transactions(self, txn_filter: TransactionFilter) -> _SqlTransactionQuery:
        return _SqlTransactionQuery(self._engine, txn_filter)

    # ------------------------------------------------------------------
    # Auctions and bids
    # ------------------------------------------------------------------

    def create_auction(self, auction: Auction) -> Auction:
        stored = replace(auction, current_bid=None, bid_count=0)
        query = text(
            f"""
            INSERT INTO auctions ({AUCTION_COLUMNS})
            VALUES (:id, :artwork_id, :seller_user_id, :start_price,
                    :reserve_price, :status, :starts_at, :ends_at,
                    NULL, 0, :created_at)
            """
        )
        with self._engine.begin() as conn:
            conn.execute(
                query,
                {
                    "id": str(stored.id),
                    "artwork_id": str(stored.artwork_id),
                    "seller_user_id": str(stored.seller_user_id),
                    "start_price": _money(stored.start_price),
                    "reserve_price": _money(stored.reserve_price),
                    "status": stored.status.value,
                    "starts_at": _ts(stored.starts_at),
                    "ends_at": _ts(stored.ends_at),
                    "created_at": _ts(stored.created_at),
                },
            )
        return stored

    def get_auction(self, auction_id: UUID) -> Optional[Auction]:
        with self._engine.connect() as conn:
            return self._fetch_auction(conn, auction_id)

    def list_auctions(self, status: Optional[AuctionStatus] = None) -> list[Auction]:
        query = f"SELECT {AUCTION_COLUMNS} FROM auctions WHERE 1=1"
        params: dict[str, Any] = {}
        if status is not None:
            query += " AND status = :status"
            params["status"] = status.value
        query += " ORDER BY created_at DESC, id DESC"

        with self._engine.connect() as conn:
            rows = conn.execute(text(query), params).fetchall()
        return [_row_to_auction(row) for row in rows]

    def record_bid(
        self,
        bid: Bid,
        min_increment: Decimal,
        expected_bid_count: Optional[int] = None,
    ) -> Auction:
        with self._engine.begin() as conn:
            auction = self._fetch_auction(conn, bid.auction_id)
            if auction is None:
                raise AuctionNotFoundError(str(bid.auction_id))
            check_bid_not_stale(auction, expected_bid_count)
            check_bid(auction, bid, min_increment)

            # Compare-and-set on the bid count observed above.
            result = conn.execute(
                text(
                    """
                    UPDATE auctions
                       SET current_bid = :amount,
                           bid_count = bid_count + 1
                     WHERE id = :id
                       AND status = 'active'
                       AND bid_count = :expected_count
                    """
                ),
                {
                    "amount": _money(bid.amount),
                    "id": str(auction.id),
                    "expected_count": auction.bid_count,
                },
            )
            if result.rowcount != 1:
                raise ConflictError(
                    f"Auction {auction.id} changed while bidding; refresh and retry"
                )

            conn.execute(
                text(
                    """
                    INSERT INTO bids (id, auction_id, bidder_user_id, amount, created_at)
                    VALUES (:id, :auction_id, :bidder_user_id, :amount, :created_at)
                    """
                ),
                {
                    "id": str(bid.id),
                    "auction_id": str(bid.auction_id),
                    "bidder_user_id": str(bid.bidder_user_id),
                    "amount": _money(bid.amount),
                    "created_at": _ts(bid.created_at),
                },
            )

        return replace(auction, current_bid=bid.amount, bid_count=auction.bid_count + 1)

    def list_bids(self, auction_id: UUID) -> list[Bid]:
        query = text(
            """
            SELECT id, auction_id, bidder_user_id, amount, created_at
            FROM bids
            WHERE auction_id = :auction_id
            ORDER BY created_at DESC, id DESC
            """
        )
        with self._engine.connect() as conn:
            rows = conn.execute(query, {"auction_id": str(auction_id)}).fetchall()
        return [_row_to_bid(row) for row in rows]

    def transition_auction(
        self,
        auction_id: UUID,
        expected: AuctionStatus,
        new_status: AuctionStatus,
    ) -> Auction:
        with self._engine.begin() as conn:
            result = conn.execute(
                text(
                    "UPDATE auctions SET status = :new_status "
                    "WHERE id = :id AND status = :expected"
                ),
                {
                    "new_status": new_status.value,
                    "id": str(auction_id),
                    "expected": expected.value,
                },
            )
            auction = self._fetch_auction(conn, auction_id)
            if auction is None:
                raise AuctionNotFoundError(str(auction_id))
            if result.rowcount != 1:
                raise ConflictError(
                    f"Auction {auction_id} is {auction.status.value}, expected {expected.value}"
                )
        return auction

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fetch_artwork(self, conn: Connection, artwork_id: UUID) -> Optional[Artwork]:
        row = conn.execute(
            text(f"SELECT {ARTWORK_COLUMNS} FROM artworks WHERE id = :id"),
            {"id": str(artwork_id)},
        ).first()
        return _row_to_artwork(row) if row is not None else None

    def _fetch_auction(self, conn: Connection, auction_id: UUID) -> Optional[Auction]:
        row = conn.execute(
            text(f"SELECT {AUCTION_COLUMNS} FROM auctions WHERE id = :id"),
            {"id": str(auction_id)},
        ).first()
        return _row_to_auction(row) if row is not None else None

    def _decrement_fractions(self, conn: Connection, txn: Transaction) -> None:
        """Atomically take ``fraction_units`` from the artwork, or raise."""
        result = conn.execute(
            text(
                """
                UPDATE artworks
                   SET fractions_available = fractions_available - :units,
                       status = CASE
                           WHEN fractions_available - :units = 0 THEN 'sold'
                           ELSE status
                       END
                 WHERE id = :artwork_id
                   AND status = 'available'
                   AND fractions_available >= :units
                """
            ),
            {"units": txn.fraction_units, "artwork_id": str(txn.artwork_id)},
        )
        if result.rowcount == 1:
            return

        artwork = self._fetch_artwork(conn, txn.artwork_id)
        if artwork is None:
            raise ArtworkNotFoundError(str(txn.artwork_id))
        if artwork.status is not ArtworkStatus.AVAILABLE:
            raise ConflictError(f"Artwork {artwork.id} is not available for purchase")
        raise InsufficientFractionsError(
            str(artwork.id), txn.fraction_units, artwork.fractions_available
        )
