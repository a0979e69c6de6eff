"""
Adapter: In-memory ledger store.

Implements LedgerStore port without a database, for local runs and tests.
Per-artwork and per-auction locks make every check-and-write atomic,
matching the compare-and-set guarantees of the SQL adapter.
"""

import logging
import threading
from dataclasses import replace
from decimal import Decimal
from typing import Iterator, Optional
from uuid import UUID

from fracart.domain.marketplace.entities import (
    Artwork,
    ArtworkStatus,
    Auction,
    AuctionStatus,
    Bid,
    Transaction,
)
from fracart.domain.marketplace.errors import (
    ArtworkNotFoundError,
    AuctionNotFoundError,
    ConflictError,
    InsufficientFractionsError,
)
from fracart.domain.marketplace.filters import ArtworkFilter, ArtworkSort, TransactionFilter
from fracart.domain.marketplace.ports import LedgerStore
from fracart.domain.marketplace.rules import (
    check_bid,
    check_bid_not_stale,
    consumes_fractions,
    validate_new_artwork,
    validate_transaction,
)

logger = logging.getLogger(__name__)


class _TransactionQuery:
    """Lazy, restartable view over the in-memory ledger."""

    def __init__(self, store: "InMemoryLedgerStore", txn_filter: TransactionFilter) -> None:
        self._store = store
        self._filter = txn_filter

    def __iter__(self) -> Iterator[Transaction]:
        snapshot = self._store._snapshot_transactions()
        matching = sorted(
            (t for t in snapshot if self._filter.matches(t)),
            key=self._filter.sort_key,
            reverse=self._filter.descending,
        )
        if self._filter.limit is not None:
            matching = matching[: self._filter.limit]
        return iter(matching)


class InMemoryLedgerStore(LedgerStore):
    """Thread-safe in-memory implementation of the ledger store."""

    def __init__(self) -> None:
        self._artworks: dict[UUID, Artwork] = {}
        self._transactions: list[Transaction] = []
        self._auctions: dict[UUID, Auction] = {}
        self._bids: list[Bid] = []
        self._guard = threading.Lock()
        self._entity_locks: dict[UUID, threading.Lock] = {}

    def _lock_for(self, entity_id: UUID) -> threading.Lock:
        with self._guard:
            return self._entity_locks.setdefault(entity_id, threading.Lock())

    def _snapshot_transactions(self) -> list[Transaction]:
        with self._guard:
            return list(self._transactions)

    # ------------------------------------------------------------------
    # Artworks
    # ------------------------------------------------------------------

    def create_artwork(self, artwork: Artwork) -> Artwork:
        validate_new_artwork(artwork)
        stored = replace(artwork, fractions_available=artwork.fractions_total)
        with self._guard:
            if stored.id in self._artworks:
                raise ConflictError(f"Artwork already exists: {stored.id}")
            self._artworks[stored.id] = stored
        logger.debug("Created artwork %s", stored.id)
        return stored

    def get_artwork(self, artwork_id: UUID) -> Optional[Artwork]:
        with self._guard:
            return self._artworks.get(artwork_id)

    def list_artworks(self, artwork_filter: ArtworkFilter) -> list[Artwork]:
        with self._guard:
            matching = [a for a in self._artworks.values() if artwork_filter.matches(a)]

        sort = artwork_filter.sort
        if sort is ArtworkSort.OLDEST:
            matching.sort(key=lambda a: (a.created_at, str(a.id)))
        elif sort is ArtworkSort.PRICE_LOW:
            matching.sort(key=lambda a: (a.price_amount, str(a.id)))
        elif sort is ArtworkSort.PRICE_HIGH:
            matching.sort(key=lambda a: (-a.price_amount, str(a.id)))
        elif sort is ArtworkSort.TITLE:
            matching.sort(key=lambda a: (a.title.lower(), str(a.id)))
        else:
            matching.sort(key=lambda a: (a.created_at, str(a.id)), reverse=True)
        return matching

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def record_transaction(self, txn: Transaction) -> Transaction:
        validate_transaction(txn)
        with self._lock_for(txn.artwork_id):
            artwork = self.get_artwork(txn.artwork_id)
            if artwork is None:
                raise ArtworkNotFoundError(str(txn.artwork_id))

            if consumes_fractions(txn):
                if artwork.status is not ArtworkStatus.AVAILABLE:
                    raise ConflictError(
                        f"Artwork {artwork.id} is not available for purchase"
                    )
                if artwork.fractions_available < txn.fraction_units:
                    raise InsufficientFractionsError(
                        str(artwork.id), txn.fraction_units, artwork.fractions_available
                    )
                remaining = artwork.fractions_available - txn.fraction_units
                artwork = replace(
                    artwork,
                    fractions_available=remaining,
                    status=ArtworkStatus.SOLD if remaining == 0 else artwork.status,
                )

            with self._guard:
                self._artworks[artwork.id] = artwork
                self._transactions.append(txn)

        logger.debug("Recorded %s transaction %s", txn.kind.value, txn.id)
        return txn

    def query_transactions(self, txn_filter: TransactionFilter) -> _TransactionQuery:
        return _TransactionQuery(self, txn_filter)

    # ------------------------------------------------------------------
    # Auctions and bids
    # ------------------------------------------------------------------

    def create_auction(self, auction: Auction) -> Auction:
        stored = replace(auction, current_bid=None, bid_count=0)
        with self._guard:
            if stored.id in self._auctions:
                raise ConflictError(f"Auction already exists: {stored.id}")
            self._auctions[stored.id] = stored
        return stored

    def get_auction(self, auction_id: UUID) -> Optional[Auction]:
        with self._guard:
            return self._auctions.get(auction_id)

    def list_auctions(self, status: Optional[AuctionStatus] = None) -> list[Auction]:
        with self._guard:
            auctions = [
                a for a in self._auctions.values() if status is None or a.status is status
            ]
        return sorted(auctions, key=lambda a: (a.created_at, str(a.id)), reverse=True)

    def record_bid(
        self,
        bid: Bid,
        min_increment: Decimal,
        expected_bid_count: Optional[int] = None,
    ) -> Auction:
        with self._lock_for(bid.auction_id):
            auction = self.get_auction(bid.auction_id)
            if auction is None:
                raise AuctionNotFoundError(str(bid.auction_id))
            check_bid_not_stale(auction, expected_bid_count)
            check_bid(auction, bid, min_increment)
            updated = replace(auction, current_bid=bid.amount, bid_count=auction.bid_count + 1)
            with self._guard:
                self._auctions[updated.id] = updated
                self._bids.append(bid)
        return updated

    def list_bids(self, auction_id: UUID) -> list[Bid]:
        with self._guard:
            bids = [b for b in self._bids if b.auction_id == auction_id]
        return sorted(bids, key=lambda b: (b.created_at, str(b.id)), reverse=True)

    def transition_auction(
        self,
        auction_id: UUID,
        expected: AuctionStatus,
        new_status: AuctionStatus,
    ) -> Auction:
        with self._lock_for(auction_id):
            auction = self.get_auction(auction_id)
            if auction is None:
                raise AuctionNotFoundError(str(auction_id))
            if auction.status is not expected:
                raise ConflictError(
                    f"Auction {auction_id} is {auction.status.value}, expected {expected.value}"
                )
            updated = replace(auction, status=new_status)
            with self._guard:
                self._auctions[auction_id] = updated
        return updated
