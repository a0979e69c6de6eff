"""
Port interfaces (ABCs) for the marketplace bounded context.

Ports define the contracts that the domain requires from the outside world.
Infrastructure adapters implement these interfaces.
The domain layer never depends on concrete implementations.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

from fracart.domain.marketplace.entities import (
    Artwork,
    Auction,
    AuctionStatus,
    Bid,
    Transaction,
    Valuation,
)
from fracart.domain.marketplace.events import DomainEvent
from fracart.domain.marketplace.filters import ArtworkFilter, TransactionFilter


class LedgerStore(ABC):
    """Port for the durable system of record.

    Implementations must make every check-then-write a single atomic
    operation: availability decrements and bid acceptance are
    compare-and-set, and a write either fully commits or leaves no trace.
    """

    @abstractmethod
    def create_artwork(self, artwork: Artwork) -> Artwork:
        """Persist a new artwork with all of its fractions available.

        Raises:
            ValidationError: If price <= 0 or fractions_total < 1.
        """
        raise NotImplementedError

    @abstractmethod
    def get_artwork(self, artwork_id: UUID) -> Optional[Artwork]:
        """Return an artwork by its ID, or None if not found."""
        raise NotImplementedError

    @abstractmethod
    def list_artworks(self, artwork_filter: ArtworkFilter) -> list[Artwork]:
        """Return artworks matching the browse filter, in its sort order."""
        raise NotImplementedError

    @abstractmethod
    def record_transaction(self, txn: Transaction) -> Transaction:
        """Append a transaction to the ledger.

        For fraction purchases, the availability decrement and the insert
        commit together.

        Raises:
            ArtworkNotFoundError: If the artwork does not exist.
            ConflictError: If too few fractions remain or the artwork is
                not open for purchase.
        """
        raise NotImplementedError

    @abstractmethod
    def query_transactions(self, txn_filter: TransactionFilter) -> Iterable[Transaction]:
        """Return a lazy, restartable sequence of matching transactions.

        Each iteration re-reads the store.
        """
        raise NotImplementedError

    @abstractmethod
    def create_auction(self, auction: Auction) -> Auction:
        """Persist a new auction."""
        raise NotImplementedError

    @abstractmethod
    def get_auction(self, auction_id: UUID) -> Optional[Auction]:
        """Return an auction by its ID, or None if not found."""
        raise NotImplementedError

    @abstractmethod
    def list_auctions(self, status: Optional[AuctionStatus] = None) -> list[Auction]:
        """Return auctions, newest first, optionally filtered by status."""
        raise NotImplementedError

    @abstractmethod
    def record_bid(
        self,
        bid: Bid,
        min_increment: Decimal,
        expected_bid_count: Optional[int] = None,
    ) -> Auction:
        """Append a bid and update the auction's highest bid atomically.

        ``expected_bid_count`` is the bid count the caller validated
        against; when given, any other stored count means the caller's
        view is stale.

        Returns:
            The auction as it stands after the bid.

        Raises:
            AuctionNotFoundError: If the auction does not exist.
            ValidationError: If the auction is not active or the amount is
                below the minimum increment over the current highest bid
                (or start price).
            ConflictError: If another bid won the race (stale highest bid).
        """
        raise NotImplementedError

    @abstractmethod
    def list_bids(self, auction_id: UUID) -> list[Bid]:
        """Return bids for an auction, newest first."""
        raise NotImplementedError

    @abstractmethod
    def transition_auction(
        self,
        auction_id: UUID,
        expected: AuctionStatus,
        new_status: AuctionStatus,
    ) -> Auction:
        """Move an auction between statuses if it is still in ``expected``.

        Raises:
            AuctionNotFoundError: If the auction does not exist.
            ConflictError: If the status changed concurrently.
        """
        raise NotImplementedError


class ValuationPort(ABC):
    """Port for the single authorized source of current-value numbers."""

    @abstractmethod
    def estimate(self, artwork_id: UUID) -> Valuation:
        """Return the current valuation of an artwork.

        Raises:
            UpstreamUnavailable: If the valuation cannot be produced.
        """
        raise NotImplementedError

    def invalidate(self, artwork_id: Optional[UUID] = None) -> int:
        """Drop cached valuations. Returns the number of entries dropped."""
        return 0


class ValuationCache(ABC):
    """Port for the time-bounded store of computed valuations.

    Entries expire ttl_seconds after they were written. Backends may be
    shared between processes, so a read must never return an expired entry.
    """

    @abstractmethod
    def get(self, artwork_id: UUID) -> Optional[Valuation]:
        """Return the live cached valuation, or None on a miss or expiry."""
        raise NotImplementedError

    @abstractmethod
    def set(self, artwork_id: UUID, valuation: Valuation, ttl_seconds: float) -> None:
        """Store a valuation, replacing any earlier entry for the artwork."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, artwork_id: Optional[UUID] = None) -> int:
        """Drop one entry, or every entry when no id is given.

        Returns:
            Number of entries dropped.
        """
        raise NotImplementedError


class MarketIndexPort(ABC):
    """Port for an externally supplied market-index factor."""

    @abstractmethod
    def factor_for(self, artwork: Artwork) -> Decimal:
        """Return the multiplicative market factor for an artwork (1 = flat)."""
        raise NotImplementedError


EventHandler = Callable[[DomainEvent], None]


class EventPublisher(ABC):
    """Port for emitting domain events to subscribers."""

    @abstractmethod
    def publish(self, event: DomainEvent):
        """Deliver an event to all interested subscribers, best effort."""
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, handler: EventHandler, event_type: Optional[str] = None) -> None:
        """Register a handler for one event type, or all when None."""
        raise NotImplementedError
