"""
Auction and bid coordination.

State machine per auction:

    scheduled ──starts_at──▶ active ──ends_at──▶ closed_sold | closed_unsold
        │                      │
        └──── seller cancel ───┴──▶ cancelled

Time-driven transitions are applied lazily whenever an auction is read
for a write (and explicitly through ``advance``). Bids must beat the
current highest bid, or the start price before the first bid, by the
configured minimum increment.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

from fracart.domain.marketplace.entities import (
    Auction,
    AuctionStatus,
    Bid,
    RequestContext,
    utcnow,
)
from fracart.domain.marketplace.errors import (
    ArtworkNotFoundError,
    AuctionNotFoundError,
    AuthorizationError,
    ConflictError,
    ValidationError,
)
from fracart.domain.marketplace.events import AuctionClosed, BidAccepted
from fracart.domain.marketplace.ports import EventPublisher, LedgerStore
from fracart.domain.marketplace.rules import minimum_next_bid

logger = logging.getLogger(__name__)

DEFAULT_MIN_INCREMENT = Decimal("0.05")


def resolve_close(auction: Auction) -> AuctionStatus:
    """Closing status: sold only if there is a bid that meets the reserve."""
    if auction.current_bid is None:
        return AuctionStatus.CLOSED_UNSOLD
    if auction.reserve_price is not None and auction.current_bid < auction.reserve_price:
        return AuctionStatus.CLOSED_UNSOLD
    return AuctionStatus.CLOSED_SOLD


def next_transition(auction: Auction, now: datetime) -> Optional[AuctionStatus]:
    """Return the time-driven status an auction should move to, if any."""
    if auction.status is AuctionStatus.SCHEDULED:
        if auction.starts_at is None or auction.starts_at <= now:
            return AuctionStatus.ACTIVE
    elif auction.status is AuctionStatus.ACTIVE:
        if auction.ends_at is not None and auction.ends_at <= now:
            return resolve_close(auction)
    return None


@dataclass(frozen=True)
class BidResult:
    """Accepted bid and the auction as it stands afterwards."""

    bid: Bid
    auction: Auction


@dataclass(frozen=True)
class AuctionView:
    """Authoritative auction record with its bid history (newest first)."""

    auction: Auction
    bids: list[Bid] = field(default_factory=list)
    minimum_next_bid: Optional[Decimal] = None


class AuctionCoordinator:
    """Enforces auction lifecycle and bid-ordering rules.

    Args:
        store: Ledger store holding auctions and bids.
        publisher: Event publisher for BidAccepted and AuctionClosed.
        min_increment: Minimum relative raise over the highest bid.
        clock: Source of the current UTC time.
    """

    def __init__(
        self,
        store: LedgerStore,
        publisher: EventPublisher,
        min_increment: Decimal = DEFAULT_MIN_INCREMENT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._publisher = publisher
        self._min_increment = Decimal(str(min_increment))
        self._clock = clock

    @property
    def min_increment(self) -> Decimal:
        return self._min_increment

    def create_auction(
        self,
        ctx: RequestContext,
        artwork_id: UUID,
        start_price: Decimal,
        reserve_price: Optional[Decimal] = None,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
    ) -> Auction:
        """Open an auction on an artwork owned by the caller."""
        artwork = self._store.get_artwork(artwork_id)
        if artwork is None:
            raise ArtworkNotFoundError(str(artwork_id))
        if artwork.owner_user_id != ctx.user_id:
            raise AuthorizationError("Only the artwork owner can auction it")
        if start_price <= 0:
            raise ValidationError("Start price must be positive")
        if reserve_price is not None and reserve_price < 0:
            raise ValidationError("Reserve price cannot be negative")
        if starts_at is not None and ends_at is not None and ends_at <= starts_at:
            raise ValidationError("Auction must end after it starts")

        now = self._clock()
        if ends_at is not None and ends_at <= now:
            raise ValidationError("Auction end time is in the past")

        status = (
            AuctionStatus.ACTIVE
            if starts_at is None or starts_at <= now
            else AuctionStatus.SCHEDULED
        )
        auction = self._store.create_auction(
            Auction(
                id=uuid4(),
                artwork_id=artwork_id,
                seller_user_id=ctx.user_id,
                start_price=start_price,
                reserve_price=reserve_price,
                status=status,
                starts_at=starts_at,
                ends_at=ends_at,
                created_at=now,
            )
        )
        logger.info("Auction %s created for artwork=%s (%s)", auction.id, artwork_id, status.value)
        return auction

    def advance(self, auction_id: UUID, now: Optional[datetime] = None) -> Auction:
        """Apply any due time-driven transitions and return the auction."""
        now = now or self._clock()
        auction = self._require(auction_id)
        while (target := next_transition(auction, now)) is not None:
            try:
                auction = self._store.transition_auction(auction.id, auction.status, target)
            except ConflictError:
                # Another request moved it first; re-evaluate from the stored state.
                auction = self._require(auction_id)
                continue
            logger.info("Auction %s moved to %s", auction.id, auction.status.value)
            if auction.status.is_terminal:
                self._announce_close(auction)
        return auction

    def place_bid(self, ctx: RequestContext, auction_id: UUID, amount: Decimal) -> BidResult:
        """Place a bid attributed to the caller.

        Raises:
            ValidationError: If the auction is not active, the caller is the
                seller, or the amount is below the minimum next bid.
            ConflictError: If a concurrent bid won the race.
        """
        auction = self.advance(auction_id)
        if auction.status is not AuctionStatus.ACTIVE:
            raise ValidationError(f"Auction is not active (status: {auction.status.value})")
        if ctx.user_id == auction.seller_user_id:
            raise ValidationError("Sellers cannot bid on their own auction")
        minimum = minimum_next_bid(auction, self._min_increment)
        if amount < minimum:
            raise ValidationError(f"Bid must be at least {minimum}")

        bid = Bid(
            id=uuid4(),
            auction_id=auction.id,
            bidder_user_id=ctx.user_id,
            amount=amount,
            created_at=self._clock(),
        )
        updated = self._store.record_bid(
            bid, self._min_increment, expected_bid_count=auction.bid_count
        )
        logger.info(
            "Bid %s accepted on auction=%s amount=%s (bids=%d)",
            bid.id,
            auction.id,
            amount,
            updated.bid_count,
        )
        self._publisher.publish(
            BidAccepted(
                auction_id=auction.id,
                bid_id=bid.id,
                bidder_user_id=ctx.user_id,
                amount=amount,
                bid_count=updated.bid_count,
            )
        )
        return BidResult(bid=bid, auction=updated)

    def cancel(self, ctx: RequestContext, auction_id: UUID) -> Auction:
        """Cancel a scheduled or active auction. Seller only."""
        auction = self.advance(auction_id)
        if auction.seller_user_id != ctx.user_id:
            raise AuthorizationError("Only the seller can cancel an auction")
        if auction.status.is_terminal:
            raise ValidationError(f"Auction already {auction.status.value}")
        cancelled = self._store.transition_auction(
            auction.id, auction.status, AuctionStatus.CANCELLED
        )
        logger.info("Auction %s cancelled by seller", auction.id)
        return cancelled

    def close(
        self,
        auction_id: UUID,
        now: Optional[datetime] = None,
        ctx: Optional[RequestContext] = None,
    ) -> Auction:
        """Close an auction whose end time has passed.

        Open-ended auctions (no ``ends_at``) close on the seller's call.
        """
        auction = self.advance(auction_id, now)
        if auction.status.is_terminal:
            return auction
        open_ended = auction.status is AuctionStatus.ACTIVE and auction.ends_at is None
        if not (open_ended and ctx is not None and ctx.user_id == auction.seller_user_id):
            raise ValidationError("Auction has not reached its end time")

        closed = self._store.transition_auction(auction.id, auction.status, resolve_close(auction))
        logger.info("Auction %s closed by seller as %s", closed.id, closed.status.value)
        self._announce_close(closed)
        return closed

    def current_state(self, auction_id: UUID) -> AuctionView:
        """Return the authoritative auction state for reconciliation."""
        auction = self.advance(auction_id)
        minimum = (
            minimum_next_bid(auction, self._min_increment)
            if auction.status is AuctionStatus.ACTIVE
            else None
        )
        return AuctionView(
            auction=auction,
            bids=self._store.list_bids(auction.id),
            minimum_next_bid=minimum,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, auction_id: UUID) -> Auction:
        auction = self._store.get_auction(auction_id)
        if auction is None:
            raise AuctionNotFoundError(str(auction_id))
        return auction

    def _announce_close(self, auction: Auction) -> None:
        if auction.status is AuctionStatus.CANCELLED:
            return
        self._publisher.publish(
            AuctionClosed(
                auction_id=auction.id,
                artwork_id=auction.artwork_id,
                status=auction.status.value,
                winning_bid=(
                    auction.current_bid
                    if auction.status is AuctionStatus.CLOSED_SOLD
                    else None
                ),
            )
        )
