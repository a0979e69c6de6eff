"""
Tests for the AuctionCoordinator.

Time-driven transitions use a settable clock; events are captured on a
real in-process event bus.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import make_artwork
from fracart.domain.marketplace.auction_coordinator import (
    AuctionCoordinator,
    next_transition,
    resolve_close,
)
from fracart.domain.marketplace.entities import AuctionStatus, RequestContext
from fracart.domain.marketplace.errors import (
    ArtworkNotFoundError,
    AuctionNotFoundError,
    AuthorizationError,
    ConflictError,
    ValidationError,
)
from fracart.infrastructure.marketplace.event_bus import InMemoryEventBus


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def received(bus) -> list:
    events = []
    bus.subscribe(events.append)
    return events


@pytest.fixture
def coordinator(memory_store, bus, clock) -> AuctionCoordinator:
    return AuctionCoordinator(memory_store, bus, Decimal("0.05"), clock=clock)


@pytest.fixture
def seller() -> RequestContext:
    return RequestContext(user_id=uuid4())


@pytest.fixture
def artwork(memory_store, seller):
    return memory_store.create_artwork(make_artwork(owner_id=seller.user_id))


def _bidder() -> RequestContext:
    return RequestContext(user_id=uuid4())


# ══════════════════════════════════════════════════════════════════════
# Creation and lifecycle
# ══════════════════════════════════════════════════════════════════════


class TestCreateAuction:
    """Only owners open auctions, with sane prices and times."""

    def test_starts_active_without_start_time(self, coordinator, seller, artwork) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        assert auction.status is AuctionStatus.ACTIVE
        assert auction.seller_user_id == seller.user_id
        assert auction.current_bid is None

    def test_future_start_is_scheduled(self, coordinator, seller, artwork, clock) -> None:
        auction = coordinator.create_auction(
            seller, artwork.id, Decimal("100"), starts_at=clock.now + timedelta(hours=1)
        )
        assert auction.status is AuctionStatus.SCHEDULED

    def test_non_owner_rejected(self, coordinator, artwork) -> None:
        with pytest.raises(AuthorizationError):
            coordinator.create_auction(_bidder(), artwork.id, Decimal("100"))

    def test_unknown_artwork(self, coordinator, seller) -> None:
        with pytest.raises(ArtworkNotFoundError):
            coordinator.create_auction(seller, uuid4(), Decimal("100"))

    @pytest.mark.parametrize("start, reserve", [("0", None), ("-5", None), ("100", "-1")])
    def test_invalid_prices(self, coordinator, seller, artwork, start, reserve) -> None:
        with pytest.raises(ValidationError):
            coordinator.create_auction(
                seller,
                artwork.id,
                Decimal(start),
                reserve_price=Decimal(reserve) if reserve else None,
            )

    def test_end_before_start_rejected(self, coordinator, seller, artwork, clock) -> None:
        with pytest.raises(ValidationError):
            coordinator.create_auction(
                seller,
                artwork.id,
                Decimal("100"),
                starts_at=clock.now + timedelta(hours=2),
                ends_at=clock.now + timedelta(hours=1),
            )


class TestTimeTransitions:
    """Scheduled auctions open and active ones close as time passes."""

    def test_scheduled_opens_at_start(self, coordinator, seller, artwork, clock) -> None:
        auction = coordinator.create_auction(
            seller,
            artwork.id,
            Decimal("100"),
            starts_at=clock.now + timedelta(minutes=10),
            ends_at=clock.now + timedelta(hours=1),
        )
        clock.advance(minutes=10)
        assert coordinator.advance(auction.id).status is AuctionStatus.ACTIVE

    def test_scheduled_past_end_closes_in_one_advance(
        self, coordinator, seller, artwork, clock, received
    ) -> None:
        auction = coordinator.create_auction(
            seller,
            artwork.id,
            Decimal("100"),
            starts_at=clock.now + timedelta(minutes=10),
            ends_at=clock.now + timedelta(hours=1),
        )
        clock.advance(hours=2)

        closed = coordinator.advance(auction.id)
        assert closed.status is AuctionStatus.CLOSED_UNSOLD
        assert [e.event_type for e in received] == ["AuctionClosed"]

    def test_unknown_auction(self, coordinator) -> None:
        with pytest.raises(AuctionNotFoundError):
            coordinator.advance(uuid4())

    def test_next_transition_is_none_for_terminal(self, coordinator, seller, artwork, clock) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        cancelled = coordinator.cancel(seller, auction.id)
        assert next_transition(cancelled, clock.now + timedelta(days=365)) is None


# ══════════════════════════════════════════════════════════════════════
# Bidding
# ══════════════════════════════════════════════════════════════════════


class TestPlaceBid:
    """Minimum increment, attribution and events."""

    def test_first_bid_must_clear_start_price_increment(
        self, coordinator, seller, artwork
    ) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))

        with pytest.raises(ValidationError):
            coordinator.place_bid(_bidder(), auction.id, Decimal("104.99"))
        result = coordinator.place_bid(_bidder(), auction.id, Decimal("105"))
        assert result.auction.current_bid == Decimal("105")

    def test_exactly_five_percent_over_highest_is_accepted(
        self, coordinator, seller, artwork
    ) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        coordinator.place_bid(_bidder(), auction.id, Decimal("200"))

        with pytest.raises(ValidationError):
            coordinator.place_bid(_bidder(), auction.id, Decimal("200") * Decimal("1.0499"))
        result = coordinator.place_bid(_bidder(), auction.id, Decimal("200") * Decimal("1.05"))
        assert result.auction.bid_count == 2
        assert result.auction.current_bid == Decimal("210")

    def test_bid_attributed_to_caller_and_published(
        self, coordinator, seller, artwork, received
    ) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        bidder = _bidder()

        result = coordinator.place_bid(bidder, auction.id, Decimal("150"))

        assert result.bid.bidder_user_id == bidder.user_id
        (event,) = received
        assert event.event_type == "BidAccepted"
        assert event.bid_id == result.bid.id
        assert event.amount == Decimal("150")
        assert event.bid_count == 1

    def test_seller_cannot_bid(self, coordinator, seller, artwork) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        with pytest.raises(ValidationError):
            coordinator.place_bid(seller, auction.id, Decimal("500"))

    def test_bid_on_scheduled_auction_rejected(self, coordinator, seller, artwork, clock) -> None:
        auction = coordinator.create_auction(
            seller, artwork.id, Decimal("100"), starts_at=clock.now + timedelta(hours=1)
        )
        with pytest.raises(ValidationError):
            coordinator.place_bid(_bidder(), auction.id, Decimal("500"))

    def test_bid_after_end_closes_and_rejects(
        self, coordinator, seller, artwork, clock
    ) -> None:
        auction = coordinator.create_auction(
            seller, artwork.id, Decimal("100"), ends_at=clock.now + timedelta(hours=1)
        )
        clock.advance(hours=1)

        with pytest.raises(ValidationError):
            coordinator.place_bid(_bidder(), auction.id, Decimal("500"))
        assert coordinator.current_state(auction.id).auction.status is AuctionStatus.CLOSED_UNSOLD

    def test_stale_view_is_conflict(self, coordinator, memory_store, seller, artwork) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        bidder = _bidder()

        # Another bid lands between this request's read and its write.
        original_advance = coordinator.advance

        def advance_then_race(auction_id, now=None):
            view = original_advance(auction_id, now)
            coordinator.advance = original_advance
            coordinator.place_bid(_bidder(), auction_id, Decimal("105"))
            return view

        coordinator.advance = advance_then_race
        with pytest.raises(ConflictError):
            coordinator.place_bid(bidder, auction.id, Decimal("300"))
        assert memory_store.get_auction(auction.id).current_bid == Decimal("105")


# ══════════════════════════════════════════════════════════════════════
# Closing and cancelling
# ══════════════════════════════════════════════════════════════════════


class TestCloseAuction:
    """Reserve price decides between sold and unsold."""

    def _run_to_close(self, coordinator, seller, artwork, clock, final_bid):
        auction = coordinator.create_auction(
            seller,
            artwork.id,
            Decimal("100"),
            reserve_price=Decimal("150"),
            ends_at=clock.now + timedelta(hours=1),
        )
        coordinator.place_bid(_bidder(), auction.id, Decimal("105"))
        coordinator.place_bid(_bidder(), auction.id, Decimal(final_bid))
        clock.advance(hours=1)
        return coordinator.close(auction.id)

    def test_reserve_unmet_closes_unsold(self, coordinator, seller, artwork, clock) -> None:
        closed = self._run_to_close(coordinator, seller, artwork, clock, "140")
        assert closed.status is AuctionStatus.CLOSED_UNSOLD

    def test_reserve_met_closes_sold(self, coordinator, seller, artwork, clock, received) -> None:
        closed = self._run_to_close(coordinator, seller, artwork, clock, "160")

        assert closed.status is AuctionStatus.CLOSED_SOLD
        assert received[-1].event_type == "AuctionClosed"
        assert received[-1].winning_bid == Decimal("160")

    def test_no_bids_is_unsold(self, coordinator, seller, artwork) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        assert resolve_close(auction) is AuctionStatus.CLOSED_UNSOLD

    def test_close_before_end_rejected(self, coordinator, seller, artwork, clock) -> None:
        auction = coordinator.create_auction(
            seller, artwork.id, Decimal("100"), ends_at=clock.now + timedelta(hours=1)
        )
        with pytest.raises(ValidationError):
            coordinator.close(auction.id, ctx=seller)

    def test_seller_closes_open_ended_auction(self, coordinator, seller, artwork) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        coordinator.place_bid(_bidder(), auction.id, Decimal("120"))

        with pytest.raises(ValidationError):
            coordinator.close(auction.id, ctx=_bidder())
        assert coordinator.close(auction.id, ctx=seller).status is AuctionStatus.CLOSED_SOLD

    def test_close_is_idempotent(self, coordinator, seller, artwork, clock, received) -> None:
        closed = self._run_to_close(coordinator, seller, artwork, clock, "160")
        again = coordinator.close(closed.id)

        assert again.status is AuctionStatus.CLOSED_SOLD
        assert sum(e.event_type == "AuctionClosed" for e in received) == 1


class TestCancelAuction:
    def test_seller_cancels(self, coordinator, seller, artwork, received) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        assert coordinator.cancel(seller, auction.id).status is AuctionStatus.CANCELLED
        assert received == []

    def test_only_seller_may_cancel(self, coordinator, seller, artwork) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        with pytest.raises(AuthorizationError):
            coordinator.cancel(_bidder(), auction.id)

    def test_cannot_cancel_closed(self, coordinator, seller, artwork) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        coordinator.cancel(seller, auction.id)
        with pytest.raises(ValidationError):
            coordinator.cancel(seller, auction.id)


class TestCurrentState:
    def test_reports_bids_and_next_minimum(self, coordinator, seller, artwork) -> None:
        auction = coordinator.create_auction(seller, artwork.id, Decimal("100"))
        coordinator.place_bid(_bidder(), auction.id, Decimal("110"))

        view = coordinator.current_state(auction.id)
        assert view.auction.current_bid == Decimal("110")
        assert len(view.bids) == 1
        assert view.minimum_next_bid == Decimal("115.5")
