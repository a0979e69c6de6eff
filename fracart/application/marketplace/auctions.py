"""
Use cases: Auction lifecycle and bidding.

CreateAuctionUseCase   RequestContext, CreateAuctionCommand -> AuctionResult
ListAuctionsUseCase    ListAuctionsQuery -> list[AuctionResult]
GetAuctionUseCase      auction id -> AuctionDetailResult
PlaceBidUseCase        RequestContext, PlaceBidCommand -> PlaceBidResult
CancelAuctionUseCase   RequestContext, AuctionCommand -> AuctionResult
CloseAuctionUseCase    RequestContext, AuctionCommand -> AuctionResult

Side effects: Auction and bid writes go through the AuctionCoordinator,
    which emits BidAccepted and AuctionClosed.
Failure cases: ArtworkNotFoundError, AuctionNotFoundError,
    AuthorizationError, ValidationError, ConflictError.
"""

import logging
from uuid import UUID

from fracart.application.marketplace.choices import parse_choice
from fracart.application.marketplace.dtos import (
    AuctionCommand,
    AuctionDetailResult,
    AuctionResult,
    BidEntry,
    CreateAuctionCommand,
    ListAuctionsQuery,
    PlaceBidCommand,
    PlaceBidResult,
)
from fracart.domain.marketplace.auction_coordinator import AuctionCoordinator
from fracart.domain.marketplace.entities import AuctionStatus, RequestContext
from fracart.domain.marketplace.ports import LedgerStore
from fracart.domain.marketplace.rules import minimum_next_bid

logger = logging.getLogger(__name__)


def _to_result(auction, min_increment) -> AuctionResult:
    minimum = (
        minimum_next_bid(auction, min_increment)
        if auction.status is AuctionStatus.ACTIVE
        else None
    )
    return AuctionResult.from_entity(auction, minimum_next_bid=minimum)


class CreateAuctionUseCase:
    """Opens an auction on an artwork the caller owns."""

    def __init__(self, coordinator: AuctionCoordinator) -> None:
        self._coordinator = coordinator

    def execute(self, ctx: RequestContext, command: CreateAuctionCommand) -> AuctionResult:
        logger.info("Creating auction: user=%s artwork=%s", ctx.user_id, command.artwork_id)
        auction = self._coordinator.create_auction(
            ctx,
            artwork_id=command.artwork_id,
            start_price=command.start_price,
            reserve_price=command.reserve_price,
            starts_at=command.starts_at,
            ends_at=command.ends_at,
        )
        return _to_result(auction, self._coordinator.min_increment)


class ListAuctionsUseCase:
    """Lists auctions newest first, after applying due time transitions."""

    def __init__(self, store: LedgerStore, coordinator: AuctionCoordinator) -> None:
        self._store = store
        self._coordinator = coordinator

    def execute(self, query: ListAuctionsQuery) -> list[AuctionResult]:
        logger.info("Listing auctions: status=%s", query.status)
        status = parse_choice(AuctionStatus, query.status, "status")

        results = []
        for auction in self._store.list_auctions():
            current = self._coordinator.advance(auction.id)
            if status is None or current.status is status:
                results.append(_to_result(current, self._coordinator.min_increment))
        return results


class GetAuctionUseCase:
    """Returns the authoritative auction state and its bid history."""

    def __init__(self, coordinator: AuctionCoordinator) -> None:
        self._coordinator = coordinator

    def execute(self, auction_id: UUID) -> AuctionDetailResult:
        view = self._coordinator.current_state(auction_id)
        return AuctionDetailResult(
            auction=AuctionResult.from_entity(view.auction, view.minimum_next_bid),
            bids=[BidEntry.from_entity(b) for b in view.bids],
        )


class PlaceBidUseCase:
    """Places a bid attributed to the caller."""

    def __init__(self, coordinator: AuctionCoordinator) -> None:
        self._coordinator = coordinator

    def execute(self, ctx: RequestContext, command: PlaceBidCommand) -> PlaceBidResult:
        logger.info(
            "Bid request: user=%s auction=%s amount=%s",
            ctx.user_id,
            command.auction_id,
            command.amount,
        )
        result = self._coordinator.place_bid(ctx, command.auction_id, command.amount)
        return PlaceBidResult(
            bid=BidEntry.from_entity(result.bid),
            auction=_to_result(result.auction, self._coordinator.min_increment),
        )


class CancelAuctionUseCase:
    def __init__(self, coordinator: AuctionCoordinator) -> None:
        self._coordinator = coordinator

    def execute(self, ctx: RequestContext, command: AuctionCommand) -> AuctionResult:
        logger.info("Cancel request: user=%s auction=%s", ctx.user_id, command.auction_id)
        auction = self._coordinator.cancel(ctx, command.auction_id)
        return _to_result(auction, self._coordinator.min_increment)


class CloseAuctionUseCase:
    """Closes an auction that has reached its end time.

    Open-ended auctions are closed by their seller on request.
    """

    def __init__(self, coordinator: AuctionCoordinator) -> None:
        self._coordinator = coordinator

    def execute(self, ctx: RequestContext, command: AuctionCommand) -> AuctionResult:
        logger.info("Close request: user=%s auction=%s", ctx.user_id, command.auction_id)
        auction = self._coordinator.close(command.auction_id, ctx=ctx)
        return _to_result(auction, self._coordinator.min_increment)
