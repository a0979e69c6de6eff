"""
Dependency injection for the marketplace bounded context.

Provides FastAPI dependency functions that wire infrastructure
adapters into use cases via constructor injection.
These are the composition root for the marketplace context.

The engine, ledger store, valuation cache, valuation estimator and event bus are
process-wide singletons; use cases are built per request.
"""

import logging
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.engine import Engine

from fracart.application.marketplace.auctions import (
    CancelAuctionUseCase,
    CloseAuctionUseCase,
    CreateAuctionUseCase,
    GetAuctionUseCase,
    ListAuctionsUseCase,
    PlaceBidUseCase,
)
from fracart.application.marketplace.choices import parse_choice
from fracart.application.marketplace.compute_portfolio import ComputePortfolioUseCase
from fracart.application.marketplace.create_artwork import CreateArtworkUseCase
from fracart.application.marketplace.get_ownership import GetCapTableUseCase, GetOwnershipUseCase
from fracart.application.marketplace.list_artworks import ListArtworksUseCase
from fracart.application.marketplace.purchase_fractions import PurchaseFractionsUseCase
from fracart.application.marketplace.transaction_history import (
    ExportTransactionsUseCase,
    GetTransactionHistoryUseCase,
)
from fracart.core.config import settings
from fracart.domain.marketplace.auction_coordinator import AuctionCoordinator
from fracart.domain.marketplace.entities import RequestContext, Role
from fracart.domain.marketplace.errors import AuthorizationError
from fracart.domain.marketplace.events import DomainEvent
from fracart.domain.marketplace.ownership_aggregator import OwnershipAggregator
from fracart.domain.marketplace.portfolio_service import PortfolioService
from fracart.domain.marketplace.ports import (
    EventPublisher,
    LedgerStore,
    ValuationCache,
    ValuationPort,
)
from fracart.domain.marketplace.valuation import MarketDriftPolicy, ValuationEstimator
from fracart.infrastructure.marketplace.database import build_engine, ensure_schema
from fracart.infrastructure.marketplace.event_bus import InMemoryEventBus
from fracart.infrastructure.marketplace.market_index import StaticMarketIndex
from fracart.infrastructure.marketplace.sql_ledger_store import SqlLedgerStore
from fracart.infrastructure.marketplace.valuation_cache import (
    InMemoryValuationCache,
    SqlValuationCache,
)

logger = logging.getLogger(__name__)


# ── Identity ─────────────────────────────────────────────────────────


def get_request_context(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: str = Header(default=Role.INVESTOR.value),
) -> RequestContext:
    """Build the caller identity from headers set by the auth provider."""
    if not x_user_id:
        raise AuthorizationError("Missing caller identity")
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise AuthorizationError("Malformed caller identity") from None
    return RequestContext(user_id=user_id, role=parse_choice(Role, x_user_role, "role"))


# ── Singletons ───────────────────────────────────────────────────────


@lru_cache
def get_db_engine() -> Engine:
    """Build the SQLAlchemy engine and make sure the ledger schema exists."""
    engine = build_engine(settings.database_url)
    ensure_schema(engine)
    return engine


@lru_cache
def get_ledger_store() -> LedgerStore:
    return SqlLedgerStore(engine=get_db_engine())


def _log_event(event: DomainEvent) -> None:
    logger.info("Domain event: %s", event.to_dict())


@lru_cache
def get_event_bus() -> EventPublisher:
    bus = InMemoryEventBus()
    bus.subscribe(_log_event)
    return bus


@lru_cache
def get_valuation_cache() -> ValuationCache:
    if settings.valuation_cache_backend == "memory":
        logger.warning("Valuation cache is process-local; workers will not share it.")
        return InMemoryValuationCache()
    return SqlValuationCache(engine=get_db_engine())


@lru_cache
def get_valuation_estimator() -> ValuationPort:
    policy = MarketDriftPolicy(
        market_index=StaticMarketIndex(settings.market_index_factor),
        max_drift=settings.valuation_max_drift,
    )
    return ValuationEstimator(
        store=get_ledger_store(),
        policy=policy,
        cache=get_valuation_cache(),
        ttl_seconds=settings.valuation_cache_ttl_seconds,
    )


def get_auction_coordinator(
    store: LedgerStore = Depends(get_ledger_store),
    publisher: EventPublisher = Depends(get_event_bus),
) -> AuctionCoordinator:
    return AuctionCoordinator(
        store=store,
        publisher=publisher,
        min_increment=settings.min_bid_increment,
    )


# ── Use cases ────────────────────────────────────────────────────────


def get_create_artwork_use_case(
    store: LedgerStore = Depends(get_ledger_store),
) -> CreateArtworkUseCase:
    return CreateArtworkUseCase(store=store)


def get_list_artworks_use_case(
    store: LedgerStore = Depends(get_ledger_store),
) -> ListArtworksUseCase:
    return ListArtworksUseCase(store=store)


def get_purchase_fractions_use_case(
    store: LedgerStore = Depends(get_ledger_store),
    valuation: ValuationPort = Depends(get_valuation_estimator),
    publisher: EventPublisher = Depends(get_event_bus),
) -> PurchaseFractionsUseCase:
    return PurchaseFractionsUseCase(store=store, valuation=valuation, publisher=publisher)


def get_ownership_use_case(
    store: LedgerStore = Depends(get_ledger_store),
) -> GetOwnershipUseCase:
    return GetOwnershipUseCase(store=store, aggregator=OwnershipAggregator(store))


def get_cap_table_use_case(
    store: LedgerStore = Depends(get_ledger_store),
) -> GetCapTableUseCase:
    return GetCapTableUseCase(store=store, aggregator=OwnershipAggregator(store))


def get_compute_portfolio_use_case(
    store: LedgerStore = Depends(get_ledger_store),
    valuation: ValuationPort = Depends(get_valuation_estimator),
) -> ComputePortfolioUseCase:
    """Build ComputePortfolioUseCase with the shared valuation cache."""
    service = PortfolioService(
        store=store,
        aggregator=OwnershipAggregator(store),
        valuation=valuation,
        valuation_timeout=settings.valuation_timeout_seconds,
        top_holdings=settings.top_holdings_limit,
    )
    return ComputePortfolioUseCase(portfolio_service=service)


def get_transaction_history_use_case(
    store: LedgerStore = Depends(get_ledger_store),
) -> GetTransactionHistoryUseCase:
    return GetTransactionHistoryUseCase(store=store)


def get_export_transactions_use_case(
    history: GetTransactionHistoryUseCase = Depends(get_transaction_history_use_case),
) -> ExportTransactionsUseCase:
    return ExportTransactionsUseCase(history=history)


def get_create_auction_use_case(
    coordinator: AuctionCoordinator = Depends(get_auction_coordinator),
) -> CreateAuctionUseCase:
    return CreateAuctionUseCase(coordinator=coordinator)


def get_list_auctions_use_case(
    store: LedgerStore = Depends(get_ledger_store),
    coordinator: AuctionCoordinator = Depends(get_auction_coordinator),
) -> ListAuctionsUseCase:
    return ListAuctionsUseCase(store=store, coordinator=coordinator)


def get_auction_use_case(
    coordinator: AuctionCoordinator = Depends(get_auction_coordinator),
) -> GetAuctionUseCase:
    return GetAuctionUseCase(coordinator=coordinator)


def get_place_bid_use_case(
    coordinator: AuctionCoordinator = Depends(get_auction_coordinator),
) -> PlaceBidUseCase:
    return PlaceBidUseCase(coordinator=coordinator)


def get_cancel_auction_use_case(
    coordinator: AuctionCoordinator = Depends(get_auction_coordinator),
) -> CancelAuctionUseCase:
    return CancelAuctionUseCase(coordinator=coordinator)


def get_close_auction_use_case(
    coordinator: AuctionCoordinator = Depends(get_auction_coordinator),
) -> CloseAuctionUseCase:
    return CloseAuctionUseCase(coordinator=coordinator)
