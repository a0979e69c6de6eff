"""
Tests for the marketplace application layer (use cases).

Use cases run against the in-memory ledger store; the valuation cache and
event publisher are mocked where the test is about orchestration.
"""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from conftest import T0, make_artwork, make_purchase
from fracart.application.marketplace.compute_portfolio import ComputePortfolioUseCase
from fracart.application.marketplace.create_artwork import CreateArtworkUseCase
from fracart.application.marketplace.dtos import (
    CreateArtworkCommand,
    GetOwnershipQuery,
    ListArtworksQuery,
    PurchaseFractionsCommand,
    TransactionHistoryQuery,
)
from fracart.application.marketplace.get_ownership import (
    GetCapTableUseCase,
    GetOwnershipUseCase,
)
from fracart.application.marketplace.list_artworks import ListArtworksUseCase
from fracart.application.marketplace.purchase_fractions import (
    PurchaseFractionsUseCase,
    units_for,
)
from fracart.application.marketplace.transaction_history import (
    CSV_HEADER,
    ExportTransactionsUseCase,
    GetTransactionHistoryUseCase,
)
from fracart.domain.marketplace.entities import ArtworkStatus, TransactionStatus
from fracart.domain.marketplace.errors import (
    ArtworkNotFoundError,
    AuthorizationError,
    ConflictError,
    InsufficientFractionsError,
    ValidationError,
)
from fracart.domain.marketplace.filters import TransactionFilter
from fracart.domain.marketplace.ownership_aggregator import OwnershipAggregator
from fracart.domain.marketplace.portfolio_service import PortfolioService
from fracart.domain.marketplace.ports import EventPublisher, ValuationPort
from fracart.domain.marketplace.valuation import MarketDriftPolicy, ValuationEstimator
from fracart.infrastructure.marketplace.market_index import StaticMarketIndex


@pytest.fixture
def valuation() -> MagicMock:
    return MagicMock(spec=ValuationPort)


@pytest.fixture
def publisher() -> MagicMock:
    return MagicMock(spec=EventPublisher)


@pytest.fixture
def purchase(memory_store, valuation, publisher) -> PurchaseFractionsUseCase:
    return PurchaseFractionsUseCase(memory_store, valuation, publisher)


@pytest.fixture
def listed(memory_store, artist):
    """A 1000 USD artwork split into 100 units, owned by the artist."""
    return memory_store.create_artwork(
        make_artwork(owner_id=artist.user_id, price="1000", title="Blue Harbour")
    )


# ══════════════════════════════════════════════════════════════════════
# Artworks
# ══════════════════════════════════════════════════════════════════════


class TestCreateArtworkUseCase:
    def test_artist_lists_artwork(self, memory_store, artist) -> None:
        result = CreateArtworkUseCase(memory_store).execute(
            artist,
            CreateArtworkCommand(
                title="  Dune at Dusk ",
                price_amount=Decimal("2500"),
                fractions_total=50,
            ),
        )

        assert result.title == "Dune at Dusk"
        assert result.owner_user_id == artist.user_id
        assert result.fractions_available == 50
        assert result.status == "available"
        assert memory_store.get_artwork(result.id) is not None

    def test_investor_cannot_list(self, memory_store, investor) -> None:
        with pytest.raises(AuthorizationError):
            CreateArtworkUseCase(memory_store).execute(
                investor,
                CreateArtworkCommand(title="x", price_amount=Decimal("1"), fractions_total=1),
            )

    def test_non_positive_price_rejected(self, memory_store, artist) -> None:
        with pytest.raises(ValidationError):
            CreateArtworkUseCase(memory_store).execute(
                artist,
                CreateArtworkCommand(title="x", price_amount=Decimal("0"), fractions_total=1),
            )


class TestListArtworksUseCase:
    def test_filters_and_sorts(self, memory_store) -> None:
        memory_store.create_artwork(make_artwork(price="300", title="Cheap"))
        memory_store.create_artwork(make_artwork(price="900", title="Dear"))
        memory_store.create_artwork(make_artwork(price="600", title="Middling"))

        results = ListArtworksUseCase(memory_store).execute(
            ListArtworksQuery(min_price=Decimal("500"), sort="price-high")
        )

        assert [r.title for r in results] == ["Dear", "Middling"]

    def test_unknown_sort_rejected(self, memory_store) -> None:
        with pytest.raises(ValidationError):
            ListArtworksUseCase(memory_store).execute(ListArtworksQuery(sort="random"))

    def test_inverted_price_range_rejected(self, memory_store) -> None:
        with pytest.raises(ValidationError):
            ListArtworksUseCase(memory_store).execute(
                ListArtworksQuery(min_price=Decimal("10"), max_price=Decimal("5"))
            )

    def test_get_missing(self, memory_store) -> None:
        with pytest.raises(ArtworkNotFoundError):
            ListArtworksUseCase(memory_store).get(uuid4())


# ══════════════════════════════════════════════════════════════════════
# Purchases and ownership
# ══════════════════════════════════════════════════════════════════════


class TestUnitsFor:
    @pytest.mark.parametrize(
        "percentage, total, expected",
        [("10", 100, 10), ("12.5", 100, 13), ("0.1", 100, 1), ("100", 100, 100), ("33.3", 3, 1)],
    )
    def test_rounds_up(self, percentage, total, expected) -> None:
        assert units_for(Decimal(percentage), total) == expected


class TestPurchaseFractionsUseCase:
    """Pricing, ledger write, cache invalidation and event."""

    def test_purchase_records_transaction(
        self, purchase, memory_store, listed, investor, valuation, publisher
    ) -> None:
        result = purchase.execute(
            investor, PurchaseFractionsCommand(listed.id, Decimal("12.5"))
        )

        assert result.amount == Decimal("125.00")
        assert result.fraction_units == 13
        assert result.price_per_fraction == Decimal("9.62")
        assert result.fractions_remaining == 87
        assert result.buyer_user_id == investor.user_id

        (txn,) = list(memory_store.query_transactions(TransactionFilter(buyer_id=investor.user_id)))
        assert txn.seller_user_id == listed.owner_user_id
        assert txn.metadata == {
            "ownership_percentage": "12.5",
            "fraction_count": 13,
            "purchase_price_per_fraction": "9.62",
        }
        valuation.invalidate.assert_called_once_with(listed.id)
        (event,), _ = publisher.publish.call_args
        assert event.event_type == "TransactionCompleted"
        assert event.transaction_id == result.transaction_id

    def test_insufficient_fractions(self, purchase, listed, investor, other_investor, publisher) -> None:
        purchase.execute(investor, PurchaseFractionsCommand(listed.id, Decimal("95")))
        publisher.reset_mock()

        with pytest.raises(InsufficientFractionsError):
            purchase.execute(other_investor, PurchaseFractionsCommand(listed.id, Decimal("10")))
        publisher.publish.assert_not_called()

    def test_sold_out_artwork_is_conflict(
        self, purchase, memory_store, listed, investor, other_investor
    ) -> None:
        purchase.execute(investor, PurchaseFractionsCommand(listed.id, Decimal("100")))
        assert memory_store.get_artwork(listed.id).status is ArtworkStatus.SOLD

        with pytest.raises(ConflictError):
            purchase.execute(other_investor, PurchaseFractionsCommand(listed.id, Decimal("1")))

    def test_owner_cannot_buy_own_artwork(self, purchase, listed, artist) -> None:
        with pytest.raises(ValidationError):
            purchase.execute(artist, PurchaseFractionsCommand(listed.id, Decimal("5")))

    @pytest.mark.parametrize("percentage", ["0", "-1", "100.01"])
    def test_percentage_out_of_range(self, purchase, listed, investor, percentage) -> None:
        with pytest.raises(ValidationError):
            purchase.execute(investor, PurchaseFractionsCommand(listed.id, Decimal(percentage)))

    def test_stake_priced_below_a_cent_rejected(
        self, purchase, memory_store, artist, investor, publisher
    ) -> None:
        artwork = memory_store.create_artwork(
            make_artwork(owner_id=artist.user_id, price="100", fractions=100000)
        )

        with pytest.raises(ValidationError, match="too small"):
            purchase.execute(investor, PurchaseFractionsCommand(artwork.id, Decimal("0.004")))

        assert memory_store.get_artwork(artwork.id).fractions_available == 100000
        assert list(memory_store.query_transactions(TransactionFilter())) == []
        publisher.publish.assert_not_called()

    def test_one_cent_stake_accepted(self, purchase, memory_store, artist, investor) -> None:
        artwork = memory_store.create_artwork(
            make_artwork(owner_id=artist.user_id, price="100", fractions=100000)
        )

        result = purchase.execute(investor, PurchaseFractionsCommand(artwork.id, Decimal("0.005")))

        assert result.amount == Decimal("0.01")
        assert result.fraction_units == 5

    def test_unknown_artwork(self, purchase, investor) -> None:
        with pytest.raises(ArtworkNotFoundError):
            purchase.execute(investor, PurchaseFractionsCommand(uuid4(), Decimal("5")))


class TestOwnershipUseCases:
    def test_ownership_accumulates(self, purchase, memory_store, listed, investor) -> None:
        first = purchase.execute(investor, PurchaseFractionsCommand(listed.id, Decimal("10")))
        second = purchase.execute(investor, PurchaseFractionsCommand(listed.id, Decimal("5")))

        result = GetOwnershipUseCase(memory_store, OwnershipAggregator(memory_store)).execute(
            GetOwnershipQuery(user_id=investor.user_id, artwork_id=listed.id)
        )

        assert result.shares_owned == Decimal("15")
        assert result.purchase_price == Decimal("150")
        assert set(result.transaction_ids) == {first.transaction_id, second.transaction_id}

    def test_cap_table(self, purchase, memory_store, listed, investor, other_investor) -> None:
        purchase.execute(investor, PurchaseFractionsCommand(listed.id, Decimal("30")))
        purchase.execute(other_investor, PurchaseFractionsCommand(listed.id, Decimal("25")))

        table = GetCapTableUseCase(memory_store, OwnershipAggregator(memory_store)).execute(
            listed.id
        )

        assert table.total_percentage == Decimal("55")
        assert table.unowned_percentage == Decimal("45")
        assert {o.user_id: o.shares_owned for o in table.owners} == {
            investor.user_id: Decimal("30"),
            other_investor.user_id: Decimal("25"),
        }
        assert table.warnings == []

    def test_cap_table_unknown_artwork(self, memory_store) -> None:
        with pytest.raises(ArtworkNotFoundError):
            GetCapTableUseCase(memory_store, OwnershipAggregator(memory_store)).execute(uuid4())


# ══════════════════════════════════════════════════════════════════════
# Portfolio
# ══════════════════════════════════════════════════════════════════════


class TestComputePortfolioUseCase:
    def test_maps_service_result(self, memory_store, listed, investor, publisher) -> None:
        estimator = ValuationEstimator(
            memory_store,
            MarketDriftPolicy(StaticMarketIndex(Decimal("1.1"))),
            ttl_seconds=0,
        )
        PurchaseFractionsUseCase(memory_store, estimator, publisher).execute(
            investor, PurchaseFractionsCommand(listed.id, Decimal("20"))
        )
        service = PortfolioService(memory_store, OwnershipAggregator(memory_store), estimator)

        view = ComputePortfolioUseCase(service).execute(investor)

        assert view.user_id == investor.user_id
        assert not view.partial
        (holding,) = view.holdings
        assert holding.artwork_title == "Blue Harbour"
        assert holding.purchase_price == Decimal("200")
        assert holding.current_value == Decimal("220")
        assert holding.gains == Decimal("20")
        assert view.stats.total_value == Decimal("220")
        assert view.stats.artworks_owned == 1
        assert view.allocation[0].percentage == Decimal("100")

    def test_sub_cent_stakes_do_not_devalue_holders(
        self, memory_store, artist, investor, other_investor, publisher
    ) -> None:
        estimator = ValuationEstimator(memory_store, MarketDriftPolicy(StaticMarketIndex()))
        purchase = PurchaseFractionsUseCase(memory_store, estimator, publisher)
        service = PortfolioService(memory_store, OwnershipAggregator(memory_store), estimator)
        artwork = memory_store.create_artwork(
            make_artwork(owner_id=artist.user_id, price="100", fractions=100000)
        )
        purchase.execute(investor, PurchaseFractionsCommand(artwork.id, Decimal("50")))

        with pytest.raises(ValidationError):
            purchase.execute(other_investor, PurchaseFractionsCommand(artwork.id, Decimal("0.004")))
        purchase.execute(other_investor, PurchaseFractionsCommand(artwork.id, Decimal("0.0149")))

        (holding,) = ComputePortfolioUseCase(service).execute(investor).holdings
        assert holding.current_value == Decimal("50.00")
        assert holding.gains == Decimal("0")

    def test_empty_portfolio(self, memory_store, investor) -> None:
        estimator = MagicMock(spec=ValuationPort)
        service = PortfolioService(memory_store, OwnershipAggregator(memory_store), estimator)

        view = ComputePortfolioUseCase(service).execute(investor)

        assert view.holdings == []
        assert view.stats.total_value == Decimal("0")
        estimator.estimate.assert_not_called()


# ══════════════════════════════════════════════════════════════════════
# Transaction history and export
# ══════════════════════════════════════════════════════════════════════


@pytest.fixture
def history_ledger(memory_store, artist, investor):
    """Two artworks by the artist; the investor bought into both."""
    harbour = memory_store.create_artwork(
        make_artwork(owner_id=artist.user_id, title="Blue Harbour")
    )
    field_art = memory_store.create_artwork(
        make_artwork(owner_id=artist.user_id, title="Wheat Field")
    )
    memory_store.record_transaction(
        make_purchase(
            investor.user_id, harbour.id, "10", "100.00",
            units=10, created_at=T0, seller_id=artist.user_id,
        )
    )
    memory_store.record_transaction(
        make_purchase(
            investor.user_id, field_art.id, "5", "50.00",
            units=5, created_at=T0 + timedelta(days=1), seller_id=artist.user_id,
        )
    )
    memory_store.record_transaction(
        make_purchase(
            investor.user_id, field_art.id, "20", "200.00",
            units=20, status=TransactionStatus.PENDING,
            created_at=T0 + timedelta(days=2), seller_id=artist.user_id,
        )
    )
    return memory_store


class TestTransactionHistoryUseCase:
    def test_buyer_sees_all_newest_first(self, history_ledger, investor) -> None:
        result = GetTransactionHistoryUseCase(history_ledger).execute(
            TransactionHistoryQuery(user_id=investor.user_id)
        )

        assert [t.amount for t in result.transactions] == [
            Decimal("200.00"), Decimal("50.00"), Decimal("100.00"),
        ]
        assert result.total_bought == Decimal("350.00")
        assert result.total_sold == Decimal("0")
        assert result.pending_count == 1

    def test_seller_direction(self, history_ledger, artist) -> None:
        use_case = GetTransactionHistoryUseCase(history_ledger)

        sold = use_case.execute(TransactionHistoryQuery(user_id=artist.user_id, direction="sell"))
        bought = use_case.execute(TransactionHistoryQuery(user_id=artist.user_id, direction="buy"))

        assert len(sold.transactions) == 3
        assert sold.total_sold == Decimal("350.00")
        assert bought.transactions == []

    def test_status_directions(self, history_ledger, investor) -> None:
        use_case = GetTransactionHistoryUseCase(history_ledger)

        pending = use_case.execute(
            TransactionHistoryQuery(user_id=investor.user_id, direction="pending")
        )
        completed = use_case.execute(
            TransactionHistoryQuery(user_id=investor.user_id, direction="completed")
        )

        assert [t.status for t in pending.transactions] == ["pending"]
        assert len(completed.transactions) == 2

    def test_search_by_title(self, history_ledger, investor) -> None:
        result = GetTransactionHistoryUseCase(history_ledger).execute(
            TransactionHistoryQuery(user_id=investor.user_id, search="wheat")
        )
        assert {t.artwork_title for t in result.transactions} == {"Wheat Field"}
        assert len(result.transactions) == 2

    def test_order_by_amount_ascending(self, history_ledger, investor) -> None:
        result = GetTransactionHistoryUseCase(history_ledger).execute(
            TransactionHistoryQuery(user_id=investor.user_id, order_by="amount", descending=False)
        )
        assert [t.amount for t in result.transactions] == [
            Decimal("50.00"), Decimal("100.00"), Decimal("200.00"),
        ]

    @pytest.mark.parametrize("field, value", [("direction", "gifted"), ("order_by", "title")])
    def test_invalid_choices(self, history_ledger, investor, field, value) -> None:
        query = TransactionHistoryQuery(user_id=investor.user_id, **{field: value})
        with pytest.raises(ValidationError):
            GetTransactionHistoryUseCase(history_ledger).execute(query)


class TestExportTransactionsUseCase:
    def test_csv_content(self, history_ledger, investor) -> None:
        export = ExportTransactionsUseCase(GetTransactionHistoryUseCase(history_ledger)).execute(
            TransactionHistoryQuery(user_id=investor.user_id, direction="completed"),
            today=date(2025, 3, 10),
        )

        lines = export.content.splitlines()
        assert export.filename == "transactions_2025-03-10.csv"
        assert export.row_count == 2
        assert lines[0] == ",".join(CSV_HEADER)
        assert lines[1].startswith("2025-03-02,fraction_purchase,Wheat Field,50.00,USD,completed,")
        assert lines[2].startswith("2025-03-01,fraction_purchase,Blue Harbour,100.00,USD,completed,")

    def test_empty_export_has_header_only(self, memory_store, investor) -> None:
        export = ExportTransactionsUseCase(GetTransactionHistoryUseCase(memory_store)).execute(
            TransactionHistoryQuery(user_id=investor.user_id)
        )
        assert export.content == ",".join(CSV_HEADER) + "\n"
        assert export.row_count == 0
