"""
Tests for the marketplace API endpoints.

Tests FastAPI routes against an in-memory ledger wired in through
dependency overrides. Validates identity handling, response schemas
and domain-error-to-HTTP mapping.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from fracart.domain.marketplace.valuation import MarketDriftPolicy, ValuationEstimator
from fracart.infrastructure.marketplace.event_bus import InMemoryEventBus
from fracart.infrastructure.marketplace.market_index import StaticMarketIndex
from fracart.infrastructure.marketplace.memory_ledger_store import InMemoryLedgerStore
from fracart.interfaces.marketplace.dependencies import (
    get_event_bus,
    get_ledger_store,
    get_valuation_estimator,
)
from fracart.main import app

client = TestClient(app)

API = "/api/v1/marketplace"


@pytest.fixture(autouse=True)
def ledger():
    """Fresh in-memory ledger behind every request of a test."""
    store = InMemoryLedgerStore()
    bus = InMemoryEventBus()
    estimator = ValuationEstimator(store, MarketDriftPolicy(StaticMarketIndex()), ttl_seconds=0)

    app.dependency_overrides[get_ledger_store] = lambda: store
    app.dependency_overrides[get_event_bus] = lambda: bus
    app.dependency_overrides[get_valuation_estimator] = lambda: estimator
    yield store
    app.dependency_overrides.clear()


def _headers(user_id=None, role: str = "investor") -> dict[str, str]:
    return {"X-User-Id": str(user_id or uuid4()), "X-User-Role": role}


@pytest.fixture
def artist_headers() -> dict[str, str]:
    return _headers(role="artist")


@pytest.fixture
def artwork(artist_headers) -> dict:
    response = client.post(
        f"{API}/artworks",
        json={"title": "Blue Harbour", "price_amount": "1000", "fractions_total": 100},
        headers=artist_headers,
    )
    assert response.status_code == 201
    return response.json()


def _open_auction(artwork: dict, headers: dict, **extra) -> dict:
    response = client.post(
        f"{API}/auctions",
        json={"artwork_id": artwork["id"], "start_price": "100", **extra},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


# ══════════════════════════════════════════════════════════════════════
# Platform
# ══════════════════════════════════════════════════════════════════════


class TestHealth:
    def test_health(self) -> None:
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestSecurityHeaders:
    """Tests for security headers on responses."""

    def test_security_headers_present(self) -> None:
        response = client.get("/api/v1/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"

    def test_headers_on_error_responses(self) -> None:
        response = client.get(f"{API}/artworks/{uuid4()}")
        assert response.status_code == 404
        assert response.headers["X-Frame-Options"] == "DENY"


class TestIdentity:
    """The caller comes only from the auth-provider headers."""

    def test_missing_identity_forbidden(self) -> None:
        response = client.get(f"{API}/portfolio")
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    def test_malformed_identity_forbidden(self) -> None:
        response = client.get(f"{API}/portfolio", headers={"X-User-Id": "not-a-uuid"})
        assert response.status_code == 403

    def test_unknown_role_rejected(self) -> None:
        response = client.get(f"{API}/portfolio", headers=_headers(role="admin"))
        assert response.status_code == 422


# ══════════════════════════════════════════════════════════════════════
# Artworks and purchases
# ══════════════════════════════════════════════════════════════════════


class TestArtworkEndpoints:
    def test_create_and_fetch(self, artwork) -> None:
        response = client.get(f"{API}/artworks/{artwork['id']}")
        body = response.json()

        assert response.status_code == 200
        assert body["title"] == "Blue Harbour"
        assert body["price_denom"] == "USD"
        assert body["fractions_available"] == 100

    def test_investor_cannot_create(self) -> None:
        response = client.post(
            f"{API}/artworks",
            json={"title": "x", "price_amount": "10", "fractions_total": 1},
            headers=_headers(),
        )
        assert response.status_code == 403

    def test_schema_validation(self, artist_headers) -> None:
        response = client.post(
            f"{API}/artworks",
            json={"title": "", "price_amount": "-1", "fractions_total": 0},
            headers=artist_headers,
        )
        assert response.status_code == 422

    def test_browse(self, artwork) -> None:
        response = client.get(f"{API}/artworks", params={"search": "harbour", "sort": "title"})
        body = response.json()

        assert response.status_code == 200
        assert body["count"] == 1
        assert body["artworks"][0]["id"] == artwork["id"]

    def test_browse_bad_sort(self) -> None:
        response = client.get(f"{API}/artworks", params={"sort": "random"})
        assert response.status_code == 422


class TestPurchaseEndpoints:
    def test_purchase_then_ownership(self, artwork) -> None:
        buyer = _headers()
        response = client.post(
            f"{API}/artworks/{artwork['id']}/purchases",
            json={"ownership_percentage": "12.5"},
            headers=buyer,
        )
        body = response.json()

        assert response.status_code == 201
        assert Decimal(body["amount"]) == Decimal("125")
        assert body["fraction_units"] == 13
        assert body["fractions_remaining"] == 87

        ownership = client.get(f"{API}/artworks/{artwork['id']}/ownership", headers=buyer).json()
        assert Decimal(ownership["shares_owned"]) == Decimal("12.5")
        assert ownership["transaction_ids"] == [body["transaction_id"]]

    def test_insufficient_fractions_is_409(self, artwork) -> None:
        client.post(
            f"{API}/artworks/{artwork['id']}/purchases",
            json={"ownership_percentage": "95"},
            headers=_headers(),
        )
        response = client.post(
            f"{API}/artworks/{artwork['id']}/purchases",
            json={"ownership_percentage": "10"},
            headers=_headers(),
        )
        assert response.status_code == 409
        assert response.json()["error"] == "Insufficient fractions"

    def test_unknown_artwork_is_404(self) -> None:
        response = client.post(
            f"{API}/artworks/{uuid4()}/purchases",
            json={"ownership_percentage": "10"},
            headers=_headers(),
        )
        assert response.status_code == 404

    def test_percentage_over_100_rejected(self, artwork) -> None:
        response = client.post(
            f"{API}/artworks/{artwork['id']}/purchases",
            json={"ownership_percentage": "101"},
            headers=_headers(),
        )
        assert response.status_code == 422

    def test_cap_table(self, artwork) -> None:
        for pct in ("30", "25"):
            client.post(
                f"{API}/artworks/{artwork['id']}/purchases",
                json={"ownership_percentage": pct},
                headers=_headers(),
            )

        body = client.get(f"{API}/artworks/{artwork['id']}/cap-table").json()

        assert Decimal(body["total_percentage"]) == Decimal("55")
        assert Decimal(body["unowned_percentage"]) == Decimal("45")
        assert len(body["owners"]) == 2


# ══════════════════════════════════════════════════════════════════════
# Portfolio and transactions
# ══════════════════════════════════════════════════════════════════════


class TestPortfolioEndpoint:
    def test_portfolio(self, artwork) -> None:
        buyer = _headers()
        client.post(
            f"{API}/artworks/{artwork['id']}/purchases",
            json={"ownership_percentage": "20"},
            headers=buyer,
        )

        body = client.get(f"{API}/portfolio", headers=buyer).json()

        assert body["partial"] is False
        assert Decimal(body["stats"]["total_value"]) == Decimal("200")
        assert body["stats"]["artworks_owned"] == 1
        assert body["holdings"][0]["artwork_title"] == "Blue Harbour"

    def test_empty_portfolio(self) -> None:
        body = client.get(f"{API}/portfolio", headers=_headers()).json()
        assert body["holdings"] == []
        assert Decimal(body["stats"]["total_value"]) == Decimal("0")


class TestTransactionEndpoints:
    def test_history_for_both_sides(self, artwork, artist_headers) -> None:
        buyer = _headers()
        client.post(
            f"{API}/artworks/{artwork['id']}/purchases",
            json={"ownership_percentage": "10"},
            headers=buyer,
        )

        bought = client.get(f"{API}/transactions", headers=buyer).json()
        sold = client.get(
            f"{API}/transactions", params={"direction": "sell"}, headers=artist_headers
        ).json()

        assert Decimal(bought["total_bought"]) == Decimal("100")
        assert Decimal(sold["total_sold"]) == Decimal("100")
        assert sold["transactions"][0]["artwork_title"] == "Blue Harbour"

    def test_bad_direction(self) -> None:
        response = client.get(
            f"{API}/transactions", params={"direction": "gifted"}, headers=_headers()
        )
        assert response.status_code == 422

    def test_csv_export(self, artwork) -> None:
        buyer = _headers()
        client.post(
            f"{API}/artworks/{artwork['id']}/purchases",
            json={"ownership_percentage": "10"},
            headers=buyer,
        )

        response = client.get(f"{API}/transactions/export", headers=buyer)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=\"transactions_" in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert lines[0] == "Date,Type,Artwork,Amount,Currency,Status,Transaction ID"
        assert ",fraction_purchase,Blue Harbour,100.00,USD,completed," in lines[1]


# ══════════════════════════════════════════════════════════════════════
# Auctions
# ══════════════════════════════════════════════════════════════════════


class TestAuctionEndpoints:
    def test_bid_flow(self, artwork, artist_headers) -> None:
        auction = _open_auction(artwork, artist_headers)
        assert auction["status"] == "active"
        assert Decimal(auction["minimum_next_bid"]) == Decimal("105")

        low = client.post(
            f"{API}/auctions/{auction['id']}/bids", json={"amount": "104.99"}, headers=_headers()
        )
        ok = client.post(
            f"{API}/auctions/{auction['id']}/bids", json={"amount": "105"}, headers=_headers()
        )

        assert low.status_code == 422
        assert ok.status_code == 201
        assert ok.json()["auction"]["bid_count"] == 1

        detail = client.get(f"{API}/auctions/{auction['id']}").json()
        assert len(detail["bids"]) == 1
        assert Decimal(detail["auction"]["current_bid"]) == Decimal("105")

    def test_non_owner_cannot_open(self, artwork) -> None:
        response = client.post(
            f"{API}/auctions",
            json={"artwork_id": artwork["id"], "start_price": "100"},
            headers=_headers(),
        )
        assert response.status_code == 403

    def test_naive_datetime_rejected(self, artwork, artist_headers) -> None:
        response = client.post(
            f"{API}/auctions",
            json={
                "artwork_id": artwork["id"],
                "start_price": "100",
                "ends_at": "2030-01-01T00:00:00",
            },
            headers=artist_headers,
        )
        assert response.status_code == 422

    def test_seller_closes_open_ended(self, artwork, artist_headers) -> None:
        auction = _open_auction(artwork, artist_headers, reserve_price="150")
        client.post(
            f"{API}/auctions/{auction['id']}/bids", json={"amount": "140"}, headers=_headers()
        )

        response = client.post(f"{API}/auctions/{auction['id']}/close", headers=artist_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "closed_unsold"
        assert response.json()["minimum_next_bid"] is None

    def test_cancel_and_list(self, artwork, artist_headers) -> None:
        auction = _open_auction(artwork, artist_headers)

        forbidden = client.post(f"{API}/auctions/{auction['id']}/cancel", headers=_headers())
        cancelled = client.post(f"{API}/auctions/{auction['id']}/cancel", headers=artist_headers)
        listed = client.get(f"{API}/auctions", params={"status": "cancelled"}).json()

        assert forbidden.status_code == 403
        assert cancelled.json()["status"] == "cancelled"
        assert listed["count"] == 1

    def test_unknown_auction_is_404(self) -> None:
        response = client.get(f"{API}/auctions/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "Auction not found"
