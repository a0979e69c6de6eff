"""
Data Transfer Objects for the marketplace application layer.

DTOs carry data between the interface and application layers.
They are plain dataclasses with no behavior.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fracart.domain.marketplace.entities import Artwork, Auction, Bid


# ── Artworks ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CreateArtworkCommand:
    """Input DTO for listing a new artwork.

    Attributes:
        title: Display title.
        price_amount: Whole-artwork list price.
        fractions_total: Number of ownership units issued.
        description: Optional free text.
        price_denom: Currency code of the list price.
    """

    title: str
    price_amount: Decimal
    fractions_total: int
    description: Optional[str] = None
    price_denom: str = "USD"


@dataclass(frozen=True)
class ListArtworksQuery:
    """Input DTO for browsing artworks.

    Attributes:
        search: Case-insensitive substring over title and description.
        status: Lifecycle status value (draft, available, sold).
        min_price: Inclusive lower bound on list price.
        max_price: Inclusive upper bound on list price.
        sort: newest, oldest, price-low, price-high or title.
    """

    search: Optional[str] = None
    status: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    sort: str = "newest"


@dataclass(frozen=True)
class ArtworkResult:
    """Output DTO for an artwork listing."""

    id: UUID
    title: str
    description: Optional[str]
    owner_user_id: UUID
    price_amount: Decimal
    price_denom: str
    fractions_total: int
    fractions_available: int
    status: str
    created_at: datetime

    @classmethod
    def from_entity(cls, artwork: Artwork) -> "ArtworkResult":
        return cls(
            id=artwork.id,
            title=artwork.title,
            description=artwork.description,
            owner_user_id=artwork.owner_user_id,
            price_amount=artwork.price_amount,
            price_denom=artwork.price_denom,
            fractions_total=artwork.fractions_total,
            fractions_available=artwork.fractions_available,
            status=artwork.status.value,
            created_at=artwork.created_at,
        )


# ── Purchases and ownership ──────────────────────────────────────────


@dataclass(frozen=True)
class PurchaseFractionsCommand:
    """Input DTO for buying an ownership stake.

    Attributes:
        artwork_id: Artwork to buy into.
        ownership_percentage: Stake to acquire, in (0, 100].
    """

    artwork_id: UUID
    ownership_percentage: Decimal


@dataclass(frozen=True)
class PurchaseResult:
    """Output DTO for a completed fraction purchase.

    Attributes:
        transaction_id: Ledger entry recording the purchase.
        amount: Total charged for the stake.
        fraction_units: Units of availability consumed.
        price_per_fraction: amount / fraction_units.
        fractions_remaining: Units still available after the purchase.
    """

    transaction_id: UUID
    artwork_id: UUID
    buyer_user_id: UUID
    ownership_percentage: Decimal
    amount: Decimal
    currency: str
    fraction_units: int
    price_per_fraction: Decimal
    fractions_remaining: int
    created_at: datetime


@dataclass(frozen=True)
class GetOwnershipQuery:
    """Input DTO for one user's stake in one artwork."""

    user_id: UUID
    artwork_id: UUID


@dataclass(frozen=True)
class OwnershipResult:
    """Output DTO for a user's cumulative ownership of an artwork."""

    user_id: UUID
    artwork_id: UUID
    shares_owned: Decimal
    purchase_price: Decimal
    transaction_ids: list[UUID] = field(default_factory=list)


@dataclass(frozen=True)
class CapTableEntry:
    user_id: UUID
    shares_owned: Decimal


@dataclass(frozen=True)
class CapTableResult:
    """Output DTO for an artwork's ownership across all buyers."""

    artwork_id: UUID
    total_percentage: Decimal
    unowned_percentage: Decimal
    owners: list[CapTableEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ── Portfolio ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class HoldingResult:
    """Output DTO for one valued holding."""

    artwork_id: UUID
    artwork_title: str
    shares_owned: Decimal
    purchase_price: Decimal
    current_value: Decimal
    gains: Decimal
    gains_percentage: Decimal
    transaction_count: int
    valuation_as_of: Optional[datetime]
    degraded: bool


@dataclass(frozen=True)
class AllocationResult:
    artwork_id: UUID
    artwork_title: str
    current_value: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class PortfolioStatsResult:
    total_value: Decimal
    total_invested: Decimal
    total_gains: Decimal
    gains_percentage: Decimal
    artworks_owned: int
    active_transactions: int
    pending_transactions: int


@dataclass(frozen=True)
class PortfolioView:
    """Output DTO for a user's portfolio.

    Attributes:
        partial: True when at least one holding is valued at cost basis.
        warnings: Consistency anomalies and degraded valuations.
    """

    user_id: UUID
    stats: PortfolioStatsResult
    holdings: list[HoldingResult] = field(default_factory=list)
    allocation: list[AllocationResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    partial: bool = False


# ── Transaction history ──────────────────────────────────────────────


@dataclass(frozen=True)
class TransactionHistoryQuery:
    """Input DTO for a user's transaction history.

    Attributes:
        user_id: The user on either side of the transactions.
        direction: all, buy, sell, pending or completed.
        search: Case-insensitive substring over artwork title and kind.
        order_by: created_at or amount.
        descending: Sort direction.
    """

    user_id: UUID
    direction: str = "all"
    search: Optional[str] = None
    order_by: str = "created_at"
    descending: bool = True


@dataclass(frozen=True)
class TransactionResult:
    """Output DTO for one ledger entry as seen by a participant."""

    id: UUID
    artwork_id: UUID
    artwork_title: str
    buyer_user_id: UUID
    seller_user_id: Optional[UUID]
    kind: str
    status: str
    amount: Decimal
    currency: str
    ownership_percentage: Decimal
    created_at: datetime


@dataclass(frozen=True)
class TransactionHistoryResult:
    """Output DTO for a filtered history plus its summary totals.

    Attributes:
        total_bought: Sum of amounts where the user is the buyer.
        total_sold: Sum of amounts where the user is the seller.
        pending_count: Number of listed transactions still pending.
    """

    transactions: list[TransactionResult] = field(default_factory=list)
    total_bought: Decimal = Decimal("0")
    total_sold: Decimal = Decimal("0")
    pending_count: int = 0


@dataclass(frozen=True)
class ExportResult:
    """Output DTO for a CSV export."""

    filename: str
    content: str
    row_count: int


# ── Auctions ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CreateAuctionCommand:
    """Input DTO for opening an auction.

    Attributes:
        artwork_id: Artwork to auction; the caller must own it.
        start_price: Opening price.
        reserve_price: Lowest winning bid, if any.
        starts_at: Scheduled start; now when omitted.
        ends_at: Scheduled end; open-ended when omitted.
    """

    artwork_id: UUID
    start_price: Decimal
    reserve_price: Optional[Decimal] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


@dataclass(frozen=True)
class ListAuctionsQuery:
    status: Optional[str] = None


@dataclass(frozen=True)
class PlaceBidCommand:
    auction_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class AuctionCommand:
    """Input DTO for seller actions on an auction (cancel, close)."""

    auction_id: UUID


@dataclass(frozen=True)
class AuctionResult:
    """Output DTO for an auction."""

    id: UUID
    artwork_id: UUID
    seller_user_id: UUID
    start_price: Decimal
    reserve_price: Optional[Decimal]
    status: str
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    current_bid: Optional[Decimal]
    bid_count: int
    created_at: datetime
    minimum_next_bid: Optional[Decimal] = None

    @classmethod
    def from_entity(
        cls, auction: Auction, minimum_next_bid: Optional[Decimal] = None
    ) -> "AuctionResult":
        return cls(
            id=auction.id,
            artwork_id=auction.artwork_id,
            seller_user_id=auction.seller_user_id,
            start_price=auction.start_price,
            reserve_price=auction.reserve_price,
            status=auction.status.value,
            starts_at=auction.starts_at,
            ends_at=auction.ends_at,
            current_bid=auction.current_bid,
            bid_count=auction.bid_count,
            created_at=auction.created_at,
            minimum_next_bid=minimum_next_bid,
        )


@dataclass(frozen=True)
class BidEntry:
    id: UUID
    bidder_user_id: UUID
    amount: Decimal
    created_at: datetime

    @classmethod
    def from_entity(cls, bid: Bid) -> "BidEntry":
        return cls(
            id=bid.id,
            bidder_user_id=bid.bidder_user_id,
            amount=bid.amount,
            created_at=bid.created_at,
        )


@dataclass(frozen=True)
class PlaceBidResult:
    """Output DTO for an accepted bid and the auction after it."""

    bid: BidEntry
    auction: AuctionResult


@dataclass(frozen=True)
class AuctionDetailResult:
    """Output DTO for an auction with its bid history (newest first)."""

    auction: AuctionResult
    bids: list[BidEntry] = field(default_factory=list)
