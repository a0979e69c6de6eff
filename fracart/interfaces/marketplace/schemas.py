"""
Pydantic schemas for marketplace API request/response validation.

These schemas enforce input validation and define the API contract.
Money fields are decimals with at most two decimal places; timestamps
must carry a timezone. No business logic belongs here.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

MONEY_MAX_DIGITS = 18
MONEY_PLACES = 2
CURRENCY_PATTERN = r"^[A-Z]{3}$"

ArtworkSortParam = Literal["newest", "oldest", "price-low", "price-high", "title"]
ArtworkStatusParam = Literal["draft", "available", "sold"]
AuctionStatusParam = Literal["scheduled", "active", "closed_sold", "closed_unsold", "cancelled"]
DirectionParam = Literal["all", "buy", "sell", "pending", "completed"]
TransactionSortParam = Literal["created_at", "amount"]
SortOrderParam = Literal["asc", "desc"]


class _FromDTO(BaseModel):
    """Response models are populated straight from application DTOs."""

    model_config = ConfigDict(from_attributes=True)


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str


class ErrorResponse(BaseModel):
    """Standard error response returned by all error handlers."""

    error: str
    detail: str | None = None


# ------------------------------------------------------------------
# Artworks
# ------------------------------------------------------------------


class CreateArtworkRequest(BaseModel):
    """Request schema for listing an artwork.

    Attributes:
        title: Display title (1-200 chars).
        description: Optional free text.
        price_amount: Whole-artwork list price, > 0.
        fractions_total: Ownership units issued (1-1,000,000).
        price_denom: ISO currency code; the configured default when omitted.
    """

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    price_amount: Decimal = Field(
        ..., gt=0, max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_PLACES
    )
    fractions_total: int = Field(..., ge=1, le=1_000_000)
    price_denom: Optional[str] = Field(default=None, pattern=CURRENCY_PATTERN)


class ArtworkResponse(_FromDTO):
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


class ArtworkListResponse(BaseModel):
    artworks: list[ArtworkResponse]
    count: int


# ------------------------------------------------------------------
# Purchases and ownership
# ------------------------------------------------------------------


class PurchaseFractionsRequest(BaseModel):
    """Request schema for buying an ownership stake.

    Attributes:
        ownership_percentage: Stake to acquire, in (0, 100].
    """

    ownership_percentage: Decimal = Field(..., gt=0, le=100, decimal_places=4)


class PurchaseResponse(_FromDTO):
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


class OwnershipResponse(_FromDTO):
    user_id: UUID
    artwork_id: UUID
    shares_owned: Decimal
    purchase_price: Decimal
    transaction_ids: list[UUID]


class CapTableEntryItem(_FromDTO):
    user_id: UUID
    shares_owned: Decimal


class CapTableResponse(_FromDTO):
    artwork_id: UUID
    total_percentage: Decimal
    unowned_percentage: Decimal
    owners: list[CapTableEntryItem]
    warnings: list[str]


# ------------------------------------------------------------------
# Portfolio
# ------------------------------------------------------------------


class HoldingItem(_FromDTO):
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


class AllocationItem(_FromDTO):
    artwork_id: UUID
    artwork_title: str
    current_value: Decimal
    percentage: Decimal


class PortfolioStatsItem(_FromDTO):
    total_value: Decimal
    total_invested: Decimal
    total_gains: Decimal
    gains_percentage: Decimal
    artworks_owned: int
    active_transactions: int
    pending_transactions: int


class PortfolioResponse(_FromDTO):
    """Response schema for the portfolio endpoint.

    ``partial`` is true when some holdings are valued at cost basis
    because their valuation was unavailable.
    """

    user_id: UUID
    stats: PortfolioStatsItem
    holdings: list[HoldingItem]
    allocation: list[AllocationItem]
    warnings: list[str]
    partial: bool


# ------------------------------------------------------------------
# Transactions
# ------------------------------------------------------------------


class TransactionItem(_FromDTO):
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


class TransactionHistoryResponse(_FromDTO):
    transactions: list[TransactionItem]
    total_bought: Decimal
    total_sold: Decimal
    pending_count: int


# ------------------------------------------------------------------
# Auctions
# ------------------------------------------------------------------


class CreateAuctionRequest(BaseModel):
    """Request schema for opening an auction.

    Attributes:
        artwork_id: Artwork owned by the caller.
        start_price: Opening price, > 0.
        reserve_price: Optional lowest winning bid.
        starts_at: Optional scheduled start (timezone-aware).
        ends_at: Optional scheduled end (timezone-aware).
    """

    artwork_id: UUID
    start_price: Decimal = Field(
        ..., gt=0, max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_PLACES
    )
    reserve_price: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_PLACES
    )
    starts_at: Optional[AwareDatetime] = None
    ends_at: Optional[AwareDatetime] = None


class PlaceBidRequest(BaseModel):
    amount: Decimal = Field(
        ..., gt=0, max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_PLACES
    )


class AuctionResponse(_FromDTO):
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
    minimum_next_bid: Optional[Decimal]


class AuctionListResponse(BaseModel):
    auctions: list[AuctionResponse]
    count: int


class BidItem(_FromDTO):
    id: UUID
    bidder_user_id: UUID
    amount: Decimal
    created_at: datetime


class AuctionDetailResponse(_FromDTO):
    auction: AuctionResponse
    bids: list[BidItem]


class PlaceBidResponse(_FromDTO):
    bid: BidItem
    auction: AuctionResponse
