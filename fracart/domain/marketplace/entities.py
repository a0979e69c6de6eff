"""
Domain entities for the marketplace bounded context.

Entities represent core business objects with identity and lifecycle.
They contain no framework imports and no IO operations.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

HUNDRED = Decimal("100")


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Role(Enum):
    """Role claim issued by the authentication provider."""

    INVESTOR = "investor"
    ARTIST = "artist"


class ArtworkStatus(Enum):
    """Lifecycle status of an artwork listing."""

    DRAFT = "draft"
    AVAILABLE = "available"
    SOLD = "sold"


class TransactionKind(Enum):
    """Kind of ledger transaction."""

    FRACTION_PURCHASE = "fraction_purchase"
    SALE = "sale"
    BID = "bid"


class TransactionStatus(Enum):
    """Settlement status of a ledger transaction."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AuctionStatus(Enum):
    """Auction lifecycle status.

    scheduled -> active -> closed_sold | closed_unsold
    cancelled is reachable from scheduled or active.
    """

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    CLOSED_SOLD = "closed_sold"
    CLOSED_UNSOLD = "closed_unsold"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            AuctionStatus.CLOSED_SOLD,
            AuctionStatus.CLOSED_UNSOLD,
            AuctionStatus.CANCELLED,
        )


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller identity, passed explicitly into use cases."""

    user_id: UUID
    role: Role = Role.INVESTOR


@dataclass(frozen=True)
class Artwork:
    """An artwork listed for fractional ownership."""

    id: UUID
    title: str
    owner_user_id: UUID
    price_amount: Decimal
    fractions_total: int
    fractions_available: int
    price_denom: str = "USD"
    status: ArtworkStatus = ArtworkStatus.AVAILABLE
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def price_per_percent(self) -> Decimal:
        """List price of one ownership percentage point."""
        return self.price_amount / HUNDRED


@dataclass(frozen=True)
class Transaction:
    """An append-only ledger entry.

    Fraction purchases carry ``ownership_percentage`` in metadata and
    consume ``fraction_units`` of the artwork's availability.
    """

    buyer_user_id: UUID
    artwork_id: UUID
    amount: Decimal
    kind: TransactionKind
    id: UUID = field(default_factory=uuid4)
    seller_user_id: Optional[UUID] = None
    currency: str = "USD"
    status: TransactionStatus = TransactionStatus.COMPLETED
    fraction_units: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def ownership_percentage(self) -> Decimal:
        """Ownership percentage recorded in metadata (0 when absent)."""
        raw = self.metadata.get("ownership_percentage")
        if raw is None:
            return Decimal("0")
        return Decimal(str(raw))

    @property
    def is_completed_purchase(self) -> bool:
        return (
            self.kind is TransactionKind.FRACTION_PURCHASE
            and self.status is TransactionStatus.COMPLETED
        )


@dataclass(frozen=True)
class Auction:
    """An auction of an artwork, with denormalized bid statistics."""

    id: UUID
    artwork_id: UUID
    seller_user_id: UUID
    start_price: Decimal
    status: AuctionStatus
    reserve_price: Optional[Decimal] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    current_bid: Optional[Decimal] = None
    bid_count: int = 0
    created_at: datetime = field(default_factory=utcnow)

    @property
    def highest_or_start(self) -> Decimal:
        """Current highest bid, or the start price before the first bid."""
        return self.current_bid if self.current_bid is not None else self.start_price


@dataclass(frozen=True)
class Bid:
    """A single bid on an auction."""

    auction_id: UUID
    bidder_user_id: UUID
    amount: Decimal
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Valuation:
    """Current value estimate for one artwork.

    ``value`` is the whole-artwork valuation; ``unit_value`` is the value
    of one ownership percentage point.
    """

    artwork_id: UUID
    value: Decimal
    as_of: datetime

    @property
    def unit_value(self) -> Decimal:
        return self.value / HUNDRED


@dataclass(frozen=True)
class Holding:
    """A user's aggregated position in one artwork, derived from the ledger."""

    artwork_id: UUID
    user_id: UUID
    shares_owned: Decimal
    purchase_price: Decimal
    artwork_title: str = ""
    transaction_count: int = 0
    current_value: Optional[Decimal] = None
    valuation_as_of: Optional[datetime] = None
    degraded: bool = False

    @property
    def gains(self) -> Decimal:
        if self.current_value is None:
            return Decimal("0")
        return self.current_value - self.purchase_price

    @property
    def gains_percentage(self) -> Decimal:
        """Gain relative to cost basis; 0 when nothing was paid."""
        if self.purchase_price == 0:
            return Decimal("0")
        return self.gains / self.purchase_price * HUNDRED


@dataclass(frozen=True)
class PortfolioStats:
    """Portfolio-level totals across all holdings."""

    total_value: Decimal = Decimal("0")
    total_invested: Decimal = Decimal("0")
    total_gains: Decimal = Decimal("0")
    gains_percentage: Decimal = Decimal("0")
    artworks_owned: int = 0
    active_transactions: int = 0
    pending_transactions: int = 0
