"""
Domain events emitted by the marketplace core.

Events are immutable facts. Delivery is at-least-once and best-effort:
consumers must tolerate duplicates and reordering, and reconcile against
the ledger's authoritative state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from fracart.domain.marketplace.entities import utcnow


@dataclass(frozen=True)
class DomainEvent:
    """Base class for marketplace events."""

    occurred_at: datetime = field(default_factory=utcnow, kw_only=True)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event for JSON transport."""
        payload: dict[str, Any] = {"event": self.event_type}
        for name, value in vars(self).items():
            if isinstance(value, (UUID, Decimal)):
                payload[name] = str(value)
            elif isinstance(value, datetime):
                payload[name] = value.isoformat()
            else:
                payload[name] = value
        return payload


@dataclass(frozen=True)
class BidAccepted(DomainEvent):
    auction_id: UUID
    bid_id: UUID
    bidder_user_id: UUID
    amount: Decimal
    bid_count: int


@dataclass(frozen=True)
class TransactionCompleted(DomainEvent):
    transaction_id: UUID
    artwork_id: UUID
    buyer_user_id: UUID
    amount: Decimal
    ownership_percentage: Decimal


@dataclass(frozen=True)
class AuctionClosed(DomainEvent):
    auction_id: UUID
    artwork_id: UUID
    status: str
    winning_bid: Optional[Decimal] = None
