"""
Query filters for ledger reads.

Filters are plain value objects. Each one can test a single entity
in memory, and SQL adapters translate the same fields into WHERE clauses.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from fracart.domain.marketplace.entities import (
    Artwork,
    ArtworkStatus,
    Transaction,
    TransactionKind,
    TransactionStatus,
)


class ArtworkSort(Enum):
    """Sort orders offered by the artwork browse view."""

    NEWEST = "newest"
    OLDEST = "oldest"
    PRICE_LOW = "price-low"
    PRICE_HIGH = "price-high"
    TITLE = "title"


class TransactionOrder(Enum):
    """Sortable transaction columns."""

    CREATED_AT = "created_at"
    AMOUNT = "amount"


@dataclass(frozen=True)
class ArtworkFilter:
    """Browse filter over artworks.

    Attributes:
        search: Case-insensitive substring matched against title and description.
        status: Restrict to a lifecycle status.
        min_price: Inclusive lower bound on list price.
        max_price: Inclusive upper bound on list price.
        sort: Result ordering.
    """

    search: Optional[str] = None
    status: Optional[ArtworkStatus] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    sort: ArtworkSort = ArtworkSort.NEWEST

    def matches(self, artwork: Artwork) -> bool:
        if self.search:
            needle = self.search.lower()
            haystack = f"{artwork.title} {artwork.description or ''}".lower()
            if needle not in haystack:
                return False
        if self.status is not None and artwork.status is not self.status:
            return False
        if self.min_price is not None and artwork.price_amount < self.min_price:
            return False
        if self.max_price is not None and artwork.price_amount > self.max_price:
            return False
        return True


@dataclass(frozen=True)
class TransactionFilter:
    """Predicate and ordering for transaction queries.

    ``participant_id`` matches either side of a transaction.
    Ordering defaults to newest first.
    """

    buyer_id: Optional[UUID] = None
    seller_id: Optional[UUID] = None
    participant_id: Optional[UUID] = None
    artwork_id: Optional[UUID] = None
    status: Optional[TransactionStatus] = None
    kind: Optional[TransactionKind] = None
    order_by: TransactionOrder = TransactionOrder.CREATED_AT
    descending: bool = True
    limit: Optional[int] = None

    def matches(self, txn: Transaction) -> bool:
        if self.buyer_id is not None and txn.buyer_user_id != self.buyer_id:
            return False
        if self.seller_id is not None and txn.seller_user_id != self.seller_id:
            return False
        if self.participant_id is not None and self.participant_id not in (
            txn.buyer_user_id,
            txn.seller_user_id,
        ):
            return False
        if self.artwork_id is not None and txn.artwork_id != self.artwork_id:
            return False
        if self.status is not None and txn.status is not self.status:
            return False
        if self.kind is not None and txn.kind is not self.kind:
            return False
        return True

    def sort_key(self, txn: Transaction):
        # id breaks ties so equal timestamps still order deterministically
        if self.order_by is TransactionOrder.AMOUNT:
            return (txn.amount, str(txn.id))
        return (txn.created_at, str(txn.id))
