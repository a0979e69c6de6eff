"""
Ledger write rules shared by every LedgerStore adapter.

Each check raises before any mutation happens.
"""

from decimal import Decimal
from typing import Optional

from fracart.domain.marketplace.entities import (
    HUNDRED,
    Artwork,
    Auction,
    AuctionStatus,
    Bid,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from fracart.domain.marketplace.errors import ConflictError, ValidationError


def validate_new_artwork(artwork: Artwork) -> None:
    if artwork.price_amount <= 0:
        raise ValidationError("Artwork price must be positive")
    if artwork.fractions_total < 1:
        raise ValidationError("Artwork must issue at least one fraction")
    if not artwork.title or not artwork.title.strip():
        raise ValidationError("Artwork title is required")


def consumes_fractions(txn: Transaction) -> bool:
    """Whether recording this transaction decrements artwork availability."""
    return (
        txn.kind is TransactionKind.FRACTION_PURCHASE
        and txn.status is not TransactionStatus.FAILED
    )


def validate_transaction(txn: Transaction) -> None:
    if txn.amount < 0:
        raise ValidationError("Transaction amount cannot be negative")
    if txn.kind is TransactionKind.FRACTION_PURCHASE:
        percentage = txn.ownership_percentage
        if percentage <= 0 or percentage > HUNDRED:
            raise ValidationError("Ownership percentage must be in (0, 100]")
        if txn.fraction_units < 1:
            raise ValidationError("A fraction purchase must consume at least one unit")


def minimum_next_bid(auction: Auction, min_increment: Decimal) -> Decimal:
    """Smallest amount the next bid may have."""
    return auction.highest_or_start * (Decimal("1") + min_increment)


def check_bid(auction: Auction, bid: Bid, min_increment: Decimal) -> None:
    """Reject a bid that is not allowed against the auction's current state."""
    if auction.status is not AuctionStatus.ACTIVE:
        raise ValidationError(f"Auction is not active (status: {auction.status.value})")
    minimum = minimum_next_bid(auction, min_increment)
    if bid.amount < minimum:
        raise ValidationError(f"Bid must be at least {minimum}")


def check_bid_not_stale(auction: Auction, expected_bid_count: Optional[int]) -> None:
    """Reject a bid placed against an out-of-date view of the auction."""
    if expected_bid_count is not None and auction.bid_count != expected_bid_count:
        raise ConflictError(
            f"Auction {auction.id} received another bid (highest now "
            f"{auction.highest_or_start}); refresh and retry"
        )
